"""Tests for the lifecycle of the helper pod and service."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Any

import aiohttp
import pytest
from kubernetes_asyncio.client import (
    ApiClient,
    ApiException,
    V1Pod,
    V1Service,
)
from structlog.stdlib import BoundLogger

from syncpod.config import Config
from syncpod.exceptions import HelperStartupError, KubernetesError
from syncpod.factory import Factory
from syncpod.models.domain.helper import (
    HelperResource,
    HelperState,
    NodeBinding,
)
from syncpod.services.endpoint import EndpointManager
from syncpod.services.keys import KeyPair

from ..support.config import configure
from ..support.kubernetes import MockSyncPodKubernetesApi, objects_of_kind

BINDING = NodeBinding(node="node-1", address="10.0.0.5")


def _open(
    manager: EndpointManager, key_pair: KeyPair
) -> AbstractAsyncContextManager[HelperResource]:
    return manager.endpoint(
        pvc="data",
        namespace="default",
        mount_path="/data",
        key_pair=key_pair,
        binding=BINDING,
    )


@pytest.mark.asyncio
async def test_endpoint(
    factory: Factory, mock_kubernetes: MockSyncPodKubernetesApi
) -> None:
    manager = factory.create_endpoint_manager()
    key_pair = KeyPair.generate()

    async with _open(manager, key_pair) as helper:
        assert helper.state == HelperState.RUNNING
        assert helper.host == "10.0.0.5"
        assert helper.external_port == 30022
        assert helper.port == 2222

        pods = objects_of_kind(mock_kubernetes, "default", V1Pod)
        assert [p.metadata.name for p in pods] == [helper.name]
        env = {e.name: e.value for e in pods[0].spec.containers[0].env}
        assert key_pair.public_key in env.values()
        services = objects_of_kind(mock_kubernetes, "default", V1Service)
        assert [s.metadata.name for s in services] == [helper.name]

    assert helper.state == HelperState.DELETED
    assert mock_kubernetes.deleted == [
        ("Service", "default", helper.name),
        ("Pod", "default", helper.name),
    ]


@pytest.mark.asyncio
async def test_cleanup_on_error(
    factory: Factory, mock_kubernetes: MockSyncPodKubernetesApi
) -> None:
    manager = factory.create_endpoint_manager()

    with pytest.raises(ValueError, match="transfer exploded"):
        async with _open(manager, KeyPair.generate()) as helper:
            raise ValueError("transfer exploded")

    assert helper.state == HelperState.DELETED
    assert not objects_of_kind(mock_kubernetes, "default", V1Pod)
    assert not objects_of_kind(mock_kubernetes, "default", V1Service)


@pytest.mark.asyncio
async def test_pod_failed(
    factory: Factory, mock_kubernetes: MockSyncPodKubernetesApi
) -> None:
    mock_kubernetes.initial_pod_phase = "Failed"
    manager = factory.create_endpoint_manager()

    with pytest.raises(HelperStartupError, match="phase Failed"):
        async with _open(manager, KeyPair.generate()):
            pytest.fail("Helper should not have started")

    # The service is never created, so only the pod is deleted.
    assert [d[0] for d in mock_kubernetes.deleted] == ["Pod"]


@pytest.mark.asyncio
async def test_service_create_error(
    factory: Factory, mock_kubernetes: MockSyncPodKubernetesApi
) -> None:
    def callback(method: str, *args: Any) -> None:
        if method == "create_namespaced_service":
            raise ApiException(status=500, reason="Internal error")

    mock_kubernetes.error_callback = callback
    manager = factory.create_endpoint_manager()

    with pytest.raises(KubernetesError):
        async with _open(manager, KeyPair.generate()):
            pytest.fail("Helper should not have started")
    assert not objects_of_kind(mock_kubernetes, "default", V1Pod)


@pytest.mark.asyncio
async def test_delete_error(
    factory: Factory, mock_kubernetes: MockSyncPodKubernetesApi
) -> None:
    def callback(method: str, *args: Any) -> None:
        if method == "delete_namespaced_service":
            raise ApiException(status=500, reason="Internal error")

    mock_kubernetes.error_callback = callback
    manager = factory.create_endpoint_manager()

    # A failure to delete the service is logged and the pod is still
    # deleted.
    async with _open(manager, KeyPair.generate()) as helper:
        pass
    assert helper.state == HelperState.DELETED
    assert mock_kubernetes.deleted == [("Pod", "default", helper.name)]


@pytest.mark.asyncio
async def test_delete_transport_error(
    factory: Factory, mock_kubernetes: MockSyncPodKubernetesApi
) -> None:
    def callback(method: str, *args: Any) -> None:
        if method == "delete_namespaced_service":
            raise aiohttp.ClientConnectionError("Connection reset by peer")

    mock_kubernetes.error_callback = callback
    manager = factory.create_endpoint_manager()

    # The original error is not masked by the cleanup failure and the pod
    # is still deleted.
    with pytest.raises(RuntimeError, match="transfer exploded"):
        async with _open(manager, KeyPair.generate()) as helper:
            raise RuntimeError("transfer exploded")
    assert helper.state == HelperState.DELETED
    assert mock_kubernetes.deleted == [("Pod", "default", helper.name)]
    assert not objects_of_kind(mock_kubernetes, "default", V1Pod)


@pytest.mark.asyncio
async def test_cluster_ip(
    api_client: ApiClient,
    logger: BoundLogger,
    mock_kubernetes: MockSyncPodKubernetesApi,
) -> None:
    config = configure("cluster-ip")
    factory = Factory(config, api_client, logger)
    manager = factory.create_endpoint_manager()

    async with _open(manager, KeyPair.generate()) as helper:
        assert helper.host == "10.96.0.1"
        assert helper.external_port == 2022


@pytest.mark.asyncio
async def test_ssh_host(
    config: Config,
    api_client: ApiClient,
    logger: BoundLogger,
    mock_kubernetes: MockSyncPodKubernetesApi,
) -> None:
    config.ssh_host = "bastion.example.com"
    factory = Factory(config, api_client, logger)
    manager = factory.create_endpoint_manager()

    async with _open(manager, KeyPair.generate()) as helper:
        assert helper.host == "bastion.example.com"
        assert helper.external_port == 30022
