"""Tests for finding the node that holds a volume."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import pytest
from kubernetes_asyncio.client import ApiClient, ApiException
from structlog.stdlib import BoundLogger

from syncpod.exceptions import (
    AddressResolutionError,
    KubernetesError,
    NodeResolutionError,
    NotFoundError,
    PVCNotFoundError,
    UnboundVolumeError,
)
from syncpod.models.domain.helper import NodeBinding
from syncpod.services.resolver import NodeResolver
from syncpod.timeout import Timeout

from ..support.kubernetes import (
    MockSyncPodKubernetesApi,
    install_volume,
    make_node,
    make_pod_using_claim,
)


def _timeout() -> Timeout:
    return Timeout("Node resolution", timedelta(seconds=10))


@pytest.mark.asyncio
async def test_volume_affinity(
    api_client: ApiClient,
    logger: BoundLogger,
    mock_kubernetes: MockSyncPodKubernetesApi,
) -> None:
    install_volume(
        mock_kubernetes,
        pvc="scratch",
        volume="pv-scratch",
        node="node-7",
        address="10.0.0.7",
    )
    resolver = NodeResolver(api_client, logger)

    binding = await resolver.resolve("scratch", "default", _timeout())
    assert binding == NodeBinding(node="node-7", address="10.0.0.7")


@pytest.mark.asyncio
async def test_pod_wins(
    api_client: ApiClient,
    logger: BoundLogger,
    mock_kubernetes: MockSyncPodKubernetesApi,
) -> None:
    mock_kubernetes.set_node_for_test(
        make_node("node-2", internal_ip="10.0.0.2")
    )
    pod = make_pod_using_claim("web", pvc="data", node="node-2")
    await mock_kubernetes.create_namespaced_pod("default", pod)
    other = make_pod_using_claim("other", pvc="logs", node="node-3")
    await mock_kubernetes.create_namespaced_pod("default", other)
    resolver = NodeResolver(api_client, logger)

    # The volume is pinned to node-1, but a running pod already mounting
    # the claim is authoritative.
    binding = await resolver.resolve("data", "default", _timeout())
    assert binding == NodeBinding(node="node-2", address="10.0.0.2")


@pytest.mark.asyncio
async def test_hostname_address(
    api_client: ApiClient,
    logger: BoundLogger,
    mock_kubernetes: MockSyncPodKubernetesApi,
) -> None:
    node = make_node("node-1", hostname="node-1.example.com")
    mock_kubernetes.set_node_for_test(node)
    resolver = NodeResolver(api_client, logger)

    binding = await resolver.resolve("data", "default", _timeout())
    assert binding == NodeBinding(node="node-1", address="node-1.example.com")

    node = make_node(
        "node-1", hostname="node-1.example.com", internal_ip="10.1.1.1"
    )
    mock_kubernetes.set_node_for_test(node)
    binding = await resolver.resolve("data", "default", _timeout())
    assert binding.address == "10.1.1.1"


@pytest.mark.asyncio
async def test_errors(
    api_client: ApiClient,
    logger: BoundLogger,
    mock_kubernetes: MockSyncPodKubernetesApi,
) -> None:
    resolver = NodeResolver(api_client, logger)

    with pytest.raises(PVCNotFoundError) as excinfo:
        await resolver.resolve("missing", "default", _timeout())
    assert str(excinfo.value) == (
        "PersistentVolumeClaim default/missing not found"
    )

    install_volume(mock_kubernetes, pvc="pending", bound=False)
    with pytest.raises(UnboundVolumeError):
        await resolver.resolve("pending", "default", _timeout())

    install_volume(mock_kubernetes, pvc="orphan", volume="pv-orphan")
    mock_kubernetes.remove_persistent_volume_for_test("pv-orphan")
    with pytest.raises(NotFoundError) as notfound:
        await resolver.resolve("orphan", "default", _timeout())
    assert notfound.value.kind == "PersistentVolume"

    install_volume(mock_kubernetes, pvc="nfs", volume="pv-nfs", node=None)
    with pytest.raises(NodeResolutionError):
        await resolver.resolve("nfs", "default", _timeout())

    install_volume(mock_kubernetes, pvc="gone", volume="pv-gone", node="x")
    mock_kubernetes.remove_node_for_test("x")
    with pytest.raises(AddressResolutionError):
        await resolver.resolve("gone", "default", _timeout())

    mock_kubernetes.set_node_for_test(make_node("x"))
    with pytest.raises(AddressResolutionError):
        await resolver.resolve("gone", "default", _timeout())


@pytest.mark.asyncio
async def test_api_error(
    api_client: ApiClient,
    logger: BoundLogger,
    mock_kubernetes: MockSyncPodKubernetesApi,
) -> None:
    def callback(method: str, *args: Any) -> None:
        if method == "list_namespaced_pod":
            raise ApiException(status=403, reason="Forbidden")

    mock_kubernetes.error_callback = callback
    resolver = NodeResolver(api_client, logger)

    with pytest.raises(KubernetesError) as excinfo:
        await resolver.resolve("data", "default", _timeout())
    assert excinfo.value.status == 403
    assert excinfo.value.kind == "Pod"
