"""Lifecycle of the helper that exposes a volume over SSH."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from kubernetes_asyncio.client import V1Service
from structlog.stdlib import BoundLogger

from ..config import Config
from ..exceptions import HelperStartupError
from ..models.domain.helper import HelperResource, HelperState, NodeBinding
from ..models.domain.kubernetes import ServiceType
from ..storage.kubernetes.helper import HelperStorage
from ..timeout import Timeout
from .builder.helper import HelperBuilder
from .keys import KeyPair

__all__ = ["EndpointManager"]


class EndpointManager:
    """Create and always delete the helper for one job.

    Parameters
    ----------
    config
        syncpod configuration.
    helper_builder
        Builder for the helper Kubernetes objects.
    helper_storage
        Kubernetes storage layer for the helper.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        config: Config,
        helper_builder: HelperBuilder,
        helper_storage: HelperStorage,
        logger: BoundLogger,
    ) -> None:
        self._config = config
        self._builder = helper_builder
        self._storage = helper_storage
        self._logger = logger

    @asynccontextmanager
    async def endpoint(
        self,
        *,
        pvc: str,
        namespace: str,
        mount_path: str,
        key_pair: KeyPair,
        binding: NodeBinding,
    ) -> AsyncIterator[HelperResource]:
        """Provide a running helper for the duration of a block.

        The helper pod is created first and the service only once the pod is
        running. On exit from the block, for any reason including a failure
        while creating the helper, the service and then the pod are deleted.

        Parameters
        ----------
        pvc
            Name of the PersistentVolumeClaim to mount.
        namespace
            Namespace of the claim and of the helper.
        mount_path
            Where to mount the volume inside the helper container.
        key_pair
            Key pair whose public key the helper accepts.
        binding
            Node to run the helper on.

        Yields
        ------
        HelperResource
            Running helper with its connection host and port set.

        Raises
        ------
        HelperStartupError
            Raised if the helper pod stopped instead of starting, or the
            service was not assigned a port.
        KubernetesError
            Raised if there is some failure in a Kubernetes API call.
        OperationTimeoutError
            Raised if the helper did not start within the startup timeout.
        """
        helper = HelperResource(
            name=self._builder.build_name(),
            namespace=namespace,
            pvc=pvc,
            mount_path=mount_path,
            binding=binding,
            port=self._config.ssh_port,
        )
        logger = self._logger.bind(helper=helper.name, namespace=namespace)
        try:
            await self._start(helper, key_pair, logger)
            yield helper
        finally:
            await self._delete(helper, logger)

    async def _start(
        self, helper: HelperResource, key_pair: KeyPair, logger: BoundLogger
    ) -> None:
        objects = self._builder.build(helper, key_pair.public_key)
        timeout = Timeout("Helper startup", self._config.startup_timeout)
        logger.info("Creating helper pod", node=helper.binding.node)
        await self._storage.create_pod(objects.pod, timeout)
        service = await self._storage.create_service(objects.service, timeout)
        helper.host, helper.external_port = self._get_target(helper, service)
        helper.state = HelperState.RUNNING
        logger.info(
            "Helper is running",
            host=helper.host,
            port=helper.external_port,
            elapsed=timeout.elapsed(),
        )

    async def _delete(
        self, helper: HelperResource, logger: BoundLogger
    ) -> None:
        """Delete the service and then the pod, logging any failure."""
        helper.state = HelperState.DELETING
        timeout = Timeout("Helper cleanup", self._config.cleanup_timeout)
        name = helper.name
        namespace = helper.namespace
        try:
            await self._storage.delete_service(name, namespace, timeout)
        except Exception as e:
            logger.warning("Unable to delete helper service", error=str(e))
        try:
            await self._storage.delete_pod(name, namespace, timeout)
        except Exception as e:
            logger.warning("Unable to delete helper pod", error=str(e))
        helper.state = HelperState.DELETED
        logger.info("Deleted helper")

    def _get_target(
        self, helper: HelperResource, service: V1Service
    ) -> tuple[str, int]:
        """Determine the host and port to connect to."""
        if self._config.service_type == ServiceType.CLUSTER_IP:
            host = self._config.ssh_host or service.spec.cluster_ip
            if not host:
                msg = f"Service {helper.name} has no cluster IP"
                raise HelperStartupError(msg)
            return (host, helper.port)
        ports = service.spec.ports or []
        node_port = ports[0].node_port if ports else None
        if not node_port:
            msg = f"Service {helper.name} was not assigned a node port"
            raise HelperStartupError(msg)
        host = self._config.ssh_host or helper.binding.address
        return (host, node_port)
