"""Kubernetes storage layer for the helper pod and service."""

from __future__ import annotations

from datetime import timedelta

from kubernetes_asyncio.client import ApiClient, V1Pod, V1Service
from structlog.stdlib import BoundLogger

from ...exceptions import HelperStartupError, KubernetesError
from ...models.domain.kubernetes import PodPhase
from ...timeout import Timeout
from .deleter import ServiceStorage
from .pod import PodStorage

__all__ = ["HelperStorage"]


class HelperStorage:
    """Kubernetes storage layer for the objects making up a helper.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    poll_interval
        Delay between checks of the pod phase while waiting for it to start.
    logger
        Logger to use.

    Notes
    -----
    This class isn't strictly necessary; instead, the endpoint service could
    call the storage layers for the pod and service directly. Having a
    wrapper layer keeps the startup rules in one place.
    """

    def __init__(
        self,
        api_client: ApiClient,
        *,
        poll_interval: timedelta,
        logger: BoundLogger,
    ) -> None:
        self._poll_interval = poll_interval
        self._logger = logger
        self._pod = PodStorage(api_client, logger)
        self._service = ServiceStorage(api_client, logger)

    async def create_pod(self, pod: V1Pod, timeout: Timeout) -> None:
        """Create the helper pod and wait for it to be running.

        Parameters
        ----------
        pod
            Pod to create.
        timeout
            How long to wait for the pod to start.

        Raises
        ------
        HelperStartupError
            Raised if the pod stopped or vanished instead of starting.
        KubernetesError
            Raised if there is some failure in a Kubernetes API call.
        OperationTimeoutError
            Raised if the pod is not running before the timeout expires.
        """
        name = pod.metadata.name
        namespace = pod.metadata.namespace
        await self._pod.create(namespace, pod, timeout)
        phase = await self._pod.wait_for_phase(
            name,
            namespace,
            until_not={PodPhase.PENDING, PodPhase.UNKNOWN},
            timeout=timeout,
            interval=self._poll_interval,
        )
        if phase is None:
            msg = f"Helper pod {namespace}/{name} disappeared during startup"
            raise HelperStartupError(msg)
        if phase != PodPhase.RUNNING:
            msg = f"Helper pod {namespace}/{name} is in phase {phase.value}"
            raise HelperStartupError(msg)
        self._logger.debug("Helper pod is running", name=name)

    async def create_service(
        self, service: V1Service, timeout: Timeout
    ) -> V1Service:
        """Create the helper service and read back its assigned fields.

        Parameters
        ----------
        service
            Service to create.
        timeout
            Timeout on operation.

        Returns
        -------
        kubernetes_asyncio.client.V1Service
            Service as created, with its cluster IP and node port assigned.

        Raises
        ------
        KubernetesError
            Raised if there is some failure in a Kubernetes API call, or if
            the service vanished immediately after creation.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        name = service.metadata.name
        namespace = service.metadata.namespace
        await self._service.create(namespace, service, timeout)
        created = await self._service.read(name, namespace, timeout)
        if not created:
            msg = "Service disappeared after creation"
            raise KubernetesError(
                msg, kind="Service", namespace=namespace, name=name
            )
        return created

    async def delete_pod(
        self, name: str, namespace: str, timeout: Timeout
    ) -> None:
        """Delete the helper pod, treating absence as success."""
        await self._pod.delete(name, namespace, timeout)

    async def delete_service(
        self, name: str, namespace: str, timeout: Timeout
    ) -> None:
        """Delete the helper service, treating absence as success."""
        await self._service.delete(name, namespace, timeout)
