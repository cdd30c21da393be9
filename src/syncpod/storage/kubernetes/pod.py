"""Storage layer for ``Pod`` objects."""

from __future__ import annotations

import asyncio
from datetime import timedelta

from kubernetes_asyncio import client
from kubernetes_asyncio.client import ApiClient, V1Pod
from structlog.stdlib import BoundLogger

from ...models.domain.kubernetes import PodPhase
from ...timeout import Timeout
from .deleter import KubernetesObjectDeleter

__all__ = ["PodStorage"]


class PodStorage(KubernetesObjectDeleter[V1Pod]):
    """Storage layer for ``Pod`` objects.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    logger
        Logger to use.
    """

    def __init__(self, api_client: ApiClient, logger: BoundLogger) -> None:
        api = client.CoreV1Api(api_client)
        super().__init__(
            create_method=api.create_namespaced_pod,
            delete_method=api.delete_namespaced_pod,
            list_method=api.list_namespaced_pod,
            read_method=api.read_namespaced_pod,
            object_type=V1Pod,
            kind="Pod",
            logger=logger,
        )

    async def read_phase(
        self, name: str, namespace: str, timeout: Timeout
    ) -> PodPhase | None:
        """Read the phase of a pod.

        Parameters
        ----------
        name
            Name of the pod.
        namespace
            Namespace of the pod.
        timeout
            Timeout on operation.

        Returns
        -------
        PodPhase or None
            Phase of the pod, `PodPhase.UNKNOWN` if it does not report a
            recognized phase, or `None` if the pod does not exist.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        pod = await self.read(name, namespace, timeout)
        if pod is None:
            return None
        if not pod.status or not pod.status.phase:
            return PodPhase.UNKNOWN
        try:
            return PodPhase(pod.status.phase)
        except ValueError:
            return PodPhase.UNKNOWN

    async def wait_for_phase(
        self,
        name: str,
        namespace: str,
        *,
        until_not: set[PodPhase],
        timeout: Timeout,
        interval: timedelta,
    ) -> PodPhase | None:
        """Poll a pod until it is no longer in one of the given phases.

        Parameters
        ----------
        name
            Name of the pod.
        namespace
            Namespace of the pod.
        until_not
            Keep polling as long as the pod is in one of these phases.
        timeout
            How long to wait for the phase change.
        interval
            Delay between reads of the pod.

        Returns
        -------
        PodPhase or None
            First phase not in ``until_not``, or `None` if the pod
            disappeared while waiting.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        logger = self._logger.bind(name=name, namespace=namespace)
        async with timeout.enforce():
            while True:
                phase = await self.read_phase(name, namespace, timeout)
                if phase is None or phase not in until_not:
                    return phase
                logger.debug("Waiting for pod phase change", phase=phase.value)
                await asyncio.sleep(interval.total_seconds())
