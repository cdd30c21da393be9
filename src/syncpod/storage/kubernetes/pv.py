"""Storage layer for ``PersistentVolume`` objects."""

from __future__ import annotations

from kubernetes_asyncio import client
from kubernetes_asyncio.client import (
    ApiClient,
    ApiException,
    V1PersistentVolume,
)
from structlog.stdlib import BoundLogger

from ...exceptions import KUBERNETES_API_ERRORS, KubernetesError
from ...timeout import Timeout

__all__ = ["PersistentVolumeStorage"]


class PersistentVolumeStorage:
    """Storage layer for ``PersistentVolume`` objects.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    logger
        Logger to use.
    """

    def __init__(self, api_client: ApiClient, logger: BoundLogger) -> None:
        self._api = client.CoreV1Api(api_client)
        self._logger = logger

    async def read(
        self, name: str, timeout: Timeout
    ) -> V1PersistentVolume | None:
        """Read a persistent volume.

        Parameters
        ----------
        name
            Name of the persistent volume.
        timeout
            Timeout on operation.

        Returns
        -------
        kubernetes_asyncio.client.V1PersistentVolume or None
            PersistentVolume, or `None` if it does not exist.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        async with timeout.enforce():
            try:
                return await self._api.read_persistent_volume(
                    name, _request_timeout=timeout.left()
                )
            except KUBERNETES_API_ERRORS as e:
                if isinstance(e, ApiException) and e.status == 404:
                    return None
                raise KubernetesError.from_exception(
                    "Error reading persistent volume",
                    e,
                    kind="PersistentVolume",
                    name=name,
                ) from e
