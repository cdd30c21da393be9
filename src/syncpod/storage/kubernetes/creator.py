"""Generic Kubernetes object storage supporting only create and read.

Provides a generic Kubernetes object management class and instantiations of
that class for Kubernetes object types that only support create and read.

For object types that need to support other operations, see
`~syncpod.storage.kubernetes.deleter.KubernetesObjectDeleter`, which
subclasses `KubernetesObjectCreator` and adds list and delete support, and its
subclasses.
"""

from collections.abc import Awaitable, Callable
from typing import Any

from kubernetes_asyncio import client
from kubernetes_asyncio.client import (
    ApiClient,
    ApiException,
    V1PersistentVolumeClaim,
)
from structlog.stdlib import BoundLogger

from ...exceptions import KUBERNETES_API_ERRORS, KubernetesError
from ...models.domain.kubernetes import KubernetesModel
from ...timeout import Timeout

__all__ = [
    "KubernetesObjectCreator",
    "PersistentVolumeClaimStorage",
]


class KubernetesObjectCreator[T: KubernetesModel]:
    """Generic Kubernetes object storage supporting create and read.

    This class provides a wrapper around any Kubernetes object type that
    implements create and read operations with logging and exception
    conversion.

    This class is not meant to be used directly by code outside of the
    Kubernetes storage layer. Use one of the kind-specific classes built on
    top of it instead.

    Parameters
    ----------
    create_method
        Method to create this type of object.
    read_method
        Method to read this type of object.
    object_type
        Type of object being acted on.
    kind
        Kubernetes kind of object being acted on.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        create_method: Callable[..., Awaitable[Any]],
        read_method: Callable[..., Awaitable[Any]],
        object_type: type[T],
        kind: str,
        logger: BoundLogger,
    ) -> None:
        self._create = create_method
        self._read = read_method
        self._type = object_type
        self._kind = kind
        self._logger = logger

    async def create(self, namespace: str, body: T, timeout: Timeout) -> None:
        """Create a new Kubernetes object.

        Parameters
        ----------
        namespace
            Namespace of the object.
        body
            New object.
        timeout
            Timeout on operation.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        msg = f"Creating {self._kind}"
        self._logger.debug(msg, name=body.metadata.name, namespace=namespace)
        async with timeout.enforce():
            try:
                await self._create(
                    namespace, body, _request_timeout=timeout.left()
                )
            except KUBERNETES_API_ERRORS as e:
                raise KubernetesError.from_exception(
                    "Error creating object",
                    e,
                    kind=self._kind,
                    namespace=namespace,
                    name=body.metadata.name,
                ) from e

    async def read(
        self, name: str, namespace: str, timeout: Timeout
    ) -> T | None:
        """Read a Kubernetes object.

        Parameters
        ----------
        name
            Name of the object.
        namespace
            Namespace of the object.
        timeout
            Timeout on operation.

        Returns
        -------
        typing.Any or None
            Kubernetes object, or `None` if it does not exist.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        async with timeout.enforce():
            try:
                return await self._read(
                    name, namespace, _request_timeout=timeout.left()
                )
            except KUBERNETES_API_ERRORS as e:
                if isinstance(e, ApiException) and e.status == 404:
                    return None
                raise KubernetesError.from_exception(
                    "Error reading object",
                    e,
                    kind=self._kind,
                    namespace=namespace,
                    name=name,
                ) from e


class PersistentVolumeClaimStorage(
    KubernetesObjectCreator[V1PersistentVolumeClaim]
):
    """Storage layer for ``PersistentVolumeClaim`` objects.

    syncpod never creates claims, but reading goes through the same
    wrapper so that errors are reported consistently.

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
            create_method=api.create_namespaced_persistent_volume_claim,
            read_method=api.read_namespaced_persistent_volume_claim,
            object_type=V1PersistentVolumeClaim,
            kind="PersistentVolumeClaim",
            logger=logger,
        )
