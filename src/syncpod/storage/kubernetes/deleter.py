"""Generic Kubernetes object storage including list and delete.

Provides a generic Kubernetes object management class and instantiations of
that class for Kubernetes object types that support list and delete (as well
as create and read, provided by the superclass). Storage classes for object
types that only need those operations are provided here; more complex storage
classes with other operations are defined in their own modules.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from kubernetes_asyncio import client
from kubernetes_asyncio.client import ApiClient, ApiException, V1Service
from structlog.stdlib import BoundLogger

from ...exceptions import KUBERNETES_API_ERRORS, KubernetesError
from ...models.domain.kubernetes import KubernetesModel
from ...timeout import Timeout
from .creator import KubernetesObjectCreator

__all__ = [
    "KubernetesObjectDeleter",
    "ServiceStorage",
]


class KubernetesObjectDeleter[T: KubernetesModel](KubernetesObjectCreator[T]):
    """Generic Kubernetes object storage supporting list and delete.

    This class provides a wrapper around any Kubernetes object type that
    implements create, read, list, and delete with logging and exception
    conversion. It is separate from
    `~syncpod.storage.kubernetes.creator.KubernetesObjectCreator` so that the
    mock Kubernetes API only has to implement list and delete for the kinds
    of objects syncpod actually deletes.

    Parameters
    ----------
    create_method
        Method to create this type of object.
    delete_method
        Method to delete this type of object.
    list_method
        Method to list all of this type of object.
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
        delete_method: Callable[..., Awaitable[Any]],
        list_method: Callable[..., Awaitable[Any]],
        read_method: Callable[..., Awaitable[Any]],
        object_type: type[T],
        kind: str,
        logger: BoundLogger,
    ) -> None:
        super().__init__(
            create_method=create_method,
            read_method=read_method,
            object_type=object_type,
            kind=kind,
            logger=logger,
        )
        self._delete = delete_method
        self._list = list_method

    async def delete(
        self, name: str, namespace: str, timeout: Timeout
    ) -> None:
        """Delete a Kubernetes object.

        If the object does not exist, this is silently treated as success.

        Parameters
        ----------
        name
            Name of the object.
        namespace
            Namespace of the object.
        timeout
            Timeout on operation.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        self._logger.debug(
            f"Deleting {self._kind}", name=name, namespace=namespace
        )
        async with timeout.enforce():
            try:
                await self._delete(
                    name, namespace, _request_timeout=timeout.left()
                )
            except KUBERNETES_API_ERRORS as e:
                if isinstance(e, ApiException) and e.status == 404:
                    return
                raise KubernetesError.from_exception(
                    "Error deleting object",
                    e,
                    kind=self._kind,
                    namespace=namespace,
                    name=name,
                ) from e

    async def list(
        self,
        namespace: str,
        timeout: Timeout,
        *,
        label_selector: str | None = None,
    ) -> list[T]:
        """List all objects of the appropriate kind in the namespace.

        Parameters
        ----------
        namespace
            Namespace to list.
        timeout
            Timeout on operation.
        label_selector
            Filter the returned list by the given label selector expression.

        Returns
        -------
        list
            List of objects found.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        extra_args: dict[str, str] = {}
        if label_selector:
            extra_args["label_selector"] = label_selector
        async with timeout.enforce():
            try:
                objs = await self._list(
                    namespace, _request_timeout=timeout.left(), **extra_args
                )
            except KUBERNETES_API_ERRORS as e:
                raise KubernetesError.from_exception(
                    "Error listing objects",
                    e,
                    kind=self._kind,
                    namespace=namespace,
                ) from e
        return objs.items


class ServiceStorage(KubernetesObjectDeleter[V1Service]):
    """Storage layer for ``Service`` objects.

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
            create_method=api.create_namespaced_service,
            delete_method=api.delete_namespaced_service,
            list_method=api.list_namespaced_service,
            read_method=api.read_namespaced_service,
            object_type=V1Service,
            kind="Service",
            logger=logger,
        )
