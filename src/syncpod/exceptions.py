"""Exceptions for syncpod."""

from __future__ import annotations

import ssl
from datetime import datetime
from typing import Self, override

import aiohttp
from kubernetes_asyncio.client import ApiException

from .models.domain.transfer import TransferOutcome

__all__ = [
    "KUBERNETES_API_ERRORS",
    "AddressResolutionError",
    "ConfigurationError",
    "ConflictError",
    "HelperStartupError",
    "InvalidPathError",
    "InvalidSourceError",
    "KubernetesError",
    "NodeResolutionError",
    "NotFoundError",
    "OperationTimeoutError",
    "OwnershipError",
    "PVCNotFoundError",
    "PlanningError",
    "SSHConnectionError",
    "SSHTimeoutError",
    "SourceNotFoundError",
    "SyncPodError",
    "TransferCancelledError",
    "TransferFailedError",
    "UnboundVolumeError",
]


KUBERNETES_API_ERRORS = (
    ApiException,
    aiohttp.ClientError,
    ConnectionError,
    ssl.SSLError,
)
"""Exceptions raised by Kubernetes API calls, including transport errors."""


class SyncPodError(Exception):
    """Base class for all errors that end a syncpod job.

    The command-line interface reports any exception of this type as a
    single error line and exits with a non-zero status.
    """


class ConfigurationError(SyncPodError):
    """The configuration or command-line options are unusable."""


class OperationTimeoutError(SyncPodError):
    """Wraps `TimeoutError` with additional context.

    Parameters
    ----------
    operation
        Operation that timed out.
    started_at
        Start time of the operation.
    failed_at
        Time at which the operation timed out.
    """

    def __init__(
        self,
        operation: str,
        *,
        started_at: datetime,
        failed_at: datetime,
    ) -> None:
        self.operation = operation
        self.started_at = started_at
        self.failed_at = failed_at
        elapsed = failed_at - started_at
        msg = f"{operation} timed out after {elapsed.total_seconds()}s"
        super().__init__(msg)


class KubernetesError(SyncPodError):
    """An API call to Kubernetes failed.

    Parameters
    ----------
    message
        Summary of error.
    namespace
        Namespace of object being acted on.
    name
        Name of object being acted on.
    kind
        Kind of object being acted on.
    status
        Status code of failure, if any.
    body
        Body of failure message, if any.
    """

    @classmethod
    def from_exception(
        cls,
        message: str,
        exc: Exception,
        *,
        kind: str | None = None,
        namespace: str | None = None,
        name: str | None = None,
    ) -> Self:
        """Create an exception from a failed Kubernetes API call.

        Parameters
        ----------
        message
            Brief explanation of what was being attempted.
        exc
            Kubernetes API exception, or a transport error from the
            underlying HTTP client.
        kind
            Kind of object being acted on.
        namespace
            Namespace of object being acted on.
        name
            Name of object being acted on.

        Returns
        -------
        KubernetesError
            Newly-created exception.
        """
        if isinstance(exc, ApiException):
            status = exc.status
            body = exc.body if exc.body else exc.reason
        else:
            status = None
            body = str(exc) or type(exc).__name__
        return cls(
            message,
            kind=kind,
            namespace=namespace,
            name=name,
            status=status,
            body=body,
        )

    def __init__(
        self,
        message: str,
        *,
        kind: str | None = None,
        namespace: str | None = None,
        name: str | None = None,
        status: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.namespace = namespace
        self.name = name
        self.status = status
        self.body = body

    @override
    def __str__(self) -> str:
        result = self._summary()
        if self.body:
            result += f": {self.body}"
        return result

    def _summary(self) -> str:
        """Summarize the exception as a single line."""
        result = self.message
        if self.name or self.kind or self.status:
            result += " ("
            if self.name:
                kind = f"{self.kind} " if self.kind else ""
                if self.namespace:
                    result += f"{kind}{self.namespace}/{self.name}"
                else:
                    result += f"{kind}{self.name}"
                if self.status:
                    result += ", "
            elif self.kind:
                result += self.kind
                if self.status:
                    result += ", "
            if self.status:
                result += f"status {self.status}"
            result += ")"
        return result


class NotFoundError(SyncPodError):
    """A Kubernetes object needed to place the helper does not exist.

    Parameters
    ----------
    kind
        Kind of the missing object.
    name
        Name of the missing object.
    namespace
        Namespace of the missing object, if it is namespaced.
    """

    def __init__(
        self, kind: str, name: str, namespace: str | None = None
    ) -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        obj = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} {obj} not found")


class PVCNotFoundError(NotFoundError):
    """The requested PersistentVolumeClaim does not exist."""

    def __init__(self, name: str, namespace: str) -> None:
        super().__init__("PersistentVolumeClaim", name, namespace)


class UnboundVolumeError(SyncPodError):
    """The PersistentVolumeClaim is not bound to a PersistentVolume."""

    def __init__(self, name: str, namespace: str) -> None:
        self.name = name
        self.namespace = namespace
        msg = f"PVC {namespace}/{name} is not bound to any PersistentVolume"
        super().__init__(msg)


class NodeResolutionError(SyncPodError):
    """No node holding the volume could be determined."""

    def __init__(self, name: str, namespace: str) -> None:
        self.name = name
        self.namespace = namespace
        msg = f"Unable to determine node for PVC {namespace}/{name}"
        super().__init__(msg)


class AddressResolutionError(SyncPodError):
    """The node holding the volume has no usable address."""

    def __init__(self, node: str, reason: str) -> None:
        self.node = node
        super().__init__(f"Unable to resolve address of node {node}: {reason}")


class HelperStartupError(SyncPodError):
    """The helper pod or service did not come up."""


class SSHConnectionError(SyncPodError):
    """Unable to establish the SSH or SFTP session to the helper."""


class SSHTimeoutError(OperationTimeoutError):
    """The SSH daemon in the helper never accepted a handshake in time."""


class ConflictError(SyncPodError):
    """A destination entry exists and overwriting is not allowed.

    Parameters
    ----------
    path
        Destination path that already exists.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        msg = f"Overwrite is forbidden, file already exists: {path}"
        super().__init__(msg)


class SourceNotFoundError(SyncPodError):
    """The source of a transfer does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Source path not found: {path}")


class InvalidSourceError(SyncPodError):
    """The source of a transfer is not a directory."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Source path must be a directory: {path}")


class InvalidPathError(SyncPodError):
    """A path inside the volume would escape the mount path."""


class OwnershipError(SyncPodError):
    """The owner of the uploaded tree could not be changed."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__(f"Unable to change owner of {path}: {reason}")


class PlanningError(SyncPodError):
    """A tree could not be read while planning a transfer."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__(f"Unable to plan transfer of {path}: {reason}")


class TransferFailedError(SyncPodError):
    """One or more planned items could not be transferred.

    Parameters
    ----------
    outcome
        Final outcome of the transfer, including recorded failures.
    """

    def __init__(self, outcome: TransferOutcome) -> None:
        self.outcome = outcome
        self.failed_files = {f.path: f.message for f in outcome.failures}
        msg = f"{outcome.failed} of {outcome.planned} items failed to transfer"
        if outcome.failures:
            first = outcome.failures[0]
            msg += f" (first failure: {first.path}: {first.message})"
        super().__init__(msg)


class TransferCancelledError(SyncPodError):
    """The transfer was cancelled before all items were processed.

    Parameters
    ----------
    outcome
        Outcome of the transfer, or `None` if the job was cancelled before
        any items were transferred.
    """

    def __init__(self, outcome: TransferOutcome | None = None) -> None:
        self.outcome = outcome
        if outcome is not None:
            msg = (
                f"Transfer cancelled after {outcome.completed} of"
                f" {outcome.planned} items"
            )
        else:
            msg = "Transfer cancelled before copying started"
        super().__init__(msg)
