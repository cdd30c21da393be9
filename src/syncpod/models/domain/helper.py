"""Models for the helper pod and service that expose a volume."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from kubernetes_asyncio.client import V1Pod, V1Service

__all__ = [
    "HelperObjects",
    "HelperResource",
    "HelperState",
    "NodeBinding",
]


class HelperState(Enum):
    """Lifecycle state of the helper for one job."""

    CREATING = "Creating"
    RUNNING = "Running"
    DELETING = "Deleting"
    DELETED = "Deleted"


@dataclass(frozen=True, slots=True)
class NodeBinding:
    """Placement of the volume, resolved once per job."""

    node: str
    """Name of the node that can serve the volume."""

    address: str
    """Address of the node, preferably its internal IP."""


@dataclass
class HelperObjects:
    """All of the Kubernetes objects making up a helper."""

    pod: V1Pod
    """Pod that mounts the volume and runs the SSH daemon."""

    service: V1Service
    """Service exposing the SSH port of the pod."""


@dataclass
class HelperResource:
    """The provisioned pod and service for one job.

    Owned by `~syncpod.services.endpoint.EndpointManager` for the duration of
    a single job and never shared between jobs.
    """

    name: str
    """Name of both the pod and the service."""

    namespace: str
    """Namespace of the pod and the service."""

    pvc: str
    """Name of the mounted PersistentVolumeClaim."""

    mount_path: str
    """Path inside the helper container where the volume is mounted."""

    binding: NodeBinding
    """Node the pod is pinned to."""

    port: int
    """SSH port inside the helper container."""

    state: HelperState = HelperState.CREATING
    """Current lifecycle state."""

    host: str | None = None
    """Host to connect to, set once the service exists."""

    external_port: int | None = None
    """Port to connect to, read back from the created service."""
