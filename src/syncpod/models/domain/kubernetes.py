"""Data types for interacting with Kubernetes."""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol

from kubernetes_asyncio.client import V1ObjectMeta

__all__ = [
    "KubernetesModel",
    "NodeAddressType",
    "PodPhase",
    "PullPolicy",
    "ServiceType",
]


class KubernetesModel(Protocol):
    """Protocol for Kubernetes object models.

    The kubernetes_ client doesn't expose type information, so this tells
    mypy that all the object models we deal with will have a metadata
    attribute.
    """

    metadata: V1ObjectMeta

    def to_dict(self) -> dict[str, Any]: ...


class NodeAddressType(str, Enum):
    """Types of node addresses, in the order we prefer to connect to them."""

    INTERNAL_IP = "InternalIP"
    HOSTNAME = "Hostname"


class PodPhase(str, Enum):
    """One of the valid phases reported in the status section of a Pod."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


class PullPolicy(Enum):
    """Pull policy for Docker images in Kubernetes."""

    ALWAYS = "Always"
    IF_NOT_PRESENT = "IfNotPresent"
    NEVER = "Never"


class ServiceType(Enum):
    """Service types that can expose the helper SSH port.

    ``NodePort`` is reachable from outside the cluster through the node
    address. ``ClusterIP`` only works when syncpod itself runs inside the
    cluster.
    """

    NODE_PORT = "NodePort"
    CLUSTER_IP = "ClusterIP"
