"""Find the node that can serve a PersistentVolumeClaim."""

from __future__ import annotations

from kubernetes_asyncio.client import ApiClient, V1PersistentVolume, V1Pod
from structlog.stdlib import BoundLogger

from ..constants import HOSTNAME_LABEL
from ..exceptions import (
    AddressResolutionError,
    NodeResolutionError,
    NotFoundError,
    PVCNotFoundError,
    UnboundVolumeError,
)
from ..models.domain.helper import NodeBinding
from ..storage.kubernetes.creator import PersistentVolumeClaimStorage
from ..storage.kubernetes.node import NodeStorage
from ..storage.kubernetes.pod import PodStorage
from ..storage.kubernetes.pv import PersistentVolumeStorage
from ..timeout import Timeout

__all__ = ["NodeResolver"]


class NodeResolver:
    """Determine where the helper pod for a volume has to run.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    logger
        Logger to use.
    """

    def __init__(self, api_client: ApiClient, logger: BoundLogger) -> None:
        self._logger = logger
        self._node = NodeStorage(api_client, logger)
        self._pod = PodStorage(api_client, logger)
        self._pv = PersistentVolumeStorage(api_client, logger)
        self._pvc = PersistentVolumeClaimStorage(api_client, logger)

    async def resolve(
        self, pvc: str, namespace: str, timeout: Timeout
    ) -> NodeBinding:
        """Find the node for a PVC and an address to reach it.

        A running pod that already mounts the claim is authoritative, even
        if the node affinity of the volume says otherwise. Only if there is
        no such pod is the affinity of the bound volume consulted.

        Parameters
        ----------
        pvc
            Name of the PersistentVolumeClaim.
        namespace
            Namespace of the claim.
        timeout
            Timeout on the whole resolution.

        Returns
        -------
        NodeBinding
            Node name and address.

        Raises
        ------
        AddressResolutionError
            Raised if the node does not exist or has no usable address.
        KubernetesError
            Raised if there is some failure in a Kubernetes API call.
        NodeResolutionError
            Raised if neither a pod nor the volume identifies a node.
        NotFoundError
            Raised if the claim or its volume does not exist.
        UnboundVolumeError
            Raised if the claim is not bound to a volume.
        """
        logger = self._logger.bind(pvc=pvc, namespace=namespace)
        node = await self._node_from_pods(pvc, namespace, timeout)
        if node:
            logger.debug("Found node from pod using PVC", node=node)
        else:
            node = await self._node_from_volume(pvc, namespace, timeout)
            logger.debug("Found node from volume affinity", node=node)
        address = await self._address(node, timeout)
        logger.info("Resolved node for PVC", node=node, address=address)
        return NodeBinding(node=node, address=address)

    async def _address(self, name: str, timeout: Timeout) -> str:
        node = await self._node.read(name, timeout)
        if node is None:
            raise AddressResolutionError(name, "node not found")
        address = self._node.get_address(node)
        if not address:
            raise AddressResolutionError(name, "no InternalIP or Hostname")
        return address

    async def _node_from_pods(
        self, pvc: str, namespace: str, timeout: Timeout
    ) -> str | None:
        for pod in await self._pod.list(namespace, timeout):
            if pod.spec and pod.spec.node_name and _uses_claim(pod, pvc):
                return pod.spec.node_name
        return None

    async def _node_from_volume(
        self, pvc: str, namespace: str, timeout: Timeout
    ) -> str:
        claim = await self._pvc.read(pvc, namespace, timeout)
        if claim is None:
            raise PVCNotFoundError(pvc, namespace)
        phase = claim.status.phase if claim.status else None
        volume_name = claim.spec.volume_name if claim.spec else None
        if phase != "Bound" or not volume_name:
            raise UnboundVolumeError(pvc, namespace)
        volume = await self._pv.read(volume_name, timeout)
        if volume is None:
            raise NotFoundError("PersistentVolume", volume_name)
        node = _node_from_affinity(volume)
        if not node:
            raise NodeResolutionError(pvc, namespace)
        return node


def _node_from_affinity(volume: V1PersistentVolume) -> str | None:
    """Return the first hostname a volume is pinned to, if any."""
    affinity = volume.spec.node_affinity if volume.spec else None
    if not affinity or not affinity.required:
        return None
    for term in affinity.required.node_selector_terms or []:
        for expression in term.match_expressions or []:
            if (
                expression.key == HOSTNAME_LABEL
                and expression.operator == "In"
                and expression.values
            ):
                return expression.values[0]
    return None


def _uses_claim(pod: V1Pod, pvc: str) -> bool:
    """Whether a pod mounts the given claim."""
    for volume in pod.spec.volumes or []:
        source = volume.persistent_volume_claim
        if source and source.claim_name == pvc:
            return True
    return False
