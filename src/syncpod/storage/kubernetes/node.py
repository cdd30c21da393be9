"""Storage layer for Kubernetes node objects."""

from __future__ import annotations

from kubernetes_asyncio import client
from kubernetes_asyncio.client import ApiClient, ApiException, V1Node
from structlog.stdlib import BoundLogger

from ...exceptions import KUBERNETES_API_ERRORS, KubernetesError
from ...models.domain.kubernetes import NodeAddressType
from ...timeout import Timeout

__all__ = ["NodeStorage"]


class NodeStorage:
    """Storage layer for Kubernetes node objects.

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

    def get_address(self, node: V1Node) -> str | None:
        """Choose the address to use to reach a node.

        Parameters
        ----------
        node
            Kubernetes node.

        Returns
        -------
        str or None
            The internal IP of the node if it has one, otherwise its
            hostname, or `None` if it reports neither.
        """
        if not node.status or not node.status.addresses:
            return None
        addresses = {a.type: a.address for a in node.status.addresses}
        for address_type in NodeAddressType:
            if addresses.get(address_type.value):
                return addresses[address_type.value]
        return None

    async def read(self, name: str, timeout: Timeout) -> V1Node | None:
        """Read a node.

        Parameters
        ----------
        name
            Name of the node.
        timeout
            Timeout on operation.

        Returns
        -------
        kubernetes_asyncio.client.V1Node or None
            Node, or `None` if it does not exist.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        async with timeout.enforce():
            try:
                return await self._api.read_node(
                    name, _request_timeout=timeout.left()
                )
            except KUBERNETES_API_ERRORS as e:
                if isinstance(e, ApiException) and e.status == 404:
                    return None
                raise KubernetesError.from_exception(
                    "Error reading node", e, kind="Node", name=name
                ) from e
