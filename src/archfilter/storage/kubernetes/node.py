"""Storage layer for Kubernetes node objects."""

from __future__ import annotations

from kubernetes_asyncio import client
from kubernetes_asyncio.client import ApiClient, ApiException
from structlog.stdlib import BoundLogger

from ...exceptions import KubernetesError
from ...models.domain.kubernetes import Node
from ...timeout import Timeout

__all__ = ["NodeStorage"]


class NodeStorage:
    """Storage layer for Kubernetes node objects.

    Used when the scheduler sends only node names, which it does if the
    extender is configured as node cache capable.

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

    async def get_nodes(
        self, names: list[str], timeout: Timeout
    ) -> dict[str, Node]:
        """Get the nodes with the given names.

        Parameters
        ----------
        names
            Names of nodes of interest.
        timeout
            Timeout for call.

        Returns
        -------
        dict of Node
            Mapping of node names to nodes. Names that do not correspond to
            any node are omitted.

        Raises
        ------
        KubernetesError
            Raised if the nodes could not be read.
        """
        self._logger.debug("Getting node data", nodes=names)
        try:
            nodes = await self._api.list_node(_request_timeout=timeout.left())
        except ApiException as e:
            raise KubernetesError.from_exception(
                "Error reading node information", e, kind="Node"
            ) from e
        wanted = set(names)
        result = {}
        for v1_node in nodes.items:
            node = Node.model_validate(v1_node.to_dict(serialize=True))
            if node.name in wanted:
                result[node.name] = node
        return result
