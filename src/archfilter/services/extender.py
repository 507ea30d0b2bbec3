"""Scheduler extender service for the ``filter`` verb."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any

from pydantic import ValidationError
from structlog.stdlib import BoundLogger

from ..exceptions import KubernetesError
from ..models.domain.filter import FilterResult
from ..models.domain.kubernetes import Node, Pod
from ..models.v1.extender import (
    ExtenderArgs,
    ExtenderFilterResult,
    NodeList,
)
from ..storage.kubernetes.node import NodeStorage
from ..timeout import Timeout
from .filter import ArchitectureFilter

__all__ = ["ExtenderService"]


class ExtenderService:
    """Apply the architecture filter to every candidate node of a request.

    Each candidate node is evaluated independently and concurrently. Like
    the filter itself, this never fails: anything that prevents evaluating
    a node admits it.

    Parameters
    ----------
    arch_filter
        Filter applied to each node.
    node_storage
        Storage for reading nodes when only node names are provided.
    timeout
        Time allowed for the whole request, covering both reading nodes
        from Kubernetes and evaluating every node.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        arch_filter: ArchitectureFilter,
        node_storage: NodeStorage,
        timeout: timedelta,
        logger: BoundLogger,
    ) -> None:
        self._filter = arch_filter
        self._node_storage = node_storage
        self._timeout = timeout
        self._logger = logger

    async def filter(self, args: ExtenderArgs) -> ExtenderFilterResult:
        """Filter the candidate nodes for a pod.

        Parameters
        ----------
        args
            Request from the scheduler.

        Returns
        -------
        ExtenderFilterResult
            Admitted nodes, in the same form as the request, and the reasons
            for any rejected nodes.
        """
        try:
            pod = Pod.model_validate(args.pod)
        except ValidationError as e:
            error = f"{type(e).__name__}: {e!s}"
            self._logger.warning(
                "Cannot parse pod, admitting all nodes", error=error
            )
            if args.nodes is not None:
                return ExtenderFilterResult(nodes=args.nodes)
            return ExtenderFilterResult(node_names=args.node_names or [])

        timeout = Timeout(self._timeout)
        if args.nodes is not None:
            return await self._filter_nodes(pod, args.nodes, timeout)
        names = args.node_names or []
        return await self._filter_node_names(pod, names, timeout)

    async def _filter_nodes(
        self, pod: Pod, nodes: NodeList, timeout: Timeout
    ) -> ExtenderFilterResult:
        """Filter full node objects sent by the scheduler."""
        results = await asyncio.gather(
            *(self._filter_raw(pod, n, timeout) for n in nodes.items)
        )
        admitted = []
        failed = {}
        for raw, (name, result) in zip(nodes.items, results, strict=True):
            if result.admitted:
                admitted.append(raw)
            else:
                failed[name] = result.reason
        return ExtenderFilterResult(
            nodes=NodeList(items=admitted), failed_nodes=failed
        )

    async def _filter_node_names(
        self, pod: Pod, names: list[str], timeout: Timeout
    ) -> ExtenderFilterResult:
        """Filter node names, reading the nodes from Kubernetes."""
        try:
            nodes = await self._node_storage.get_nodes(names, timeout)
        except (KubernetesError, TimeoutError) as e:
            self._logger.warning(
                "Cannot read nodes, admitting all nodes", error=str(e)
            )
            return ExtenderFilterResult(node_names=names)

        results = await asyncio.gather(
            *(self._filter_name(pod, n, nodes.get(n), timeout) for n in names)
        )
        admitted = []
        failed = {}
        for name, result in zip(names, results, strict=True):
            if result.admitted:
                admitted.append(name)
            else:
                failed[name] = result.reason
        return ExtenderFilterResult(node_names=admitted, failed_nodes=failed)

    async def _filter_name(
        self, pod: Pod, name: str, node: Node | None, timeout: Timeout
    ) -> FilterResult:
        if node is None:
            self._logger.warning("Node not found, admitting it", node=name)
            return FilterResult.admit(f"Node {name} not found")
        return await self._filter.filter(pod, node, timeout)

    async def _filter_raw(
        self, pod: Pod, raw: dict[str, Any], timeout: Timeout
    ) -> tuple[str, FilterResult]:
        try:
            node = Node.model_validate(raw)
        except ValidationError as e:
            metadata = raw.get("metadata")
            name = ""
            if isinstance(metadata, dict):
                name = str(metadata.get("name") or "")
            error = f"{type(e).__name__}: {e!s}"
            self._logger.warning(
                "Cannot parse node, admitting it", node=name, error=error
            )
            return name, FilterResult.admit(f"Cannot parse node {name}")
        return node.name, await self._filter.filter(pod, node, timeout)
