"""Graph resolution: terminal nodes and one execution order per terminal.

This module turns an arbitrary node/edge set into the ordered node-id paths
the composer walks. Each terminal node (no outgoing edges, or an end marker)
yields one path: all of its ancestors plus itself, topologically sorted.

Ties between nodes that become ready at the same time are broken by
submission order, so identical input always yields identical paths.
"""

import heapq
import logging
from collections import deque
from dataclasses import dataclass

from tensorweave.core.exceptions import GraphCycleError
from tensorweave.core.graph import Graph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedPath:
    """Ordered dependency path feeding one terminal node."""

    terminal_id: str
    node_ids: tuple[str, ...]
    roots: tuple[str, ...]

    @property
    def artifact_id(self) -> str:
        return self.terminal_id


def _adjacency(graph: Graph) -> tuple[dict[str, list[str]], dict[str, list[str]]]:
    forward: dict[str, list[str]] = {node_id: [] for node_id in graph.node_ids}
    reverse: dict[str, list[str]] = {node_id: [] for node_id in graph.node_ids}
    for edge in graph.edges:
        forward[edge.source].append(edge.target)
        reverse[edge.target].append(edge.source)
    return forward, reverse


def topological_order(graph: Graph, node_ids: set[str]) -> list[str]:
    """Kahn's algorithm over the subgraph induced by ``node_ids``.

    Returns:
        Node IDs such that every edge's source precedes its target

    Raises:
        GraphCycleError: If the subgraph contains a cycle
    """
    index = {node.id: node.index for node in graph.nodes}
    in_degree: dict[str, int] = dict.fromkeys(node_ids, 0)
    successors: dict[str, list[str]] = {node_id: [] for node_id in node_ids}

    for edge in graph.edges:
        if edge.source in node_ids and edge.target in node_ids:
            successors[edge.source].append(edge.target)
            in_degree[edge.target] += 1

    ready = [(index[node_id], node_id) for node_id in node_ids if in_degree[node_id] == 0]
    heapq.heapify(ready)
    order: list[str] = []

    while ready:
        _, node_id = heapq.heappop(ready)
        order.append(node_id)
        for successor in successors[node_id]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                heapq.heappush(ready, (index[successor], successor))

    if len(order) != len(node_ids):
        remaining = node_ids - set(order)
        raise GraphCycleError(_cycle_members(graph, remaining))

    return order


def _cycle_members(graph: Graph, remaining: set[str]) -> list[str]:
    """Narrow Kahn's leftovers to nodes that lie on a cycle.

    Leftovers also include nodes merely downstream of a cycle; peeling nodes
    with no remaining successors removes those.
    """
    out_degree: dict[str, int] = dict.fromkeys(remaining, 0)
    predecessors: dict[str, list[str]] = {node_id: [] for node_id in remaining}
    for edge in graph.edges:
        if edge.source in remaining and edge.target in remaining:
            out_degree[edge.source] += 1
            predecessors[edge.target].append(edge.source)

    queue = deque(node_id for node_id in remaining if out_degree[node_id] == 0)
    members = set(remaining)
    while queue:
        node_id = queue.popleft()
        members.discard(node_id)
        for predecessor in predecessors[node_id]:
            out_degree[predecessor] -= 1
            if out_degree[predecessor] == 0:
                queue.append(predecessor)

    return [node_id for node_id in graph.node_ids if node_id in members]


def terminal_nodes(graph: Graph) -> list[str]:
    """Nodes with no outgoing edges, plus explicit end markers, in submission order."""
    sources = {edge.source for edge in graph.edges}
    return [node.id for node in graph.nodes if node.id not in sources or node.is_end_marker]


def ancestors(graph: Graph, node_id: str) -> set[str]:
    """All nodes with a directed path to ``node_id`` (excluding itself unless on a cycle)."""
    _, reverse = _adjacency(graph)
    seen: set[str] = set()
    queue = deque(reverse[node_id])
    while queue:
        current = queue.popleft()
        if current in seen:
            continue
        seen.add(current)
        queue.extend(reverse[current])
    return seen


def resolve_paths(graph: Graph) -> list[ResolvedPath]:
    """Resolve one ordered path per terminal node.

    The whole graph is checked for cycles first: a cycle anywhere aborts the
    request, including cycles no terminal node can reach.

    Raises:
        GraphCycleError: If the graph contains a cycle
    """
    topological_order(graph, set(graph.node_ids))

    incoming = {edge.target for edge in graph.edges}
    paths: list[ResolvedPath] = []
    for terminal_id in terminal_nodes(graph):
        members = ancestors(graph, terminal_id) | {terminal_id}
        order = topological_order(graph, members)
        roots = tuple(node_id for node_id in order if node_id not in incoming)
        paths.append(ResolvedPath(terminal_id=terminal_id, node_ids=tuple(order), roots=roots))
        logger.debug(
            f"Resolved path for {terminal_id}: {' -> '.join(order)}",
            extra={"phase": "resolve", "node_id": terminal_id},
        )
    return paths
