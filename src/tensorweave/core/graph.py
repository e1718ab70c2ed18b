"""In-memory graph model shared by the resolver and the composer."""

import copy
import json
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .graph_schema import normalize_graph, validate_graph

START_NODE_TYPES = frozenset({"start", "@tensorify/core/StartNode"})
END_NODE_TYPES = frozenset({"end", "@tensorify/core/EndNode"})

# Incoming handle that means "runs after", as opposed to "is nested inside".
FLOW_INPUT_HANDLE = "prev"


@dataclass(frozen=True)
class Node:
    """One configured plugin instance."""

    id: str
    type: str
    settings: dict[str, Any] = field(default_factory=dict)
    index: int = 0

    @property
    def is_start_marker(self) -> bool:
        return self.type in START_NODE_TYPES

    @property
    def is_end_marker(self) -> bool:
        return self.type in END_NODE_TYPES


@dataclass(frozen=True)
class Edge:
    """Directed dependency: ``target`` consumes ``source``'s output."""

    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    index: int = 0

    @property
    def is_flow_edge(self) -> bool:
        return self.target_handle == FLOW_INPUT_HANDLE


@dataclass(frozen=True)
class Graph:
    """Immutable node/edge set for a single transpilation request.

    Nodes and edges keep their submission order; ``index`` records it.
    """

    nodes: tuple[Node, ...]
    edges: tuple[Edge, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "_by_id", {node.id: node for node in self.nodes})

    def node(self, node_id: str) -> Node:
        return self._by_id[node_id]  # type: ignore[attr-defined,no-any-return]

    def has_node(self, node_id: str) -> bool:
        return node_id in self._by_id  # type: ignore[attr-defined]

    @property
    def node_ids(self) -> list[str]:
        return [node.id for node in self.nodes]

    def incoming(self, node_id: str) -> list[Edge]:
        """Edges targeting ``node_id`` in declaration order."""
        return [edge for edge in self.edges if edge.target == node_id]

    def outgoing(self, node_id: str) -> list[Edge]:
        """Edges leaving ``node_id`` in declaration order."""
        return [edge for edge in self.edges if edge.source == node_id]


def parse_graph(data: Union[dict[str, Any], str, Graph]) -> Graph:
    """Validate, normalize and freeze a submitted graph.

    Args:
        data: Graph as a dict, a JSON string, or an already parsed Graph

    Returns:
        Graph with nodes and edges in submission order

    Raises:
        GraphValidationError: If the graph is structurally invalid
        ValueError: If JSON parsing fails
    """
    if isinstance(data, Graph):
        return data

    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON: {e}") from e

    # Callers keep ownership of their dict; normalization works on a copy
    raw = copy.deepcopy(data)
    if isinstance(raw, dict):
        normalize_graph(raw)
    validate_graph(raw)

    nodes = tuple(
        Node(id=item["id"], type=item["type"], settings=dict(item.get("settings") or {}), index=i)
        for i, item in enumerate(raw["nodes"])
    )
    edges = tuple(
        Edge(
            id=item["id"],
            source=item["source"],
            target=item["target"],
            source_handle=item.get("sourceHandle"),
            target_handle=item.get("targetHandle"),
            index=i,
        )
        for i, item in enumerate(raw.get("edges") or [])
    )
    return Graph(nodes=nodes, edges=edges)
