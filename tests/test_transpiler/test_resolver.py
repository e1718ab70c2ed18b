"""Tests for terminal detection and per-terminal execution order."""

import random

import pytest

from tensorweave.core import GraphCycleError, parse_graph
from tensorweave.transpiler import ancestors, resolve_paths, terminal_nodes, topological_order


def build_graph(node_ids, edges, types=None):
    types = types or {}
    return parse_graph(
        {
            "nodes": [{"id": node_id, "type": types.get(node_id, "step")} for node_id in node_ids],
            "edges": [{"source": source, "target": target} for source, target in edges],
        }
    )


class TestTerminalNodes:
    def test_nodes_without_outgoing_edges(self):
        graph = build_graph(["A", "B", "C"], [("A", "B"), ("A", "C")])
        assert terminal_nodes(graph) == ["B", "C"]

    def test_end_marker_is_terminal_even_with_outgoing_edges(self):
        graph = build_graph(["A", "E", "B"], [("A", "E"), ("E", "B")], types={"E": "end"})
        assert terminal_nodes(graph) == ["E", "B"]

    def test_isolated_node(self):
        graph = build_graph(["solo"], [])
        assert terminal_nodes(graph) == ["solo"]


class TestTopologicalOrder:
    def test_diamond_follows_submission_order(self):
        """B and C become ready together; submission order breaks the tie."""
        edges = [("A", "B"), ("A", "C"), ("B", "D"), ("C", "D")]

        assert topological_order(build_graph(["A", "B", "C", "D"], edges), {"A", "B", "C", "D"}) == [
            "A",
            "B",
            "C",
            "D",
        ]
        assert topological_order(build_graph(["A", "C", "B", "D"], edges), {"A", "B", "C", "D"}) == [
            "A",
            "C",
            "B",
            "D",
        ]

    def test_edge_direction_beats_submission_order(self):
        graph = build_graph(["late", "early"], [("early", "late")])
        assert topological_order(graph, {"late", "early"}) == ["early", "late"]

    def test_subgraph_only(self):
        graph = build_graph(["A", "B", "C"], [("A", "B"), ("B", "C")])
        assert topological_order(graph, {"A", "B"}) == ["A", "B"]


class TestCycles:
    def test_two_cycle(self):
        graph = build_graph(["A", "B"], [("A", "B"), ("B", "A")])

        with pytest.raises(GraphCycleError) as exc_info:
            resolve_paths(graph)

        assert exc_info.value.node_ids == ["A", "B"]

    def test_nodes_downstream_of_a_cycle_are_not_members(self):
        graph = build_graph(["A", "B", "C"], [("A", "B"), ("B", "A"), ("B", "C")])

        with pytest.raises(GraphCycleError) as exc_info:
            resolve_paths(graph)

        assert exc_info.value.node_ids == ["A", "B"]

    def test_unreachable_cycle_still_aborts(self):
        """A cycle no terminal depends on still fails the whole request."""
        graph = build_graph(["X", "Y", "P", "Q"], [("X", "Y"), ("P", "Q"), ("Q", "P")])

        with pytest.raises(GraphCycleError) as exc_info:
            resolve_paths(graph)

        assert exc_info.value.node_ids == ["P", "Q"]

    def test_self_loop(self):
        graph = build_graph(["A"], [("A", "A")])

        with pytest.raises(GraphCycleError) as exc_info:
            resolve_paths(graph)

        assert exc_info.value.node_ids == ["A"]


class TestResolvePaths:
    def test_one_path_per_terminal(self):
        graph = build_graph(["A", "B", "C"], [("A", "B"), ("A", "C")])

        paths = resolve_paths(graph)

        assert [(p.artifact_id, p.node_ids) for p in paths] == [("B", ("A", "B")), ("C", ("A", "C"))]

    def test_path_contains_only_ancestors(self):
        graph = build_graph(["A", "B", "X", "C"], [("A", "B"), ("X", "C")])

        paths = {p.terminal_id: p for p in resolve_paths(graph)}

        assert paths["B"].node_ids == ("A", "B")
        assert paths["C"].node_ids == ("X", "C")

    def test_roots(self):
        graph = build_graph(["A", "B", "C"], [("A", "C"), ("B", "C")])

        (path,) = resolve_paths(graph)

        assert path.roots == ("A", "B")

    def test_ancestors(self):
        graph = build_graph(["A", "B", "C", "D"], [("A", "B"), ("B", "C"), ("D", "C")])

        assert ancestors(graph, "C") == {"A", "B", "D"}
        assert ancestors(graph, "A") == set()

    def test_random_dags_respect_every_edge(self):
        rng = random.Random(1234)
        for _ in range(25):
            size = rng.randint(2, 12)
            ids = [f"n{i}" for i in range(size)]
            edges = [(ids[i], ids[j]) for i in range(size) for j in range(i + 1, size) if rng.random() < 0.3]
            submitted = ids[:]
            rng.shuffle(submitted)
            graph = build_graph(submitted, edges)

            for path in resolve_paths(graph):
                position = {node_id: i for i, node_id in enumerate(path.node_ids)}
                assert path.node_ids[-1] == path.terminal_id
                for source, target in edges:
                    if source in position and target in position:
                        assert position[source] < position[target]

    def test_resolution_is_deterministic(self):
        edges = [("A", "C"), ("B", "C"), ("C", "D"), ("B", "E")]

        first = resolve_paths(build_graph(["A", "B", "C", "D", "E"], edges))
        second = resolve_paths(build_graph(["A", "B", "C", "D", "E"], edges))

        assert first == second
