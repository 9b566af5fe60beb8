"""Unit tests for maze carving (pymaze/carving.py)."""

import numpy as np
import pytest

from pymaze.adjacency import AdjacencyGraph, AdjacencyNode, build_adjacency_graph
from pymaze.build import triangulate
from pymaze.carving import (
    carve_spanning_tree,
    find_triangle_holes,
    is_spanning_tree,
    open_loops,
    reachable_nodes,
)
from pymaze.geometry import Edge, Polygon
from pymaze.sampling import poisson_sample
from pymaze.utils import PreconditionError, Rect


def make_graph(positions, links, force_closed=(), total_edge_count=None) -> AdjacencyGraph:
    """Small graph with a unit square standing in for every cell polygon."""
    graph = AdjacencyGraph()
    for i, (x, z) in enumerate(positions):
        square = Polygon([(x, z), (x + 1, z), (x + 1, z + 1), (x, z + 1)])
        graph.nodes.append(AdjacencyNode(i, i, (x, z), square))
    for a, b in links:
        wall = Edge(positions[a], positions[b])
        graph.link(a, b, wall, force_closed=(a, b) in force_closed)
    graph.total_edge_count = (
        2 * len(links) if total_edge_count is None else total_edge_count
    )
    return graph


def grid_graph(n: int) -> AdjacencyGraph:
    positions = [(float(i), float(j)) for j in range(n) for i in range(n)]
    links = []
    for j in range(n):
        for i in range(n):
            k = j * n + i
            if i + 1 < n:
                links.append((k, k + 1))
            if j + 1 < n:
                links.append((k, k + n))
    return make_graph(positions, links)


@pytest.fixture
def sampled_graph():
    region = Rect(0.0, 0.0, 12.0, 12.0)
    points = poisson_sample(region, 1.0, np.random.default_rng(11))
    diagram = triangulate(points).dual(region.lower, region.upper)
    return build_adjacency_graph(diagram, min_open_wall_length=0.3)


class TestCarveSpanningTree:
    """Tests for randomized depth first carving."""

    def test_grid(self):
        graph = grid_graph(4)
        opened = carve_spanning_tree(graph, np.random.default_rng(0))
        assert len(opened) == 15
        assert len(set(opened)) == 15
        assert reachable_nodes(graph) == set(range(16))
        assert is_spanning_tree(graph)

    def test_triangle_gets_two_passages(self):
        graph = make_graph([(0.0, 0.0), (2.0, 0.0), (1.0, 2.0)], [(0, 1), (1, 2), (0, 2)])
        opened = carve_spanning_tree(graph, np.random.default_rng(3))
        assert len(opened) == 2
        assert find_triangle_holes(graph) == []

    def test_force_closed_edge_is_never_opened(self):
        graph = make_graph(
            [(0.0, 0.0), (1.0, 0.0), (2.0, 0.0)],
            [(0, 1), (1, 2)],
            force_closed={(1, 2)},
        )
        carve_spanning_tree(graph, np.random.default_rng(0))
        assert graph.is_open(0, 1)
        assert not graph.is_open(1, 2)
        assert reachable_nodes(graph) == {0, 1}
        assert is_spanning_tree(graph)

    def test_source_node(self):
        graph = grid_graph(3)
        carve_spanning_tree(graph, np.random.default_rng(1), source=4)
        assert is_spanning_tree(graph, source=4)
        assert len(graph.open_edges()) == 8

    def test_deterministic_for_a_seed(self):
        first = carve_spanning_tree(grid_graph(5), np.random.default_rng(9))
        second = carve_spanning_tree(grid_graph(5), np.random.default_rng(9))
        assert first == second

    def test_sampled_layout(self, sampled_graph):
        opened = carve_spanning_tree(sampled_graph, np.random.default_rng(2))
        reached = reachable_nodes(sampled_graph)
        assert len(opened) == len(reached) - 1
        assert is_spanning_tree(sampled_graph)
        assert not any(sampled_graph.edges[e].force_closed for e in opened)

    def test_empty_graph(self):
        with pytest.raises(PreconditionError):
            carve_spanning_tree(AdjacencyGraph(), np.random.default_rng(0))

    def test_source_out_of_range(self):
        with pytest.raises(PreconditionError):
            carve_spanning_tree(grid_graph(2), np.random.default_rng(0), source=4)


class TestOpenLoops:
    """Tests for re-opening walls after carving."""

    def test_zero_percentage_opens_nothing(self):
        graph = grid_graph(4)
        carve_spanning_tree(graph, np.random.default_rng(0))
        assert open_loops(graph, np.random.default_rng(0), 0.0) == []
        assert is_spanning_tree(graph)

    def test_square_cycle_is_closed(self):
        graph = make_graph(
            [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)],
            [(0, 1), (1, 2), (2, 3), (3, 0)],
            total_edge_count=100,
        )
        carve_spanning_tree(graph, np.random.default_rng(4))
        opened = open_loops(graph, np.random.default_rng(4), 1.0)
        assert len(opened) == 1
        assert len(graph.open_edges()) == 4

    def test_triangle_is_never_closed(self):
        graph = make_graph(
            [(0.0, 0.0), (2.0, 0.0), (1.0, 2.0)],
            [(0, 1), (1, 2), (0, 2)],
            total_edge_count=100,
        )
        carve_spanning_tree(graph, np.random.default_rng(5))
        assert open_loops(graph, np.random.default_rng(5), 1.0) == []
        assert find_triangle_holes(graph) == []

    def test_force_closed_survives(self):
        graph = make_graph(
            [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)],
            [(0, 1), (1, 2), (2, 3), (3, 0)],
            force_closed={(3, 0)},
            total_edge_count=100,
        )
        carve_spanning_tree(graph, np.random.default_rng(6))
        open_loops(graph, np.random.default_rng(6), 1.0)
        assert not graph.is_open(3, 0)

    def test_sampled_layout_has_no_triangle_holes(self, sampled_graph):
        rng = np.random.default_rng(8)
        tree = carve_spanning_tree(sampled_graph, rng)
        loops = open_loops(sampled_graph, rng, 1.0)
        assert loops
        assert not set(tree) & set(loops)
        assert find_triangle_holes(sampled_graph) == []
        assert not any(edge.force_closed for edge in sampled_graph.open_edges())

    def test_walls_are_opened_through_the_graph(self, monkeypatch):
        """Carving and loop opening both go through AdjacencyGraph.open_edge."""
        graph = grid_graph(4)
        graph.total_edge_count = 100
        calls = []
        open_edge = graph.open_edge

        def recording_open_edge(edge):
            calls.append(edge.index)
            open_edge(edge)

        monkeypatch.setattr(graph, "open_edge", recording_open_edge)
        rng = np.random.default_rng(12)
        tree = carve_spanning_tree(graph, rng)
        loops = open_loops(graph, rng, 1.0)
        assert calls == tree + loops

    def test_invalid_percentage(self):
        with pytest.raises(PreconditionError):
            open_loops(grid_graph(2), np.random.default_rng(0), 1.5)


class TestFindTriangleHoles:
    def test_detects_open_triangle(self):
        graph = make_graph([(0.0, 0.0), (2.0, 0.0), (1.0, 2.0)], [(0, 1), (1, 2), (0, 2)])
        for edge in graph.edges:
            graph.open_edge(edge)
        assert find_triangle_holes(graph) == [(0, 1, 2)]

    def test_open_edge_refuses_force_closed(self):
        graph = make_graph([(0.0, 0.0), (1.0, 0.0)], [(0, 1)], force_closed={(0, 1)})
        with pytest.raises(PreconditionError):
            graph.open_edge(graph.edges[0])
