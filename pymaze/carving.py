import math
from collections import deque
from enum import Enum, auto

import numpy as np
from loguru import logger

from pymaze.adjacency import AdjacencyGraph
from pymaze.utils import PreconditionError


class VisitState(Enum):
    UNVISITED = auto()
    ON_STACK = auto()
    FINISHED = auto()


def carve_spanning_tree(
    graph: AdjacencyGraph, rng: np.random.Generator, source: int = 0
) -> list[int]:
    """
    Randomized depth first carving with an explicit stack.

    At every step the edges of the node on top of the stack are inspected in
    a fresh random order; the first one leading to an unvisited node (and not
    force closed) is opened and its far node pushed. Nodes without such an
    edge are popped. The opened edges form a spanning tree of the nodes
    reachable from ``source``.

    :param graph: adjacency graph, edges are opened in place
    :param rng: random generator
    :param source: index of the starting node
    :return: indices of the opened edges, in carving order
    """
    if not graph.nodes:
        raise PreconditionError("Cannot carve an empty graph")
    if not 0 <= source < len(graph.nodes):
        raise PreconditionError(
            f"Source {source} out of range for {len(graph.nodes)} nodes"
        )

    state = [VisitState.UNVISITED] * len(graph.nodes)
    state[source] = VisitState.ON_STACK
    stack = [source]
    opened: list[int] = []

    while stack:
        current = stack[-1]
        slots = graph.nodes[current].edges
        for k in rng.permutation(len(slots)):
            edge = graph.edges[slots[k]]
            if edge.force_closed:
                continue
            neighbor = edge.other(current)
            if state[neighbor] is VisitState.UNVISITED:
                state[neighbor] = VisitState.ON_STACK
                stack.append(neighbor)
                graph.open_edge(edge)
                opened.append(edge.index)
                break
        else:
            # dead end
            state[stack.pop()] = VisitState.FINISHED

    unreached = state.count(VisitState.UNVISITED)
    if unreached:
        logger.warning(f"{unreached} nodes are unreachable from node {source}")
    logger.debug(f"Carved {len(opened)} passages from node {source}")
    return opened


def open_loops(
    graph: AdjacencyGraph, rng: np.random.Generator, wall_remove_percentage: float
) -> list[int]:
    """
    Knock down extra walls so that the maze gets cycles.

    ``floor(total_edge_count / 2 * wall_remove_percentage)`` random (node,
    edge slot) picks are made. A pick is skipped when the edge is force
    closed, already open, or when its two nodes already share an open
    neighbor (opening it would leave a triangle hole the mesher cannot
    close).

    :return: indices of the newly opened edges
    """
    if not 0.0 <= wall_remove_percentage <= 1.0:
        raise PreconditionError(
            f"wall_remove_percentage must be in [0, 1], got {wall_remove_percentage}"
        )
    attempts = math.floor((graph.total_edge_count / 2.0) * wall_remove_percentage)
    opened: list[int] = []
    if attempts == 0 or not graph.nodes:
        return opened

    for _ in range(attempts):
        chosen = int(rng.integers(len(graph.nodes)))
        slots = graph.nodes[chosen].edges
        if not slots:
            continue
        edge = graph.edges[slots[int(rng.integers(len(slots)))]]
        if edge.force_closed or edge.is_open:
            continue
        other = edge.other(chosen)
        if set(graph.open_neighbors(chosen)) & set(graph.open_neighbors(other)):
            continue
        graph.open_edge(edge)
        opened.append(edge.index)

    logger.debug(f"Opened {len(opened)} extra walls in {attempts} attempts")
    return opened


def reachable_nodes(graph: AdjacencyGraph, source: int = 0) -> set[int]:
    """Nodes reachable from ``source`` through open edges."""
    if not 0 <= source < len(graph.nodes):
        raise PreconditionError(
            f"Source {source} out of range for {len(graph.nodes)} nodes"
        )
    seen = {source}
    queue = deque([source])
    while queue:
        node = queue.popleft()
        for neighbor in graph.open_neighbors(node):
            if neighbor not in seen:
                seen.add(neighbor)
                queue.append(neighbor)
    return seen


def is_spanning_tree(graph: AdjacencyGraph, source: int = 0) -> bool:
    """Whether the open edges form a tree over the nodes reachable from ``source``."""
    reached = reachable_nodes(graph, source)
    n_open = sum(
        1 for edge in graph.open_edges() if edge.a in reached and edge.b in reached
    )
    return n_open == len(reached) - 1


def find_triangle_holes(graph: AdjacencyGraph) -> list[tuple[int, int, int]]:
    """All triples of nodes that are pairwise connected by open edges."""
    holes = []
    for edge in graph.open_edges():
        a, b = sorted((edge.a, edge.b))
        common = set(graph.open_neighbors(a)) & set(graph.open_neighbors(b))
        holes.extend((a, b, c) for c in sorted(common) if c > b)
    return holes
