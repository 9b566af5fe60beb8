from dataclasses import dataclass, field

from loguru import logger

from pymaze.geometry import Edge, Polygon
from pymaze.query import ObstacleQuery, polygon_is_blocked
from pymaze.utils import PreconditionError
from pymaze.voronoi import VoronoiCell, VoronoiDiagram


@dataclass
class AdjacencyEdge:
    """A wall shared by two maze cells, stored once for both of them."""

    index: int
    a: int
    b: int
    wall: Edge
    length: float
    force_closed: bool = False
    is_open: bool = False

    def other(self, node: int) -> int:
        if node == self.a:
            return self.b
        if node == self.b:
            return self.a
        raise ValueError(f"Node {node} is not an endpoint of edge {self.index}")


@dataclass
class AdjacencyNode:
    index: int
    site_id: int
    position: tuple[float, float]
    polygon: Polygon
    edges: list[int] = field(default_factory=list)


@dataclass
class AdjacencyGraph:
    """
    Maze cells and the walls between them.

    Nodes and edges live in two flat lists and refer to each other by index.
    ``wall_nodes`` maps every cell wall to the nodes on either side of it (one
    node for walls on the outer border of the maze).
    """

    nodes: list[AdjacencyNode] = field(default_factory=list)
    edges: list[AdjacencyEdge] = field(default_factory=list)
    wall_nodes: dict[Edge, list[int]] = field(default_factory=dict)
    border_edges: dict[int, list[Edge]] = field(default_factory=dict)
    excluded: list[VoronoiCell] = field(default_factory=list)
    total_edge_count: int = 0
    _site_index: dict[int, int] = field(default_factory=dict, repr=False)

    def __len__(self) -> int:
        return len(self.nodes)

    def add_node(self, cell: VoronoiCell) -> AdjacencyNode:
        node = AdjacencyNode(
            index=len(self.nodes),
            site_id=cell.site_id,
            position=cell.site,
            polygon=cell.polygon,
        )
        self.nodes.append(node)
        self._site_index[cell.site_id] = node.index
        return node

    def link(self, a: int, b: int, wall: Edge, force_closed: bool = False) -> AdjacencyEdge:
        edge = AdjacencyEdge(
            index=len(self.edges),
            a=a,
            b=b,
            wall=wall,
            length=wall.length,
            force_closed=force_closed,
        )
        self.edges.append(edge)
        self.nodes[a].edges.append(edge.index)
        self.nodes[b].edges.append(edge.index)
        return edge

    def node_for_site(self, site_id: int) -> AdjacencyNode | None:
        index = self._site_index.get(site_id)
        return None if index is None else self.nodes[index]

    def edge_between(self, a: int, b: int) -> AdjacencyEdge | None:
        for e in self.nodes[a].edges:
            edge = self.edges[e]
            if edge.other(a) == b:
                return edge
        return None

    def neighbors(self, node: int) -> list[int]:
        """All cells sharing a wall with ``node``."""
        return [self.edges[e].other(node) for e in self.nodes[node].edges]

    def open_neighbors(self, node: int) -> list[int]:
        return [
            self.edges[e].other(node)
            for e in self.nodes[node].edges
            if self.edges[e].is_open
        ]

    def force_closed_neighbors(self, node: int) -> list[int]:
        return [
            self.edges[e].other(node)
            for e in self.nodes[node].edges
            if self.edges[e].force_closed
        ]

    def is_open(self, a: int, b: int) -> bool:
        edge = self.edge_between(a, b)
        return edge is not None and edge.is_open

    def open_edges(self) -> list[AdjacencyEdge]:
        return [edge for edge in self.edges if edge.is_open]

    def open_edge(self, edge: AdjacencyEdge) -> None:
        if edge.force_closed:
            raise PreconditionError(f"Edge {edge.index} is force closed")
        edge.is_open = True


def build_adjacency_graph(
    diagram: VoronoiDiagram,
    min_open_wall_length: float,
    obstacles: ObstacleQuery | None = None,
) -> AdjacencyGraph:
    """
    One node per usable Voronoi cell, one edge per wall shared by two cells.

    :param diagram: bounded Voronoi diagram
    :param min_open_wall_length: walls shorter than this can never be opened
    :param obstacles: cells touching an obstacle are excluded from the maze
    :return: the adjacency graph, nodes in cell order
    """
    graph = AdjacencyGraph()

    for cell in diagram.cells:
        if not cell.polygon.is_valid:
            logger.debug(f"Excluding site {cell.site_id}: incomplete polygon")
            graph.excluded.append(cell)
            continue
        if obstacles is not None and polygon_is_blocked(cell.polygon, obstacles):
            logger.trace(f"Excluding site {cell.site_id}: blocked by an obstacle")
            graph.excluded.append(cell)
            continue

        walls = cell.polygon.edges()
        graph.total_edge_count += len(walls)
        node = graph.add_node(cell)

        for wall in walls:
            seen = graph.wall_nodes.get(wall)
            if seen is None:
                graph.wall_nodes[wall] = [node.index]
                continue
            if len(seen) >= 2:
                logger.warning(f"Wall {wall} is shared by more than two cells")
                continue
            seen.append(node.index)
            graph.link(
                seen[0],
                node.index,
                wall,
                force_closed=wall.length < min_open_wall_length,
            )

    for wall, owners in graph.wall_nodes.items():
        if len(owners) == 1:
            graph.border_edges.setdefault(owners[0], []).append(wall)

    logger.debug(
        f"Adjacency graph: {len(graph.nodes)} nodes, {len(graph.edges)} edges, "
        f"{sum(e.force_closed for e in graph.edges)} force closed, "
        f"{len(graph.excluded)} cells excluded"
    )
    return graph
