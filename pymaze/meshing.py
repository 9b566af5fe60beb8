import math
from collections.abc import Iterator
from dataclasses import dataclass, field

from loguru import logger

from pymaze.adjacency import AdjacencyGraph, AdjacencyNode
from pymaze.geometry import Edge, Polygon
from pymaze.mesher import UP, Mesher, MeshData, lift
from pymaze.utils import PointKey, PreconditionError, Rect, Vec2d, Vec3d, point_key

ChunkIndex = tuple[int, int]
Corner = tuple[Vec2d, Vec2d, Vec2d]


@dataclass
class ChunkMesh:
    chunk: ChunkIndex
    floor: MeshData | None
    wall: MeshData


@dataclass
class MazeGeometry:
    num_chunks: tuple[int, int]
    chunks: dict[ChunkIndex, ChunkMesh] = field(default_factory=dict)
    excluded_floor: MeshData = field(default_factory=MeshData.empty)

    def walls(self) -> MeshData:
        return MeshData.concatenate([c.wall for c in self.chunks.values()])

    def floors(self) -> MeshData:
        return MeshData.concatenate(
            [c.floor for c in self.chunks.values() if c.floor is not None]
        )


def _horizontal(frm: Vec2d, to: Vec2d) -> Vec3d:
    return float(to[0] - frm[0]), 0.0, float(to[1] - frm[1])


def _midpoint(*points: Vec2d) -> tuple[float, float]:
    n = len(points)
    return sum(p[0] for p in points) / n, sum(p[1] for p in points) / n


def _corner_key(corner: Corner) -> tuple[PointKey, ...]:
    return tuple(sorted(point_key(p) for p in corner))


def is_responsible(node: AdjacencyNode, other: AdjacencyNode) -> bool:
    """
    Which of two cells emits the geometry they share: the one the other lies
    towards +z, or towards +x on equal z.
    """
    dx = other.position[0] - node.position[0]
    dz = other.position[1] - node.position[1]
    return dz > 0 or (dz == 0 and dx > 0)


class MazeMesher:
    """
    Wall and floor geometry of a carved maze.

    Every cell polygon is shrunk towards its centroid by ``1 - border_thickness``;
    the floor covers the shrunk polygon and walls fill the band between the
    shrunk and the original polygons. Cells are grouped into chunks of
    ``chunk_size`` by site position, and each chunk gets its own floor and
    wall mesh. All cross-cell lookups are prepared up front, so chunks can be
    meshed in any order.

    Parameters
    ----------
    graph : AdjacencyGraph
        Carved adjacency graph.
    wall_height : float
        Height of the walls along +y.
    border_thickness : float
        Fraction of each cell given to its walls, in (0, 1].
    chunk_size : float | tuple[float, float]
        Chunk extent along x and z.
    region : Rect
        Maze region, the origin of the chunk grid.
    triangulate_floor : bool
        Whether floor meshes are emitted at all.
    """

    def __init__(
        self,
        graph: AdjacencyGraph,
        wall_height: float,
        border_thickness: float,
        chunk_size: float | tuple[float, float],
        region: Rect,
        triangulate_floor: bool = True,
    ) -> None:
        if wall_height <= 0:
            raise PreconditionError(f"wall_height must be positive, got {wall_height}")
        if not 0.0 < border_thickness <= 1.0:
            raise PreconditionError(
                f"border_thickness must be in (0, 1], got {border_thickness}"
            )
        if isinstance(chunk_size, (int, float)):
            chunk_size = (float(chunk_size), float(chunk_size))
        if chunk_size[0] <= 0 or chunk_size[1] <= 0:
            raise PreconditionError(f"chunk_size must be positive, got {chunk_size}")

        self.graph = graph
        self.wall_height = float(wall_height)
        self.border_thickness = float(border_thickness)
        self.chunk_size = (float(chunk_size[0]), float(chunk_size[1]))
        self.region = region
        self.triangulate_floor = triangulate_floor
        self.num_chunks = (
            max(1, math.ceil(region.width / self.chunk_size[0])),
            max(1, math.ceil(region.depth / self.chunk_size[1])),
        )

        scale = 1.0 - self.border_thickness
        self.shrunk: list[Polygon] = [node.polygon.scaled(scale) for node in graph.nodes]
        self._vertex_index: list[dict[PointKey, int]] = [
            {key: i for i, key in enumerate(node.polygon.keys())} for node in graph.nodes
        ]

        self.chunk_nodes: dict[ChunkIndex, list[int]] = {
            (x, z): [] for x in range(self.num_chunks[0]) for z in range(self.num_chunks[1])
        }
        for node in graph.nodes:
            self.chunk_nodes[self.chunk_of(node.position)].append(node.index)

        self._junction_owner: dict[PointKey, tuple[int, int]] = self._claim_junctions()
        self._corner_owner = self._claim_bridge_corners()

    def chunk_of(self, p: Vec2d) -> ChunkIndex:
        cx = math.floor((p[0] - self.region.x_min) / self.chunk_size[0])
        cz = math.floor((p[1] - self.region.z_min) / self.chunk_size[1])
        return (
            min(max(cx, 0), self.num_chunks[0] - 1),
            min(max(cz, 0), self.num_chunks[1] - 1),
        )

    def _top(self, p: Vec2d) -> Vec3d:
        return lift(p, self.wall_height)

    def _shrunk_vertex(self, node: int, original: Vec2d) -> tuple[float, float] | None:
        """Shrunk counterpart of one of the node's original polygon vertices."""
        index = self._vertex_index[node].get(point_key(original))
        if index is None:
            return None
        return self.shrunk[node].vertices[index]

    def _opposition(self, node: int, wall: Edge) -> int | None:
        owners = self.graph.wall_nodes.get(wall, [])
        if len(owners) < 2:
            return None
        return owners[1] if owners[0] == node else owners[0]

    def _closed_shared_neighbors(self, node: int, other: int) -> list[int]:
        """Cells walled off from both ``node`` and ``other``."""
        open_from_node = set(self.graph.open_neighbors(node))
        candidates = set(self.graph.neighbors(other)) - set(
            self.graph.open_neighbors(other)
        )
        return [
            n
            for n in self.graph.neighbors(node)
            if n != other and n not in open_from_node and n in candidates
        ]

    def _common_vertex(self, nodes: tuple[int, ...]) -> PointKey | None:
        keys = set(self._vertex_index[nodes[0]])
        for n in nodes[1:]:
            keys &= set(self._vertex_index[n])
        if not keys:
            return None
        # three cells meet in at most one vertex
        return min(keys)

    def _claim_junctions(self) -> dict[PointKey, tuple[int, int]]:
        """
        Find the corners where three mutually walled-off cells meet and pick,
        for each of them, the one (node, wall slot) that fills its gap.
        """
        owners: dict[PointKey, tuple[int, int]] = {}
        for node in self.graph.nodes:
            for slot, wall in enumerate(node.polygon.edges()):
                other = self._opposition(node.index, wall)
                if other is None or self.graph.is_open(node.index, other):
                    continue
                if not is_responsible(node, self.graph.nodes[other]):
                    continue
                for shared in self._closed_shared_neighbors(node.index, other):
                    key = self._common_vertex((node.index, other, shared))
                    if key is None:
                        logger.error(
                            f"Incomplete inner triangulation: nodes {node.index}, "
                            f"{other} and {shared} share no vertex"
                        )
                        continue
                    owners.setdefault(key, (node.index, slot))
        return owners

    def _mesh_closed_junctions(
        self, wall_mesher: Mesher, node: int, slot: int, other: int
    ) -> None:
        for shared in self._closed_shared_neighbors(node, other):
            key = self._common_vertex((node, other, shared))
            if key is None or self._junction_owner.get(key) != (node, slot):
                continue
            corners = [self._shrunk_vertex(n, key) for n in (node, other, shared)]
            wall_mesher.add_triangle_facing(*(self._top(c) for c in corners), facing=UP)  # type: ignore[arg-type]

    def _mesh_border_junctions(
        self,
        wall_mesher: Mesher,
        node: int,
        other: int,
        wall: Edge,
        shrunk_edge: Edge,
        opp_a: Vec2d,
        opp_b: Vec2d,
    ) -> None:
        if node not in self.graph.border_edges or other not in self.graph.border_edges:
            return
        borders = self.graph.border_edges[node]
        for original, inner, opposite in (
            (wall.a, shrunk_edge.a, opp_a),
            (wall.b, shrunk_edge.b, opp_b),
        ):
            # one fill per wall end, even where two border walls meet
            if any(border.shares_endpoint(original) for border in borders):
                wall_mesher.add_triangle_facing(
                    self._top(inner),
                    self._top(opposite),
                    self._top(original),
                    facing=UP,
                )

    def _bridge_corners(
        self,
        node: int,
        other: int,
        wall: Edge,
        a: Vec2d,
        b: Vec2d,
        opp_a: Vec2d,
        opp_b: Vec2d,
    ) -> list[Corner]:
        """
        Corner fills at both ends of a bridge, towards the third cell at each
        end of the wall, or the original vertex on the maze border.
        """
        left = right = None
        for n in self.graph.neighbors(node):
            if n == other:
                continue
            left = left or self._shrunk_vertex(n, wall.a)
            right = right or self._shrunk_vertex(n, wall.b)
        left = left or wall.a
        right = right or wall.b
        return [(opp_a, a, left), (b, opp_b, right)]

    def _open_walls(self, node: AdjacencyNode) -> Iterator[tuple[int, Edge, Edge, int]]:
        """(slot, wall, shrunk wall, other node) of every open wall ``node`` meshes."""
        shrunk = self.shrunk[node.index]
        for slot, (wall, edge) in enumerate(zip(node.polygon.edges(), shrunk.edges())):
            other = self._opposition(node.index, wall)
            if other is None or not self.graph.is_open(node.index, other):
                continue
            if is_responsible(node, self.graph.nodes[other]):
                yield slot, wall, edge, other

    def _claim_bridge_corners(self) -> dict[tuple[PointKey, ...], tuple[int, int]]:
        """
        Two bridges meeting at a vertex share the corner fill there; pick the
        first (node, wall slot) in node order to emit it.
        """
        owners: dict[tuple[PointKey, ...], tuple[int, int]] = {}
        for node in self.graph.nodes:
            for slot, wall, edge, other in self._open_walls(node):
                opp_a = self._shrunk_vertex(other, wall.a)
                opp_b = self._shrunk_vertex(other, wall.b)
                if opp_a is None or opp_b is None:
                    continue
                corners = self._bridge_corners(
                    node.index, other, wall, edge.a, edge.b, opp_a, opp_b
                )
                for corner in corners:
                    owners.setdefault(_corner_key(corner), (node.index, slot))
        return owners

    def _mesh_bridge(
        self,
        floor_mesher: Mesher | None,
        wall_mesher: Mesher,
        node: AdjacencyNode,
        slot: int,
        other: int,
        wall: Edge,
        a: Vec2d,
        b: Vec2d,
        opp_a: Vec2d,
        opp_b: Vec2d,
    ) -> None:
        if floor_mesher is not None:
            floor_mesher.add_quad_facing(lift(b), lift(a), lift(opp_a), lift(opp_b), facing=UP)

        center = _midpoint(a, b, opp_a, opp_b)
        for p, q in ((b, opp_b), (opp_a, a)):
            wall_mesher.add_quad_facing(
                lift(p),
                lift(q),
                self._top(q),
                self._top(p),
                facing=_horizontal(_midpoint(p, q), center),
            )

        for corner in self._bridge_corners(node.index, other, wall, a, b, opp_a, opp_b):
            if self._corner_owner.get(_corner_key(corner)) != (node.index, slot):
                continue
            wall_mesher.add_triangle_facing(*(self._top(p) for p in corner), facing=UP)

    def _mesh_node(
        self, floor_mesher: Mesher | None, wall_mesher: Mesher, node: AdjacencyNode
    ) -> None:
        shrunk = self.shrunk[node.index]

        if floor_mesher is not None:
            for triangle in shrunk.triangulate_fan():
                floor_mesher.add_triangle_facing(*triangle, facing=UP)

        for slot, (wall, edge) in enumerate(zip(node.polygon.edges(), shrunk.edges())):
            a, b = edge.a, edge.b
            other = self._opposition(node.index, wall)

            if other is not None and self.graph.is_open(node.index, other):
                if not is_responsible(node, self.graph.nodes[other]):
                    continue
                opp_a = self._shrunk_vertex(other, wall.a)
                opp_b = self._shrunk_vertex(other, wall.b)
                if opp_a is None or opp_b is None:
                    logger.error(f"Wall {wall} not found in the polygon of node {other}")
                    continue
                self._mesh_bridge(
                    floor_mesher, wall_mesher, node, slot, other, wall, a, b, opp_a, opp_b
                )
                continue

            # inner face, towards the cell
            wall_mesher.add_quad_facing(
                lift(b),
                lift(a),
                self._top(a),
                self._top(b),
                facing=_horizontal(edge.midpoint, node.position),
            )

            if other is None:
                wall_mesher.add_quad_facing(
                    self._top(b),
                    self._top(a),
                    self._top(wall.a),
                    self._top(wall.b),
                    facing=UP,
                )
                wall_mesher.add_quad_facing(
                    lift(wall.a),
                    lift(wall.b),
                    self._top(wall.b),
                    self._top(wall.a),
                    facing=_horizontal(node.position, wall.midpoint),
                )
                continue

            if not is_responsible(node, self.graph.nodes[other]):
                continue

            opp_a = self._shrunk_vertex(other, wall.a)
            opp_b = self._shrunk_vertex(other, wall.b)
            if opp_a is None or opp_b is None:
                logger.error(f"Wall {wall} not found in the polygon of node {other}")
                continue
            wall_mesher.add_quad_facing(
                self._top(b), self._top(a), self._top(opp_a), self._top(opp_b), facing=UP
            )
            self._mesh_closed_junctions(wall_mesher, node.index, slot, other)
            self._mesh_border_junctions(
                wall_mesher, node.index, other, wall, edge, opp_a, opp_b
            )

    def mesh_chunk(self, cx: int, cz: int) -> ChunkMesh:
        """Floor and wall meshes of the cells whose sites fall in chunk (cx, cz)."""
        if not (0 <= cx < self.num_chunks[0] and 0 <= cz < self.num_chunks[1]):
            raise PreconditionError(
                f"Chunk ({cx}, {cz}) out of range for {self.num_chunks} chunks"
            )
        floor_mesher = Mesher() if self.triangulate_floor else None
        wall_mesher = Mesher()
        for index in self.chunk_nodes[(cx, cz)]:
            self._mesh_node(floor_mesher, wall_mesher, self.graph.nodes[index])

        return ChunkMesh(
            chunk=(cx, cz),
            floor=floor_mesher.generate() if floor_mesher is not None else None,
            wall=wall_mesher.generate(),
        )

    def mesh_excluded_floor(self) -> MeshData:
        """Fan floor over the cells left out of the maze (e.g. a central hub)."""
        mesher = Mesher()
        for cell in self.graph.excluded:
            if not cell.polygon.is_valid:
                logger.debug(f"Skipping floor of incomplete cell {cell.site_id}")
                continue
            for triangle in cell.polygon.triangulate_fan():
                mesher.add_triangle_facing(*triangle, facing=UP)
        return mesher.generate()

    def mesh_all(self) -> MazeGeometry:
        geometry = MazeGeometry(num_chunks=self.num_chunks)
        for cx in range(self.num_chunks[0]):
            for cz in range(self.num_chunks[1]):
                geometry.chunks[(cx, cz)] = self.mesh_chunk(cx, cz)
        geometry.excluded_floor = self.mesh_excluded_floor()
        logger.debug(
            f"Meshed {len(self.graph.nodes)} cells in "
            f"{self.num_chunks[0]}x{self.num_chunks[1]} chunks"
        )
        return geometry
