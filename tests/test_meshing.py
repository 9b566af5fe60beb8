"""Unit tests for maze wall and floor meshing (pymaze/meshing.py)."""

import numpy as np
import pytest

from pymaze.adjacency import build_adjacency_graph
from pymaze.build import triangulate
from pymaze.carving import carve_spanning_tree, open_loops
from pymaze.meshing import MazeMesher, is_responsible
from pymaze.mesher import MeshData
from pymaze.query import BoxObstacles
from pymaze.sampling import poisson_sample
from pymaze.utils import PreconditionError, Rect

FIVE_SITES = np.array([[2.0, 2.0], [8.0, 2.0], [8.0, 8.0], [2.0, 8.0], [5.0, 5.0]])
REGION = Rect(0.0, 0.0, 10.0, 10.0)
HEIGHT = 0.5
CENTER_NODE = 4


def five_site_graph(obstacles=None):
    diagram = triangulate(FIVE_SITES).dual(REGION.lower, REGION.upper)
    return build_adjacency_graph(diagram, 0.0, obstacles=obstacles)


def make_mesher(graph, chunk_size=5.0, triangulate_floor=True) -> MazeMesher:
    return MazeMesher(
        graph,
        wall_height=HEIGHT,
        border_thickness=0.1,
        chunk_size=chunk_size,
        region=REGION,
        triangulate_floor=triangulate_floor,
    )


def assert_valid_mesh(mesh: MeshData) -> None:
    assert len(mesh.indices) % 3 == 0
    if not mesh.is_empty():
        assert mesh.indices.min() >= 0
        assert mesh.indices.max() < len(mesh.positions)
    # every position is stored once
    assert len(np.unique(mesh.positions, axis=0)) == len(mesh.positions)


def top_triangles(walls: MeshData) -> list[tuple]:
    """Wall top triangles as sorted vertex tuples, in mesh order."""
    tri = walls.positions[walls.triangles]
    top = np.all(tri[:, :, 1] == HEIGHT, axis=1)
    return [tuple(sorted(map(tuple, np.round(t, 9)))) for t in tri[top]]


def horizontal_area(mesh: MeshData) -> float:
    tri = mesh.positions[mesh.triangles]
    flat = np.all(tri[:, :, 1] == tri[:, :1, 1], axis=1)
    return float(np.sum(np.abs(mesh.face_normals()[flat][:, 1])) / 2.0)


@pytest.fixture(scope="module")
def carved_geometry():
    rng = np.random.default_rng(21)
    points = poisson_sample(REGION, 1.0, rng)
    diagram = triangulate(points).dual(REGION.lower, REGION.upper)
    graph = build_adjacency_graph(diagram, 0.3)
    carve_spanning_tree(graph, rng)
    open_loops(graph, rng, 0.2)
    return make_mesher(graph).mesh_all()


class TestChunks:
    """Tests for the chunk grid."""

    def test_chunk_count_rounds_up(self):
        graph = five_site_graph()
        assert make_mesher(graph, chunk_size=5.0).num_chunks == (2, 2)
        assert make_mesher(graph, chunk_size=4.0).num_chunks == (3, 3)
        assert make_mesher(graph, chunk_size=(20.0, 3.0)).num_chunks == (1, 4)

    def test_nodes_go_to_the_chunk_of_their_site(self):
        mesher = make_mesher(five_site_graph())
        assert mesher.chunk_nodes[(0, 0)] == [0]
        assert mesher.chunk_nodes[(1, 0)] == [1]
        assert mesher.chunk_nodes[(0, 1)] == [3]
        assert sorted(mesher.chunk_nodes[(1, 1)]) == [2, 4]

    def test_chunk_of_clamps_to_the_grid(self):
        mesher = make_mesher(five_site_graph())
        assert mesher.chunk_of((10.0, 10.0)) == (1, 1)
        assert mesher.chunk_of((-1.0, 4.9)) == (0, 0)

    def test_chunk_out_of_range(self):
        mesher = make_mesher(five_site_graph())
        with pytest.raises(PreconditionError):
            mesher.mesh_chunk(2, 0)
        with pytest.raises(PreconditionError):
            mesher.mesh_chunk(0, -1)

    def test_invalid_parameters(self):
        graph = five_site_graph()
        with pytest.raises(PreconditionError):
            MazeMesher(graph, 0.0, 0.1, 5.0, REGION)
        with pytest.raises(PreconditionError):
            MazeMesher(graph, 1.0, 0.0, 5.0, REGION)
        with pytest.raises(PreconditionError):
            MazeMesher(graph, 1.0, 0.1, (5.0, 0.0), REGION)


class TestFiveSiteMaze:
    """Meshing four corner cells around a central diamond."""

    def test_responsible_side(self):
        graph = five_site_graph()
        assert is_responsible(graph.nodes[0], graph.nodes[1])
        assert not is_responsible(graph.nodes[1], graph.nodes[0])
        assert is_responsible(graph.nodes[0], graph.nodes[4])
        assert not is_responsible(graph.nodes[2], graph.nodes[4])

    def test_closed_floor_is_a_fan_per_cell(self):
        geometry = make_mesher(five_site_graph()).mesh_all()
        floors = geometry.floors()
        # four pentagons and a diamond
        assert len(floors) == 4 * 3 + 2
        assert np.all(floors.positions[:, 1] == 0.0)
        assert np.all(floors.face_normals()[:, 1] > 0)

    def test_bridge_adds_floor(self):
        graph = five_site_graph()
        graph.open_edge(graph.edge_between(0, 1))
        chunk = make_mesher(graph).mesh_chunk(0, 0)
        assert len(chunk.floor) == 3 + 2
        assert np.all(chunk.floor.face_normals()[:, 1] > 0)
        # the bridge belongs to the cell at (2, 2) only
        assert len(make_mesher(graph).mesh_chunk(1, 0).floor) == 3

    def test_walls_stay_between_floor_and_wall_height(self):
        geometry = make_mesher(five_site_graph()).mesh_all()
        for chunk in geometry.chunks.values():
            assert_valid_mesh(chunk.wall)
            heights = set(np.unique(chunk.wall.positions[:, 1]).tolist())
            assert heights == {0.0, HEIGHT}

    def test_wall_tops_face_up(self):
        walls = make_mesher(five_site_graph()).mesh_all().walls()
        tri = walls.positions[walls.triangles]
        top = np.all(tri[:, :, 1] == HEIGHT, axis=1)
        assert top.any()
        assert np.all(walls.face_normals()[top][:, 1] > 0)

    def test_junctions_are_claimed_once(self):
        mesher = make_mesher(five_site_graph())
        assert set(mesher._junction_owner) == {
            (5.0, 2.0),
            (8.0, 5.0),
            (5.0, 8.0),
            (2.0, 5.0),
        }

    def test_open_wall_removes_its_junction(self):
        graph = five_site_graph()
        graph.open_edge(graph.edge_between(0, 1))
        mesher = make_mesher(graph)
        assert (5.0, 2.0) not in mesher._junction_owner
        assert len(mesher._junction_owner) == 3

    def test_closed_maze_covers_the_region_once(self):
        geometry = make_mesher(five_site_graph()).mesh_all()
        area = horizontal_area(geometry.floors()) + horizontal_area(geometry.walls())
        assert area == pytest.approx(REGION.area)

    def test_bridges_meeting_at_a_vertex_share_one_corner_fill(self):
        graph = five_site_graph()
        # both walls of the cell at (2, 2) end at (5, 2)
        graph.open_edge(graph.edge_between(0, 1))
        graph.open_edge(graph.edge_between(0, CENTER_NODE))
        walls = make_mesher(graph).mesh_all().walls()
        tops = top_triangles(walls)
        assert len(tops) == len(set(tops))

    def test_mesh_chunk_is_repeatable(self):
        mesher = make_mesher(five_site_graph())
        first = mesher.mesh_chunk(1, 1)
        second = mesher.mesh_chunk(1, 1)
        np.testing.assert_array_equal(first.wall.positions, second.wall.positions)
        np.testing.assert_array_equal(first.wall.indices, second.wall.indices)

    def test_no_floor_when_disabled(self):
        geometry = make_mesher(five_site_graph(), triangulate_floor=False).mesh_all()
        assert all(chunk.floor is None for chunk in geometry.chunks.values())
        assert geometry.floors().is_empty()
        assert not geometry.walls().is_empty()

    def test_excluded_floor(self):
        graph = five_site_graph(BoxObstacles([(0.2, 0.2, 0.6, 0.6)]))
        geometry = make_mesher(graph).mesh_all()
        assert len(geometry.excluded_floor) == 3
        assert np.all(geometry.excluded_floor.face_normals()[:, 1] > 0)
        assert geometry.chunks[(0, 0)].wall.is_empty()


class TestCarvedMaze:
    """Meshing a sampled, carved maze."""

    def test_meshes_are_valid(self, carved_geometry):
        assert carved_geometry.num_chunks == (2, 2)
        for chunk in carved_geometry.chunks.values():
            assert_valid_mesh(chunk.wall)
            assert_valid_mesh(chunk.floor)

    def test_floor_faces_up(self, carved_geometry):
        floors = carved_geometry.floors()
        assert len(floors) > 0
        assert np.all(floors.face_normals()[:, 1] >= -1e-9)

    def test_horizontal_wall_faces_up(self, carved_geometry):
        walls = carved_geometry.walls()
        tri = walls.positions[walls.triangles]
        flat = np.all(tri[:, :, 1] == tri[:, :1, 1], axis=1)
        assert np.all(walls.face_normals()[flat][:, 1] >= -1e-9)

    def test_no_duplicated_wall_tops(self, carved_geometry):
        tops = top_triangles(carved_geometry.walls())
        assert tops
        assert len(tops) == len(set(tops))

    def test_geometry_inside_region(self, carved_geometry):
        for mesh in (carved_geometry.walls(), carved_geometry.floors()):
            assert np.all(mesh.positions[:, 0] >= -1e-9)
            assert np.all(mesh.positions[:, 0] <= 10.0 + 1e-9)
            assert np.all(mesh.positions[:, 2] >= -1e-9)
            assert np.all(mesh.positions[:, 2] <= 10.0 + 1e-9)
