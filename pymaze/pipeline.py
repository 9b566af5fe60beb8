import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from pymaze.adjacency import AdjacencyGraph, build_adjacency_graph
from pymaze.build import triangulate
from pymaze.carving import carve_spanning_tree, open_loops
from pymaze.config import MazeConfig
from pymaze.delaunay import Triangulation
from pymaze.meshing import MazeGeometry, MazeMesher
from pymaze.query import BoxObstacles, ObstacleQuery
from pymaze.sampling import poisson_sample
from pymaze.utils import PreconditionError
from pymaze.voronoi import VoronoiDiagram, build_dual_graph


@dataclass
class MazeLayout:
    """Everything the maze is made of, short of its geometry."""

    config: MazeConfig
    points: NDArray[np.floating]
    triangulation: Triangulation
    diagram: VoronoiDiagram
    graph: AdjacencyGraph
    tree_edges: list[int] = field(default_factory=list)
    loop_edges: list[int] = field(default_factory=list)


@contextmanager
def _timed(stage: str) -> Iterator[None]:
    start = time.perf_counter()
    yield
    logger.debug(f"{stage} complete in {1000 * (time.perf_counter() - start):.1f} ms")


def generate_layout(
    config: MazeConfig,
    rng: np.random.Generator | None = None,
    obstacles: ObstacleQuery | None = None,
) -> MazeLayout:
    """
    Sample, triangulate, build the Voronoi cells and carve the maze.

    :param config: generation options
    :param rng: random generator, ``np.random.default_rng(config.seed)`` if None
    :param obstacles: obstacle query, defaults to the boxes of ``config.obstacles``
    :return: the carved layout
    """
    if rng is None:
        rng = np.random.default_rng(config.seed)
    if obstacles is None and config.obstacles:
        obstacles = BoxObstacles(list(config.obstacles))

    region = config.region
    with _timed("Poisson sampling"):
        points = poisson_sample(
            region, config.min_distance, rng, attempt_limit=config.attempt_limit
        )
    if len(points) < 3:
        raise PreconditionError(
            f"Only {len(points)} sites fit in {region} with min_distance {config.min_distance}"
        )

    with _timed("Delaunay"):
        triangulation = triangulate(
            points, rng=rng, jitter=config.jitter, margin=config.super_triangle_margin
        )
    with _timed("Voronoi"):
        diagram = build_dual_graph(triangulation, region.lower, region.upper)
    with _timed("Adjacency"):
        graph = build_adjacency_graph(diagram, config.min_open_wall_length, obstacles)
    with _timed("Carving"):
        tree_edges = carve_spanning_tree(graph, rng, source=config.carve_source)
        loop_edges = open_loops(graph, rng, config.wall_remove_percentage)

    return MazeLayout(
        config=config,
        points=points,
        triangulation=triangulation,
        diagram=diagram,
        graph=graph,
        tree_edges=tree_edges,
        loop_edges=loop_edges,
    )


def build_geometry(layout: MazeLayout) -> MazeGeometry:
    config = layout.config
    with _timed("Meshing"):
        mesher = MazeMesher(
            layout.graph,
            wall_height=config.wall_height,
            border_thickness=config.border_thickness,
            chunk_size=config.chunk_size,
            region=config.region,
            triangulate_floor=config.triangulate_floor,
        )
        return mesher.mesh_all()


def generate_maze(
    config: MazeConfig,
    rng: np.random.Generator | None = None,
    obstacles: ObstacleQuery | None = None,
) -> tuple[MazeLayout, MazeGeometry]:
    layout = generate_layout(config, rng=rng, obstacles=obstacles)
    return layout, build_geometry(layout)
