import numpy as np
from loguru import logger
from numpy.typing import NDArray

from pymaze.delaunay import Triangulation
from pymaze.geometry import circumcircle_arrays, ensure_cw_triangle
from pymaze.utils import PreconditionError


def initialize_triangulation(
    points: NDArray[np.floating],
    margin: float = 100.0,
) -> tuple[NDArray[np.floating], NDArray[np.integer]]:
    """
    Initialize the triangulation with a super triangle sized from the input
    bounding box.

    :param points: input points
    :param margin: how many bounding box extents the super triangle reaches
        beyond the input
    :return: all points (input followed by the 3 super vertices) and the
        initial triangle
    """
    if margin <= 1.0:
        raise PreconditionError(f"Super triangle margin must exceed 1, got {margin}")

    min_vals = np.min(points, axis=0)
    max_vals = np.max(points, axis=0)
    center = (min_vals + max_vals) / 2.0
    extent = float(np.max(max_vals - min_vals))
    if extent == 0.0:
        extent = 1.0
    r = extent * margin

    super_vertices = np.array(
        [
            [center[0] - 3 * r, center[1] - r],
            [center[0] + 3 * r, center[1] - r],
            [center[0], center[1] + 3 * r],
        ]
    )
    all_points = np.vstack([points, super_vertices])
    n = len(points)
    triangle = ensure_cw_triangle(np.array([n, n + 1, n + 2]), all_points)
    return all_points, triangle.reshape(1, 3)


def find_bad_triangles(
    point: NDArray[np.floating],
    centers: NDArray[np.floating],
    radii_sq: NDArray[np.floating],
) -> NDArray[np.integer]:
    """Indices of the triangles whose circumcircle strictly contains ``point``."""
    d2 = np.sum((centers - point) ** 2, axis=1)
    with np.errstate(invalid="ignore"):
        return np.flatnonzero(d2 < radii_sq)


def cavity_boundary(bad_triangles: NDArray[np.integer]) -> list[tuple[int, int]]:
    """
    Edges belonging to exactly one of the bad triangles, in their original
    orientation and in a deterministic order.
    """
    counts: dict[tuple[int, int], int] = {}
    oriented: dict[tuple[int, int], tuple[int, int]] = {}
    for tri in bad_triangles:
        for i in range(3):
            v1, v2 = int(tri[i]), int(tri[(i + 1) % 3])
            key = (v1, v2) if v1 < v2 else (v2, v1)
            counts[key] = counts.get(key, 0) + 1
            oriented.setdefault(key, (v1, v2))
    return [oriented[key] for key, count in counts.items() if count == 1]


def insert_point(
    point_idx: int,
    all_points: NDArray[np.floating],
    triangle_vertices: NDArray[np.integer],
    centers: NDArray[np.floating],
    radii_sq: NDArray[np.floating],
) -> tuple[NDArray[np.integer], NDArray[np.floating], NDArray[np.floating]]:
    """
    Insert a point with one Bowyer-Watson step.

    :return: updated triangle vertices, circumcenters and squared radii
    """
    point = all_points[point_idx]
    bad = find_bad_triangles(point, centers, radii_sq)
    if len(bad) == 0:
        logger.warning(
            f"Point {point_idx} {np.round(point, 3)} is not inside any circumcircle, skipping it"
        )
        return triangle_vertices, centers, radii_sq

    boundary = cavity_boundary(triangle_vertices[bad])
    logger.trace(
        f"Point {point_idx}: {len(bad)} bad triangles, cavity of {len(boundary)} edges"
    )

    new_triangles = np.array(
        [
            ensure_cw_triangle(np.array([v1, v2, point_idx]), all_points)
            for v1, v2 in boundary
        ],
        dtype=int,
    )
    new_centers, new_radii_sq = circumcircle_arrays(all_points, new_triangles)
    for tri in new_triangles[np.isneginf(new_radii_sq)]:
        logger.debug(f"Degenerate triangle {tri.tolist()} has no circumcircle")

    keep_mask = np.ones(len(triangle_vertices), dtype=bool)
    keep_mask[bad] = False
    return (
        np.vstack([triangle_vertices[keep_mask], new_triangles]),
        np.vstack([centers[keep_mask], new_centers]),
        np.concatenate([radii_sq[keep_mask], new_radii_sq]),
    )


def remove_super_triangle_triangles(
    all_points: NDArray[np.floating],
    triangle_vertices: NDArray[np.integer],
    n_original_points: int,
) -> Triangulation:
    """
    Drop triangles that reference a super triangle vertex, together with the
    three super vertices themselves.
    """
    mask = np.all(triangle_vertices < n_original_points, axis=1)
    return Triangulation(
        all_points=all_points[:n_original_points],
        triangle_vertices=triangle_vertices[mask],
    )


def triangulate(
    points: NDArray[np.floating],
    rng: np.random.Generator | None = None,
    jitter: float = 0.0,
    margin: float = 100.0,
) -> Triangulation:
    """
    Delaunay triangulation with the Bowyer-Watson incremental algorithm.

    Points are inserted in order, so vertex ``i`` of the result is
    ``points[i]`` (possibly jittered). Exact duplicates are skipped.

    :param points: (n, 2) input points
    :param rng: random generator, required when ``jitter > 0``
    :param jitter: each point is moved by up to this much along each axis
        before insertion
    :param margin: super triangle size relative to the input extent
    :return: the triangulation, with clockwise triangles
    """
    points = np.array(points, dtype=float)
    if points.ndim != 2 or points.shape[1] != 2:
        raise PreconditionError(f"Expected an (n, 2) array, got shape {points.shape}")
    if len(points) < 3:
        raise PreconditionError(f"At least 3 points are needed, got {len(points)}")
    if jitter < 0:
        raise PreconditionError(f"Jitter must be non negative, got {jitter}")
    if jitter > 0:
        if rng is None:
            raise PreconditionError("A random generator is needed to jitter points")
        points = points + rng.uniform(-jitter, jitter, size=points.shape)

    n_original_points = len(points)
    all_points, triangle_vertices = initialize_triangulation(points, margin=margin)
    centers, radii_sq = circumcircle_arrays(all_points, triangle_vertices)

    seen: set[tuple[float, float]] = set()
    for point_idx in range(n_original_points):
        key = (float(all_points[point_idx, 0]), float(all_points[point_idx, 1]))
        if key in seen:
            logger.debug(f"Point {point_idx} {key} is a duplicate, skipping it")
            continue
        seen.add(key)
        triangle_vertices, centers, radii_sq = insert_point(
            point_idx, all_points, triangle_vertices, centers, radii_sq
        )

    triangulation = remove_super_triangle_triangles(
        all_points, triangle_vertices, n_original_points
    )
    logger.debug(
        f"Triangulated {n_original_points} points into {len(triangulation)} triangles"
    )
    return triangulation
