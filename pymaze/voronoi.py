import math
from collections import defaultdict
from dataclasses import dataclass, field

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from pymaze.clipping import clip_edge
from pymaze.delaunay import Triangulation
from pymaze.geometry import Edge, Polygon
from pymaze.utils import EPS, PreconditionError, Vec2d, as_point, point_key


@dataclass
class VoronoiCell:
    site_id: int
    site: tuple[float, float]
    polygon: Polygon


@dataclass
class VoronoiDiagram:
    """Voronoi cells of the triangulation sites, clipped to ``[lower, upper]``."""

    lower: tuple[float, float]
    upper: tuple[float, float]
    cells: list[VoronoiCell] = field(default_factory=list)
    circumcenters: NDArray[np.floating] = field(
        default_factory=lambda: np.empty((0, 2))
    )
    degenerate_sites: list[int] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.cells)

    def __iter__(self):
        return iter(self.cells)

    @property
    def region_area(self) -> float:
        return (self.upper[0] - self.lower[0]) * (self.upper[1] - self.lower[1])

    def cell_for_site(self, site_id: int) -> VoronoiCell | None:
        for cell in self.cells:
            if cell.site_id == site_id:
                return cell
        return None


def _snap_to_boundary(
    p: tuple[float, float], lower: tuple[float, float], upper: tuple[float, float]
) -> tuple[float, float]:
    x, z = p
    for bound in (lower[0], upper[0]):
        if abs(x - bound) <= EPS:
            x = bound
    for bound in (lower[1], upper[1]):
        if abs(z - bound) <= EPS:
            z = bound
    return x, z


def _hull_ray_direction(
    pa: NDArray[np.floating], pb: NDArray[np.floating], opposite: NDArray[np.floating]
) -> NDArray[np.floating]:
    """Unit normal of the hull edge (pa, pb), pointing away from ``opposite``."""
    d = pb - pa
    normal = np.array([-d[1], d[0]], dtype=float)
    if np.dot(normal, opposite - pa) > 0:
        normal = -normal
    return normal / np.linalg.norm(normal)


def _boundary_segments(
    split_points: list[tuple[float, float]],
    lower: tuple[float, float],
    upper: tuple[float, float],
) -> list[Edge]:
    """
    Cut the four region sides at the given points (plus the corners) into
    consecutive segments.
    """
    x0, z0 = lower
    x1, z1 = upper
    # (fixed coordinate index, fixed value, corners)
    sides = [
        (1, z0, [(x0, z0), (x1, z0)]),
        (0, x1, [(x1, z0), (x1, z1)]),
        (1, z1, [(x0, z1), (x1, z1)]),
        (0, x0, [(x0, z0), (x0, z1)]),
    ]
    segments = []
    for axis, value, corners in sides:
        along = 1 - axis
        on_side = {point_key(c): c for c in corners}
        for p in split_points:
            if p[axis] == value:
                on_side.setdefault(point_key(p), p)
        ordered = sorted(on_side.values(), key=lambda p: p[along])
        for p, q in zip(ordered, ordered[1:]):
            segment = Edge(p, q)
            if not segment.is_degenerate():
                segments.append(segment)
    return segments


def _nearest_site(
    point: tuple[float, float],
    site_ids: NDArray[np.integer],
    sites: NDArray[np.floating],
) -> int:
    d2 = np.sum((sites - np.asarray(point)) ** 2, axis=1)
    candidates = np.flatnonzero(d2 == d2.min())
    if len(candidates) > 1:
        # equidistant sites: the smaller (x, z) owns the segment
        best = min(candidates, key=lambda i: (sites[i, 0], sites[i, 1]))
        return int(site_ids[best])
    return int(site_ids[candidates[0]])


def build_dual_graph(
    triangulation: Triangulation, lower: Vec2d, upper: Vec2d
) -> VoronoiDiagram:
    """
    Build the bounded Voronoi diagram as the dual of a Delaunay triangulation.

    Interior Delaunay edges become circumcenter to circumcenter segments, hull
    edges become rays leaving the region, everything is clipped to the region
    and the remaining gaps along the region sides are stitched, so that every
    site ends up with a closed cell.

    Parameters
    ----------
    triangulation : Triangulation
        Delaunay triangulation of the sites.
    lower, upper : Vec2d
        Corners of the bounding rectangle.

    Returns
    -------
    VoronoiDiagram
        One cell per site used by the triangulation, in site order.
    """
    lower, upper = as_point(lower), as_point(upper)
    if not (upper[0] > lower[0] and upper[1] > lower[1]):
        raise PreconditionError(f"Empty bounds {lower} - {upper}")
    if len(triangulation) == 0:
        raise PreconditionError("Triangulation has no triangles")

    points = triangulation.all_points
    triangles = triangulation.triangle_vertices
    centers, _ = triangulation.circumcircles()

    region_center = np.array([(lower[0] + upper[0]) / 2, (lower[1] + upper[1]) / 2])
    diagonal = math.hypot(upper[0] - lower[0], upper[1] - lower[1])

    site_edges: dict[int, list[Edge]] = defaultdict(list)
    split_points: list[tuple[float, float]] = []

    for (i, j), owners in triangulation.edges().items():
        if len(owners) == 2:
            c0, c1 = centers[owners[0]], centers[owners[1]]
            if np.isnan(c0).any() or np.isnan(c1).any():
                logger.debug(f"Skipping dual of edge {(i, j)}: degenerate triangle")
                continue
            dual_edge = Edge(c0, c1)
        else:
            t_idx = owners[0]
            c = centers[t_idx]
            if np.isnan(c).any():
                logger.debug(f"Skipping hull ray of edge {(i, j)}: degenerate triangle")
                continue
            # rays from a circumcenter outside the region are clipped too, not skipped
            opposite = next(v for v in triangles[t_idx] if v != i and v != j)
            direction = _hull_ray_direction(points[i], points[j], points[opposite])
            length = 2.0 * diagonal + float(np.linalg.norm(c - region_center))
            dual_edge = Edge(c, c + direction * length)

        visible, _ = clip_edge(dual_edge, lower, upper)
        if not visible:
            continue
        dual_edge.a = _snap_to_boundary(dual_edge.a, lower, upper)
        dual_edge.b = _snap_to_boundary(dual_edge.b, lower, upper)
        if dual_edge.is_degenerate():
            continue

        site_edges[i].append(dual_edge)
        site_edges[j].append(dual_edge)
        for p in dual_edge:
            if p[0] in (lower[0], upper[0]) or p[1] in (lower[1], upper[1]):
                split_points.append(p)

    site_ids = triangulation.used_vertices()
    sites = points[site_ids]
    for segment in _boundary_segments(split_points, lower, upper):
        owner = _nearest_site(segment.midpoint, site_ids, sites)
        site_edges[owner].append(segment)

    diagram = VoronoiDiagram(lower=lower, upper=upper)
    for site_id in site_ids:
        site_id = int(site_id)
        edges = site_edges.get(site_id)
        if not edges:
            logger.warning(f"Site {site_id} has an empty Voronoi cell")
            diagram.degenerate_sites.append(site_id)
            continue
        polygon = Polygon.from_edges(edges)
        if not polygon.is_valid:
            logger.warning(f"Voronoi cell of site {site_id} could not be closed")
        diagram.cells.append(
            VoronoiCell(site_id=site_id, site=as_point(points[site_id]), polygon=polygon)
        )

    valid_centers = centers[~np.isnan(centers).any(axis=1)]
    if len(valid_centers):
        _, unique_idx = np.unique(
            np.round(valid_centers, 9), axis=0, return_index=True
        )
        diagram.circumcenters = valid_centers[np.sort(unique_idx)]

    logger.debug(
        f"Built {len(diagram.cells)} Voronoi cells "
        f"({len(diagram.degenerate_sites)} degenerate)"
    )
    return diagram
