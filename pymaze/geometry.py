import math
from collections.abc import Iterable, Iterator

import numpy as np
from loguru import logger
from numpy.typing import NDArray
from shewchuk import orientation

from pymaze.utils import EPS, PointKey, Vec2d, as_point, point_key


class IncompletePolygonError(RuntimeError): ...


def is_point_in_box(
    a: Vec2d,
    b: Vec2d,
    p: Vec2d,
    eps: float = EPS,
) -> bool:
    # check if p is within the bounding box of [a, b]
    return (
        min(a[0], b[0]) - eps <= p[0] <= max(a[0], b[0]) + eps
        and min(a[1], b[1]) - eps <= p[1] <= max(a[1], b[1]) + eps
    )


def orient2d(pa: Vec2d, pb: Vec2d, pc: Vec2d) -> float:
    """
    Floating point 2D orientation determinant.
    Returns > 0 if points are in counterclockwise order
    Returns < 0 if points are in clockwise order
    Returns = 0 if points are collinear

    Use `is_collinear` when an exact answer is needed.
    """
    detleft = (pa[0] - pc[0]) * (pb[1] - pc[1])
    detright = (pa[1] - pc[1]) * (pb[0] - pc[0])
    det = detleft - detright
    return det


def is_collinear(pa: Vec2d, pb: Vec2d, pc: Vec2d) -> bool:
    """Exact collinearity test based on Shewchuk's orientation predicate."""
    return (
        orientation(
            float(pa[0]),
            float(pa[1]),
            float(pb[0]),
            float(pb[1]),
            float(pc[0]),
            float(pc[1]),
        )
        == 0
    )


def ensure_cw_triangle(vertices: NDArray, points: NDArray) -> NDArray:
    """Ensure triangle vertices are in clockwise order"""
    p0, p1, p2 = points[vertices]
    if orient2d(p0, p1, p2) > 0:
        # Swap vertices to make clockwise
        return np.array([vertices[0], vertices[2], vertices[1]])
    return vertices


def polygon_area(coords: list[Vec2d]) -> float:
    """Signed area of polygon (positive for CCW)."""
    x = [p[0] for p in coords]
    y = [p[1] for p in coords]
    return 0.5 * sum(
        x[i] * y[i + 1] - x[i + 1] * y[i] for i in range(-1, len(coords) - 1)
    )


def is_point_inside_polygon(
    x: float, y: float, poly: list[tuple[float, float]]
) -> bool:
    """
    From https://en.wikipedia.org/wiki/Even%E2%80%93odd_rule
    Determine if the point is on the path, corner, or boundary of the polygon

    Args:
      x -- The x coordinates of point.
      y -- The y coordinates of point.
      poly -- a list of tuples [(x, y), (x, y), ...]

    Returns:
      True if the point is in the path or is a corner or on the boundary
    """
    inside = False
    for i in range(len(poly)):
        x0, y0 = poly[i]
        x1, y1 = poly[i - 1]
        if (x == x0) and (y == y0):
            # point is a corner
            return True
        # Check where the ray intersects the edge horizontally
        if (y0 > y) != (y1 > y):
            cross = (x - x0) * (y1 - y0) - (x1 - x0) * (y - y0)
            if cross == 0:
                return True
            if (cross < 0) != (y1 < y0):
                inside = not inside
    return inside


class Edge:
    """
    A connection between two points.

    Edges are undirected: ``Edge(a, b) == Edge(b, a)`` and both hash the same,
    so they can be used as dictionary keys regardless of orientation. The
    endpoints stay mutable for in-place clipping; do not edit an edge once it
    has been used as a key.
    """

    __slots__ = ("a", "b")

    def __init__(self, a: Vec2d, b: Vec2d) -> None:
        self.a = as_point(a)
        self.b = as_point(b)

    @property
    def key(self) -> tuple[PointKey, PointKey]:
        ka, kb = point_key(self.a), point_key(self.b)
        return (ka, kb) if ka <= kb else (kb, ka)

    @property
    def length(self) -> float:
        return math.hypot(self.b[0] - self.a[0], self.b[1] - self.a[1])

    @property
    def midpoint(self) -> tuple[float, float]:
        return 0.5 * (self.a[0] + self.b[0]), 0.5 * (self.a[1] + self.b[1])

    def is_degenerate(self) -> bool:
        return point_key(self.a) == point_key(self.b)

    def reversed(self) -> "Edge":
        return Edge(self.b, self.a)

    def shares_endpoint(self, p: Vec2d) -> bool:
        k = point_key(p)
        return point_key(self.a) == k or point_key(self.b) == k

    def __iter__(self) -> Iterator[tuple[float, float]]:
        yield self.a
        yield self.b

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Edge):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return f"Edge({self.a}, {self.b})"


class Circle:
    """
    A circle in the (x, z) plane.

    Containment tests compare against ``radius_squared``; pass it explicitly
    when it is known exactly, squaring ``radius`` again is not exact.
    """

    def __init__(
        self, center: Vec2d, radius: float, radius_squared: float | None = None
    ) -> None:
        self.center = as_point(center)
        self.radius = float(radius)
        self._radius_squared = (
            self.radius * self.radius if radius_squared is None else float(radius_squared)
        )

    def contains(self, point: Vec2d) -> bool:
        """Whether the point lies inside or on the circle."""
        dx = point[0] - self.center[0]
        dy = point[1] - self.center[1]
        return dx * dx + dy * dy <= self._radius_squared

    def strictly_contains(self, point: Vec2d) -> bool:
        dx = point[0] - self.center[0]
        dy = point[1] - self.center[1]
        return dx * dx + dy * dy < self._radius_squared

    def __repr__(self) -> str:
        return f"Circle({self.center}, {self.radius})"


def _circumcenter_offset(a: Vec2d, b: Vec2d, c: Vec2d) -> tuple[float, float] | None:
    # circumcenter relative to a, None for collinear points
    bx, by = b[0] - a[0], b[1] - a[1]
    cx, cy = c[0] - a[0], c[1] - a[1]
    d = 2.0 * (bx * cy - by * cx)
    if d == 0:
        return None
    b2 = bx * bx + by * by
    c2 = cx * cx + cy * cy
    ux = (cy * b2 - by * c2) / d
    uy = (bx * c2 - cx * b2) / d
    return float(ux), float(uy)


def circumcenter(a: Vec2d, b: Vec2d, c: Vec2d) -> tuple[float, float] | None:
    """
    Circumcenter from the intersection of two chord perpendicular bisectors.

    Coordinates are taken relative to ``a`` to limit cancellation. Returns
    None when the determinant vanishes (collinear points).
    """
    offset = _circumcenter_offset(a, b, c)
    if offset is None:
        return None
    return float(a[0] + offset[0]), float(a[1] + offset[1])


def circumcircle_arrays(
    points: NDArray[np.floating], triangles: NDArray[np.integer]
) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
    """
    Vectorised circumcenters and squared radii for an (m, 3) index array.

    Degenerate triangles get a NaN center and a squared radius of -inf, so
    that no point is ever found inside them.
    """
    a = points[triangles[:, 0]]
    b = points[triangles[:, 1]] - a
    c = points[triangles[:, 2]] - a
    d = 2.0 * (b[:, 0] * c[:, 1] - b[:, 1] * c[:, 0])
    b2 = np.sum(b * b, axis=1)
    c2 = np.sum(c * c, axis=1)
    degenerate = d == 0
    safe_d = np.where(degenerate, 1.0, d)
    ux = (c[:, 1] * b2 - b[:, 1] * c2) / safe_d
    uy = (b[:, 0] * c2 - c[:, 0] * b2) / safe_d
    centers = a + np.column_stack([ux, uy])
    r2 = ux * ux + uy * uy
    centers[degenerate] = np.nan
    r2[degenerate] = -np.inf
    return centers, r2


class Triangle:
    """
    A triangle with vertices stored in clockwise order in the (x, z) plane,
    i.e. ``cross(b - a, c - a) <= 0``.

    Optional integer vertex ids are permuted together with the points.
    """

    def __init__(
        self,
        a: Vec2d,
        b: Vec2d,
        c: Vec2d,
        ids: tuple[int, int, int] | None = None,
    ) -> None:
        a, b, c = as_point(a), as_point(b), as_point(c)
        if orient2d(a, b, c) > 0:
            b, c = c, b
            if ids is not None:
                ids = (ids[0], ids[2], ids[1])
        self.a = a
        self.b = b
        self.c = c
        self.ids = tuple(int(i) for i in ids) if ids is not None else None

    @property
    def vertices(self) -> tuple[tuple[float, float], ...]:
        return self.a, self.b, self.c

    def is_degenerate(self) -> bool:
        return is_collinear(self.a, self.b, self.c)

    def circumcenter(self) -> tuple[float, float] | None:
        if self.is_degenerate():
            return None
        return circumcenter(self.a, self.b, self.c)

    def circumcircle(self) -> Circle | None:
        if self.is_degenerate():
            return None
        offset = _circumcenter_offset(self.a, self.b, self.c)
        if offset is None:
            return None
        ux, uy = offset
        # same squared radius as circumcircle_arrays
        radius_squared = ux * ux + uy * uy
        return Circle(
            (self.a[0] + ux, self.a[1] + uy), math.sqrt(radius_squared), radius_squared
        )

    def point_in_circumcircle(self, point: Vec2d) -> bool:
        """Strict interior test; degenerate triangles contain nothing."""
        circle = self.circumcircle()
        return circle is not None and circle.strictly_contains(point)

    def edges(self) -> list[Edge]:
        return [Edge(self.a, self.b), Edge(self.b, self.c), Edge(self.c, self.a)]

    def angles(self) -> tuple[float, float, float]:
        """Interior angles at a, b and c, in radians."""

        def angle(p: Vec2d, q: Vec2d, r: Vec2d) -> float:
            u = (q[0] - p[0], q[1] - p[1])
            v = (r[0] - p[0], r[1] - p[1])
            nu, nv = math.hypot(*u), math.hypot(*v)
            if nu == 0 or nv == 0:
                return 0.0
            cos = (u[0] * v[0] + u[1] * v[1]) / (nu * nv)
            return math.acos(max(-1.0, min(1.0, cos)))

        return (
            angle(self.a, self.b, self.c),
            angle(self.b, self.c, self.a),
            angle(self.c, self.a, self.b),
        )

    def min_angle(self) -> float:
        return min(self.angles())

    def __repr__(self) -> str:
        return f"Triangle({self.a}, {self.b}, {self.c})"


class Polygon:
    """
    An ordered ring of vertices. The first vertex is not repeated at the end.

    Polygons assembled from loose edges carry ``is_valid = False`` when the
    ring walk could not be closed; such polygons must not be triangulated.
    """

    def __init__(self, vertices: Iterable[Vec2d], is_valid: bool = True) -> None:
        self.vertices = [as_point(v) for v in vertices]
        self.is_valid = is_valid and len(self.vertices) >= 3

    @classmethod
    def from_edges(cls, edges: Iterable[Edge]) -> "Polygon":
        """
        Assemble a ring by repeatedly taking the edge that continues from the
        last vertex. The ring is then wound counterclockwise (positive area).
        """
        remaining = [edge for edge in edges if not edge.is_degenerate()]
        if not remaining:
            return cls([], is_valid=False)

        first = remaining.pop(0)
        ring = [first.a, first.b]
        start = point_key(first.a)
        while True:
            last = point_key(ring[-1])
            if last == start:
                ring.pop()
                break

            for i, edge in enumerate(remaining):
                if point_key(edge.a) == last:
                    following = edge.b
                    break
                if point_key(edge.b) == last:
                    following = edge.a
                    break
            else:
                logger.debug(
                    f"Ring walk stuck at {ring[-1]} after {len(ring)} vertices"
                )
                return cls(ring, is_valid=False)

            remaining.pop(i)
            ring.append(following)

        if remaining:
            logger.warning(f"{len(remaining)} edges left over after closing ring")

        polygon = cls(ring)
        polygon.fix_winding()
        return polygon

    @property
    def signed_area(self) -> float:
        if len(self.vertices) < 3:
            return 0.0
        return polygon_area(self.vertices)

    @property
    def area(self) -> float:
        return abs(self.signed_area)

    @property
    def centroid(self) -> tuple[float, float]:
        area = self.signed_area
        n = len(self.vertices)
        if n == 0:
            raise IncompletePolygonError("Polygon has no vertices")
        if abs(area) <= EPS:
            xs, ys = zip(*self.vertices)
            return sum(xs) / n, sum(ys) / n

        cx = cy = 0.0
        for i in range(n):
            x0, y0 = self.vertices[i - 1]
            x1, y1 = self.vertices[i]
            cross = x0 * y1 - x1 * y0
            cx += (x0 + x1) * cross
            cy += (y0 + y1) * cross
        return cx / (6.0 * area), cy / (6.0 * area)

    def fix_winding(self) -> None:
        if self.signed_area < 0:
            self.vertices.reverse()

    def edges(self) -> list[Edge]:
        n = len(self.vertices)
        return [Edge(self.vertices[i], self.vertices[(i + 1) % n]) for i in range(n)]

    def keys(self) -> list[PointKey]:
        return [point_key(v) for v in self.vertices]

    def index_of(self, point: Vec2d) -> int | None:
        key = point_key(point)
        for i, v in enumerate(self.vertices):
            if point_key(v) == key:
                return i
        return None

    def scaled(self, factor: float) -> "Polygon":
        """Uniformly scale towards the centroid, keeping the vertex order."""
        cx, cy = self.centroid
        return Polygon(
            [(cx + (x - cx) * factor, cy + (y - cy) * factor) for x, y in self.vertices],
            is_valid=self.is_valid,
        )

    def contains(self, point: Vec2d) -> bool:
        return is_point_inside_polygon(float(point[0]), float(point[1]), self.vertices)

    def triangulate_fan(self) -> list[tuple[tuple[float, float], ...]]:
        """Fan triangulation from the first vertex (convex polygons only)."""
        if not self.is_valid:
            raise IncompletePolygonError("Cannot triangulate an incomplete polygon")
        root = self.vertices[0]
        return [
            (root, self.vertices[i], self.vertices[i + 1])
            for i in range(1, len(self.vertices) - 1)
        ]

    def __len__(self) -> int:
        return len(self.vertices)

    def __repr__(self) -> str:
        state = "" if self.is_valid else ", invalid"
        return f"Polygon({len(self.vertices)} vertices{state})"
