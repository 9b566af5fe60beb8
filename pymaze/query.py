"""Obstacle queries used to exclude Voronoi cells from the maze."""

from typing import Protocol, runtime_checkable

import numpy as np
from numpy.typing import NDArray
from shewchuk import orientation

from pymaze.aabb import AABBTree, Bbox, bbox_around
from pymaze.geometry import Polygon, is_point_in_box
from pymaze.utils import Vec2d


def segments_intersect(
    p1: Vec2d | NDArray[np.floating],
    p2: Vec2d | NDArray[np.floating],
    q1: Vec2d | NDArray[np.floating],
    q2: Vec2d | NDArray[np.floating],
) -> bool:
    """
    Check if two line segments [p1, p2] and [q1, q2] intersect (including endpoints).

    Uses the orientation-based method: two segments intersect if and only if
    one of the following conditions holds:
    1. General case: (q1, q2, p1) and (q1, q2, p2) have different orientations AND
                     (p1, p2, q1) and (p1, p2, q2) have different orientations
    2. Special case: Points are collinear and segments overlap

    Parameters
    ----------
    p1, p2 : Vec2d
        Endpoints of first segment
    q1, q2 : Vec2d
        Endpoints of second segment

    Returns
    -------
    bool
        True if segments intersect, False otherwise
    """
    p1, p2, q1, q2 = ([float(v[0]), float(v[1])] for v in (p1, p2, q1, q2))
    o1 = orientation(q1[0], q1[1], q2[0], q2[1], p1[0], p1[1])
    o2 = orientation(q1[0], q1[1], q2[0], q2[1], p2[0], p2[1])
    o3 = orientation(p1[0], p1[1], p2[0], p2[1], q1[0], q1[1])
    o4 = orientation(p1[0], p1[1], p2[0], p2[1], q2[0], q2[1])

    # General case: segments intersect if orientations differ
    if o1 * o2 < 0 and o3 * o4 < 0:
        return True

    # Special cases: check if points are collinear and segments overlap
    if o1 == 0 and is_point_in_box(q1, q2, p1):
        return True
    if o2 == 0 and is_point_in_box(q1, q2, p2):
        return True
    if o3 == 0 and is_point_in_box(p1, p2, q1):
        return True
    if o4 == 0 and is_point_in_box(p1, p2, q2):
        return True

    return False


def segment_intersects_box(p: Vec2d, q: Vec2d, box: Bbox) -> bool:
    """Whether segment pq touches the closed box (xmin, zmin, xmax, zmax)."""
    xmin, zmin, xmax, zmax = box
    if is_point_in_box((xmin, zmin), (xmax, zmax), p, eps=0.0):
        return True
    if is_point_in_box((xmin, zmin), (xmax, zmax), q, eps=0.0):
        return True
    corners = [(xmin, zmin), (xmax, zmin), (xmax, zmax), (xmin, zmax)]
    return any(
        segments_intersect(p, q, corners[i - 1], corners[i]) for i in range(4)
    )


@runtime_checkable
class ObstacleQuery(Protocol):
    """Answers whether a location of the maze floor is occupied."""

    def blocks_point(self, p: Vec2d) -> bool: ...

    def blocks_segment(self, a: Vec2d, b: Vec2d) -> bool: ...


class BoxObstacles:
    """
    Axis aligned box obstacles indexed by an AABB tree.

    A point is blocked when a box of half size ``point_half_size`` around it
    overlaps an obstacle, a segment when it crosses an obstacle.
    """

    def __init__(self, boxes: list[Bbox], point_half_size: float = 0.5) -> None:
        self.boxes = [tuple(float(v) for v in box) for box in boxes]
        self.point_half_size = point_half_size
        self.tree = AABBTree.from_boxes(self.boxes)  # type: ignore[arg-type]

    def __len__(self) -> int:
        return len(self.boxes)

    def blocks_point(self, p: Vec2d) -> bool:
        return bool(self.tree.query(bbox_around(p, self.point_half_size)))

    def blocks_segment(self, a: Vec2d, b: Vec2d) -> bool:
        seg_box = (
            min(float(a[0]), float(b[0])),
            min(float(a[1]), float(b[1])),
            max(float(a[0]), float(b[0])),
            max(float(a[1]), float(b[1])),
        )
        return any(
            segment_intersects_box(a, b, self.boxes[i])  # type: ignore[arg-type]
            for i in self.tree.query(seg_box)
        )


def polygon_is_blocked(polygon: Polygon, obstacles: ObstacleQuery) -> bool:
    """
    Whether any vertex or edge of the polygon is occupied, probing every
    vertex and casting along every edge.
    """
    for vertex in polygon.vertices:
        if obstacles.blocks_point(vertex):
            return True
    for edge in polygon.edges():
        if obstacles.blocks_segment(edge.a, edge.b):
            return True
    return False
