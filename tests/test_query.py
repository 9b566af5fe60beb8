"""Unit tests for obstacle queries (pymaze/query.py and pymaze/aabb.py)."""

import numpy as np
import pytest

from pymaze.aabb import AABBTree, bbox_overlaps
from pymaze.geometry import Polygon
from pymaze.query import (
    BoxObstacles,
    ObstacleQuery,
    polygon_is_blocked,
    segment_intersects_box,
    segments_intersect,
)


class TestSegmentsIntersect:
    """Tests for segments_intersect function."""

    def test_parallel_segments_no_intersection(self):
        """Test parallel segments that don't intersect."""
        assert not segments_intersect((0.0, 0.0), (1.0, 0.0), (0.0, 1.0), (1.0, 1.0))

    def test_crossing_segments_intersect(self):
        """Test segments that cross each other."""
        assert segments_intersect((0.0, 0.0), (1.0, 1.0), (0.0, 1.0), (1.0, 0.0))

    def test_touching_endpoints(self):
        """Test segments that share an endpoint."""
        assert segments_intersect((0.0, 0.0), (1.0, 1.0), (1.0, 1.0), (2.0, 0.0))

    def test_collinear_overlapping_segments(self):
        assert segments_intersect((0.0, 0.0), (2.0, 0.0), (1.0, 0.0), (3.0, 0.0))

    def test_collinear_non_overlapping_segments(self):
        assert not segments_intersect((0.0, 0.0), (1.0, 0.0), (2.0, 0.0), (3.0, 0.0))

    def test_t_intersection(self):
        """Test T-shaped intersection where one segment ends on another."""
        assert segments_intersect((0.0, 0.0), (2.0, 0.0), (1.0, 0.0), (1.0, 1.0))

    def test_numpy_points(self):
        p = np.array([[0.0, 0.0], [1.0, 1.0]])
        q = np.array([[0.0, 1.0], [1.0, 0.0]])
        assert segments_intersect(p[0], p[1], q[0], q[1])


class TestSegmentIntersectsBox:
    BOX = (1.0, 1.0, 3.0, 2.0)

    def test_endpoint_inside(self):
        assert segment_intersects_box((2.0, 1.5), (10.0, 10.0), self.BOX)

    def test_crossing_without_endpoints_inside(self):
        assert segment_intersects_box((0.0, 1.5), (4.0, 1.5), self.BOX)

    def test_touching_a_corner(self):
        assert segment_intersects_box((0.0, 0.0), (1.0, 1.0), self.BOX)

    def test_missing(self):
        assert not segment_intersects_box((0.0, 0.0), (4.0, 0.5), self.BOX)
        assert not segment_intersects_box((0.0, 3.0), (0.5, 0.0), self.BOX)


class TestBoxObstacles:
    """Tests for the AABB tree backed obstacle query."""

    def test_satisfies_protocol(self):
        assert isinstance(BoxObstacles([]), ObstacleQuery)

    def test_blocks_point_within_half_size(self):
        obstacles = BoxObstacles([(4.0, 4.0, 6.0, 6.0)], point_half_size=0.5)
        assert obstacles.blocks_point((5.0, 5.0))
        assert obstacles.blocks_point((3.6, 5.0))
        assert not obstacles.blocks_point((3.4, 5.0))

    def test_blocks_segment(self):
        obstacles = BoxObstacles([(4.0, 4.0, 6.0, 6.0), (8.0, 0.0, 9.0, 1.0)])
        assert obstacles.blocks_segment((0.0, 5.0), (10.0, 5.0))
        assert obstacles.blocks_segment((8.5, -1.0), (8.5, 0.5))
        assert not obstacles.blocks_segment((0.0, 3.0), (10.0, 3.0))

    def test_no_obstacles(self):
        obstacles = BoxObstacles([])
        assert len(obstacles) == 0
        assert not obstacles.blocks_point((0.0, 0.0))
        assert not obstacles.blocks_segment((0.0, 0.0), (1.0, 1.0))

    def test_polygon_is_blocked(self):
        obstacles = BoxObstacles([(4.0, 4.0, 6.0, 6.0)], point_half_size=0.1)
        crossing = Polygon([(0.0, 4.5), (10.0, 4.5), (10.0, 5.5), (0.0, 5.5)])
        far = Polygon([(0.0, 0.0), (2.0, 0.0), (2.0, 2.0), (0.0, 2.0)])
        assert polygon_is_blocked(crossing, obstacles)
        assert not polygon_is_blocked(far, obstacles)


class TestAABBTree:
    """Tests for the bounding volume hierarchy."""

    def test_query_matches_brute_force(self):
        rng = np.random.default_rng(0)
        corners = rng.uniform(0.0, 50.0, size=(200, 2))
        sizes = rng.uniform(0.1, 3.0, size=(200, 2))
        boxes = [
            (float(x), float(z), float(x + w), float(z + h))
            for (x, z), (w, h) in zip(corners, sizes)
        ]
        tree = AABBTree.from_boxes(boxes, max_leaf_size=4)
        assert len(tree) == 200

        for query_box in [(10.0, 10.0, 20.0, 12.0), (0.0, 0.0, 1.0, 1.0), (25.0, 25.0, 25.0, 25.0)]:
            expected = [i for i, box in enumerate(boxes) if bbox_overlaps(box, query_box)]
            assert tree.query(query_box) == expected

    def test_query_point(self):
        tree = AABBTree.from_boxes([(0.0, 0.0, 1.0, 1.0), (0.5, 0.5, 2.0, 2.0)])
        assert tree.query_point((0.75, 0.75)) == [0, 1]
        assert tree.query_point((1.5, 1.5)) == [1]
        assert tree.query_point((3.0, 3.0)) == []

    def test_empty_tree(self):
        assert AABBTree().query((0.0, 0.0, 1.0, 1.0)) == []

    def test_invalid_box(self):
        with pytest.raises(ValueError):
            AABBTree.from_boxes([(1.0, 0.0, 0.0, 1.0)])
