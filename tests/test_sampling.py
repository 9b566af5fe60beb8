"""Unit tests for the Poisson disk sampler (pymaze/sampling.py)."""

import numpy as np
import pytest

from pymaze.sampling import PoissonSampler, poisson_sample
from pymaze.utils import PreconditionError, Rect

REGION = Rect(0.0, 0.0, 10.0, 10.0)


def pairwise_distances(points: np.ndarray) -> np.ndarray:
    diff = points[:, None, :] - points[None, :, :]
    d = np.sqrt(np.sum(diff**2, axis=-1))
    np.fill_diagonal(d, np.inf)
    return d


class TestPoissonSample:
    """Tests for blue noise sampling."""

    def test_minimum_spacing(self):
        points = poisson_sample(REGION, 1.0, np.random.default_rng(0))
        assert len(points) > 20
        assert pairwise_distances(points).min() >= 1.0 - 1e-9

    def test_points_inside_half_open_region(self):
        region = Rect(-3.0, 2.0, 4.0, 7.5)
        points = poisson_sample(region, 0.7, np.random.default_rng(1))
        assert np.all(points[:, 0] >= -3.0) and np.all(points[:, 0] < 4.0)
        assert np.all(points[:, 1] >= 2.0) and np.all(points[:, 1] < 7.5)

    def test_deterministic_for_a_seed(self):
        a = poisson_sample(REGION, 1.0, np.random.default_rng(42))
        b = poisson_sample(REGION, 1.0, np.random.default_rng(42))
        np.testing.assert_array_equal(a, b)

    def test_different_seeds_differ(self):
        a = poisson_sample(REGION, 1.0, np.random.default_rng(1))
        b = poisson_sample(REGION, 1.0, np.random.default_rng(2))
        assert a.shape != b.shape or not np.array_equal(a, b)

    def test_seed_point_comes_first(self):
        points = poisson_sample(
            REGION, 1.0, np.random.default_rng(3), seed_point=(5.0, 5.0)
        )
        assert tuple(points[0]) == (5.0, 5.0)

    def test_seed_point_outside_region(self):
        with pytest.raises(PreconditionError):
            poisson_sample(REGION, 1.0, np.random.default_rng(3), seed_point=(10.0, 5.0))

    def test_invalid_distance(self):
        with pytest.raises(PreconditionError):
            PoissonSampler(REGION, 0.0)

    def test_region_much_smaller_than_distance(self):
        """A tiny region holds just the seed sample."""
        points = poisson_sample(Rect(0.0, 0.0, 0.5, 0.5), 2.0, np.random.default_rng(0))
        assert points.shape == (1, 2)


class TestNeighborsWithin:
    """Tests for proximity adjacency on top of the sampling grid."""

    def test_matches_brute_force(self):
        sampler = PoissonSampler(REGION, 1.0)
        points = sampler.sample(np.random.default_rng(5))
        radius = 1.8
        neighbors = sampler.neighbors_within(radius)

        d = pairwise_distances(points)
        for i, found in enumerate(neighbors):
            expected = sorted(np.flatnonzero(d[i] < radius).tolist())
            assert found == expected

    def test_symmetric(self):
        sampler = PoissonSampler(REGION, 1.0)
        sampler.sample(np.random.default_rng(6))
        neighbors = sampler.neighbors_within(2.5)
        for i, found in enumerate(neighbors):
            for j in found:
                assert i in neighbors[j]
