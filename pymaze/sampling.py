import math

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from pymaze.utils import PreconditionError, Rect, Vec2d, as_point


class PoissonSampler:
    """
    Bridson dart throwing over a background grid of cell size ``d / sqrt(2)``,
    so that each grid cell holds at most one sample.

    Parameters
    ----------
    region : Rect
        Half open sampling region.
    min_distance : float
        Minimum distance between any two samples.
    attempt_limit : int
        Failed candidates after which an active sample is retired.
    """

    def __init__(self, region: Rect, min_distance: float, attempt_limit: int = 30):
        if min_distance <= 0:
            raise PreconditionError(f"min_distance must be positive, got {min_distance}")
        if attempt_limit < 1:
            raise PreconditionError(f"attempt_limit must be >= 1, got {attempt_limit}")
        self.region = region
        self.min_distance = float(min_distance)
        self.attempt_limit = attempt_limit
        self.cell_size = self.min_distance / math.sqrt(2.0)
        self.grid_shape = (
            max(1, math.ceil(region.width / self.cell_size)),
            max(1, math.ceil(region.depth / self.cell_size)),
        )
        self.grid = np.full(self.grid_shape, -1, dtype=int)
        self.samples: list[tuple[float, float]] = []

    def world_to_cell(self, p: Vec2d) -> tuple[int, int]:
        gx = int((p[0] - self.region.x_min) / self.cell_size)
        gz = int((p[1] - self.region.z_min) / self.cell_size)
        return (
            min(max(gx, 0), self.grid_shape[0] - 1),
            min(max(gz, 0), self.grid_shape[1] - 1),
        )

    def _fits(self, candidate: tuple[float, float]) -> bool:
        if not self.region.contains(candidate):
            return False
        gx, gz = self.world_to_cell(candidate)
        min_sq = self.min_distance * self.min_distance
        for x in range(max(gx - 2, 0), min(gx + 3, self.grid_shape[0])):
            for z in range(max(gz - 2, 0), min(gz + 3, self.grid_shape[1])):
                idx = self.grid[x, z]
                if idx < 0:
                    continue
                other = self.samples[idx]
                dx = candidate[0] - other[0]
                dz = candidate[1] - other[1]
                if dx * dx + dz * dz < min_sq:
                    return False
        return True

    def _add(self, p: tuple[float, float]) -> int:
        self.samples.append(p)
        idx = len(self.samples) - 1
        self.grid[self.world_to_cell(p)] = idx
        return idx

    def sample(
        self, rng: np.random.Generator, seed_point: Vec2d | None = None
    ) -> NDArray[np.floating]:
        """
        Run the sampler to exhaustion.

        :param rng: random generator, the only source of randomness
        :param seed_point: first sample, drawn uniformly in the region if None
        :return: (n, 2) array of samples in acceptance order
        """
        self.grid.fill(-1)
        self.samples = []

        if seed_point is None:
            seed = (
                float(rng.uniform(self.region.x_min, self.region.x_max)),
                float(rng.uniform(self.region.z_min, self.region.z_max)),
            )
        else:
            seed = as_point(seed_point)
            if not self.region.contains(seed):
                raise PreconditionError(f"Seed point {seed} lies outside {self.region}")

        active = [self._add(seed)]
        retired = 0
        while active:
            source_index = int(rng.integers(len(active)))
            px, pz = self.samples[active[source_index]]

            for _ in range(self.attempt_limit):
                angle = float(rng.uniform(0.0, 2.0 * math.pi))
                r = float(rng.uniform(self.min_distance, 2.0 * self.min_distance))
                candidate = (px + r * math.cos(angle), pz + r * math.sin(angle))
                if self._fits(candidate):
                    active.append(self._add(candidate))
                    break
            else:
                active.pop(source_index)
                retired += 1

        logger.debug(
            f"Poisson sampling produced {len(self.samples)} samples ({retired} retired)"
        )
        return np.array(self.samples, dtype=float)

    def neighbors_within(self, radius: float) -> list[list[int]]:
        """
        Indices of the samples closer than ``radius`` to each sample, found
        through the background grid.
        """
        if radius <= 0:
            raise PreconditionError(f"radius must be positive, got {radius}")
        reach = math.ceil(radius / self.cell_size)
        radius_sq = radius * radius
        neighbors: list[list[int]] = []
        for idx, (sx, sz) in enumerate(self.samples):
            gx, gz = self.world_to_cell((sx, sz))
            found = []
            for x in range(max(gx - reach, 0), min(gx + reach + 1, self.grid_shape[0])):
                for z in range(
                    max(gz - reach, 0), min(gz + reach + 1, self.grid_shape[1])
                ):
                    other = self.grid[x, z]
                    if other < 0 or other == idx:
                        continue
                    ox, oz = self.samples[other]
                    if (ox - sx) ** 2 + (oz - sz) ** 2 < radius_sq:
                        found.append(int(other))
            neighbors.append(sorted(found))
        return neighbors


def poisson_sample(
    region: Rect,
    min_distance: float,
    rng: np.random.Generator,
    attempt_limit: int = 30,
    seed_point: Vec2d | None = None,
) -> NDArray[np.floating]:
    """Blue noise samples in ``region``, at least ``min_distance`` apart."""
    sampler = PoissonSampler(region, min_distance, attempt_limit=attempt_limit)
    return sampler.sample(rng, seed_point=seed_point)
