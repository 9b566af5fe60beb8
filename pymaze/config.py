from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

from pymaze.aabb import Bbox
from pymaze.utils import PreconditionError, Rect


@dataclass(frozen=True)
class MazeConfig:
    """Maze generation options."""

    # Layout
    region: Rect = Rect(0.0, 0.0, 10.0, 10.0)  # area covered by the maze
    seed: int | None = None  # seed of the random generator
    min_distance: float = 1.0  # minimum distance between cell sites
    attempt_limit: int = 30  # sampler attempts before retiring an active site
    jitter: float = 0.0  # per axis site perturbation before triangulation
    super_triangle_margin: float = 100.0  # super triangle size, in input extents

    # Carving
    min_open_wall_length: float = 0.5  # shorter walls are never opened
    wall_remove_percentage: float = 0.0  # share of walls knocked down for loops
    carve_source: int = 0  # node the spanning tree starts from

    # Geometry
    wall_height: float = 0.5
    border_thickness: float = 0.1  # share of each cell turned into wall
    chunk_size: tuple[float, float] = (10.0, 10.0)
    triangulate_floor: bool = True

    # Cells touching any of these (xmin, zmin, xmax, zmax) boxes are left out
    obstacles: tuple[Bbox, ...] = ()

    def __post_init__(self) -> None:
        if self.min_distance <= 0:
            raise PreconditionError(f"min_distance must be positive, got {self.min_distance}")
        if self.attempt_limit < 1:
            raise PreconditionError(f"attempt_limit must be >= 1, got {self.attempt_limit}")
        if self.jitter < 0:
            raise PreconditionError(f"jitter must be non negative, got {self.jitter}")
        if self.min_open_wall_length < 0:
            raise PreconditionError(
                f"min_open_wall_length must be non negative, got {self.min_open_wall_length}"
            )
        if not 0.0 <= self.wall_remove_percentage <= 1.0:
            raise PreconditionError(
                f"wall_remove_percentage must be in [0, 1], got {self.wall_remove_percentage}"
            )
        if self.wall_height <= 0:
            raise PreconditionError(f"wall_height must be positive, got {self.wall_height}")
        if not 0.01 <= self.border_thickness <= 1.0:
            raise PreconditionError(
                f"border_thickness must be in [0.01, 1], got {self.border_thickness}"
            )
        if len(self.chunk_size) != 2 or min(self.chunk_size) <= 0:
            raise PreconditionError(f"chunk_size must be two positive sizes, got {self.chunk_size}")
        if self.carve_source < 0:
            raise PreconditionError(f"carve_source must be non negative, got {self.carve_source}")

    @classmethod
    def from_dict(cls, options: Mapping[str, Any]) -> "MazeConfig":
        """
        Build a config from plain values, e.g. parsed JSON.

        ``region`` is given as ``[x_min, z_min, x_max, z_max]``, ``chunk_size``
        as a number or a pair and ``obstacles`` as a list of boxes.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(options) - known
        if unknown:
            raise PreconditionError(f"Unknown maze options: {sorted(unknown)}")

        values = dict(options)
        if "region" in values and not isinstance(values["region"], Rect):
            values["region"] = Rect(*(float(v) for v in values["region"]))
        if "chunk_size" in values:
            size = values["chunk_size"]
            if isinstance(size, (int, float)):
                size = (size, size)
            values["chunk_size"] = tuple(float(v) for v in size)
        if "obstacles" in values:
            values["obstacles"] = tuple(
                tuple(float(v) for v in box) for box in values["obstacles"]
            )
        return cls(**values)
