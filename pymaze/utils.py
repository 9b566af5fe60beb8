from dataclasses import dataclass
from typing import TypeAlias

from numpy.typing import NDArray
import numpy as np

EPS = 1e-9
KEY_DECIMALS = 9
Vec2d: TypeAlias = tuple[float, float] | NDArray[np.floating]
Vec3d: TypeAlias = tuple[float, float, float]
PointKey: TypeAlias = tuple[float, float]


class PreconditionError(ValueError): ...


def point_key(p: Vec2d, decimals: int = KEY_DECIMALS) -> PointKey:
    """Quantised coordinates, usable as a dict key for a 2D point."""
    return round(float(p[0]), decimals) + 0.0, round(float(p[1]), decimals) + 0.0


def as_point(p: Vec2d) -> tuple[float, float]:
    return float(p[0]), float(p[1])


@dataclass(frozen=True)
class Rect:
    """Axis aligned rectangle in the (x, z) plane."""

    x_min: float
    z_min: float
    x_max: float
    z_max: float

    def __post_init__(self) -> None:
        if not (self.x_max > self.x_min and self.z_max > self.z_min):
            raise PreconditionError(f"Empty rectangle {self}")

    @property
    def width(self) -> float:
        return self.x_max - self.x_min

    @property
    def depth(self) -> float:
        return self.z_max - self.z_min

    @property
    def lower(self) -> tuple[float, float]:
        return self.x_min, self.z_min

    @property
    def upper(self) -> tuple[float, float]:
        return self.x_max, self.z_max

    @property
    def area(self) -> float:
        return self.width * self.depth

    def contains(self, p: Vec2d) -> bool:
        # half open, like the sampling grid
        return self.x_min <= p[0] < self.x_max and self.z_min <= p[1] < self.z_max

    def corners(self) -> list[tuple[float, float]]:
        return [
            (self.x_min, self.z_min),
            (self.x_max, self.z_min),
            (self.x_max, self.z_max),
            (self.x_min, self.z_max),
        ]
