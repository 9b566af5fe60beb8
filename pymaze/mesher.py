from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from pymaze.utils import Vec3d

UP: Vec3d = (0.0, 1.0, 0.0)


def lift(p: Sequence[float], y: float = 0.0) -> Vec3d:
    """Map a planar (x, z) point to 3D at height ``y``; 3D points pass through."""
    if len(p) == 3:
        return float(p[0]), float(p[1]), float(p[2])
    return float(p[0]), float(y), float(p[1])


def _sub(a: Vec3d, b: Vec3d) -> Vec3d:
    return a[0] - b[0], a[1] - b[1], a[2] - b[2]


def _cross(u: Vec3d, v: Vec3d) -> Vec3d:
    return (
        u[1] * v[2] - u[2] * v[1],
        u[2] * v[0] - u[0] * v[2],
        u[0] * v[1] - u[1] * v[0],
    )


def _dot(u: Vec3d, v: Vec3d) -> float:
    return u[0] * v[0] + u[1] * v[1] + u[2] * v[2]


def triangle_normal(a: Vec3d, b: Vec3d, c: Vec3d) -> Vec3d:
    """Unnormalised ``cross(b - a, c - a)``, the side a triangle is visible from."""
    return _cross(_sub(b, a), _sub(c, a))


@dataclass
class MeshData:
    """Indexed triangle mesh: (n, 3) positions and a flat index buffer."""

    positions: NDArray[np.floating]
    indices: NDArray[np.integer]

    def __len__(self) -> int:
        return len(self.indices) // 3

    @property
    def triangles(self) -> NDArray[np.integer]:
        return self.indices.reshape(-1, 3)

    def face_normals(self) -> NDArray[np.floating]:
        tri = self.positions[self.triangles]
        return np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])

    def is_empty(self) -> bool:
        return len(self.indices) == 0

    @classmethod
    def empty(cls) -> "MeshData":
        return cls(np.empty((0, 3), dtype=float), np.empty(0, dtype=int))

    @classmethod
    def concatenate(cls, meshes: Sequence["MeshData"]) -> "MeshData":
        """Stack meshes into one, offsetting indices. Vertices are not merged."""
        positions = []
        indices = []
        offset = 0
        for mesh in meshes:
            positions.append(mesh.positions)
            indices.append(mesh.indices + offset)
            offset += len(mesh.positions)
        if not positions:
            return cls.empty()
        return cls(np.vstack(positions), np.concatenate(indices))


class Mesher:
    """
    Accumulates triangles and quads, giving every distinct position exactly
    one index (in insertion order).

    Planar points are lifted to ``(x, 0, z)``.
    """

    def __init__(self) -> None:
        self.vertices: dict[Vec3d, int] = {}
        self.indices: list[int] = []

    def __len__(self) -> int:
        return len(self.indices) // 3

    def _index(self, p: Sequence[float]) -> int:
        key = lift(p)
        index = self.vertices.get(key)
        if index is None:
            index = len(self.vertices)
            self.vertices[key] = index
        return index

    def add_triangle(self, a: Sequence[float], b: Sequence[float], c: Sequence[float]) -> None:
        """Add triangle ABC as given; its visible side is ``cross(b - a, c - a)``."""
        self.indices.extend((self._index(a), self._index(b), self._index(c)))

    def add_quad(
        self,
        a: Sequence[float],
        b: Sequence[float],
        c: Sequence[float],
        d: Sequence[float],
    ) -> None:
        """Add quad ABCD as the two triangles ABC and CDA."""
        ia, ib, ic, id_ = self._index(a), self._index(b), self._index(c), self._index(d)
        self.indices.extend((ia, ib, ic, ic, id_, ia))

    def add_triangle_facing(
        self,
        a: Sequence[float],
        b: Sequence[float],
        c: Sequence[float],
        facing: Vec3d,
    ) -> None:
        """Add triangle ABC, swapping B and C if it would face away from ``facing``."""
        a, b, c = lift(a), lift(b), lift(c)
        if _dot(triangle_normal(a, b, c), facing) < 0:
            b, c = c, b
        self.add_triangle(a, b, c)

    def add_quad_facing(
        self,
        a: Sequence[float],
        b: Sequence[float],
        c: Sequence[float],
        d: Sequence[float],
        facing: Vec3d,
    ) -> None:
        """Add quad ABCD, reversed to ADCB if it would face away from ``facing``."""
        a, b, c, d = lift(a), lift(b), lift(c), lift(d)
        n1 = triangle_normal(a, b, c)
        n2 = triangle_normal(c, d, a)
        normal = (n1[0] + n2[0], n1[1] + n2[1], n1[2] + n2[2])
        if _dot(normal, facing) < 0:
            b, d = d, b
        self.add_quad(a, b, c, d)

    def generate(self) -> MeshData:
        positions = np.empty((len(self.vertices), 3), dtype=float)
        for position, index in self.vertices.items():
            positions[index] = position
        return MeshData(positions, np.array(self.indices, dtype=int))
