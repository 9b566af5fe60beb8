import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from pymaze.geometry import Triangle, circumcircle_arrays
from pymaze.utils import Vec2d

if TYPE_CHECKING:
    from pymaze.voronoi import VoronoiDiagram


@dataclass
class Triangulation:
    """
    Delaunay triangulation of a point set.

    ``all_points`` keeps every input point, so row ``i`` is site ``i`` even
    when the point was skipped (duplicate). ``triangle_vertices`` rows are
    clockwise vertex indices.
    """

    all_points: NDArray[np.floating]
    triangle_vertices: NDArray[np.integer]
    debug_plots: list[NDArray[np.floating]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.triangle_vertices)

    def edges(self) -> dict[tuple[int, int], list[int]]:
        """Map every sorted vertex pair to the triangles that own that edge."""
        edge_to_triangles: dict[tuple[int, int], list[int]] = defaultdict(list)
        for t_idx, tri in enumerate(self.triangle_vertices):
            for i in range(3):
                v1, v2 = int(tri[i]), int(tri[(i + 1) % 3])
                key = (v1, v2) if v1 < v2 else (v2, v1)
                edge_to_triangles[key].append(t_idx)
        return dict(edge_to_triangles)

    def triangles(self) -> list[Triangle]:
        return [
            Triangle(*self.all_points[tri], ids=tuple(tri))  # type: ignore[arg-type]
            for tri in self.triangle_vertices
        ]

    def used_vertices(self) -> NDArray[np.integer]:
        return np.unique(self.triangle_vertices)

    def circumcircles(self) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
        """Circumcenters and squared radii of all triangles."""
        return circumcircle_arrays(self.all_points, self.triangle_vertices)

    def remove_skinny_triangles(self, angle: float = math.pi / 8) -> int:
        """
        Remove triangles whose smallest interior angle is below ``angle``.

        :param angle: threshold in radians
        :return: number of removed triangles
        """
        keep_mask = np.array(
            [t.min_angle() >= angle for t in self.triangles()], dtype=bool
        )
        removed = int(np.count_nonzero(~keep_mask))
        if removed:
            logger.debug(f"Removing {removed} skinny triangles")
            self.triangle_vertices = self.triangle_vertices[keep_mask]
        return removed

    def dual(self, lower: Vec2d, upper: Vec2d) -> "VoronoiDiagram":
        """Voronoi diagram of the sites, bounded by ``[lower, upper]``."""
        from pymaze.voronoi import build_dual_graph

        return build_dual_graph(self, lower, upper)

    def plot(
        self,
        show: bool = False,
        title: str = "Triangulation",
        point_labels: bool = False,
        circumcircles: bool = False,
        fontsize: int = 7,
    ) -> None:
        """
        Plot the triangulation using matplotlib.

        :param show: Whether to call plt.show() after plotting
        :param title: Title of the plot
        :param point_labels: Whether to label points with their indices
        :param circumcircles: Whether to draw each triangle's circumcircle
        :param fontsize: Font size for labels
        """
        import matplotlib.pyplot as plt
        from matplotlib.patches import Circle as CirclePatch

        fig, ax = plt.subplots()

        offset = 0.01  # Adjust as needed depending on your scale

        for tri_idx, tri in enumerate(self.triangle_vertices):
            pts = self.all_points[tri]
            tri_closed = np.vstack([pts, pts[0]])  # Close the triangle
            ax.plot(tri_closed[:, 0], tri_closed[:, 1], "b-", linewidth=1.0, alpha=0.6)

            centroid = np.mean(pts, axis=0)
            ax.text(
                centroid[0],
                centroid[1],
                str(tri_idx),
                fontsize=fontsize,
                ha="center",
                va="center",
                color="green",
            )

        if circumcircles:
            centers, r2 = self.circumcircles()
            for center, radius_sq in zip(centers, r2):
                if not np.isfinite(radius_sq):
                    continue
                ax.add_patch(
                    CirclePatch(
                        (float(center[0]), float(center[1])),
                        float(np.sqrt(radius_sq)),
                        fill=False,
                        color="gray",
                        linestyle="--",
                        linewidth=0.5,
                    )
                )

        used_vertices = self.used_vertices()
        ax.plot(
            self.all_points[used_vertices, 0],
            self.all_points[used_vertices, 1],
            "ko",
            markersize=3,
            zorder=11,
        )

        if point_labels:
            for idx in used_vertices:
                x, y = self.all_points[idx]
                ax.text(
                    x + offset,
                    y + offset,
                    str(idx),
                    fontsize=fontsize,
                    ha="left",
                    va="bottom",
                    color="darkgreen",
                )

        ax.set_aspect("equal")
        ax.set_title(title)

        if show:
            plt.show()

        # Convert figure to RGB image in memory
        fig.canvas.draw()
        buf = fig.canvas.buffer_rgba()  # type: ignore[reportAttributeAccessIssue]
        img = np.asarray(buf)[:, :, :3]  # Convert to RGB by discarding alpha
        plt.close(fig)
        self.debug_plots.append(img)
