"""Example: Bounded Voronoi cells of blue noise samples."""

import numpy as np

from pymaze.build import triangulate
from pymaze.debug_utils import plot_voronoi
from pymaze.sampling import poisson_sample
from pymaze.utils import Rect


def main():
    region = Rect(0.0, 0.0, 8.0, 8.0)
    rng = np.random.default_rng(7)

    points = poisson_sample(region, 1.0, rng)
    print(f"Number of samples: {len(points)}")

    tri = triangulate(points, rng=rng, jitter=0.01)
    print(f"Number of triangles: {len(tri)}")
    tri.plot(show=False, title="Delaunay triangulation", circumcircles=True)

    diagram = tri.dual(region.lower, region.upper)
    areas = [cell.polygon.area for cell in diagram]
    print(f"Cell area: min {min(areas):.3f}, max {max(areas):.3f}, total {sum(areas):.3f}")
    if diagram.degenerate_sites:
        print(f"Degenerate sites: {diagram.degenerate_sites}")

    plot_voronoi(diagram, site_labels=True, show=True)


if __name__ == "__main__":
    main()
