"""Example: Generate a small irregular maze and plot it.

The layout is sampled, triangulated, turned into Voronoi cells and carved;
the mesh statistics of every chunk are printed before the maze is plotted
from above.
"""

from pymaze.config import MazeConfig
from pymaze.debug_utils import plot_layout
from pymaze.pipeline import generate_maze
from pymaze.utils import Rect


def main():
    """Example: Maze with loops over a 20x20 region."""
    print("\n" + "=" * 70)
    print("IRREGULAR MAZE EXAMPLE")
    print("=" * 70 + "\n")

    config = MazeConfig(
        region=Rect(0.0, 0.0, 20.0, 20.0),
        seed=42,
        min_distance=1.5,
        wall_remove_percentage=0.1,
        chunk_size=(10.0, 10.0),
        obstacles=((8.0, 8.0, 12.0, 12.0),),
    )
    layout, geometry = generate_maze(config)

    graph = layout.graph
    print(f"Sites: {len(layout.points)}")
    print(f"Triangles: {len(layout.triangulation)}")
    print(f"Cells in the maze: {len(graph)} ({len(graph.excluded)} excluded)")
    print(f"Walls between cells: {len(graph.edges)}")
    print(f"  Force closed: {sum(e.force_closed for e in graph.edges)}")
    print(f"  Tree passages: {len(layout.tree_edges)}")
    print(f"  Loops: {len(layout.loop_edges)}")

    print(f"\nChunks: {geometry.num_chunks[0]}x{geometry.num_chunks[1]}")
    for (cx, cz), chunk in sorted(geometry.chunks.items()):
        floor = len(chunk.floor) if chunk.floor is not None else 0
        print(
            f"  ({cx}, {cz}): {len(chunk.wall)} wall triangles, "
            f"{floor} floor triangles, {len(chunk.wall.positions)} wall vertices"
        )
    print(f"  Excluded floor: {len(geometry.excluded_floor)} triangles")

    plot_layout(layout, show=True, title="Irregular maze")

    print("\n" + "=" * 70)
    print("EXAMPLE COMPLETED")
    print("=" * 70 + "\n")


if __name__ == "__main__":
    main()
