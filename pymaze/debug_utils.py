import typing

import numpy as np

from pymaze.voronoi import VoronoiDiagram

if typing.TYPE_CHECKING:
    from pymaze.pipeline import MazeLayout


def plot_voronoi(
    diagram: VoronoiDiagram,
    site_labels: bool = False,
    show: bool = False,
    title: str = "Voronoi cells",
):
    """
    Draw the bounded Voronoi cells, their sites and the region boundary.

    Invalid (unclosed) cells are drawn in red.
    """
    import matplotlib.pyplot as plt
    from matplotlib.patches import Polygon, Rectangle

    fig, ax = plt.subplots(figsize=(8, 8))
    x0, z0 = diagram.lower
    x1, z1 = diagram.upper
    ax.add_patch(
        Rectangle((x0, z0), x1 - x0, z1 - z0, fill=False, edgecolor="black", linewidth=1.5)
    )

    for cell in diagram.cells:
        if len(cell.polygon) >= 3:
            ax.add_patch(
                Polygon(
                    cell.polygon.vertices,
                    closed=True,
                    facecolor="none",
                    edgecolor="steelblue" if cell.polygon.is_valid else "red",
                    linewidth=0.8,
                )
            )
        ax.plot(cell.site[0], cell.site[1], "k.", markersize=3)
        if site_labels:
            ax.text(cell.site[0], cell.site[1], f" {cell.site_id}", fontsize=6, color="darkgreen")

    if len(diagram.circumcenters):
        inside = diagram.circumcenters[
            (diagram.circumcenters[:, 0] >= x0)
            & (diagram.circumcenters[:, 0] <= x1)
            & (diagram.circumcenters[:, 1] >= z0)
            & (diagram.circumcenters[:, 1] <= z1)
        ]
        ax.plot(inside[:, 0], inside[:, 1], "x", color="gray", markersize=2)

    ax.set_aspect("equal")
    ax.set_title(title)
    if show:
        plt.show()
    return fig


def plot_layout(
    layout: "MazeLayout",
    show: bool = False,
    title: str = "Maze layout",
):
    """
    Plot a carved maze seen from above.

    Parameters
    ----------
    layout : MazeLayout
        Output of ``generate_layout``.
    show : bool
        Whether to call plt.show() after plotting.
    title : str
        Title of the plot.

    Returns
    -------
    matplotlib.figure.Figure
        Closed walls in black, force closed walls in orange, passages between
        sites in green and excluded cells shaded gray.
    """
    import matplotlib.pyplot as plt
    from matplotlib.patches import Polygon

    graph = layout.graph
    fig, ax = plt.subplots(figsize=(8, 8))

    for cell in graph.excluded:
        if len(cell.polygon) >= 3:
            ax.add_patch(Polygon(cell.polygon.vertices, closed=True, facecolor="lightgray"))

    for wall, owners in graph.wall_nodes.items():
        if len(owners) == 1:
            ax.plot([wall.a[0], wall.b[0]], [wall.a[1], wall.b[1]], "k-", linewidth=1.5)

    for edge in graph.edges:
        if edge.is_open:
            pa = graph.nodes[edge.a].position
            pb = graph.nodes[edge.b].position
            color = "green" if edge.index in layout.tree_edges else "limegreen"
            ax.plot([pa[0], pb[0]], [pa[1], pb[1]], "-", color=color, linewidth=1.0)
            continue
        color = "orange" if edge.force_closed else "black"
        ax.plot(
            [edge.wall.a[0], edge.wall.b[0]],
            [edge.wall.a[1], edge.wall.b[1]],
            "-",
            color=color,
            linewidth=1.5,
        )

    sites = np.array([node.position for node in graph.nodes]) if graph.nodes else None
    if sites is not None:
        ax.plot(sites[:, 0], sites[:, 1], "o", color="darkgreen", markersize=2)

    ax.set_aspect("equal")
    ax.set_title(
        f"{title}\n{len(graph.nodes)} cells | {len(layout.tree_edges)} tree passages "
        f"| {len(layout.loop_edges)} loops"
    )
    if show:
        plt.show()
    return fig
