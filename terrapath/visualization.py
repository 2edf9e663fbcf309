"""
Plan-view (XZ) preview of a path and its offset curves.
"""

from pathlib import Path
from typing import Optional, Union

import matplotlib.pyplot as plt
import numpy as np

from terrapath.offset_geometry import EdgeSet
from terrapath.spline_cache import SplineFrame


CENTRE_COLOR = (0.2, 0.2, 0.2)
EDGE_COLOR = (0.0, 114 / 255, 189 / 255)
SURROUND_COLOR = (119 / 255, 172 / 255, 48 / 255)
BORDER_COLOR = (217 / 255, 83 / 255, 25 / 255)


def _plot_curve(ax, points: Optional[np.ndarray], **kwargs) -> None:
    if points is None or len(points) == 0:
        return
    ax.plot(points[:, 0], points[:, 2], **kwargs)


def plot_edge_set(
    frame: SplineFrame,
    edges: Optional[EdgeSet] = None,
    ax=None,
    show_waypoints: bool = True,
):
    """Draw centreline, edges, surround and border curves looking down on XZ.

    Args:
        frame: Built spline frame.
        edges: Edge set to draw; defaults to ``frame.edges``.
        ax: Matplotlib axes to draw on; a new figure is created if None.
        show_waypoints: Mark the user waypoints.

    Returns:
        The axes drawn on.
    """
    if ax is None:
        _, ax = plt.subplots(figsize=(8, 8))
    edges = edges if edges is not None else frame.edges

    _plot_curve(ax, frame.samples, color=CENTRE_COLOR, linewidth=1.0, label="centre")
    if edges is not None and not edges.is_empty:
        _plot_curve(ax, edges.right, color=EDGE_COLOR, linewidth=1.5, label="edges")
        _plot_curve(ax, edges.left, color=EDGE_COLOR, linewidth=1.5)
        _plot_curve(ax, edges.surround_right, color=SURROUND_COLOR, linestyle="--", label="surround")
        _plot_curve(ax, edges.surround_left, color=SURROUND_COLOR, linestyle="--")
        _plot_curve(ax, edges.border_right, color=BORDER_COLOR, linestyle=":", label="border")
        _plot_curve(ax, edges.border_left, color=BORDER_COLOR, linestyle=":")

    if show_waypoints and len(frame.waypoints):
        ax.scatter(frame.waypoints[:, 0], frame.waypoints[:, 2], color=CENTRE_COLOR, marker="o", zorder=3)

    ax.set_xlabel("x")
    ax.set_ylabel("z")
    ax.set_aspect("equal", adjustable="datalim")
    ax.set_title(f"Path length {frame.total_length:.1f} ({frame.sample_count} samples)")
    ax.legend(loc="best")
    return ax


def save_preview(
    frame: SplineFrame,
    output: Union[str, Path],
    edges: Optional[EdgeSet] = None,
    dpi: int = 100,
) -> Path:
    """Render ``plot_edge_set`` to an image file and close the figure."""
    fig, ax = plt.subplots(figsize=(8, 8))
    try:
        plot_edge_set(frame, edges, ax=ax)
        fig.savefig(output, dpi=dpi, bbox_inches="tight")
    finally:
        plt.close(fig)
    return Path(output)
