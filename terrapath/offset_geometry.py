"""
Edge, surround and border curves offset from a cached centreline.

All offset curves come from one primitive:

    edge = centre + normalize(up x tangent) * signed_offset

with right positive and left negative. Widths are interpolated between
waypoints by their arc-length distance along the curve, not between samples.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from terrapath.config import PathConfig
from terrapath.exceptions import InvalidStateError
from terrapath.logging import report_error
from terrapath.spline_cache import BufferPool, SplineFrame


UP = np.array([0.0, 1.0, 0.0])
DEFAULT_FORWARD = np.array([0.0, 0.0, 1.0])


# =============================================================================
# Tangents and offsets
# =============================================================================


def sample_tangents(samples: np.ndarray, closed: bool = False) -> np.ndarray:
    """Unit tangents at each sample.

    Interior samples use the centred difference of their neighbours. On an
    open path the first and last sample use a one-sided difference; on a
    closed circuit they are the same point and share the centred difference
    across the seam. Degenerate tangents copy the nearest valid one (or +Z
    if there is none).
    """
    samples = np.asarray(samples, dtype=float)
    n = len(samples)
    if n == 0:
        return np.zeros((0, 3))
    if n == 1:
        return DEFAULT_FORWARD[None, :].copy()

    diffs = np.empty_like(samples)
    diffs[1:-1] = samples[2:] - samples[:-2]
    if closed and n > 2:
        diffs[0] = diffs[-1] = samples[1] - samples[-2]
    else:
        diffs[0] = samples[1] - samples[0]
        diffs[-1] = samples[-1] - samples[-2]

    norms = np.linalg.norm(diffs, axis=1)
    valid = norms > 1e-9
    tangents = np.zeros_like(diffs)
    tangents[valid] = diffs[valid] / norms[valid, None]

    if not valid.all():
        if not valid.any():
            tangents[:] = DEFAULT_FORWARD
        else:
            valid_idx = np.flatnonzero(valid)
            for i in np.flatnonzero(~valid):
                nearest = valid_idx[np.argmin(np.abs(valid_idx - i))]
                tangents[i] = tangents[nearest]
    return tangents


def right_directions(tangents: np.ndarray, up: np.ndarray = UP) -> np.ndarray:
    """Unit vectors ``normalize(up x tangent)``, pointing to the right of travel."""
    right = np.cross(up, tangents)
    norms = np.linalg.norm(right, axis=1)
    safe = np.where(norms > 1e-9, norms, 1.0)
    right = right / safe[:, None]
    # A vertical tangent has no horizontal right; fall back to +X
    right[norms <= 1e-9] = (1.0, 0.0, 0.0)
    return right


def offset_points(
    centre: np.ndarray,
    tangents: np.ndarray,
    signed_offsets,
    out: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Offset centreline points sideways.

    Args:
        centre: (n, 3) centreline points.
        tangents: (n, 3) unit tangents.
        signed_offsets: Scalar or (n,) offsets; positive is right.
        out: Optional (n, 3) array to write into.

    Returns:
        (n, 3) offset points. Each keeps the height of its centre point.
    """
    offsets = np.broadcast_to(np.asarray(signed_offsets, dtype=float), (len(centre),))
    result = centre + right_directions(tangents) * offsets[:, None]
    result[:, 1] = centre[:, 1]
    if out is None:
        return result
    out[:] = result
    return out


# =============================================================================
# Width interpolation
# =============================================================================


def interpolate_widths(
    distances: np.ndarray, waypoint_distances: np.ndarray, widths: np.ndarray
) -> np.ndarray:
    """Widths at arbitrary arc-length distances.

    Each distance is placed between the two waypoints that straddle it and
    their widths are interpolated linearly. Distances outside the waypoint
    range take the nearest end width. Coincident waypoints use the earlier
    width.
    """
    distances = np.atleast_1d(np.asarray(distances, dtype=float))
    waypoint_distances = np.asarray(waypoint_distances, dtype=float)
    widths = np.asarray(widths, dtype=float)
    if len(widths) == 0:
        return np.zeros_like(distances)
    if len(widths) == 1:
        return np.full_like(distances, widths[0])

    idx = np.clip(np.searchsorted(waypoint_distances, distances, side="right") - 1, 0, len(widths) - 2)
    d0 = waypoint_distances[idx]
    d1 = waypoint_distances[idx + 1]
    span = d1 - d0
    with np.errstate(invalid="ignore", divide="ignore"):
        frac = np.where(span > 0.0, (distances - d0) / span, 0.0)
    frac = np.clip(frac, 0.0, 1.0)
    return widths[idx] + (widths[idx + 1] - widths[idx]) * frac


def sample_widths(frame: SplineFrame) -> np.ndarray:
    """Width at every cached sample.

    The first and last sample take the first and last waypoint width exactly.
    """
    widths = interpolate_widths(frame.distances, frame.waypoint_distances, frame.widths)
    if len(widths):
        widths[0] = frame.widths[0]
        widths[-1] = frame.widths[-1]
    return widths


# =============================================================================
# Edge set
# =============================================================================


@dataclass
class EdgeSet:
    """Offset curves of one frame, one row per cached sample."""

    centre: np.ndarray
    distances: np.ndarray
    tangents: np.ndarray
    widths: np.ndarray
    right: np.ndarray
    left: np.ndarray
    surround_right: Optional[np.ndarray] = None
    surround_left: Optional[np.ndarray] = None
    border_right: Optional[np.ndarray] = None
    border_left: Optional[np.ndarray] = None

    @classmethod
    def empty(cls) -> "EdgeSet":
        zeros = np.zeros((0, 3))
        return cls(zeros, np.zeros(0), zeros, np.zeros(0), zeros, zeros)

    @property
    def count(self) -> int:
        return len(self.centre)

    @property
    def is_empty(self) -> bool:
        return self.count == 0

    def inner_right(self) -> np.ndarray:
        """Right border curve, or the right edge when borders were not built."""
        return self.right if self.border_right is None else self.border_right

    def inner_left(self) -> np.ndarray:
        return self.left if self.border_left is None else self.border_left

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """XZ bounding rectangle of the left and right edges.

        Returns:
            Tuple of (min_xz, max_xz).
        """
        return _xz_bounds(self.right, self.left)

    def surround_bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """XZ bounding rectangle of the surround curves (edges if not built)."""
        if self.surround_right is None or self.surround_left is None:
            return self.bounds()
        return _xz_bounds(self.surround_right, self.surround_left)

    def sliced(self, start: int, stop: int) -> "EdgeSet":
        """Rows ``start`` up to (not including) ``stop`` of every curve."""

        def cut(arr: Optional[np.ndarray]) -> Optional[np.ndarray]:
            return None if arr is None else arr[start:stop]

        return EdgeSet(
            centre=self.centre[start:stop],
            distances=self.distances[start:stop],
            tangents=self.tangents[start:stop],
            widths=self.widths[start:stop],
            right=self.right[start:stop],
            left=self.left[start:stop],
            surround_right=cut(self.surround_right),
            surround_left=cut(self.surround_left),
            border_right=cut(self.border_right),
            border_left=cut(self.border_left),
        )


def _xz_bounds(*curves: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    non_empty = [c for c in curves if len(c)]
    if not non_empty:
        return np.zeros(2), np.zeros(2)
    xz = np.vstack(non_empty)[:, [0, 2]]
    return xz.min(axis=0), xz.max(axis=0)


# =============================================================================
# Blend trimming
# =============================================================================


def blend_trim_counts(config: PathConfig) -> Tuple[int, int]:
    """Samples removed from each end so the terrain blend is excluded from meshes."""
    if config.resolution <= 0:
        return 0, 0
    n = int(math.ceil(config.edge_blend_width / config.resolution)) if config.edge_blend_width > 0 else 0
    return (n if config.blend_start else 0), (n if config.blend_end else 0)


def blend_trim_range(sample_count: int, config: PathConfig) -> Tuple[int, int]:
    """Half-open ``(start, stop)`` range of samples kept after blend trimming.

    The range is empty (start == stop) when trimming leaves fewer than two
    samples.
    """
    trim_start, trim_end = blend_trim_counts(config)
    start = trim_start
    stop = sample_count - trim_end
    if stop - start < 2:
        return 0, 0
    return start, stop


# =============================================================================
# Edge construction
# =============================================================================


def build_edges(
    frame: SplineFrame,
    config: PathConfig,
    include_surround: bool = True,
    include_borders: bool = True,
    pool: Optional[BufferPool] = None,
    strict: bool = False,
) -> EdgeSet:
    """Compute the edge curves of ``frame``.

    Surround curves sit ``edge_blend_width`` outside the edges. Border curves
    sit the left/right border width inside them, never crossing the centre.
    """
    if not frame.is_valid:
        report_error(InvalidStateError("spline_frame", "cache is empty; rebuild it first"), strict)
        return EdgeSet.empty()

    pool = pool or BufferPool(reuse=False)
    n = frame.sample_count
    centre = frame.samples
    tangents = sample_tangents(centre, closed=frame.closed)
    widths = sample_widths(frame)
    half = widths / 2.0

    edges = EdgeSet(
        centre=centre,
        distances=frame.distances,
        tangents=tangents,
        widths=widths,
        right=offset_points(centre, tangents, half, out=pool.reserve("edge_right", n, 3)),
        left=offset_points(centre, tangents, -half, out=pool.reserve("edge_left", n, 3)),
    )

    if include_surround:
        outer = half + config.edge_blend_width
        edges.surround_right = offset_points(centre, tangents, outer, out=pool.reserve("surround_right", n, 3))
        edges.surround_left = offset_points(centre, tangents, -outer, out=pool.reserve("surround_left", n, 3))

    if include_borders:
        right_inset = np.maximum(half - config.right_border_width, 0.0)
        left_inset = np.maximum(half - config.left_border_width, 0.0)
        edges.border_right = offset_points(centre, tangents, right_inset, out=pool.reserve("border_right", n, 3))
        edges.border_left = offset_points(centre, tangents, -left_inset, out=pool.reserve("border_left", n, 3))

    return edges
