"""
Arc-length sampled Catmull-Rom cache.

Builds a ``SplineFrame`` from waypoints: sample points spaced ``resolution``
apart along the curve, their cumulative distances, and the distance of each
waypoint along the curve. Every derived array of a path lives on the frame,
so a rebuild replaces all of them together.

Curve segments use the uniform Catmull-Rom form

    C(t) = 0.5 * [2 p2 + (-p1 + p3) t + (2 p1 - 5 p2 + 4 p3 - p4) t^2
                  + (-p1 + 3 p2 - 3 p3 + p4) t^3]

with reflected virtual neighbours at the ends of open paths and wrapped
neighbours for closed circuits.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterator, Optional, Tuple

import numpy as np

from terrapath.config import PathConfig
from terrapath.exceptions import InvalidStateError, NumericDivergenceError
from terrapath.logging import LOG_DEBUG, profile_scope, report_error

if TYPE_CHECKING:
    from terrapath.offset_geometry import EdgeSet
    from terrapath.path_model import PathModel


SEGMENT_LENGTH_STEPS = 100
INVERSION_TOLERANCE = 1e-3
INVERSION_MAX_ITERATIONS = 1000

# Samples closer than this to the end are replaced by the final waypoint
END_EPSILON = 1e-4


# =============================================================================
# Catmull-Rom primitives
# =============================================================================


def catmull_rom_point(p1, p2, p3, p4, t):
    """Evaluate a Catmull-Rom segment.

    Args:
        p1, p2, p3, p4: Control points, shape (3,). The segment runs from
            p2 (t=0) to p3 (t=1).
        t: Scalar or 1-D array of parameters.

    Returns:
        Point of shape (3,) for scalar ``t``, else (len(t), 3).
    """
    t_arr = np.asarray(t, dtype=float)
    tt = t_arr[..., None]
    a = 2.0 * p2
    b = -p1 + p3
    c = 2.0 * p1 - 5.0 * p2 + 4.0 * p3 - p4
    d = -p1 + 3.0 * p2 - 3.0 * p3 + p4
    return 0.5 * (a + b * tt + c * tt ** 2 + d * tt ** 3)


def measure_segment_length(p1, p2, p3, p4, t_min: float = 0.0, t_max: float = 1.0) -> float:
    """Approximate arc length of a segment between two parameters.

    Sums the chord lengths of ``SEGMENT_LENGTH_STEPS`` uniform intervals.
    """
    ts = np.linspace(t_min, t_max, SEGMENT_LENGTH_STEPS + 1)
    pts = catmull_rom_point(p1, p2, p3, p4, ts)
    return float(np.sum(np.linalg.norm(np.diff(pts, axis=0), axis=1)))


def find_point_on_segment(
    p1, p2, p3, p4, distance: float, segment_length: float
) -> Tuple[float, bool]:
    """Invert arc length to a segment parameter.

    Starts from the linear guess ``distance / segment_length`` and applies
    ``t += (distance - length(0, t)) / segment_length`` until the step is
    below ``INVERSION_TOLERANCE`` or ``INVERSION_MAX_ITERATIONS`` is reached.
    A non-finite iterate resets ``t`` to the linear guess.

    Returns:
        Tuple of (t, converged). ``converged`` is False when the iteration
        cap was hit or the linear fallback was used.
    """
    if segment_length <= 0.0:
        return 0.0, True

    linear_t = distance / segment_length
    t = linear_t
    for _ in range(INVERSION_MAX_ITERATIONS):
        length_to_t = measure_segment_length(p1, p2, p3, p4, 0.0, t)
        next_t = t + (distance - length_to_t) / segment_length
        if not np.isfinite(next_t):
            report_error(
                NumericDivergenceError(f"non-finite t at distance {distance:.4f}"),
                level=logging.DEBUG,
            )
            return linear_t, False
        if abs(next_t - t) < INVERSION_TOLERANCE:
            return next_t, True
        t = next_t
    return t, False


# =============================================================================
# Build state machine
# =============================================================================


class BuildState(Enum):
    IDLE = "idle"
    BUILDING = "building"


class BuildGuard:
    """Two-state guard for refresh operations.

    Entering while already BUILDING is refused rather than raising, so a
    re-entrant refresh is a no-op.
    """

    def __init__(self):
        self.state = BuildState.IDLE

    @property
    def is_building(self) -> bool:
        return self.state is BuildState.BUILDING

    @contextmanager
    def building(self) -> Iterator[bool]:
        """Yield True if the guard was entered, False if a build is running."""
        if self.state is BuildState.BUILDING:
            yield False
            return
        self.state = BuildState.BUILDING
        try:
            yield True
        finally:
            self.state = BuildState.IDLE


# =============================================================================
# Buffer pool
# =============================================================================


class BufferPool:
    """Named, growable float buffers owned by one path.

    ``reserve`` returns an array of exactly the requested shape. With
    ``reuse=True`` it is a view into a buffer kept between builds, which is
    only reallocated when it is too small; arrays from an earlier build must
    not be held across a rebuild. With ``reuse=False`` every call allocates.
    """

    def __init__(self, reuse: bool = True):
        self.reuse = reuse
        self._buffers: Dict[str, np.ndarray] = {}

    def reserve(self, name: str, count: int, dims: Optional[int] = None) -> np.ndarray:
        shape = (count,) if dims is None else (count, dims)
        if not self.reuse:
            return np.zeros(shape)

        buffer = self._buffers.get(name)
        if buffer is None or buffer.shape[0] < count or buffer.shape[1:] != shape[1:]:
            # Grow geometrically so slowly lengthening paths do not reallocate every edit
            capacity = max(count, 0 if buffer is None else 2 * buffer.shape[0])
            buffer = np.zeros((capacity,) + shape[1:])
            self._buffers[name] = buffer
        view = buffer[:count]
        view.fill(0.0)
        return view

    def capacity(self, name: str) -> int:
        buffer = self._buffers.get(name)
        return 0 if buffer is None else buffer.shape[0]

    def clear(self) -> None:
        """Release all buffers; the next reserve allocates fresh storage."""
        self._buffers.clear()


# =============================================================================
# Spline frame
# =============================================================================


@dataclass
class SplineFrame:
    """Every array derived from one build of a path.

    Attributes:
        samples: (n, 3) points on the curve, ``resolution`` apart.
        distances: (n,) cumulative arc length of each sample.
        waypoints: (m, 3) waypoints as processed; closed circuits carry the
            first waypoint again at the end.
        wraps_first_waypoint: True when that repeated first waypoint was
            appended (the input did not already end where it started).
        waypoint_distances: (m,) arc length of each processed waypoint.
        widths: (m,) width at each processed waypoint.
        total_length: Arc length of the whole curve.
        length_to_last_point: Distance of the final sample.
        length_to_second_last_point: Distance of the sample before it.
        edges: Offset curves, filled in by the offset geometry engine.
    """

    samples: np.ndarray
    distances: np.ndarray
    waypoints: np.ndarray
    waypoint_distances: np.ndarray
    widths: np.ndarray
    resolution: float
    closed: bool = False
    wraps_first_waypoint: bool = False
    total_length: float = 0.0
    length_to_last_point: float = 0.0
    length_to_second_last_point: float = 0.0
    version: int = -1
    unconverged_samples: int = 0
    edges: Optional["EdgeSet"] = None

    @classmethod
    def empty(cls, resolution: float = 0.0, closed: bool = False, version: int = -1) -> "SplineFrame":
        return cls(
            samples=np.zeros((0, 3)),
            distances=np.zeros(0),
            waypoints=np.zeros((0, 3)),
            waypoint_distances=np.zeros(0),
            widths=np.zeros(0),
            resolution=resolution,
            closed=closed,
            version=version,
        )

    @property
    def sample_count(self) -> int:
        return len(self.samples)

    @property
    def is_valid(self) -> bool:
        return self.sample_count >= 2

    def min_width(self) -> float:
        return float(np.min(self.widths)) if len(self.widths) else 0.0


def _segment_controls(
    points: np.ndarray, tangents: np.ndarray, index: int, closed: bool
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Control points for the segment from ``points[index]`` to ``points[index + 1]``."""
    m = len(points)
    p2 = points[index]
    p3 = points[index + 1]

    if index > 0:
        p1 = points[index - 1]
    elif closed:
        p1 = points[m - 2]
    else:
        p1 = p2 + (p2 - p3)

    if index + 2 < m:
        p4 = points[index + 2]
    elif closed:
        p4 = points[1]
    else:
        p4 = p3 + (p3 - p2)

    # A fixed tangent T at a waypoint replaces the neighbour so that the
    # Catmull-Rom derivative 0.5 * (p3 - p1) there equals T scaled to the chord.
    chord = float(np.linalg.norm(p3 - p2))
    if not np.isnan(tangents[index, 0]):
        p1 = p3 - 2.0 * chord * tangents[index]
    if not np.isnan(tangents[index + 1, 0]):
        p4 = p2 + 2.0 * chord * tangents[index + 1]

    return p1, p2, p3, p4


def build_frame(
    positions: np.ndarray,
    widths: np.ndarray,
    config: PathConfig,
    tangents: Optional[np.ndarray] = None,
    pool: Optional[BufferPool] = None,
    version: int = -1,
    strict: bool = False,
) -> SplineFrame:
    """Sample the Catmull-Rom curve through ``positions`` at ``config.resolution``.

    Fewer than two waypoints, a non-positive resolution, mismatched widths
    or a zero-length curve produce an empty frame (all lengths 0).
    """
    pool = pool or BufferPool(reuse=False)
    positions = np.asarray(positions, dtype=float).reshape(-1, 3)
    widths = np.asarray(widths, dtype=float).reshape(-1)
    resolution = float(config.resolution)
    closed = bool(config.closed_circuit)

    if len(positions) < 2:
        report_error(InvalidStateError("waypoint_count", f"need >= 2 waypoints, got {len(positions)}"), strict)
        return SplineFrame.empty(resolution, closed, version)
    if resolution <= 0.0:
        report_error(InvalidStateError("resolution", f"must be > 0, got {resolution}"), strict)
        return SplineFrame.empty(resolution, closed, version)
    if len(widths) != len(positions):
        report_error(
            InvalidStateError("widths", f"{len(widths)} widths for {len(positions)} waypoints"), strict
        )
        return SplineFrame.empty(resolution, closed, version)

    if tangents is None:
        tangents = np.full(positions.shape, np.nan)
    else:
        tangents = np.asarray(tangents, dtype=float).reshape(-1, 3)
        norms = np.linalg.norm(tangents, axis=1)
        with np.errstate(invalid="ignore", divide="ignore"):
            tangents = tangents / norms[:, None]

    points = positions
    wraps = closed and not np.allclose(points[0], points[-1])
    if wraps:
        points = np.vstack([points, points[:1]])
        widths = np.append(widths, widths[0])
        tangents = np.vstack([tangents, tangents[:1]])

    n_segments = len(points) - 1
    controls = [_segment_controls(points, tangents, i, closed) for i in range(n_segments)]
    segment_lengths = np.array([measure_segment_length(*c) for c in controls])

    waypoint_distances = np.concatenate([[0.0], np.cumsum(segment_lengths)])
    total_length = float(waypoint_distances[-1])
    if not np.isfinite(total_length) or total_length <= 0.0:
        report_error(InvalidStateError("path_length", f"curve length is {total_length}"), strict)
        return SplineFrame.empty(resolution, closed, version)

    targets = np.arange(resolution, total_length, resolution)
    targets = targets[total_length - targets > END_EPSILON]

    count = len(targets) + 2
    samples = pool.reserve("samples", count, 3)
    distances = pool.reserve("distances", count)

    samples[0] = points[0]
    distances[0] = 0.0

    seg_indices = np.clip(np.searchsorted(waypoint_distances, targets, side="right") - 1, 0, n_segments - 1)
    unconverged = 0
    for k, (target, seg) in enumerate(zip(targets, seg_indices)):
        p1, p2, p3, p4 = controls[seg]
        t, converged = find_point_on_segment(
            p1, p2, p3, p4, target - waypoint_distances[seg], segment_lengths[seg]
        )
        unconverged += not converged
        samples[k + 1] = catmull_rom_point(p1, p2, p3, p4, t)
        distances[k + 1] = target

    # The curve always ends exactly on the last waypoint (the first one again when closed)
    samples[-1] = points[-1]
    distances[-1] = total_length

    if unconverged:
        LOG_DEBUG(f"{unconverged} of {len(targets)} samples did not converge within tolerance")

    return SplineFrame(
        samples=samples,
        distances=distances,
        waypoints=points.copy(),
        waypoint_distances=waypoint_distances,
        widths=widths.copy(),
        resolution=resolution,
        closed=closed,
        wraps_first_waypoint=wraps,
        total_length=total_length,
        length_to_last_point=float(distances[-1]),
        length_to_second_last_point=float(distances[-2]),
        version=version,
        unconverged_samples=int(unconverged),
    )


# =============================================================================
# Spline cache
# =============================================================================


class SplineCache:
    """Owns the current frame of one path, its buffer pool and build guard."""

    def __init__(self, reuse_buffers: bool = True):
        self.pool = BufferPool(reuse=reuse_buffers)
        self.guard = BuildGuard()
        self.frame = SplineFrame.empty()

    @property
    def state(self) -> BuildState:
        return self.guard.state

    def rebuild(
        self,
        model: "PathModel",
        config: PathConfig,
        strict: bool = False,
    ) -> SplineFrame:
        """Rebuild the frame from ``model``.

        A call made while a rebuild is already running returns the current
        frame unchanged. On failure the frame is reset to empty.
        """
        with self.guard.building() as entered:
            if not entered:
                LOG_DEBUG(f"Rebuild of '{model.name}' ignored: already building")
                return self.frame

            self.frame = SplineFrame.empty(config.resolution, config.closed_circuit, model.version)
            widths = model.widths() if config.use_width else np.full(model.count, config.default_width)
            tangents = np.array(
                [wp.tangent if wp.tangent is not None else (np.nan, np.nan, np.nan) for wp in model.waypoints],
                dtype=float,
            ).reshape(-1, 3)
            with profile_scope(f"rebuild_cache:{model.name}"):
                self.frame = build_frame(
                    model.positions(),
                    widths,
                    config,
                    tangents=tangents,
                    pool=self.pool,
                    version=model.version,
                    strict=strict,
                )
            if self.frame.is_valid:
                model.mark_cache_valid(self.frame.version)
            return self.frame

    def clear(self) -> None:
        self.frame = SplineFrame.empty()
        self.pool.clear()
