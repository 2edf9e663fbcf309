"""
Distance-based queries against a cached spline frame.
"""

from __future__ import annotations

import bisect
from enum import Enum
from typing import Optional

import numpy as np

from terrapath.exceptions import InvalidStateError
from terrapath.logging import report_error
from terrapath.offset_geometry import DEFAULT_FORWARD, interpolate_widths, right_directions
from terrapath.spline_cache import SplineFrame, catmull_rom_point


# Distances below this return the first sample
START_EPSILON = 0.001
# Look-ahead used to estimate the direction of travel
FORWARD_STEP = 0.1


class InterpolationMode(Enum):
    """How positions between two cached samples are reconstructed."""

    CATMULL_ROM = 0
    LINEAR = 1
    NEAREST = 2


class PathQuery:
    """Point, direction and width queries at an arc-length distance.

    Closed circuits wrap distances modulo the total length; open paths clamp
    them to ``[0, total_length]``.
    """

    def __init__(self, frame: SplineFrame, strict: bool = False):
        self.frame = frame
        self.strict = strict

    @property
    def total_length(self) -> float:
        return self.frame.total_length

    def _normalize_distance(self, distance: float) -> float:
        total = self.frame.total_length
        if self.frame.closed and total > 0.0:
            return float(np.mod(distance, total))
        return float(np.clip(distance, 0.0, total))

    def _check_frame(self) -> bool:
        if self.frame.sample_count > 0:
            return True
        report_error(InvalidStateError("spline_frame", "cache is empty; rebuild it first"), self.strict)
        return False

    # -------------------------------------------------------------------------
    # Positions
    # -------------------------------------------------------------------------

    def position_at(self, distance: float, mode: InterpolationMode = InterpolationMode.CATMULL_ROM) -> np.ndarray:
        """Point on the curve ``distance`` along it.

        All modes return the cached sample exactly when ``distance`` is a
        sample distance.
        """
        if not self._check_frame():
            return np.zeros(3)

        samples = self.frame.samples
        distances = self.frame.distances
        n = len(samples)
        if n == 1:
            return samples[0].copy()
        if not self.frame.closed and distance >= self.frame.total_length:
            return samples[-1].copy()

        distance = self._normalize_distance(distance)
        if distance < START_EPSILON:
            return samples[0].copy()

        i2 = int(np.clip(np.searchsorted(distances, distance, side="right"), 1, n - 1))
        i1 = i2 - 1
        span = distances[i2] - distances[i1]
        t = (distance - distances[i1]) / span if span > 0.0 else 0.0

        if mode is InterpolationMode.NEAREST:
            return samples[i1 if t < 0.5 else i2].copy()
        if mode is InterpolationMode.LINEAR:
            return samples[i1] + (samples[i2] - samples[i1]) * t

        p1 = samples[self._neighbour(i1, -1)]
        p4 = samples[self._neighbour(i2, 1)]
        return catmull_rom_point(p1, samples[i1], samples[i2], p4, t)

    def _neighbour(self, index: int, step: int) -> int:
        """Index of the sample before/after ``index``, wrapping on closed paths.

        The last sample of a closed circuit duplicates the first, so the
        wrap skips over it.
        """
        n = self.frame.sample_count
        neighbour = index + step
        if 0 <= neighbour < n:
            return neighbour
        if not self.frame.closed:
            return index
        return n - 2 if neighbour < 0 else 1

    def forward_at(self, distance: float, mode: InterpolationMode = InterpolationMode.LINEAR) -> np.ndarray:
        """Unit direction of travel at ``distance``.

        Looks ``FORWARD_STEP`` ahead; at the end of an open path it looks
        behind instead.
        """
        if not self._check_frame():
            return DEFAULT_FORWARD.copy()

        total = self.frame.total_length
        if not self.frame.closed and distance + FORWARD_STEP > total:
            end = min(max(distance, FORWARD_STEP), total)
            a = self.position_at(end - FORWARD_STEP, mode)
            b = self.position_at(end, mode)
        else:
            a = self.position_at(distance, mode)
            b = self.position_at(distance + FORWARD_STEP, mode)

        direction = b - a
        norm = np.linalg.norm(direction)
        if norm < 1e-9:
            return DEFAULT_FORWARD.copy()
        return direction / norm

    tangent_at = forward_at

    def offset_position_at(
        self,
        distance: float,
        offset: float,
        mode: InterpolationMode = InterpolationMode.CATMULL_ROM,
    ) -> np.ndarray:
        """Point ``offset`` to the right (negative: left) of the curve, level with it."""
        centre = self.position_at(distance, mode)
        right = right_directions(self.forward_at(distance)[None, :])[0]
        point = centre + right * offset
        point[1] = centre[1]
        return point

    def position_list(self, interval: Optional[float] = None, snap_last_to_end: bool = True) -> np.ndarray:
        """Positions evenly respaced every ``interval`` along the curve.

        Uses linear interpolation between samples. With ``snap_last_to_end``
        the end of the path is appended if the last step fell short of it.
        """
        if not self._check_frame():
            return np.zeros((0, 3))

        interval = self.frame.resolution if interval is None else float(interval)
        if interval <= 0.0:
            report_error(InvalidStateError("interval", f"must be > 0, got {interval}"), self.strict)
            return np.zeros((0, 3))

        total = self.frame.total_length
        steps = np.arange(0.0, total + 1e-9, interval)
        points = [self.position_at(d, InterpolationMode.LINEAR) for d in steps]
        if snap_last_to_end and total - steps[-1] > START_EPSILON:
            points.append(self.frame.samples[-1].copy())
        return np.array(points)

    # -------------------------------------------------------------------------
    # Samples and widths
    # -------------------------------------------------------------------------

    def nearest_sample_index(self, distance: float, hint: int = 1) -> int:
        """Index of the cached sample whose distance is closest to ``distance``.

        ``hint`` narrows the binary search when it is known to be at or
        before the answer. Returns -1 for an empty cache.
        """
        if not self._check_frame():
            return -1

        distances = self.frame.distances
        n = len(distances)
        distance = self._normalize_distance(distance)

        lo = int(np.clip(hint - 1, 0, n - 1))
        if distances[lo] > distance:
            lo = 0
        i = bisect.bisect_left(distances, distance, lo=lo)
        if i >= n:
            return n - 1
        if i > 0 and distance - distances[i - 1] <= distances[i] - distance:
            return i - 1
        return i

    def width_at(self, distance: float) -> float:
        """Path width ``distance`` along the curve, interpolated between waypoints."""
        if not self._check_frame():
            return 0.0

        widths = self.frame.widths
        if not self.frame.closed:
            if distance <= 0.0:
                return float(widths[0])
            if distance >= self.frame.total_length:
                return float(widths[-1])
        distance = self._normalize_distance(distance)
        return float(interpolate_widths(distance, self.frame.waypoint_distances, widths)[0])
