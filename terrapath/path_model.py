"""
Waypoint storage for a single path.

PathModel owns the ordered waypoint list and the per-waypoint attributes
(width, rotation, optional fixed tangent). It holds no geometry algorithms;
every mutation clears ``is_cache_valid`` so derived caches must be rebuilt
before they are queried again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from terrapath.exceptions import IndexOutOfRangeError, InvalidStateError
from terrapath.logging import LOG_DEBUG, report_error


MIN_WAYPOINTS = 2
MIN_WIDTH = 0.1
MAX_ROTATION = 359.9


def _as_vector(position: Sequence[float]) -> np.ndarray:
    vec = np.asarray(position, dtype=float).reshape(-1)
    if vec.shape != (3,):
        raise ValueError(f"Expected a 3D position, got shape {vec.shape}")
    return vec.copy()


@dataclass
class Waypoint:
    """A user-placed control point of a path."""

    position: np.ndarray
    width: float = 10.0
    rotation: float = 0.0
    tangent: Optional[np.ndarray] = None

    def copy(self) -> "Waypoint":
        return Waypoint(
            position=self.position.copy(),
            width=self.width,
            rotation=self.rotation,
            tangent=None if self.tangent is None else self.tangent.copy(),
        )


@dataclass
class PathModel:
    """Ordered waypoints of one path.

    Out-of-range indices and edits that would leave fewer than two waypoints
    are rejected without mutating the model. By default the failure is
    logged and the method returns False; pass ``strict=True`` to raise.
    """

    name: str = "path"
    default_width: float = 10.0
    waypoints: List[Waypoint] = field(default_factory=list)
    version: int = 0
    is_cache_valid: bool = False

    @classmethod
    def from_points(
        cls,
        positions: Sequence[Sequence[float]],
        widths: Optional[Sequence[float]] = None,
        name: str = "path",
        default_width: float = 10.0,
    ) -> "PathModel":
        """Create a model from a list of positions and optional widths."""
        model = cls(name=name, default_width=default_width)
        if widths is not None and len(widths) != len(positions):
            raise ValueError(f"Got {len(widths)} widths for {len(positions)} waypoints")
        for i, pos in enumerate(positions):
            model.add_waypoint(pos, None if widths is None else widths[i])
        return model

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.waypoints)

    @property
    def count(self) -> int:
        return len(self.waypoints)

    def positions(self) -> np.ndarray:
        """Waypoint positions as an (n, 3) array."""
        if not self.waypoints:
            return np.zeros((0, 3))
        return np.array([wp.position for wp in self.waypoints], dtype=float)

    def widths(self) -> np.ndarray:
        """Waypoint widths as an (n,) array."""
        return np.array([wp.width for wp in self.waypoints], dtype=float)

    def rotations(self) -> np.ndarray:
        return np.array([wp.rotation for wp in self.waypoints], dtype=float)

    def min_width(self) -> float:
        """Smallest waypoint width, or the default width for an empty path."""
        if not self.waypoints:
            return self.default_width
        return float(min(wp.width for wp in self.waypoints))

    def max_width(self) -> float:
        """Largest waypoint width, or the default width for an empty path."""
        if not self.waypoints:
            return self.default_width
        return float(max(wp.width for wp in self.waypoints))

    def _check_index(self, index: int, strict: bool) -> bool:
        if 0 <= index < len(self.waypoints):
            return True
        report_error(IndexOutOfRangeError(index, len(self.waypoints)), strict)
        return False

    def invalidate(self) -> None:
        """Record a mutation: bump the version and clear the cache-valid flag."""
        self.version += 1
        self.is_cache_valid = False

    def mark_cache_valid(self, version: int) -> None:
        """Mark the cache valid if it was built from the current version."""
        if version == self.version:
            self.is_cache_valid = True

    # -------------------------------------------------------------------------
    # Edit operations
    # -------------------------------------------------------------------------

    def add_waypoint(
        self,
        position: Sequence[float],
        width: Optional[float] = None,
        rotation: float = 0.0,
    ) -> int:
        """Append a waypoint.

        Returns:
            Index of the new waypoint.
        """
        self.waypoints.append(
            Waypoint(
                position=_as_vector(position),
                width=self.default_width if width is None else max(float(width), MIN_WIDTH),
                rotation=_clamp_rotation(rotation),
            )
        )
        self.invalidate()
        return len(self.waypoints) - 1

    def insert_waypoint(
        self,
        index: int,
        position: Sequence[float],
        width: Optional[float] = None,
        strict: bool = False,
    ) -> bool:
        """Insert a waypoint before ``index`` (``index == count`` appends).

        Without an explicit width the new point takes the mean of its
        neighbours' widths.
        """
        if not 0 <= index <= len(self.waypoints):
            report_error(IndexOutOfRangeError(index, len(self.waypoints) + 1), strict)
            return False

        if width is None:
            neighbours = [self.waypoints[i].width for i in (index - 1, index) if 0 <= i < len(self.waypoints)]
            width = float(np.mean(neighbours)) if neighbours else self.default_width

        self.waypoints.insert(index, Waypoint(position=_as_vector(position), width=max(float(width), MIN_WIDTH)))
        self.invalidate()
        return True

    def remove_waypoint(self, index: int, strict: bool = False) -> bool:
        """Remove the waypoint at ``index``.

        A path needs at least two waypoints, so removing from a two-point
        path is rejected.
        """
        if not self._check_index(index, strict):
            return False
        if len(self.waypoints) <= MIN_WAYPOINTS:
            report_error(
                InvalidStateError("waypoint_count", f"a path needs at least {MIN_WAYPOINTS} waypoints"),
                strict,
            )
            return False

        del self.waypoints[index]
        self.invalidate()
        return True

    def move_waypoint(self, index: int, new_position: Sequence[float], strict: bool = False) -> bool:
        """Move the waypoint at ``index`` to ``new_position``."""
        if not self._check_index(index, strict):
            return False
        self.waypoints[index].position = _as_vector(new_position)
        self.invalidate()
        return True

    def set_width(self, index: int, width: float, strict: bool = False) -> bool:
        """Set the width of a single waypoint."""
        if not self._check_index(index, strict):
            return False
        if not np.isfinite(width) or width <= 0:
            report_error(InvalidStateError("width", f"width must be > 0, got {width}"), strict)
            return False
        self.waypoints[index].width = float(width)
        self.invalidate()
        return True

    def set_rotation(self, index: int, rotation: float, strict: bool = False) -> bool:
        """Set the roll of a waypoint in degrees, clamped to (-359.9, 359.9)."""
        if not self._check_index(index, strict):
            return False
        self.waypoints[index].rotation = _clamp_rotation(rotation)
        self.invalidate()
        return True

    def set_tangent(self, index: int, tangent: Optional[Sequence[float]], strict: bool = False) -> bool:
        """Fix (or clear, with None) the tangent of a waypoint."""
        if not self._check_index(index, strict):
            return False
        self.waypoints[index].tangent = None if tangent is None else _as_vector(tangent)
        self.invalidate()
        return True

    def set_all_widths(self, width: float) -> None:
        """Set every waypoint to the same width (clamped to the minimum width)."""
        width = max(float(width), MIN_WIDTH)
        for wp in self.waypoints:
            wp.width = width
        self.invalidate()

    def add_to_widths(self, delta: float) -> None:
        """Add ``delta`` to every width, never going below the minimum width."""
        for wp in self.waypoints:
            wp.width = max(wp.width + delta, MIN_WIDTH)
        self.invalidate()

    def reverse(self) -> None:
        """Reverse the travel direction of the path.

        Widths and rotations travel with their waypoints, so they reverse in
        lockstep. Fixed tangents are negated.
        """
        self.waypoints.reverse()
        for wp in self.waypoints:
            if wp.tangent is not None:
                wp.tangent = -wp.tangent
        self.invalidate()
        LOG_DEBUG(f"Reversed path '{self.name}' ({len(self.waypoints)} waypoints)")

    def move_points(
        self,
        offset: Sequence[float] = (0.0, 0.0, 0.0),
        scale: Sequence[float] = (1.0, 1.0, 1.0),
    ) -> None:
        """Scale all waypoints about the origin, then translate them.

        Widths are scaled by the mean of the X and Z scale factors.
        """
        offset_vec = _as_vector(offset)
        scale_vec = _as_vector(scale)
        width_scale = (scale_vec[0] + scale_vec[2]) / 2.0
        for wp in self.waypoints:
            wp.position = wp.position * scale_vec + offset_vec
            wp.width = max(wp.width * width_scale, MIN_WIDTH)
        self.invalidate()

    def clamp_to_bounds(self, min_xz: Tuple[float, float], max_xz: Tuple[float, float]) -> int:
        """Clamp waypoint X/Z into a rectangle.

        Returns:
            Number of waypoints that were moved.
        """
        moved = 0
        for wp in self.waypoints:
            x = float(np.clip(wp.position[0], min_xz[0], max_xz[0]))
            z = float(np.clip(wp.position[2], min_xz[1], max_xz[1]))
            if x != wp.position[0] or z != wp.position[2]:
                wp.position = np.array([x, wp.position[1], z])
                moved += 1
        if moved:
            self.invalidate()
        return moved

    def copy(self) -> "PathModel":
        return PathModel(
            name=self.name,
            default_width=self.default_width,
            waypoints=[wp.copy() for wp in self.waypoints],
        )


def _clamp_rotation(rotation: float) -> float:
    return float(np.clip(rotation, -MAX_ROTATION, MAX_ROTATION))
