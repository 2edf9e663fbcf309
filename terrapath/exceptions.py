"""
Errors raised or reported by TerraPath.

Cache, edge and mesh operations do not raise on bad input by default. They
construct one of these errors, pass it to ``terrapath.logging.report_error``
and hand back an empty result; ``strict=True`` turns the report into a raise.
Loading configuration or path files always raises.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class TerraPathError(Exception):
    """Root of the TerraPath error tree.

    ``details`` holds the values that produced the error, so a log line or a
    test can inspect them without parsing the message.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details) if details else {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{key}={value}" for key, value in self.details.items())
        return f"{self.message} ({context})"


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationError(TerraPathError):
    """Problem with a config or path file."""


class ConfigNotFoundError(ConfigurationError):
    def __init__(self, path: str):
        super().__init__(f"No such config file: {path}", {"path": path})


class ConfigValidationError(ConfigurationError):
    """A config value is missing, of the wrong type or out of range."""

    def __init__(self, key: str, reason: str, value: Any = None):
        details: Dict[str, Any] = {"key": key, "reason": reason}
        if value is not None:
            details["value"] = str(value)
        super().__init__(f"Bad value for '{key}': {reason}", details)


# =============================================================================
# Path model and cache
# =============================================================================


class PathError(TerraPathError):
    """Waypoint list or cache cannot support the requested operation."""


class InvalidStateError(PathError):
    """Raised for too few waypoints, mismatched widths, or a rebuild that is
    already in progress."""

    def __init__(self, state_name: str, reason: str):
        super().__init__(f"Path cannot proceed ({state_name}): {reason}", {"state": state_name, "reason": reason})


class IndexOutOfRangeError(PathError):
    def __init__(self, index: int, count: int):
        super().__init__(f"Waypoint index {index} out of range [0, {count})", {"index": index, "count": count})


# =============================================================================
# Edges and meshes
# =============================================================================


class GeometryError(TerraPathError):
    """Edge or mesh construction failed."""


class GeometryMismatchError(GeometryError):
    """Right and left edge arrays must pair up sample for sample."""

    def __init__(self, right_count: int, left_count: int):
        super().__init__(
            f"Right edge has {right_count} samples, left edge has {left_count}",
            {"right": right_count, "left": left_count},
        )


class VertexLimitError(GeometryError):
    def __init__(self, requested: int, limit: int):
        super().__init__(
            f"Mesh needs {requested} vertices, limit is {limit}",
            {"requested": requested, "limit": limit},
        )


# =============================================================================
# Numerics
# =============================================================================


class NumericalError(TerraPathError):
    """Non-finite or otherwise unusable intermediate value."""


class NumericDivergenceError(NumericalError):
    """Arc-length inversion left the finite range; the linear guess is used."""

    def __init__(self, description: str):
        super().__init__(f"Arc-length inversion diverged: {description}", {"description": description})
