"""
Logging for TerraPath.

Everything logs through the ``terrapath`` logger, which writes to stderr
(and optionally a file) and does not propagate to the root logger.

Environment:
    TERRAPATH_LOG_LEVEL   DEBUG, INFO (default), WARNING, ERROR
    TERRAPATH_LOG_FORMAT  ``default`` or ``json`` (one JSON object per line)
    TERRAPATH_LOG_FILE    Also append records to this file

The geometry core never raises on bad input unless asked to; it hands the
exception to ``report_error``, which logs it and lets the caller return an
empty result.
"""

from __future__ import annotations

import logging
import os
import sys
import time
from contextlib import contextmanager
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Iterator, List, Optional, Tuple, TypeVar

if TYPE_CHECKING:
    from terrapath.exceptions import TerraPathError

F = TypeVar("F", bound=Callable[..., Any])

LOGGER_NAME = "terrapath"


# =============================================================================
# Environment
# =============================================================================

LOG_LEVEL_ENV = "TERRAPATH_LOG_LEVEL"
LOG_FORMAT_ENV = "TERRAPATH_LOG_FORMAT"
LOG_FILE_ENV = "TERRAPATH_LOG_FILE"

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
JSON_FORMAT = '{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'


def get_log_level() -> int:
    """Level named by TERRAPATH_LOG_LEVEL; unknown names mean INFO."""
    name = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def get_log_format() -> str:
    if os.environ.get(LOG_FORMAT_ENV, "default").lower() == "json":
        return JSON_FORMAT
    return DEFAULT_FORMAT


def get_log_file() -> Optional[str]:
    return os.environ.get(LOG_FILE_ENV) or None


# =============================================================================
# Logger Setup
# =============================================================================

_logger: Optional[logging.Logger] = None
_owned_handlers: List[logging.Handler] = []


def setup_logging(
    level: Optional[int] = None,
    format_str: Optional[str] = None,
    log_file: Optional[str] = None,
    force: bool = False,
) -> logging.Logger:
    """Attach TerraPath's handlers to the ``terrapath`` logger.

    Arguments left as None are read from the environment. A second call is
    a no-op unless ``force`` is set, in which case the handlers installed by
    the previous call are closed and replaced. Handlers added by anyone else
    (pytest's caplog, an application) are left in place.

    Returns:
        The ``terrapath`` logger.
    """
    global _logger

    if _logger is not None and not force:
        return _logger

    logger = logging.getLogger(LOGGER_NAME)
    for handler in _owned_handlers:
        logger.removeHandler(handler)
        handler.close()
    _owned_handlers.clear()

    logger.setLevel(level or get_log_level())
    logger.propagate = False
    formatter = logging.Formatter(format_str or get_log_format())

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_path = log_file or get_log_file()
    if file_path:
        handlers.append(logging.FileHandler(file_path))

    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        _owned_handlers.append(handler)

    _logger = logger
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """The ``terrapath`` logger, or its child ``terrapath.<name>``."""
    root = _logger if _logger is not None else setup_logging()
    return root.getChild(name) if name else root


def LOG_DEBUG(msg: str, *args: Any, **kwargs: Any) -> None:
    get_logger().debug(msg, *args, **kwargs)


def LOG_INFO(msg: str, *args: Any, **kwargs: Any) -> None:
    get_logger().info(msg, *args, **kwargs)


def LOG_WARN(msg: str, *args: Any, **kwargs: Any) -> None:
    get_logger().warning(msg, *args, **kwargs)


def LOG_ERROR(msg: str, *args: Any, **kwargs: Any) -> None:
    get_logger().error(msg, *args, **kwargs)


# =============================================================================
# Error Reporting
# =============================================================================


def report_error(error: "TerraPathError", strict: bool = False, level: int = logging.WARNING) -> None:
    """Log a core failure, or raise it when the caller asked for strict mode.

    Args:
        error: The exception describing the failure.
        strict: Raise ``error`` instead of logging it.
        level: Log level used in non-strict mode.

    Raises:
        TerraPathError: If ``strict`` is True.
    """
    if strict:
        raise error
    get_logger().log(level, "%s: %s", type(error).__name__, error)


# =============================================================================
# Timing
# =============================================================================


@contextmanager
def profile_scope(name: str, log_level: int = logging.DEBUG) -> Iterator[None]:
    """Log how long the enclosed block took.

    Example:
        with profile_scope("rebuild_cache:river"):
            frame = build_frame(points, widths, config)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        get_logger().log(log_level, "%s took %.4fs", name, time.perf_counter() - start)


def timed(func: F) -> F:
    """Decorator that logs each call's duration at DEBUG."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        with profile_scope(func.__name__):
            return func(*args, **kwargs)

    return wrapper  # type: ignore


class TimeTracker:
    """Running record of how long one repeated operation takes.

    ``TerrainPath`` keeps one per path to time its refreshes:

        tracker = TimeTracker("refresh:river")
        with tracker.measure():
            path.refresh()
        tracker.print_stats()
    """

    def __init__(self, name: str):
        self.name = name
        self._times: List[float] = []

    def add(self, timing_ms: float) -> None:
        self._times.append(timing_ms)

    @contextmanager
    def measure(self) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.add((time.perf_counter() - start) * 1000.0)

    @property
    def last_ms(self) -> float:
        return self._times[-1] if self._times else 0.0

    def get_stats(self) -> Tuple[float, float, int]:
        """Returns (mean_ms, max_ms, count); zeros before the first measurement."""
        if not self._times:
            return 0.0, 0.0, 0

        import numpy as np

        times = np.asarray(self._times)
        return float(times.mean()), float(times.max()), len(times)

    def print_stats(self) -> None:
        mean, max_ms, count = self.get_stats()
        if count == 0:
            LOG_INFO(f"{self.name}: no timings recorded")
            return
        LOG_INFO(f"{self.name}: {count} runs, mean {mean:.1f} ms, max {max_ms:.1f} ms")

    def reset(self) -> None:
        self._times = []


setup_logging()
