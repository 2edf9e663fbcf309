"""
Tests for exception hierarchy.
"""

from __future__ import annotations

import logging

import pytest

from terrapath.exceptions import (
    TerraPathError,
    ConfigurationError,
    ConfigNotFoundError,
    ConfigValidationError,
    PathError,
    InvalidStateError,
    IndexOutOfRangeError,
    GeometryError,
    GeometryMismatchError,
    VertexLimitError,
    NumericalError,
    NumericDivergenceError,
)
from terrapath.logging import report_error


class TestTerraPathError:
    """Tests for base TerraPathError."""

    def test_basic_message(self):
        """Should store and return message."""
        error = TerraPathError("Test error")
        assert str(error) == "Test error"
        assert error.message == "Test error"

    def test_message_with_details(self):
        """Should include details in string representation."""
        error = TerraPathError("Test error", details={"key": "value"})
        assert "key=value" in str(error)
        assert error.details == {"key": "value"}

    def test_can_be_raised(self):
        """Should be raiseable."""
        with pytest.raises(TerraPathError):
            raise TerraPathError("Test error")


class TestConfigurationErrors:
    """Tests for configuration-related errors."""

    def test_config_not_found(self):
        """ConfigNotFoundError should include path."""
        error = ConfigNotFoundError("/path/to/config.yml")
        assert "/path/to/config.yml" in str(error)
        assert error.details["path"] == "/path/to/config.yml"
        assert isinstance(error, ConfigurationError)

    def test_config_validation(self):
        """ConfigValidationError should include key, reason and value."""
        error = ConfigValidationError("path.resolution", "must be > 0", -1)
        assert "path.resolution" in str(error)
        assert error.details["reason"] == "must be > 0"
        assert error.details["value"] == "-1"

    def test_config_validation_without_value(self):
        """Value is omitted from details when not given."""
        error = ConfigValidationError("waypoints", "must be a list")
        assert "value" not in error.details


class TestPathErrors:
    """Tests for path model and cache errors."""

    def test_invalid_state(self):
        """InvalidStateError should carry the state name."""
        error = InvalidStateError("waypoint_count", "need >= 2 waypoints")
        assert error.details["state"] == "waypoint_count"
        assert "need >= 2 waypoints" in str(error)
        assert isinstance(error, PathError)

    def test_index_out_of_range(self):
        """IndexOutOfRangeError should report index and count."""
        error = IndexOutOfRangeError(7, 3)
        assert error.details == {"index": 7, "count": 3}
        assert "[0, 3)" in str(error)


class TestGeometryErrors:
    """Tests for edge and mesh errors."""

    def test_geometry_mismatch(self):
        """GeometryMismatchError should report both lengths."""
        error = GeometryMismatchError(5, 4)
        assert error.details == {"right": 5, "left": 4}
        assert isinstance(error, GeometryError)

    def test_vertex_limit(self):
        """VertexLimitError should report requested and limit."""
        error = VertexLimitError(202, 128)
        assert error.details["limit"] == 128
        assert "202" in str(error)


class TestNumericalErrors:
    """Tests for numerical errors."""

    def test_numeric_divergence(self):
        """NumericDivergenceError should describe the failure."""
        error = NumericDivergenceError("non-finite t")
        assert "non-finite t" in str(error)
        assert isinstance(error, NumericalError)


class TestExceptionHierarchy:
    """Tests for exception inheritance."""

    @pytest.mark.parametrize(
        "error",
        [
            ConfigNotFoundError("x"),
            ConfigValidationError("k", "r"),
            InvalidStateError("s", "r"),
            IndexOutOfRangeError(1, 0),
            GeometryMismatchError(1, 2),
            VertexLimitError(10, 5),
            NumericDivergenceError("d"),
        ],
    )
    def test_all_inherit_from_base(self, error):
        """All errors should be catchable as TerraPathError."""
        assert isinstance(error, TerraPathError)


class TestReportError:
    """Tests for non-throwing error reporting."""

    def test_logs_by_default(self, terrapath_caplog):
        """Non-strict reporting logs a warning and returns."""
        report_error(IndexOutOfRangeError(4, 2))
        assert "IndexOutOfRangeError" in terrapath_caplog.text
        assert terrapath_caplog.records[-1].levelno == logging.WARNING

    def test_custom_level(self, terrapath_caplog):
        """The log level can be lowered for expected failures."""
        report_error(NumericDivergenceError("nan"), level=logging.DEBUG)
        assert terrapath_caplog.records[-1].levelno == logging.DEBUG

    def test_strict_raises(self):
        """Strict reporting raises the error itself."""
        with pytest.raises(GeometryMismatchError):
            report_error(GeometryMismatchError(2, 3), strict=True)
