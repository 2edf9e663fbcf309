"""
Tests for the arc-length sampled spline cache.
"""

from __future__ import annotations

import numpy as np
import pytest

from terrapath.config import PathConfig
from terrapath.exceptions import InvalidStateError
from terrapath.path_model import PathModel
from terrapath.spline_cache import (
    BufferPool,
    BuildGuard,
    BuildState,
    SplineCache,
    build_frame,
    catmull_rom_point,
    find_point_on_segment,
    measure_segment_length,
)


P1 = np.array([-10.0, 0.0, 0.0])
P2 = np.array([0.0, 0.0, 0.0])
P3 = np.array([10.0, 0.0, 0.0])
P4 = np.array([20.0, 0.0, 0.0])


class TestCatmullRom:
    """Tests for segment evaluation and measurement."""

    def test_segment_endpoints(self):
        """A segment starts on p2 and ends on p3."""
        p1, p4 = np.array([-3.0, 1.0, 2.0]), np.array([14.0, -2.0, 6.0])
        np.testing.assert_allclose(catmull_rom_point(p1, P2, P3, p4, 0.0), P2)
        np.testing.assert_allclose(catmull_rom_point(p1, P2, P3, p4, 1.0), P3)

    def test_vectorized(self):
        """An array of parameters gives one point per parameter."""
        pts = catmull_rom_point(P1, P2, P3, P4, np.linspace(0.0, 1.0, 5))
        assert pts.shape == (5, 3)
        np.testing.assert_allclose(pts[:, 0], [0.0, 2.5, 5.0, 7.5, 10.0])

    def test_straight_length(self):
        """Evenly spaced collinear controls give the chord length."""
        assert measure_segment_length(P1, P2, P3, P4) == pytest.approx(10.0)
        assert measure_segment_length(P1, P2, P3, P4, 0.0, 0.5) == pytest.approx(5.0)

    def test_inversion_on_straight_segment(self):
        """Arc-length inversion is exact on a uniform segment."""
        t, converged = find_point_on_segment(P1, P2, P3, P4, 4.0, 10.0)
        assert converged
        assert t == pytest.approx(0.4, abs=1e-3)

    def test_inversion_on_curved_segment(self):
        """The returned parameter lands at the requested arc length."""
        p4 = np.array([10.0, 0.0, 10.0])
        length = measure_segment_length(P1, P2, P3, p4)
        t, converged = find_point_on_segment(P1, P2, P3, p4, 6.0, length)
        assert converged
        assert measure_segment_length(P1, P2, P3, p4, 0.0, t) == pytest.approx(6.0, abs=0.05)

    def test_zero_length_segment(self):
        """A degenerate segment maps every distance to t=0."""
        assert find_point_on_segment(P2, P2, P2, P2, 1.0, 0.0) == (0.0, True)

    def test_non_finite_falls_back(self, terrapath_caplog):
        """A non-finite iterate returns the linear guess and is logged."""
        t, converged = find_point_on_segment(P1, P2, P3, P4, float("nan"), 10.0)
        assert not converged
        assert "NumericDivergenceError" in terrapath_caplog.text


class TestBuildFrame:
    """Tests for sampling a whole path."""

    def test_straight_samples(self, straight_frame):
        """Samples sit exactly resolution apart along a straight line."""
        assert straight_frame.sample_count == 11
        np.testing.assert_allclose(straight_frame.distances[:-1], np.arange(0.0, 20.0, 2.0))
        np.testing.assert_allclose(straight_frame.samples[:, 0], np.arange(0.0, 21.0, 2.0), atol=1e-6)
        assert straight_frame.total_length == pytest.approx(20.0)
        assert straight_frame.unconverged_samples == 0

    def test_distances_increase(self, bent_points, path_config):
        """Sample distances increase strictly."""
        frame = build_frame(np.array(bent_points), np.ones(3), path_config)
        assert np.all(np.diff(frame.distances) > 0)

    def test_bent_path(self, bent_points, path_config):
        """Curved paths end exactly on the last waypoint."""
        frame = build_frame(np.array(bent_points), np.ones(3), path_config)
        assert 11 <= frame.sample_count <= 12
        assert frame.total_length == pytest.approx(21.2, abs=0.5)
        np.testing.assert_array_equal(frame.samples[-1], [20.0, 0.0, 5.0])
        np.testing.assert_array_equal(frame.samples[0], [0.0, 0.0, 0.0])
        assert frame.length_to_last_point == frame.total_length
        assert frame.length_to_second_last_point == frame.distances[-2]

    def test_waypoint_distances(self, straight_frame):
        """Waypoint distances are cumulative segment lengths."""
        np.testing.assert_allclose(straight_frame.waypoint_distances, [0.0, 10.0, 20.0])

    def test_near_end_sample_dropped(self, path_config):
        """No sample is placed within END_EPSILON of the end."""
        points = np.array([[0.0, 0.0, 0.0], [20.00001, 0.0, 0.0]])
        frame = build_frame(points, np.ones(2), path_config)
        assert frame.sample_count == 11
        assert frame.distances[-1] - frame.distances[-2] > 1.0

    def test_closed_square(self, square_points):
        """Closed circuits return to the first waypoint."""
        config = PathConfig(resolution=5.0, closed_circuit=True)
        frame = build_frame(np.array(square_points), np.full(4, 2.0), config)
        assert frame.closed
        assert frame.wraps_first_waypoint
        assert len(frame.waypoints) == 5
        assert frame.widths[-1] == frame.widths[0]
        assert 40.0 <= frame.total_length <= 45.0
        np.testing.assert_array_equal(frame.samples[0], frame.samples[-1])

    def test_closed_already_wrapped(self, square_points):
        """A closed input that already ends on its start is not wrapped again."""
        config = PathConfig(resolution=5.0, closed_circuit=True)
        points = np.array(square_points + [square_points[0]])
        frame = build_frame(points, np.full(5, 2.0), config)
        assert not frame.wraps_first_waypoint
        assert len(frame.waypoints) == 5

    def test_fixed_tangent_bends_curve(self, straight_points, path_config):
        """A fixed sideways tangent pulls the curve off the straight line."""
        tangents = np.full((3, 3), np.nan)
        tangents[1] = (1.0, 0.0, 1.0)
        frame = build_frame(np.array(straight_points), np.ones(3), path_config, tangents=tangents)
        assert np.max(np.abs(frame.samples[:, 2])) > 0.1
        assert frame.total_length > 20.0

    def test_tangent_along_travel_is_neutral(self, straight_points, path_config):
        """Fixing the natural tangent leaves a straight path unchanged."""
        tangents = np.full((3, 3), np.nan)
        tangents[1] = (1.0, 0.0, 0.0)
        frame = build_frame(np.array(straight_points), np.ones(3), path_config, tangents=tangents)
        np.testing.assert_allclose(frame.samples[:, 2], 0.0, atol=1e-9)

    def test_single_point_gives_empty_frame(self, path_config):
        """Fewer than two waypoints produce an empty frame."""
        frame = build_frame(np.zeros((1, 3)), np.ones(1), path_config)
        assert frame.sample_count == 0
        assert frame.total_length == 0.0
        assert not frame.is_valid

    def test_single_point_strict(self, path_config):
        """Strict mode raises for invalid input."""
        with pytest.raises(InvalidStateError):
            build_frame(np.zeros((1, 3)), np.ones(1), path_config, strict=True)

    def test_zero_resolution(self, straight_points):
        """A non-positive resolution produces an empty frame."""
        frame = build_frame(np.array(straight_points), np.ones(3), PathConfig(resolution=0.0))
        assert frame.sample_count == 0

    def test_width_mismatch(self, straight_points, path_config):
        """Widths must match the waypoint count."""
        frame = build_frame(np.array(straight_points), np.ones(2), path_config)
        assert frame.sample_count == 0

    def test_coincident_points(self, path_config):
        """A zero-length curve produces an empty frame."""
        frame = build_frame(np.zeros((3, 3)), np.ones(3), path_config)
        assert frame.sample_count == 0
        assert frame.total_length == 0.0


class TestBufferPool:
    """Tests for reusable buffers."""

    def test_reserve_shape(self):
        """Reserved arrays have exactly the requested shape."""
        pool = BufferPool()
        assert pool.reserve("a", 5, 3).shape == (5, 3)
        assert pool.reserve("b", 4).shape == (4,)

    def test_reuse_shares_storage(self):
        """A smaller request reuses the existing buffer."""
        pool = BufferPool()
        first = pool.reserve("a", 10, 3)
        second = pool.reserve("a", 6, 3)
        assert np.shares_memory(first, second)
        assert pool.capacity("a") == 10

    def test_grows_geometrically(self):
        """Outgrowing a buffer at least doubles it."""
        pool = BufferPool()
        pool.reserve("a", 10)
        pool.reserve("a", 11)
        assert pool.capacity("a") == 20

    def test_reserve_is_zeroed(self):
        """Reused storage is cleared."""
        pool = BufferPool()
        pool.reserve("a", 3)[:] = 7.0
        np.testing.assert_array_equal(pool.reserve("a", 3), 0.0)

    def test_no_reuse(self):
        """With reuse disabled every call allocates."""
        pool = BufferPool(reuse=False)
        assert not np.shares_memory(pool.reserve("a", 4), pool.reserve("a", 4))


class TestBuildGuard:
    """Tests for the Idle/Building guard."""

    def test_enter_and_leave(self):
        """The guard is BUILDING only inside the block."""
        guard = BuildGuard()
        with guard.building() as entered:
            assert entered
            assert guard.state is BuildState.BUILDING
        assert guard.state is BuildState.IDLE

    def test_reentry_refused(self):
        """A nested build is refused and does not reset the state."""
        guard = BuildGuard()
        with guard.building():
            with guard.building() as nested:
                assert not nested
            assert guard.is_building
        assert not guard.is_building

    def test_state_reset_after_error(self):
        """An exception inside the block returns the guard to IDLE."""
        guard = BuildGuard()
        with pytest.raises(RuntimeError):
            with guard.building():
                raise RuntimeError("boom")
        assert guard.state is BuildState.IDLE


class TestSplineCache:
    """Tests for the per-path cache."""

    def test_rebuild_marks_model_valid(self, straight_model, path_config):
        """A successful rebuild validates the model's cache flag."""
        cache = SplineCache()
        frame = cache.rebuild(straight_model, path_config)
        assert frame.is_valid
        assert frame.version == straight_model.version
        assert straight_model.is_cache_valid

    def test_failed_rebuild_clears_frame(self, path_config):
        """A model that cannot be sampled leaves an empty frame."""
        model = PathModel.from_points([(0.0, 0.0, 0.0)])
        cache = SplineCache()
        frame = cache.rebuild(model, path_config)
        assert frame.sample_count == 0
        assert not model.is_cache_valid

    def test_rebuild_without_widths(self, bent_model, path_config):
        """With use_width off every waypoint takes the default width."""
        path_config.use_width = False
        frame = SplineCache().rebuild(bent_model, path_config)
        np.testing.assert_allclose(frame.widths, path_config.default_width)

    def test_model_tangent_used(self, straight_model, path_config):
        """Fixed tangents on the model reach the sampler."""
        straight_model.set_tangent(1, (0.0, 0.0, 1.0))
        frame = SplineCache().rebuild(straight_model, path_config)
        assert np.max(np.abs(frame.samples[:, 2])) > 0.1

    def test_clear(self, straight_model, path_config):
        """clear drops the frame and buffers."""
        cache = SplineCache()
        cache.rebuild(straight_model, path_config)
        cache.clear()
        assert cache.frame.sample_count == 0
        assert cache.pool.capacity("samples") == 0
