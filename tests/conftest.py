"""
Pytest configuration and fixtures for TerraPath tests.

This module provides shared fixtures for testing:
- Configuration fixtures
- Waypoint and path model fixtures
- Spline frame and edge fixtures
- Terrain fixtures
- Log capture
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def path_config():
    """Fine sampling, no blend trimming."""
    from terrapath.config import PathConfig

    return PathConfig(resolution=2.0, blend_start=False, blend_end=False)


@pytest.fixture
def blended_path_config():
    """Fine sampling with a 5 unit terrain blend at both ends."""
    from terrapath.config import PathConfig

    return PathConfig(resolution=2.0, edge_blend_width=5.0)


@pytest.fixture
def mesh_config():
    """Create default mesh configuration."""
    from terrapath.config import MeshConfig

    return MeshConfig()


@pytest.fixture
def terrain_config():
    """Small terrain, 10 units high, centred on the origin."""
    from terrapath.config import TerrainConfig

    return TerrainConfig(origin=(-50.0, 0.0, -50.0), size=(100.0, 100.0), height=10.0, height_above_terrain=1.0)


@pytest.fixture
def terrapath_config(path_config):
    """Full configuration around the fine path configuration."""
    from terrapath.config import TerraPathConfig

    return TerraPathConfig(path=path_config)


# =============================================================================
# Waypoint Fixtures
# =============================================================================


@pytest.fixture
def straight_points() -> List[List[float]]:
    """Three evenly spaced points along +X."""
    return [[0.0, 0.0, 0.0], [10.0, 0.0, 0.0], [20.0, 0.0, 0.0]]


@pytest.fixture
def bent_points() -> List[List[float]]:
    """Path that turns towards +Z on its second leg."""
    return [[0.0, 0.0, 0.0], [10.0, 0.0, 0.0], [20.0, 0.0, 5.0]]


@pytest.fixture
def square_points() -> List[List[float]]:
    """Corners of a 10 x 10 square in the XZ plane."""
    return [[0.0, 0.0, 0.0], [10.0, 0.0, 0.0], [10.0, 0.0, 10.0], [0.0, 0.0, 10.0]]


@pytest.fixture
def long_points() -> List[List[float]]:
    """Straight path 200 units long."""
    return [[0.0, 0.0, 0.0], [100.0, 0.0, 0.0], [200.0, 0.0, 0.0]]


@pytest.fixture
def straight_model(straight_points):
    """Path model over the straight points, 4 units wide."""
    from terrapath.path_model import PathModel

    return PathModel.from_points(straight_points, widths=[4.0, 4.0, 4.0], name="straight")


@pytest.fixture
def bent_model(bent_points):
    """Path model over the bent points with a widening end."""
    from terrapath.path_model import PathModel

    return PathModel.from_points(bent_points, widths=[4.0, 4.0, 10.0], name="bent")


# =============================================================================
# Frame Fixtures
# =============================================================================


@pytest.fixture
def straight_frame(straight_points, path_config):
    """Cached frame of the straight path, 4 units wide."""
    from terrapath.spline_cache import build_frame

    return build_frame(np.array(straight_points), np.array([4.0, 4.0, 4.0]), path_config)


@pytest.fixture
def straight_edges(straight_frame, path_config):
    """Edge set of the straight frame."""
    from terrapath.offset_geometry import build_edges

    return build_edges(straight_frame, path_config)


# =============================================================================
# Terrain Fixtures
# =============================================================================


class SplitHeightSource:
    """Terrain at 0.1 for z < 0 and 0.3 elsewhere."""

    def height_at(self, x: float, z: float) -> float:
        return 0.1 if z < 0 else 0.3


@pytest.fixture
def split_height_source():
    return SplitHeightSource()


@pytest.fixture
def flat_heightmap() -> np.ndarray:
    """Uniform heightmap at half the terrain height."""
    return np.full((8, 8), 0.5)


@pytest.fixture
def ramp_heightmap() -> np.ndarray:
    """Heightmap rising linearly from 0 at min X to 1 at max X."""
    return np.tile(np.linspace(0.0, 1.0, 11), (11, 1))


# =============================================================================
# Log Capture
# =============================================================================


@pytest.fixture
def terrapath_caplog(caplog):
    """caplog wired into the terrapath logger, which does not propagate."""
    from terrapath.logging import get_logger

    logger = get_logger()
    logger.addHandler(caplog.handler)
    caplog.set_level(logging.DEBUG, logger="terrapath")
    yield caplog
    logger.removeHandler(caplog.handler)


# =============================================================================
# Temporary Files Fixtures
# =============================================================================


@pytest.fixture
def temp_config_file(tmp_path) -> Path:
    """Create a temporary configuration file."""
    import yaml

    config = {
        "path": {
            "resolution": 5.0,
            "closed_circuit": True,
        },
        "mesh": {
            "uv_mode": "landscape",
        },
    }

    config_path = tmp_path / "test_config.yml"
    with open(config_path, "w") as f:
        yaml.dump(config, f)

    return config_path


@pytest.fixture
def temp_path_file(tmp_path, bent_points) -> Path:
    """Create a temporary path file."""
    import yaml

    data = {
        "name": "river",
        "waypoints": bent_points,
        "widths": [4.0, 4.0, 10.0],
        "config": {"path": {"resolution": 2.0}},
    }

    path_file = tmp_path / "river.yml"
    with open(path_file, "w") as f:
        yaml.dump(data, f)

    return path_file


# =============================================================================
# Marker Registrations
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
