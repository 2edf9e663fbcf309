"""
TerraPath - Spline paths and strip meshes over terrain.

Waypoints go in; out come an arc-length sampled Catmull-Rom centreline,
width-varying edge, surround and border curves, and triangle strips for
roads, rivers or placement corridors.

Basic Usage:
    from terrapath import PathModel, TerrainPath, TerraPathConfig

    model = PathModel.from_points([(0, 0, 0), (10, 0, 0), (20, 0, 5)], widths=[4, 4, 10])
    path = TerrainPath(model, TerraPathConfig())
    path.refresh()
    mesh = path.build_mesh()

Without the facade, the same steps are plain functions:
    from terrapath import rebuild_cache, query, build_edges, build_strip_mesh

Lower level pieces live in their own modules:
    from terrapath.spline_cache import catmull_rom_point, build_frame
    from terrapath.strip_mesh import build_strip_mesh_chunks, build_base_mesh
"""

from __future__ import annotations

__version__ = "0.1.0"

# Configuration
from terrapath.config import (
    TerraPathConfig,
    PathConfig,
    MeshConfig,
    TerrainConfig,
    ConfigManager,
    create_default_config,
    load_config,
    get_config,
    init_config,
)

# Waypoints, sampled curve and queries
from terrapath.path_model import PathModel, Waypoint
from terrapath.spline_cache import BufferPool, BuildState, SplineCache, SplineFrame
from terrapath.offset_geometry import EdgeSet
from terrapath.path_query import InterpolationMode, PathQuery

# Meshing and terrain
from terrapath.strip_mesh import MeshBuffer, MeshSnapType, UVMode
from terrapath.terrain import GridHeightSource, HeightSource

# Entry points
from terrapath.api import TerrainPath, build_edges, build_strip_mesh, query, rebuild_cache

from terrapath.logging import (
    LOG_DEBUG,
    LOG_INFO,
    LOG_WARN,
    LOG_ERROR,
    TimeTracker,
    get_logger,
    profile_scope,
    setup_logging,
    timed,
)

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

__all__ = [
    "__version__",
    "TerraPathConfig",
    "PathConfig",
    "MeshConfig",
    "TerrainConfig",
    "ConfigManager",
    "create_default_config",
    "load_config",
    "get_config",
    "init_config",
    "PathModel",
    "Waypoint",
    "BufferPool",
    "BuildState",
    "SplineCache",
    "SplineFrame",
    "EdgeSet",
    "InterpolationMode",
    "PathQuery",
    "MeshBuffer",
    "MeshSnapType",
    "UVMode",
    "GridHeightSource",
    "HeightSource",
    "TerrainPath",
    "build_edges",
    "build_strip_mesh",
    "query",
    "rebuild_cache",
    "LOG_DEBUG",
    "LOG_INFO",
    "LOG_WARN",
    "LOG_ERROR",
    "TimeTracker",
    "get_logger",
    "profile_scope",
    "setup_logging",
    "timed",
    "TerraPathError",
    "ConfigurationError",
    "ConfigNotFoundError",
    "ConfigValidationError",
    "PathError",
    "InvalidStateError",
    "IndexOutOfRangeError",
    "GeometryError",
    "GeometryMismatchError",
    "VertexLimitError",
    "NumericalError",
    "NumericDivergenceError",
]
