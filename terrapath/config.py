"""
Configuration for TerraPath.

Settings are grouped into three sections, each a dataclass with its own
``validate``: ``path`` (sampling, blending, widths), ``mesh`` (templates,
UVs, vertex limits) and ``terrain`` (heightmap extent). ``ConfigManager``
layers YAML files and ``TERRAPATH_*`` environment variables over the
defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from terrapath.exceptions import ConfigNotFoundError, ConfigValidationError


VALID_UV_MODES = {"path", "landscape"}
VALID_SNAP_TYPES = {"both_edges", "average", "min", "max"}

# Smallest vertex limit that still leaves the widest base template a few rows
MIN_VERTEX_LIMIT = 128


# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class PathConfig:
    """Spline sampling and edge configuration.

    Held constant for the duration of a single cache build.
    """

    resolution: float = 20.0
    closed_circuit: bool = False
    blend_start: bool = True
    blend_end: bool = True
    edge_blend_width: float = 5.0
    left_border_width: float = 0.0
    right_border_width: float = 0.0
    use_width: bool = True
    default_width: float = 10.0
    position_spacing: float = 20.0

    def validate(self) -> None:
        """Validate path configuration."""
        if self.resolution <= 0:
            raise ConfigValidationError("path.resolution", "must be > 0", self.resolution)
        if self.edge_blend_width < 0:
            raise ConfigValidationError("path.edge_blend_width", "must be >= 0", self.edge_blend_width)
        if self.left_border_width < 0:
            raise ConfigValidationError("path.left_border_width", "must be >= 0", self.left_border_width)
        if self.right_border_width < 0:
            raise ConfigValidationError("path.right_border_width", "must be >= 0", self.right_border_width)
        if self.default_width <= 0:
            raise ConfigValidationError("path.default_width", "must be > 0", self.default_width)
        if self.position_spacing <= 0:
            raise ConfigValidationError("path.position_spacing", "must be > 0", self.position_spacing)


@dataclass
class MeshConfig:
    """Strip and base mesh generation configuration."""

    double_sided: bool = False
    uv_mode: str = "path"
    uv_tile_scale: Tuple[float, float] = (1.0, 1.0)
    switch_uvs: bool = False
    add_normals: bool = True
    edge_snap_to_terrain: bool = False
    snap_type: str = "both_edges"
    base_mesh_thickness: float = 0.0
    base_mesh_use_indent: bool = False
    max_vertices: int = 65536
    split_large_meshes: bool = False

    def validate(self) -> None:
        """Validate mesh configuration."""
        if self.uv_mode not in VALID_UV_MODES:
            raise ConfigValidationError("mesh.uv_mode", f"must be one of {VALID_UV_MODES}", self.uv_mode)
        if self.snap_type not in VALID_SNAP_TYPES:
            raise ConfigValidationError(
                "mesh.snap_type", f"must be one of {VALID_SNAP_TYPES}", self.snap_type
            )
        if len(self.uv_tile_scale) != 2:
            raise ConfigValidationError("mesh.uv_tile_scale", "must have 2 components", self.uv_tile_scale)
        if self.base_mesh_thickness < 0:
            raise ConfigValidationError(
                "mesh.base_mesh_thickness", "must be >= 0", self.base_mesh_thickness
            )
        if self.max_vertices < MIN_VERTEX_LIMIT:
            raise ConfigValidationError(
                "mesh.max_vertices", f"must be >= {MIN_VERTEX_LIMIT}", self.max_vertices
            )


@dataclass
class TerrainConfig:
    """Placement of the terrain the path is laid over.

    Heights returned by a height source are normalized to [0, 1] and scaled
    by ``height`` before ``origin[1]`` is added.
    """

    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    size: Tuple[float, float] = (1000.0, 1000.0)
    height: float = 1000.0
    height_above_terrain: float = 5.0
    snap_to_terrain: bool = True

    def validate(self) -> None:
        """Validate terrain configuration."""
        if len(self.origin) != 3:
            raise ConfigValidationError("terrain.origin", "must have 3 components", self.origin)
        if len(self.size) != 2 or min(self.size) <= 0:
            raise ConfigValidationError("terrain.size", "must be 2 components > 0", self.size)
        if self.height <= 0:
            raise ConfigValidationError("terrain.height", "must be > 0", self.height)


@dataclass
class TerraPathConfig:
    """Complete TerraPath configuration."""

    path: PathConfig = field(default_factory=PathConfig)
    mesh: MeshConfig = field(default_factory=MeshConfig)
    terrain: TerrainConfig = field(default_factory=TerrainConfig)

    def validate(self) -> None:
        """Validate all configuration settings."""
        self.path.validate()
        self.mesh.validate()
        self.terrain.validate()

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a YAML-friendly dictionary."""
        return {
            "path": {
                "resolution": self.path.resolution,
                "closed_circuit": self.path.closed_circuit,
                "blend_start": self.path.blend_start,
                "blend_end": self.path.blend_end,
                "edge_blend_width": self.path.edge_blend_width,
                "left_border_width": self.path.left_border_width,
                "right_border_width": self.path.right_border_width,
                "use_width": self.path.use_width,
                "default_width": self.path.default_width,
                "position_spacing": self.path.position_spacing,
            },
            "mesh": {
                "double_sided": self.mesh.double_sided,
                "uv_mode": self.mesh.uv_mode,
                "uv_tile_scale": list(self.mesh.uv_tile_scale),
                "switch_uvs": self.mesh.switch_uvs,
                "add_normals": self.mesh.add_normals,
                "edge_snap_to_terrain": self.mesh.edge_snap_to_terrain,
                "snap_type": self.mesh.snap_type,
                "base_mesh_thickness": self.mesh.base_mesh_thickness,
                "base_mesh_use_indent": self.mesh.base_mesh_use_indent,
                "max_vertices": self.mesh.max_vertices,
                "split_large_meshes": self.mesh.split_large_meshes,
            },
            "terrain": {
                "origin": list(self.terrain.origin),
                "size": list(self.terrain.size),
                "height": self.terrain.height,
                "height_above_terrain": self.terrain.height_above_terrain,
                "snap_to_terrain": self.terrain.snap_to_terrain,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TerraPathConfig":
        """Create TerraPathConfig from dictionary."""
        path_data = data.get("path", {}) or {}
        mesh_data = data.get("mesh", {}) or {}
        terrain_data = data.get("terrain", {}) or {}

        return cls(
            path=PathConfig(
                resolution=float(path_data.get("resolution", 20.0)),
                closed_circuit=bool(path_data.get("closed_circuit", False)),
                blend_start=bool(path_data.get("blend_start", True)),
                blend_end=bool(path_data.get("blend_end", True)),
                edge_blend_width=float(path_data.get("edge_blend_width", 5.0)),
                left_border_width=float(path_data.get("left_border_width", 0.0)),
                right_border_width=float(path_data.get("right_border_width", 0.0)),
                use_width=bool(path_data.get("use_width", True)),
                default_width=float(path_data.get("default_width", 10.0)),
                position_spacing=float(path_data.get("position_spacing", 20.0)),
            ),
            mesh=MeshConfig(
                double_sided=bool(mesh_data.get("double_sided", False)),
                uv_mode=str(mesh_data.get("uv_mode", "path")),
                uv_tile_scale=tuple(mesh_data.get("uv_tile_scale", (1.0, 1.0))),
                switch_uvs=bool(mesh_data.get("switch_uvs", False)),
                add_normals=bool(mesh_data.get("add_normals", True)),
                edge_snap_to_terrain=bool(mesh_data.get("edge_snap_to_terrain", False)),
                snap_type=str(mesh_data.get("snap_type", "both_edges")),
                base_mesh_thickness=float(mesh_data.get("base_mesh_thickness", 0.0)),
                base_mesh_use_indent=bool(mesh_data.get("base_mesh_use_indent", False)),
                max_vertices=int(mesh_data.get("max_vertices", 65536)),
                split_large_meshes=bool(mesh_data.get("split_large_meshes", False)),
            ),
            terrain=TerrainConfig(
                origin=tuple(terrain_data.get("origin", (0.0, 0.0, 0.0))),
                size=tuple(terrain_data.get("size", (1000.0, 1000.0))),
                height=float(terrain_data.get("height", 1000.0)),
                height_above_terrain=float(terrain_data.get("height_above_terrain", 5.0)),
                snap_to_terrain=bool(terrain_data.get("snap_to_terrain", True)),
            ),
        )


# =============================================================================
# Configuration Manager
# =============================================================================


def _merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``update`` into ``base`` in place; sections merge, scalars replace."""
    for key, value in update.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _merge(current, value)
        else:
            base[key] = value
    return base


def _env_value(raw: str) -> Any:
    """Read an environment string as a YAML scalar.

    ``"4"`` becomes 4, ``"yes"`` becomes True, and a comma separated
    ``"2,3"`` becomes the list [2, 3]. Anything YAML cannot read stays a string.
    """
    parts = raw.split(",") if "," in raw else [raw]
    values = []
    for part in parts:
        try:
            value = yaml.safe_load(part)
        except yaml.YAMLError:
            value = part
        values.append(part if value is None or isinstance(value, (dict, list)) else value)
    return values if len(parts) > 1 else values[0]


class ConfigManager:
    """Defaults, then a YAML file, then ``TERRAPATH_<SECTION>_<KEY>`` variables,
    then explicit overrides; each layer wins over the one before.

    Only the first underscore after the prefix separates section from key, so
    ``TERRAPATH_PATH_EDGE_BLEND_WIDTH=7.5`` sets ``path.edge_blend_width``.
    Variables whose section is unknown (``TERRAPATH_LOG_LEVEL``) are ignored.
    """

    ENV_PREFIX = "TERRAPATH"
    SECTIONS = ("path", "mesh", "terrain")

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self._config_path = Path(config_path) if config_path else None
        self._config: Optional[TerraPathConfig] = None
        self._raw_config: Dict[str, Any] = {}

    def load(self, validate: bool = True, overrides: Optional[Dict[str, Any]] = None) -> TerraPathConfig:
        """Build the typed configuration from every layer.

        Args:
            validate: Run ``TerraPathConfig.validate`` on the result.
            overrides: Nested values applied last.

        Raises:
            ConfigNotFoundError: The config path does not exist.
            ConfigValidationError: A value is out of range and ``validate`` is set.
        """
        raw = create_default_config()
        for layer in (self._file_layer(), self._env_layer(), overrides or {}):
            _merge(raw, layer)

        self._raw_config = raw
        self._config = TerraPathConfig.from_dict(raw)
        if validate:
            self._config.validate()
        return self._config

    def _file_layer(self) -> Dict[str, Any]:
        if self._config_path is None:
            return {}
        if not self._config_path.exists():
            raise ConfigNotFoundError(str(self._config_path))
        with open(self._config_path, "r") as f:
            return yaml.safe_load(f) or {}

    def _env_layer(self) -> Dict[str, Any]:
        prefix = f"{self.ENV_PREFIX}_"
        layer: Dict[str, Dict[str, Any]] = {}
        for name, raw in os.environ.items():
            if not name.startswith(prefix):
                continue
            section, _, key = name[len(prefix):].lower().partition("_")
            if section in self.SECTIONS and key:
                layer.setdefault(section, {})[key] = _env_value(raw)
        return layer

    @property
    def config(self) -> TerraPathConfig:
        """The loaded configuration, loading with defaults on first access."""
        if self._config is None:
            self.load()
        return self._config

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a raw value by dotted key, e.g. ``"path.resolution"``."""
        node: Any = self._raw_config
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node


# =============================================================================
# Factory Functions
# =============================================================================


def create_default_config() -> Dict[str, Any]:
    """Default settings as a nested dictionary, one entry per section."""
    return TerraPathConfig().to_dict()


def load_config(path: Union[str, Path], validate: bool = True) -> TerraPathConfig:
    """Shortcut for ``ConfigManager(path).load(validate)``."""
    return ConfigManager(path).load(validate=validate)


_global_config: Optional[ConfigManager] = None


def get_config() -> ConfigManager:
    """Process-wide manager, created on first use with defaults only."""
    global _global_config
    if _global_config is None:
        _global_config = ConfigManager()
    return _global_config


def init_config(path: Optional[Union[str, Path]] = None) -> ConfigManager:
    """Replace the process-wide manager with one reading ``path`` and load it."""
    global _global_config
    _global_config = ConfigManager(path)
    _global_config.load()
    return _global_config
