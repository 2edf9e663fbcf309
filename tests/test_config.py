"""
Tests for configuration management.
"""

from __future__ import annotations

import pytest

from terrapath.config import (
    TerraPathConfig,
    ConfigManager,
    MeshConfig,
    PathConfig,
    TerrainConfig,
    create_default_config,
    load_config,
)
from terrapath.exceptions import ConfigValidationError, ConfigNotFoundError


class TestCreateDefaultConfig:
    """Tests for create_default_config function."""

    def test_has_all_sections(self):
        """Default config should have path, mesh and terrain sections."""
        config = create_default_config()
        assert set(config) == {"path", "mesh", "terrain"}

    def test_default_resolution(self):
        """Default resolution should be 20."""
        config = create_default_config()
        assert config["path"]["resolution"] == 20.0

    def test_vectors_are_lists(self):
        """Tuples are written as lists so the dict dumps cleanly to YAML."""
        config = create_default_config()
        assert config["mesh"]["uv_tile_scale"] == [1.0, 1.0]
        assert config["terrain"]["origin"] == [0.0, 0.0, 0.0]


class TestTerraPathConfig:
    """Tests for TerraPathConfig dataclass."""

    def test_default_values(self):
        """Default values should be set correctly."""
        config = TerraPathConfig()
        assert config.path.resolution == 20.0
        assert config.path.edge_blend_width == 5.0
        assert config.mesh.uv_mode == "path"
        assert config.mesh.max_vertices == 65536
        assert config.terrain.height_above_terrain == 5.0

    def test_from_dict(self):
        """Config should be created from dictionary."""
        data = {
            "path": {"resolution": 2, "closed_circuit": True},
            "mesh": {"uv_tile_scale": [2.0, 0.5], "snap_type": "average"},
        }
        config = TerraPathConfig.from_dict(data)
        assert config.path.resolution == 2.0
        assert config.path.closed_circuit is True
        assert config.mesh.uv_tile_scale == (2.0, 0.5)
        assert config.mesh.snap_type == "average"
        assert config.terrain.height == 1000.0

    def test_dict_survives_reload(self):
        """from_dict(to_dict()) gives back an equal configuration."""
        config = TerraPathConfig(path=PathConfig(resolution=3.0), mesh=MeshConfig(double_sided=True))
        assert TerraPathConfig.from_dict(config.to_dict()) == config

    def test_validation_passes_for_valid_config(self):
        """Validation should pass for valid config."""
        config = TerraPathConfig()
        config.validate()  # Should not raise

    def test_validation_fails_for_invalid_resolution(self):
        """Validation should fail for non-positive resolution."""
        config = TerraPathConfig()
        config.path.resolution = 0
        with pytest.raises(ConfigValidationError) as excinfo:
            config.validate()
        assert "resolution" in str(excinfo.value)


class TestSectionValidation:
    """Tests for per-section validation."""

    def test_negative_border(self):
        """Border widths must not be negative."""
        with pytest.raises(ConfigValidationError):
            PathConfig(left_border_width=-1.0).validate()

    def test_unknown_uv_mode(self):
        """UV mode must be path or landscape."""
        with pytest.raises(ConfigValidationError):
            MeshConfig(uv_mode="cylindrical").validate()

    def test_unknown_snap_type(self):
        """Snap type must be a known mode."""
        with pytest.raises(ConfigValidationError):
            MeshConfig(snap_type="median").validate()

    def test_vertex_limit_too_small(self):
        """A tiny vertex ceiling is rejected."""
        with pytest.raises(ConfigValidationError):
            MeshConfig(max_vertices=16).validate()

    def test_terrain_size_positive(self):
        """Terrain size must be positive."""
        with pytest.raises(ConfigValidationError):
            TerrainConfig(size=(0.0, 100.0)).validate()


class TestConfigManager:
    """Tests for ConfigManager class."""

    def test_load_defaults(self):
        """Should load default configuration."""
        manager = ConfigManager()
        config = manager.load()
        assert config.path.resolution == 20.0

    def test_load_from_file(self, temp_config_file):
        """Should load configuration from file."""
        manager = ConfigManager(temp_config_file)
        config = manager.load()
        assert config.path.resolution == 5.0
        assert config.path.closed_circuit is True
        assert config.mesh.uv_mode == "landscape"
        assert config.path.edge_blend_width == 5.0

    def test_file_not_found(self, tmp_path):
        """Should raise ConfigNotFoundError for missing file."""
        manager = ConfigManager(tmp_path / "nonexistent.yml")
        with pytest.raises(ConfigNotFoundError):
            manager.load()

    def test_env_override(self, monkeypatch):
        """Environment variables should override defaults."""
        monkeypatch.setenv("TERRAPATH_PATH_RESOLUTION", "4")
        manager = ConfigManager()
        config = manager.load()
        assert manager.get("path.resolution") == 4
        assert config.path.resolution == 4.0

    def test_env_key_with_underscores(self, monkeypatch):
        """Only the first underscore separates the section from the key."""
        monkeypatch.setenv("TERRAPATH_PATH_EDGE_BLEND_WIDTH", "7.5")
        monkeypatch.setenv("TERRAPATH_MESH_DOUBLE_SIDED", "yes")
        config = ConfigManager().load()
        assert config.path.edge_blend_width == 7.5
        assert config.mesh.double_sided is True

    def test_env_vector(self, monkeypatch):
        """Comma separated values become vectors."""
        monkeypatch.setenv("TERRAPATH_MESH_UV_TILE_SCALE", "2,3")
        config = ConfigManager().load()
        assert config.mesh.uv_tile_scale == (2.0, 3.0)

    def test_env_overrides_file(self, temp_config_file, monkeypatch):
        """Environment takes precedence over the config file."""
        monkeypatch.setenv("TERRAPATH_PATH_RESOLUTION", "1.5")
        config = ConfigManager(temp_config_file).load()
        assert config.path.resolution == 1.5

    def test_explicit_overrides_win(self, temp_config_file, monkeypatch):
        """Overrides passed to load are applied last."""
        monkeypatch.setenv("TERRAPATH_PATH_RESOLUTION", "1.5")
        config = ConfigManager(temp_config_file).load(overrides={"path": {"resolution": 0.5}})
        assert config.path.resolution == 0.5
        assert config.path.closed_circuit is True

    def test_logging_env_ignored(self, monkeypatch):
        """Logging variables share the prefix but are not config sections."""
        monkeypatch.setenv("TERRAPATH_LOG_LEVEL", "DEBUG")
        manager = ConfigManager()
        manager.load()
        assert manager.get("log") is None

    def test_invalid_file_value(self, tmp_path):
        """Invalid values in a file fail validation."""
        config_path = tmp_path / "bad.yml"
        config_path.write_text("path:\n  resolution: -2\n")
        with pytest.raises(ConfigValidationError):
            ConfigManager(config_path).load()

    def test_get_missing_value_with_default(self):
        """Should return default for missing keys."""
        manager = ConfigManager()
        manager.load()
        assert manager.get("nonexistent.key", "default") == "default"


class TestLoadConfig:
    """Tests for load_config function."""

    def test_load_valid_file(self, temp_config_file):
        """Should load valid configuration file."""
        config = load_config(temp_config_file)
        assert config.path.resolution == 5.0

    def test_load_nonexistent_file(self, tmp_path):
        """Should raise error for nonexistent file."""
        with pytest.raises(ConfigNotFoundError):
            load_config(tmp_path / "nonexistent.yml")
