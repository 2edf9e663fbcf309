"""
Terrain height collaborator.

The geometry core only ever asks a terrain for the normalized height under a
world XZ position. ``GridHeightSource`` answers that from a heightmap array;
any object with a matching ``height_at`` works in its place.
"""

from __future__ import annotations

from typing import Protocol

import numpy as np
from scipy.interpolate import RegularGridInterpolator

from terrapath.config import TerrainConfig
from terrapath.logging import LOG_DEBUG
from terrapath.path_model import PathModel


class HeightSource(Protocol):
    """Anything that can report terrain height under a world position."""

    def height_at(self, x: float, z: float) -> float:
        """Normalized terrain height in [0, 1] at world (x, z)."""
        ...


class GridHeightSource:
    """Bilinear heightmap lookup.

    Rows of ``heightmap`` run along world Z and columns along world X,
    spanning ``terrain.size`` from ``terrain.origin``. Positions outside the
    terrain are clamped to its border.
    """

    def __init__(self, heightmap: np.ndarray, terrain: TerrainConfig):
        heightmap = np.asarray(heightmap, dtype=float)
        if heightmap.ndim != 2 or min(heightmap.shape) < 2:
            raise ValueError(f"Heightmap must be 2D with at least 2x2 samples, got shape {heightmap.shape}")

        self.terrain = terrain
        self.heightmap = np.clip(heightmap, 0.0, 1.0)
        rows, cols = self.heightmap.shape
        self._interpolator = RegularGridInterpolator(
            (np.linspace(0.0, 1.0, rows), np.linspace(0.0, 1.0, cols)),
            self.heightmap,
            method="linear",
        )

    def normalized_xz(self, x, z):
        u = (np.asarray(x, dtype=float) - self.terrain.origin[0]) / self.terrain.size[0]
        v = (np.asarray(z, dtype=float) - self.terrain.origin[2]) / self.terrain.size[1]
        return np.clip(u, 0.0, 1.0), np.clip(v, 0.0, 1.0)

    def height_at(self, x: float, z: float) -> float:
        u, v = self.normalized_xz(x, z)
        return float(self._interpolator([[v, u]])[0])

    def heights_at(self, xz: np.ndarray) -> np.ndarray:
        """Vectorized ``height_at`` for an (n, 2) array of world XZ positions."""
        xz = np.asarray(xz, dtype=float).reshape(-1, 2)
        u, v = self.normalized_xz(xz[:, 0], xz[:, 1])
        return self._interpolator(np.column_stack([v, u]))


def world_height(source: HeightSource, terrain: TerrainConfig, x: float, z: float) -> float:
    """World-space Y of the terrain surface at (x, z)."""
    return terrain.origin[1] + source.height_at(x, z) * terrain.height


def world_heights(source: HeightSource, terrain: TerrainConfig, points: np.ndarray) -> np.ndarray:
    """World-space terrain Y under each of an (n, 3) array of points."""
    points = np.asarray(points, dtype=float).reshape(-1, 3)
    if isinstance(source, GridHeightSource):
        normalized = source.heights_at(points[:, [0, 2]])
    else:
        normalized = np.array([source.height_at(p[0], p[2]) for p in points])
    return terrain.origin[1] + normalized * terrain.height


def snap_waypoints_to_terrain(model: PathModel, source: HeightSource, terrain: TerrainConfig) -> int:
    """Place every waypoint ``height_above_terrain`` above the terrain.

    Does nothing when ``terrain.snap_to_terrain`` is off.

    Returns:
        Number of waypoints whose height changed.
    """
    if not terrain.snap_to_terrain or model.count == 0:
        return 0

    heights = world_heights(source, terrain, model.positions()) + terrain.height_above_terrain
    moved = 0
    for index, (wp, y) in enumerate(zip(model.waypoints, heights)):
        if wp.position[1] != y:
            model.move_waypoint(index, (wp.position[0], y, wp.position[2]))
            moved += 1
    LOG_DEBUG(f"Snapped {moved} waypoints of '{model.name}' to terrain")
    return moved
