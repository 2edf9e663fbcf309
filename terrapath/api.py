"""
Public entry points of the path geometry engine.

Stateless functions:
    rebuild_cache(waypoints, config) -> SplineFrame
    query(frame, distance, mode) -> (position, tangent)
    build_edges(frame, config, widths) -> EdgeSet
    build_strip_mesh(edges, path_config, mesh_config) -> MeshBuffer

Stateful facade:
    TerrainPath wraps a PathModel with its cache, buffer pool and the
    Idle/Building refresh guard.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from terrapath import offset_geometry, strip_mesh
from terrapath.config import MeshConfig, PathConfig, TerraPathConfig
from terrapath.exceptions import InvalidStateError
from terrapath.logging import LOG_DEBUG, LOG_INFO, TimeTracker, report_error
from terrapath.offset_geometry import EdgeSet
from terrapath.path_model import PathModel
from terrapath.path_query import InterpolationMode, PathQuery
from terrapath.spline_cache import BuildGuard, SplineCache, SplineFrame, build_frame
from terrapath.strip_mesh import MeshBuffer
from terrapath.terrain import HeightSource, snap_waypoints_to_terrain


Waypoints = Union[PathModel, Sequence[Sequence[float]], np.ndarray]


# =============================================================================
# Stateless interface
# =============================================================================


def rebuild_cache(
    waypoints: Waypoints,
    config: PathConfig,
    widths: Optional[Sequence[float]] = None,
    strict: bool = False,
) -> SplineFrame:
    """Build a spline frame from waypoints.

    A pure function of its inputs. Invalid input gives an empty frame.
    """
    if isinstance(waypoints, PathModel):
        return SplineCache(reuse_buffers=False).rebuild(waypoints, config, strict=strict)

    positions = np.asarray(waypoints, dtype=float).reshape(-1, 3)
    if widths is None or not config.use_width:
        widths = np.full(len(positions), config.default_width)
    return build_frame(positions, np.asarray(widths, dtype=float), config, strict=strict)


def query(
    frame: SplineFrame,
    distance: float,
    mode: InterpolationMode = InterpolationMode.CATMULL_ROM,
) -> Tuple[np.ndarray, np.ndarray]:
    """Position and unit direction of travel ``distance`` along the path."""
    engine = PathQuery(frame)
    return engine.position_at(distance, mode), engine.forward_at(distance)


def build_edges(
    frame: SplineFrame,
    config: PathConfig,
    widths: Optional[Sequence[float]] = None,
    include_surround: bool = True,
    include_borders: bool = True,
    strict: bool = False,
) -> EdgeSet:
    """Edge, surround and border curves of ``frame``.

    ``widths`` (one per user waypoint) overrides the widths captured when
    the frame was built.
    """
    if widths is not None:
        widths = np.asarray(widths, dtype=float).reshape(-1)
        expected = len(frame.widths) - int(frame.wraps_first_waypoint)
        if len(widths) != expected or not frame.is_valid:
            report_error(
                InvalidStateError("widths", f"{len(widths)} widths for {expected} waypoints"),
                strict,
            )
            return EdgeSet.empty()
        if frame.wraps_first_waypoint:
            # The repeated first waypoint takes the first width
            widths = np.append(widths, widths[0])
        frame = replace(frame, widths=widths)

    return offset_geometry.build_edges(frame, config, include_surround, include_borders, strict=strict)


def build_strip_mesh(
    edges: EdgeSet,
    path_config: PathConfig,
    mesh_config: Optional[MeshConfig] = None,
    height_source: Optional[HeightSource] = None,
    strict: bool = False,
) -> MeshBuffer:
    """Surface strip mesh of an edge set (see ``strip_mesh.build_strip_mesh``)."""
    return strip_mesh.build_strip_mesh(
        edges, path_config, mesh_config or MeshConfig(), height_source=height_source, strict=strict
    )


# =============================================================================
# Stateful facade
# =============================================================================


class TerrainPath:
    """A path model together with its cached geometry.

    Edits go through ``model``; they clear the cache-valid flag, and
    ``refresh()`` must be called before querying or meshing again.
    ``refresh()`` is guarded: a call made while one is running (for
    example from a listener) returns False without doing anything.
    """

    def __init__(
        self,
        model: PathModel,
        config: Optional[TerraPathConfig] = None,
        height_source: Optional[HeightSource] = None,
        reuse_buffers: bool = True,
    ):
        self.model = model
        self.config = config or TerraPathConfig()
        self.height_source = height_source
        self.cache = SplineCache(reuse_buffers=reuse_buffers)
        self.guard = BuildGuard()
        self.timer = TimeTracker(f"refresh:{model.name}")
        self._listeners: List[Callable[["TerrainPath"], None]] = []

    @property
    def frame(self) -> SplineFrame:
        return self.cache.frame

    @property
    def edges(self) -> EdgeSet:
        return self.frame.edges if self.frame.edges is not None else EdgeSet.empty()

    @property
    def is_cache_valid(self) -> bool:
        return self.model.is_cache_valid and self.frame.version == self.model.version and self.frame.is_valid

    def add_listener(self, callback: Callable[["TerrainPath"], None]) -> None:
        """Call ``callback(path)`` at the end of every successful refresh."""
        self._listeners.append(callback)

    def refresh(self, include_surround: bool = True, include_borders: bool = True, strict: bool = False) -> bool:
        """Rebuild the spline frame and its edge curves.

        Returns:
            True if the path now has a valid cache. False if the rebuild
            failed or was a re-entrant call.
        """
        with self.guard.building() as entered:
            if not entered:
                LOG_DEBUG(f"Refresh of '{self.model.name}' ignored: already refreshing")
                return False

            with self.timer.measure():
                frame = self.cache.rebuild(self.model, self.config.path, strict=strict)
                if frame.is_valid:
                    frame.edges = offset_geometry.build_edges(
                        frame,
                        self.config.path,
                        include_surround=include_surround,
                        include_borders=include_borders,
                        pool=self.cache.pool,
                        strict=strict,
                    )

            if not frame.is_valid:
                return False

            LOG_DEBUG(
                f"Refreshed '{self.model.name}': {frame.sample_count} samples, length {frame.total_length:.2f}"
            )
            for callback in list(self._listeners):
                callback(self)
            return True

    def _check_valid(self, strict: bool) -> bool:
        if self.is_cache_valid:
            return True
        report_error(
            InvalidStateError("cache", f"path '{self.model.name}' changed since the last refresh"), strict
        )
        return False

    # -------------------------------------------------------------------------
    # Edits that refresh
    # -------------------------------------------------------------------------

    def reverse(self, include_surround: bool = True) -> bool:
        """Reverse the path and refresh it."""
        self.model.reverse()
        return self.refresh(include_surround=include_surround)

    def snap_to_terrain(self) -> int:
        """Snap waypoint heights to the terrain and refresh if any moved."""
        if self.height_source is None:
            report_error(InvalidStateError("height_source", "no terrain attached"))
            return 0
        moved = snap_waypoints_to_terrain(self.model, self.height_source, self.config.terrain)
        if moved:
            self.refresh()
        return moved

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def query_engine(self, strict: bool = False) -> Optional[PathQuery]:
        if not self._check_valid(strict):
            return None
        return PathQuery(self.frame, strict=strict)

    def query(
        self,
        distance: float,
        mode: InterpolationMode = InterpolationMode.CATMULL_ROM,
        strict: bool = False,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Position and direction at ``distance``; zeros if the cache is stale."""
        if not self._check_valid(strict):
            return np.zeros(3), np.zeros(3)
        return query(self.frame, distance, mode)

    def width_at(self, distance: float, strict: bool = False) -> float:
        engine = self.query_engine(strict)
        return 0.0 if engine is None else engine.width_at(distance)

    def position_list(self, interval: Optional[float] = None, snap_last_to_end: bool = True) -> np.ndarray:
        """Evenly spaced positions, ``config.path.position_spacing`` apart by default."""
        engine = self.query_engine()
        if engine is None:
            return np.zeros((0, 3))
        interval = self.config.path.position_spacing if interval is None else interval
        return engine.position_list(interval, snap_last_to_end)

    # -------------------------------------------------------------------------
    # Meshes
    # -------------------------------------------------------------------------

    def build_mesh(self, strict: bool = False) -> MeshBuffer:
        if not self._check_valid(strict):
            return MeshBuffer()
        mesh = strip_mesh.build_strip_mesh(
            self.edges,
            self.config.path,
            self.config.mesh,
            height_source=self.height_source,
            terrain=self.config.terrain if self.height_source is not None else None,
            strict=strict,
        )
        LOG_INFO(f"Built mesh for '{self.model.name}': {mesh.vertex_count} vertices, {mesh.triangle_count} triangles")
        return mesh

    def build_mesh_chunks(self, strict: bool = False) -> List[MeshBuffer]:
        if not self._check_valid(strict):
            return []
        return strip_mesh.build_strip_mesh_chunks(
            self.edges,
            self.config.path,
            self.config.mesh,
            height_source=self.height_source,
            terrain=self.config.terrain if self.height_source is not None else None,
            strict=strict,
        )

    def build_base_mesh(self, strict: bool = False) -> MeshBuffer:
        if not self._check_valid(strict):
            return MeshBuffer()
        return strip_mesh.build_base_mesh(
            self.edges,
            self.config.path,
            self.config.mesh,
            height_source=self.height_source,
            terrain=self.config.terrain if self.height_source is not None else None,
            strict=strict,
        )
