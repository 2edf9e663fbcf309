"""
Strip mesh triangulation.

A mesh is laid out as a ladder: every path point contributes a fixed row of
vertices, and a template lists which pairs ``(a, c)`` of row slots form a
face between consecutive rows. Each face emits two triangles per step,

    (a_i, c_i, a_i+1), (c_i, c_i+1, a_i+1)

which face up for the surface strip, where ``a`` is the right edge and ``c``
the left edge. The surface strip, the narrow base and the wide base are
separate templates chosen before the loop.

Vertex layouts per point:
    surface: R, L
    narrow:  TR, BR, BR, BL, BL, TL
    wide:    ITR, TR, TR, BR, BR, BL, BL, TL, TL, ITL
(T/B = top/bottom, R/L = right/left, I = inner border edge.) Corners are
duplicated so each side face gets its own normals.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from terrapath.config import MeshConfig, PathConfig, TerrainConfig
from terrapath.exceptions import GeometryMismatchError, InvalidStateError, VertexLimitError
from terrapath.logging import LOG_DEBUG, report_error, timed
from terrapath.offset_geometry import UP, EdgeSet, blend_trim_range
from terrapath.terrain import HeightSource, world_heights


class UVMode(Enum):
    PATH = "path"
    LANDSCAPE = "landscape"


class MeshSnapType(Enum):
    """How the two edges of a strip row are placed on the terrain."""

    BOTH_EDGES = "both_edges"
    AVERAGE = "average"
    MIN = "min"
    MAX = "max"


# =============================================================================
# Mesh buffer
# =============================================================================


@dataclass
class MeshBuffer:
    """Flat vertex/index buffers ready for a renderer or exporter."""

    vertices: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    triangles: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))
    normals: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    tangents: np.ndarray = field(default_factory=lambda: np.zeros((0, 4)))
    uvs: np.ndarray = field(default_factory=lambda: np.zeros((0, 2)))
    colors: np.ndarray = field(default_factory=lambda: np.zeros((0, 4)))

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def triangle_count(self) -> int:
        return len(self.triangles) // 3

    @property
    def is_empty(self) -> bool:
        return self.vertex_count == 0

    def recalculate_normals(self) -> np.ndarray:
        """Replace normals with area-weighted averages of adjacent face normals."""
        normals = np.zeros_like(self.vertices)
        if self.triangle_count:
            tris = self.triangles.reshape(-1, 3)
            v0, v1, v2 = (self.vertices[tris[:, k]] for k in range(3))
            face_normals = np.cross(v1 - v0, v2 - v0)
            for k in range(3):
                np.add.at(normals, tris[:, k], face_normals)
        self.normals = _normalize_rows(normals, UP)
        return self.normals

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vertices": self.vertices.tolist(),
            "triangles": self.triangles.tolist(),
            "normals": self.normals.tolist(),
            "tangents": self.tangents.tolist(),
            "uvs": self.uvs.tolist(),
            "colors": self.colors.tolist(),
        }


def _normalize_rows(vectors: np.ndarray, fallback: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(vectors, axis=1)
    result = np.tile(fallback, (len(vectors), 1)).astype(float)
    ok = norms > 1e-9
    result[ok] = vectors[ok] / norms[ok, None]
    return result


def _forward_differences(points: np.ndarray) -> np.ndarray:
    """Centred differences inside, one-sided at the ends."""
    fwd = np.empty_like(points)
    if len(points) < 2:
        fwd[:] = (0.0, 0.0, 1.0)
        return fwd
    fwd[1:-1] = points[2:] - points[:-2]
    fwd[0] = points[1] - points[0]
    fwd[-1] = points[-1] - points[-2]
    return fwd


# =============================================================================
# Triangulation templates
# =============================================================================


@dataclass(frozen=True)
class StripTemplate:
    """Row layout of one mesh kind.

    Attributes:
        name: Template name, used in log messages.
        vertices_per_point: Vertices emitted per path point.
        faces: ``(a, c)`` slot pairs joined between consecutive rows.
    """

    name: str
    vertices_per_point: int
    faces: Tuple[Tuple[int, int], ...]

    def max_points(self, max_vertices: int) -> int:
        return int(math.ceil(max_vertices / self.vertices_per_point)) - self.vertices_per_point

    def triangles(self, point_count: int, double_sided: bool = False) -> np.ndarray:
        if point_count < 2:
            return np.zeros(0, dtype=np.int64)
        vpp = self.vertices_per_point
        base = np.arange(point_count - 1, dtype=np.int64) * vpp
        columns = []
        for a, c in self.faces:
            a0, c0, a1, c1 = base + a, base + c, base + vpp + a, base + vpp + c
            columns += [a0, c0, a1, c0, c1, a1]
            if double_sided:
                columns += [a0, a1, c0, c0, a1, c1]
        return np.stack(columns, axis=1).reshape(-1)


SURFACE_TEMPLATE = StripTemplate("surface", 2, ((0, 1),))
NARROW_BASE_TEMPLATE = StripTemplate("narrow_base", 6, ((1, 0), (3, 2), (5, 4)))
WIDE_BASE_TEMPLATE = StripTemplate("wide_base", 10, ((1, 0), (3, 2), (5, 4), (7, 6), (9, 8)))


def narrow_base_rows(inner_right: np.ndarray, inner_left: np.ndarray, thickness: float) -> np.ndarray:
    """(n, 6, 3) rows TR, BR, BR, BL, BL, TL under the inset border."""
    drop = np.array([0.0, thickness, 0.0])
    tr, tl = inner_right, inner_left
    br, bl = tr - drop, tl - drop
    return np.stack([tr, br, br, bl, bl, tl], axis=1)


def wide_base_rows(
    inner_right: np.ndarray,
    inner_left: np.ndarray,
    outer_right: np.ndarray,
    outer_left: np.ndarray,
    thickness: float,
) -> np.ndarray:
    """(n, 10, 3) rows ITR, TR, TR, BR, BR, BL, BL, TL, TL, ITL out to the edges."""
    drop = np.array([0.0, thickness, 0.0])
    br, bl = outer_right - drop, outer_left - drop
    return np.stack(
        [inner_right, outer_right, outer_right, br, br, bl, bl, outer_left, outer_left, inner_left],
        axis=1,
    )


def select_base_template(path_config: PathConfig, mesh_config: MeshConfig) -> StripTemplate:
    """Wide when there is a border to cover and the base is not indented."""
    has_border = path_config.left_border_width > 0 or path_config.right_border_width > 0
    if has_border and not mesh_config.base_mesh_use_indent:
        return WIDE_BASE_TEMPLATE
    return NARROW_BASE_TEMPLATE


# =============================================================================
# Assembly
# =============================================================================


def _landscape_bounds(
    rows: np.ndarray, terrain: Optional[TerrainConfig]
) -> Tuple[np.ndarray, np.ndarray]:
    if terrain is not None:
        return np.array([terrain.origin[0], terrain.origin[2]]), np.asarray(terrain.size, dtype=float)
    xz = rows.reshape(-1, 3)[:, [0, 2]]
    origin = xz.min(axis=0)
    size = xz.max(axis=0) - origin
    return origin, np.where(size > 1e-9, size, 1.0)


def _path_v(distances: np.ndarray, v_origin: float, min_width: float, tile_v: float) -> np.ndarray:
    """Along-path texture coordinate, repeating once per ``min_width`` of length."""
    min_width = min_width if min_width > 0 else 1.0
    travelled = distances - v_origin
    mesh_length = float(travelled[-1]) if len(travelled) and travelled[-1] > 0 else 1.0
    uv_repeat = mesh_length / min_width
    return travelled / mesh_length * uv_repeat * tile_v


def assemble_mesh(
    rows: np.ndarray,
    template: StripTemplate,
    config: MeshConfig,
    distances: np.ndarray,
    min_width: float,
    v_origin: Optional[float] = None,
    terrain: Optional[TerrainConfig] = None,
    double_sided: bool = False,
) -> MeshBuffer:
    """Build a MeshBuffer from per-point vertex rows of shape (n, vpp, 3)."""
    n, vpp, _ = rows.shape
    vertices = rows.reshape(-1, 3).copy()
    tile_u, tile_v = float(config.uv_tile_scale[0]), float(config.uv_tile_scale[1])

    forward = _forward_differences(rows.mean(axis=1))
    normals = np.zeros((n, vpp, 3))
    tangents = np.zeros((n, vpp, 4))
    tangents[:, :, 3] = 1.0
    for a, c in template.faces:
        across = rows[:, c] - rows[:, a]
        face_normal = _normalize_rows(np.cross(across, forward), UP)
        face_tangent = _normalize_rows(across, np.array([1.0, 0.0, 0.0]))
        for slot in (a, c):
            normals[:, slot] = face_normal
            tangents[:, slot, :3] = face_tangent

    if UVMode(config.uv_mode) is UVMode.LANDSCAPE:
        origin, size = _landscape_bounds(rows, terrain)
        xz = vertices[:, [0, 2]]
        uvs = (xz - origin) / size * np.array([tile_u, tile_v])
    else:
        v = _path_v(distances, distances[0] if v_origin is None else v_origin, min_width, tile_v)
        u = np.zeros(vpp)
        for a, _c in template.faces:
            u[a] = tile_u
        uu = np.broadcast_to(u, (n, vpp)).reshape(-1)
        vv = np.repeat(v, vpp)
        uvs = np.column_stack([vv, uu]) if config.switch_uvs else np.column_stack([uu, vv])

    return MeshBuffer(
        vertices=vertices,
        triangles=template.triangles(n, double_sided),
        normals=normals.reshape(-1, 3) if config.add_normals else np.zeros((0, 3)),
        tangents=tangents.reshape(-1, 4),
        uvs=uvs,
        colors=np.ones((n * vpp, 4)),
    )


def snap_edges_to_terrain(
    right: np.ndarray,
    left: np.ndarray,
    snap_type: MeshSnapType,
    height_source: HeightSource,
    terrain: TerrainConfig,
) -> Tuple[np.ndarray, np.ndarray]:
    """Set the height of each right/left pair from the terrain under them."""
    right = right.copy()
    left = left.copy()
    right_h = world_heights(height_source, terrain, right)
    left_h = world_heights(height_source, terrain, left)

    if snap_type is MeshSnapType.BOTH_EDGES:
        right[:, 1], left[:, 1] = right_h, left_h
        return right, left
    if snap_type is MeshSnapType.MIN:
        shared = np.minimum(right_h, left_h)
    elif snap_type is MeshSnapType.MAX:
        shared = np.maximum(right_h, left_h)
    else:
        shared = (right_h + left_h) / 2.0
    right[:, 1] = shared
    left[:, 1] = shared
    return right, left


def _distances_along(right: np.ndarray, left: np.ndarray) -> np.ndarray:
    mid = (right + left) / 2.0
    steps = np.linalg.norm(np.diff(mid, axis=0), axis=1)
    return np.concatenate([[0.0], np.cumsum(steps)])


def build_strip(
    right: np.ndarray,
    left: np.ndarray,
    config: Optional[MeshConfig] = None,
    distances: Optional[np.ndarray] = None,
    min_width: Optional[float] = None,
    v_origin: Optional[float] = None,
    height_source: Optional[HeightSource] = None,
    terrain: Optional[TerrainConfig] = None,
    strict: bool = False,
) -> MeshBuffer:
    """Triangulate two parallel edge curves into a surface strip.

    N rows give 2N vertices and 6(N-1) indices, or 12(N-1) when double
    sided. Mismatched lengths produce an empty mesh.
    """
    config = config or MeshConfig()
    right = np.asarray(right, dtype=float).reshape(-1, 3)
    left = np.asarray(left, dtype=float).reshape(-1, 3)
    if len(right) != len(left):
        report_error(GeometryMismatchError(len(right), len(left)), strict)
        return MeshBuffer()
    if len(right) < 2:
        report_error(InvalidStateError("edge_count", f"need >= 2 edge samples, got {len(right)}"), strict)
        return MeshBuffer()

    if config.edge_snap_to_terrain and height_source is not None and terrain is not None:
        right, left = snap_edges_to_terrain(right, left, MeshSnapType(config.snap_type), height_source, terrain)

    if distances is None:
        distances = _distances_along(right, left)
    if min_width is None:
        min_width = float(np.min(np.linalg.norm(left - right, axis=1)))

    rows = np.stack([right, left], axis=1)
    return assemble_mesh(
        rows,
        SURFACE_TEMPLATE,
        config,
        np.asarray(distances, dtype=float),
        min_width,
        v_origin=v_origin,
        terrain=terrain,
        double_sided=config.double_sided,
    )


# =============================================================================
# Edge-set entry points
# =============================================================================


def _trimmed(edges: EdgeSet, path_config: PathConfig, strict: bool) -> Optional[EdgeSet]:
    if edges.is_empty:
        report_error(InvalidStateError("edge_set", "no edges; build them first"), strict)
        return None
    start, stop = blend_trim_range(edges.count, path_config)
    if stop - start < 2:
        report_error(
            InvalidStateError("edge_set", f"blend trimming leaves fewer than 2 of {edges.count} samples"),
            strict,
        )
        return None
    return edges.sliced(start, stop)


def _point_limit(template: StripTemplate, config: MeshConfig, point_count: int, strict: bool) -> int:
    max_points = template.max_points(config.max_vertices)
    if point_count > max_points:
        report_error(
            VertexLimitError(point_count * template.vertices_per_point, config.max_vertices), strict
        )
        LOG_DEBUG(f"{template.name} mesh truncated to {max_points} of {point_count} points")
        return max_points
    return point_count


def _chunk_ranges(point_count: int, max_points: int) -> List[Tuple[int, int]]:
    """Consecutive ranges that share their seam row."""
    ranges = []
    start = 0
    while start < point_count - 1:
        stop = min(start + max_points, point_count)
        ranges.append((start, stop))
        start = stop - 1
    return ranges


@timed
def build_strip_mesh_chunks(
    edges: EdgeSet,
    path_config: PathConfig,
    mesh_config: MeshConfig,
    height_source: Optional[HeightSource] = None,
    terrain: Optional[TerrainConfig] = None,
    strict: bool = False,
) -> List[MeshBuffer]:
    """Surface strip of ``edges`` after blend trimming.

    The strip spans the border curves (the edges when there is no border).
    A strip over the vertex ceiling is truncated with a warning, or split
    into several meshes when ``mesh_config.split_large_meshes`` is set.
    """
    trimmed = _trimmed(edges, path_config, strict)
    if trimmed is None:
        return []

    right, left = trimmed.inner_right(), trimmed.inner_left()
    min_width = float(np.min(trimmed.widths)) if len(trimmed.widths) else 0.0
    v_origin = float(trimmed.distances[0])
    max_points = SURFACE_TEMPLATE.max_points(mesh_config.max_vertices)

    if mesh_config.split_large_meshes:
        ranges = _chunk_ranges(trimmed.count, max_points)
    else:
        ranges = [(0, _point_limit(SURFACE_TEMPLATE, mesh_config, trimmed.count, strict))]

    return [
        build_strip(
            right[start:stop],
            left[start:stop],
            mesh_config,
            distances=trimmed.distances[start:stop],
            min_width=min_width,
            v_origin=v_origin,
            height_source=height_source,
            terrain=terrain,
            strict=strict,
        )
        for start, stop in ranges
    ]


def build_strip_mesh(
    edges: EdgeSet,
    path_config: PathConfig,
    mesh_config: MeshConfig,
    height_source: Optional[HeightSource] = None,
    terrain: Optional[TerrainConfig] = None,
    strict: bool = False,
) -> MeshBuffer:
    """Single surface mesh of ``edges``; empty if it cannot be built."""
    chunks = build_strip_mesh_chunks(edges, path_config, mesh_config, height_source, terrain, strict)
    return chunks[0] if chunks else MeshBuffer()


@timed
def build_base_mesh(
    edges: EdgeSet,
    path_config: PathConfig,
    mesh_config: MeshConfig,
    height_source: Optional[HeightSource] = None,
    terrain: Optional[TerrainConfig] = None,
    strict: bool = False,
) -> MeshBuffer:
    """Sides and underside of a slab ``base_mesh_thickness`` below the surface.

    With ``edge_snap_to_terrain`` the top rows follow the terrain the same
    way the surface strip does, so the slab stays under it; a wide base also
    takes the terrain height at the outer edges.
    """
    thickness = mesh_config.base_mesh_thickness
    if thickness <= 0:
        report_error(InvalidStateError("base_mesh_thickness", f"must be > 0, got {thickness}"), strict)
        return MeshBuffer()

    trimmed = _trimmed(edges, path_config, strict)
    if trimmed is None:
        return MeshBuffer()

    template = select_base_template(path_config, mesh_config)
    count = _point_limit(template, mesh_config, trimmed.count, strict)
    trimmed = trimmed.sliced(0, count)

    inner_right, inner_left = trimmed.inner_right(), trimmed.inner_left()
    outer_right, outer_left = trimmed.right, trimmed.left
    if mesh_config.edge_snap_to_terrain and height_source is not None and terrain is not None:
        snap_type = MeshSnapType(mesh_config.snap_type)
        inner_right, inner_left = snap_edges_to_terrain(inner_right, inner_left, snap_type, height_source, terrain)
        outer_right, outer_left = snap_edges_to_terrain(outer_right, outer_left, snap_type, height_source, terrain)

    if template is WIDE_BASE_TEMPLATE:
        rows = wide_base_rows(inner_right, inner_left, outer_right, outer_left, thickness)
    else:
        rows = narrow_base_rows(inner_right, inner_left, thickness)

    LOG_DEBUG(f"Building {template.name} mesh over {count} points")
    return assemble_mesh(
        rows,
        template,
        mesh_config,
        trimmed.distances,
        float(np.min(trimmed.widths)),
        terrain=terrain,
    )
