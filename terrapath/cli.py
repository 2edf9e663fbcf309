"""
Command-line interface for TerraPath.

Usage:
    terrapath build river.yml --output river_mesh.json
    terrapath plot river.yml --output river.png
    terrapath validate config.yml
    terrapath info

A path file is YAML with a ``waypoints`` list of [x, y, z] positions, an
optional ``widths`` list and an optional ``config`` mapping that overrides
the loaded configuration:

    name: river
    waypoints: [[0, 0, 0], [50, 0, 10], [100, 0, 0]]
    widths: [8, 12, 8]
    config:
      path: {resolution: 2.0}
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import yaml


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="terrapath",
        description="TerraPath - spline paths and strip meshes over terrain",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  terrapath build river.yml -o mesh.json     Build the surface mesh of a path
  terrapath build road.yml --base -o base.json
  terrapath plot river.yml -o river.png      Save a plan-view preview
  terrapath validate config.yml              Validate a configuration file
        """,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (use -vv for debug)",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress all output except errors",
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    build_parser = subparsers.add_parser(
        "build",
        help="Build a mesh from a path file",
        description="Rebuild the path cache and write the mesh as JSON",
    )
    _add_path_arguments(build_parser)
    build_parser.add_argument(
        "--output", "-o",
        type=Path,
        help="Output file for the mesh (JSON). Prints a summary if omitted",
    )
    build_parser.add_argument(
        "--base",
        action="store_true",
        help="Build the base mesh instead of the surface strip",
    )

    plot_parser = subparsers.add_parser(
        "plot",
        help="Save a plan-view preview of a path",
        description="Draw centreline, edges, surround and border curves",
    )
    _add_path_arguments(plot_parser)
    plot_parser.add_argument(
        "--output", "-o",
        type=Path,
        required=True,
        help="Image file to write",
    )

    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate a configuration file",
        description="Validate a YAML configuration file",
    )
    validate_parser.add_argument(
        "config_file",
        type=Path,
        help="Path to configuration file",
    )

    subparsers.add_parser(
        "info",
        help="Show system information",
        description="Display system and dependency information",
    )

    return parser


def _add_path_arguments(parser: argparse.ArgumentParser) -> None:
    """Arguments shared by commands that read a path file."""
    parser.add_argument(
        "path_file",
        type=Path,
        help="YAML file with waypoints and optional widths",
    )

    parser.add_argument(
        "--config", "-f",
        type=Path,
        help="Path to configuration file",
    )

    parser.add_argument(
        "--resolution", "-r",
        type=float,
        help="Distance between cached samples (overrides config)",
    )

    parser.add_argument(
        "--closed",
        action="store_true",
        help="Treat the path as a closed circuit",
    )


def setup_logging(verbose: int, quiet: bool) -> None:
    """Map -v/-q onto a level for the ``terrapath`` logger."""
    import logging
    from terrapath.logging import setup_logging as _setup_logging

    if quiet:
        level = logging.ERROR
    else:
        level = (logging.WARNING, logging.INFO, logging.DEBUG)[min(verbose, 2)]
    _setup_logging(level=level, force=True)


def load_path_file(path: Path) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Read and check a path file.

    Returns:
        Tuple of (path data, config overrides).

    Raises:
        ConfigNotFoundError: If the file does not exist.
        ConfigValidationError: If it is not YAML, or its waypoints, widths
            or config overrides are malformed.
    """
    from terrapath.exceptions import ConfigNotFoundError, ConfigValidationError

    if not path.exists():
        raise ConfigNotFoundError(str(path))

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigValidationError("path_file", f"not valid YAML: {e}", path) from e
    if not isinstance(data, dict):
        raise ConfigValidationError("path_file", "must be a mapping with a 'waypoints' list", path)

    waypoints = data.get("waypoints")
    if not isinstance(waypoints, list):
        raise ConfigValidationError("waypoints", "must be a list of [x, y, z] positions")
    try:
        positions = np.asarray(waypoints, dtype=float)
    except (TypeError, ValueError):
        positions = None
    if positions is None or positions.ndim != 2 or positions.shape[1:] != (3,) or not np.isfinite(positions).all():
        raise ConfigValidationError("waypoints", "every waypoint must be an [x, y, z] position", waypoints)

    widths = data.get("widths")
    if widths is not None:
        try:
            widths = np.asarray(widths, dtype=float)
        except (TypeError, ValueError):
            widths = None
        if widths is None or widths.shape != (len(positions),) or not np.isfinite(widths).all():
            raise ConfigValidationError(
                "widths", f"must be a list of {len(positions)} numbers, one per waypoint", data.get("widths")
            )

    overrides = data.get("config") or {}
    if not isinstance(overrides, dict):
        raise ConfigValidationError("config", "must be a mapping of config sections", overrides)

    return data, overrides


def _load_path(args: argparse.Namespace):
    """Build and refresh a TerrainPath from the command arguments.

    Returns None, after logging why, when the file cannot be loaded or the
    cache cannot be built.
    """
    from terrapath.api import TerrainPath
    from terrapath.config import ConfigManager
    from terrapath.exceptions import TerraPathError
    from terrapath.logging import LOG_ERROR
    from terrapath.path_model import PathModel

    try:
        data, overrides = load_path_file(args.path_file)

        path_overrides = overrides.setdefault("path", {})
        if args.resolution is not None:
            path_overrides["resolution"] = args.resolution
        if args.closed:
            path_overrides["closed_circuit"] = True
        config = ConfigManager(args.config).load(validate=True, overrides=overrides)

        model = PathModel.from_points(
            data["waypoints"],
            widths=data.get("widths"),
            name=str(data.get("name", args.path_file.stem)),
            default_width=config.path.default_width,
        )
    except TerraPathError as e:
        LOG_ERROR(f"{args.path_file}: {e}")
        return None

    path = TerrainPath(model, config)
    if not path.refresh():
        LOG_ERROR(f"{args.path_file}: cache for '{model.name}' could not be built")
        return None
    return path


def cmd_build(args: argparse.Namespace) -> int:
    """Triangulate a path file and print or save the mesh."""
    from terrapath.logging import LOG_ERROR, LOG_INFO

    path = _load_path(args)
    if path is None:
        return 1

    mesh = path.build_base_mesh() if args.base else path.build_mesh()
    if mesh.is_empty:
        LOG_ERROR(f"{args.path_file}: no mesh produced for '{path.model.name}'")
        return 1

    summary = {
        "name": path.model.name,
        "length": path.frame.total_length,
        "samples": path.frame.sample_count,
        "vertices": mesh.vertex_count,
        "triangles": mesh.triangle_count,
    }
    if not args.output:
        for key, value in summary.items():
            print(f"{key}: {value}")
        return 0

    with open(args.output, "w") as f:
        json.dump({**summary, "mesh": mesh.to_dict()}, f, indent=2)
    LOG_INFO(f"Wrote {mesh.vertex_count} vertices to {args.output}")
    return 0


def cmd_plot(args: argparse.Namespace) -> int:
    """Save a plan-view preview of a path file."""
    from terrapath.logging import LOG_INFO
    from terrapath.visualization import save_preview

    path = _load_path(args)
    if path is None:
        return 1

    save_preview(path.frame, args.output, path.edges)
    LOG_INFO(f"Preview saved to {args.output}")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Check a config file and print the settings a build would use."""
    from terrapath.config import ConfigManager
    from terrapath.exceptions import ConfigurationError

    try:
        config = ConfigManager(args.config_file).load(validate=True)
    except (ConfigurationError, yaml.YAMLError) as e:
        print(f"{args.config_file}: {e}", file=sys.stderr)
        return 1

    print(f"{args.config_file} is valid")
    print(f"  path: resolution={config.path.resolution} closed={config.path.closed_circuit}"
          f" blend={config.path.blend_start}/{config.path.blend_end}")
    print(f"  mesh: uv_mode={config.mesh.uv_mode} max_vertices={config.mesh.max_vertices}")
    return 0


def cmd_info(args: argparse.Namespace) -> int:
    """Print interpreter and dependency versions."""
    import platform
    from importlib import metadata

    from terrapath import __version__

    print(f"terrapath {__version__} on Python {platform.python_version()} ({platform.system()})")
    for dep in ("numpy", "scipy", "matplotlib", "PyYAML"):
        try:
            version = metadata.version(dep)
        except metadata.PackageNotFoundError:
            version = "missing"
        print(f"  {dep:<12}{version}")
    return 0


COMMANDS = {
    "build": cmd_build,
    "plot": cmd_plot,
    "validate": cmd_validate,
    "info": cmd_info,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Run the CLI and return the process exit code."""
    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.quiet)

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        return 1
    return command(args)


if __name__ == "__main__":
    sys.exit(main())
