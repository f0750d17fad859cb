#!/usr/bin/env python3
"""
tilestack.cli – tile export and scale pyramid dispatcher.

Sub-commands
------------
tile   : slice a volume interval into scale level 0 tiles
scale  : grow the scale pyramid from existing level 0 tiles
full   : tile → scale over the exported sections

Exit status is 0 when every tile was written, 1 when any tile failed and 2
for invalid settings.
"""

import argparse
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from pathlib import Path
from typing import List, Optional

from .addressing import Interval, TileAddress, resolve_grid
from .config import TileSettings, load_settings
from .errors import ConfigurationError, TileError
from .pyramid import PyramidBuilder, discover_sections
from .report import TileReport, read_failures
from .tiler import Tiler
from .volume import open_volume

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def _add(sub, name: str, help_: str):
    p = sub.add_parser(name, help=help_)
    p.add_argument(
        "--out", required=True, type=Path,
        help="base directory of the tile stack"
    )
    p.add_argument("--config", type=Path, help="JSON settings file")
    p.add_argument("--tile-size", nargs=2, type=int, metavar=("W", "H"))
    p.add_argument("--format", help="jpg, png or tif")
    p.add_argument("--quality", type=float, help="JPEG quality in [0, 1]")
    p.add_argument("--type", dest="pixel_type", help="rgb or gray")
    p.add_argument("--pattern", help="tile path pattern with <s> <z> <r> <c>")
    p.add_argument("--background", type=int, help="fill value outside the data")
    p.add_argument("--workers", type=int, help="number of worker threads")
    p.add_argument(
        "--keep-going", action="store_true",
        help="continue after tile failures instead of stopping at the first"
    )
    p.add_argument("--report", type=Path, help="write per-tile failures to this CSV")
    p.add_argument(
        "--retry-report", type=Path,
        help="only redo the tiles listed in a failure report"
    )
    p.add_argument(
        "--log-level", default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"]
    )
    return p


def _add_tile_args(p) -> None:
    p.add_argument("--source", required=True, type=Path,
                   help="TIFF stack directory or multi-page TIFF file")
    p.add_argument("--min", nargs=3, type=int, metavar=("X", "Y", "Z"),
                   help="export interval origin (default 0 0 0)")
    p.add_argument("--size", nargs=3, type=int, metavar=("W", "H", "D"),
                   help="export interval size (default up to the volume end)")
    p.add_argument("--orientation", default="xy", help="xy, xz or zy")
    p.add_argument("--z-range", nargs=2, type=int, metavar=("A", "B"))
    p.add_argument("--row-range", nargs=2, type=int, metavar=("A", "B"))
    p.add_argument("--col-range", nargs=2, type=int, metavar=("A", "B"))


def _add_scale_args(p, with_z_range: bool = True) -> None:
    if with_z_range:
        p.add_argument("--z-range", nargs=2, type=int, metavar=("A", "B"))
        p.add_argument("--width", type=int, help="level 0 width in pixels")
        p.add_argument("--height", type=int, help="level 0 height in pixels")
    p.add_argument("--max-scale", type=int, help="highest scale level to build")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="tilestack",
        description="Tile export and scale pyramid builder for tile-based viewers"
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    tile_p = _add(sub, "tile", "export scale level 0 tiles from a volume")
    _add_tile_args(tile_p)

    scale_p = _add(sub, "scale", "build scale levels from existing tiles")
    _add_scale_args(scale_p)

    full_p = _add(sub, "full", "tile → scale")
    _add_tile_args(full_p)
    _add_scale_args(full_p, with_z_range=False)

    return p


def _settings(args) -> TileSettings:
    settings = load_settings(args.config) if args.config else TileSettings()
    width, height = args.tile_size if args.tile_size else (None, None)
    return settings.replace(
        tile_width=width,
        tile_height=height,
        format=args.format,
        quality=args.quality,
        pixel_type=args.pixel_type,
        pattern=args.pattern,
        background=args.background,
        workers=args.workers,
        base_path=str(args.out),
        fail_fast=False if args.keep_going else None,
    ).validate()


def _retry_targets(args, level0: bool) -> Optional[List[TileAddress]]:
    if not args.retry_report:
        return None
    addresses = read_failures(args.retry_report)
    selected = [a for a in addresses if (a.s == 0) == level0]
    logger.info(f"Retrying {len(selected)} of {len(addresses)} tile(s) from {args.retry_report}")
    return selected


def _run_tile(args, settings: TileSettings, executor, report: TileReport):
    volume = open_volume(args.source)
    logger.info(f"Opened volume {args.source} with shape {volume.shape}")
    origin = tuple(args.min) if args.min else (0, 0, 0)
    size = tuple(args.size) if args.size else tuple(n - o for n, o in zip(volume.shape, origin))
    interval = Interval.from_size(origin, size)

    tiler = Tiler(volume, settings.store(), settings.tile_width, settings.tile_height,
                  settings.background)
    view_interval, _ = tiler.plan(interval, args.orientation)
    grid = resolve_grid(view_interval, settings.tile_width, settings.tile_height,
                        args.z_range, args.row_range, args.col_range)
    targets = _retry_targets(args, level0=True)
    if targets is not None:
        targets = [(a.z, a.r, a.c) for a in targets]
    tiler.tile(interval, args.orientation, grid, targets, executor, settings.fail_fast, report)
    return view_interval, grid


def _run_scale(args, settings: TileSettings, executor, report: TileReport,
               sections=None, level0_size=None) -> None:
    builder = PyramidBuilder(settings.store(), settings.tile_width, settings.tile_height,
                             settings.background)
    targets = _retry_targets(args, level0=False)
    if targets is not None:
        builder.rebuild(targets, executor, settings.fail_fast, report)
        return
    if sections is None:
        if args.z_range:
            sections = range(args.z_range[0], args.z_range[1] + 1)
        else:
            sections = discover_sections(builder.store.exists)
            if not sections:
                logger.warning(
                    f"No level 0 tile found at {builder.store.path(TileAddress(0, 0, 0, 0))}; "
                    "pass --z-range for sections that do not start at 0"
                )
    if level0_size is None and args.width and args.height:
        level0_size = (args.width, args.height)
    builder.build(sections, level0_size, executor, settings.fail_fast, args.max_scale, report)


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

    report = TileReport()
    try:
        settings = _settings(args)
        pool = (
            ThreadPoolExecutor(max_workers=settings.workers)
            if settings.workers > 1 else nullcontext()
        )
        with pool as executor:
            if args.cmd == "tile":
                _run_tile(args, settings, executor, report)

            elif args.cmd == "scale":
                _run_scale(args, settings, executor, report)

            elif args.cmd == "full":
                view_interval, grid = _run_tile(args, settings, executor, report)
                if report.ok:
                    width, height, _ = view_interval.dimensions
                    sections = range(grid.z[0], grid.z[1] + 1)
                    _run_scale(args, settings, executor, report, sections, (width, height))
                else:
                    logger.error("Skipping scale levels, level 0 export had failures")
    except (ConfigurationError, FileNotFoundError) as e:
        logger.error(f"{e}")
        return 2
    except TileError as e:
        logger.error(f"Stopped after tile failure: {e}")
    finally:
        if args.report:
            report.write_csv(args.report)

    if not report.ok:
        logger.error(f"{len(report.failures)} tile(s) failed")
        return 1
    logger.info(f"Done, {report.written} tile(s) written")
    return 0


if __name__ == "__main__":
    sys.exit(main())
