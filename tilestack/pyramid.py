"""
Scale pyramid growth from persisted tiles.

Level s+1 is built from level s of the same z-section only, by composing each
2x2 group of tiles into one double-size buffer and box-downsampling it. The
extent of a level is inferred from which tiles exist: a sequential probe
(`probe_level`) first turns tile presence into a fixed `LevelPlan`, and the
tiles of that plan are then generated independently of one another.
"""

import logging
import math
from concurrent.futures import Executor, as_completed
from typing import Callable, Iterable, List, NamedTuple, Optional, Tuple

import numpy as np

from .accumulator import accumulator_for
from .addressing import TileAddress, check_tile_size
from .constants import DEFAULT_BACKGROUND
from .downsample import box_downsample, downsample_bytes
from .errors import TileReadError
from .report import TileReport, run_tiles
from .store import TileStore

logger = logging.getLogger(__name__)

Exists = Callable[[TileAddress], bool]


class LevelPlan(NamedTuple):
    """
    Tiles of level `scale + 1` to build for one z-section.

    `row_lengths[r]` is the number of output tiles in row r; rows are
    contiguous from 0 and every row starts at column 0.
    """
    scale: int
    z: int
    row_lengths: Tuple[int, ...]

    def targets(self) -> List[TileAddress]:
        return [
            TileAddress(self.scale + 1, self.z, r, c)
            for r, n in enumerate(self.row_lengths)
            for c in range(n)
        ]

    @property
    def count(self) -> int:
        return sum(self.row_lengths)


def probe_level(exists: Exists, scale: int, z: int) -> Optional[LevelPlan]:
    """
    Scan level `scale` of section `z` row by row for 2x2 groups to downsample.

    Output tile (yt, xt) is planned when the top-left child (2yt, 2xt) exists.
    A row ends at the first column without one; a row without any ends the
    scan. Returns None when (0, 0) itself is missing, i.e. the section has no
    data at this scale.
    """
    if not exists(TileAddress(scale, z, 0, 0)):
        return None
    row_lengths = []
    while True:
        yt = len(row_lengths)
        n = 0
        while exists(TileAddress(scale, z, 2 * yt, 2 * n)):
            n += 1
        if n == 0:
            break
        row_lengths.append(n)
    return LevelPlan(scale, z, tuple(row_lengths))


def is_single_tile(exists: Exists, scale: int, z: int) -> bool:
    return not (
        exists(TileAddress(scale, z, 0, 1)) or exists(TileAddress(scale, z, 1, 0))
    )


def should_build(exists: Exists, scale: int, z: int) -> bool:
    """
    Whether level `scale + 1` of section `z` should be built at all.

    Not when level `scale` is empty, nor when it is a single tile that a
    further level could only shrink.
    """
    if not exists(TileAddress(scale, z, 0, 0)):
        return False
    return not is_single_tile(exists, scale, z)


def level_coverage(
    plan: LevelPlan,
    tile_width: int,
    tile_height: int,
    level0_size: Optional[Tuple[int, int]] = None,
) -> Tuple[int, int]:
    """
    Pixel (width, height) covered by level `plan.scale`.

    Exact when the level 0 size is known, otherwise the upper bound given by
    the probed 2x2 groups.
    """
    if level0_size is not None:
        factor = 1 << plan.scale
        return math.ceil(level0_size[0] / factor), math.ceil(level0_size[1] / factor)
    return (
        2 * max(plan.row_lengths) * tile_width,
        2 * len(plan.row_lengths) * tile_height,
    )


def should_advance(
    plan: LevelPlan,
    tile_width: int,
    tile_height: int,
    level0_size: Optional[Tuple[int, int]] = None,
) -> bool:
    """Whether to continue with level `plan.scale + 2` after building `plan`."""
    if plan.row_lengths == (1,):
        return False
    width, height = level_coverage(plan, tile_width, tile_height, level0_size)
    return math.ceil(width / 2) > tile_width and math.ceil(height / 2) > tile_height


def discover_sections(exists: Exists, start: int = 0) -> List[int]:
    """Consecutive sections from `start` that have a level 0 tile at (0, 0)."""
    sections = []
    z = start
    while exists(TileAddress(0, z, 0, 0)):
        sections.append(z)
        z += 1
    return sections


def default_downsample(array: np.ndarray) -> np.ndarray:
    """
    Halve a composed tile group of the pixel layouts a `TileStore` reads.

    2D uint8 is gray, (H, W, C) is channel-last and 2D uint32 is packed ARGB.
    Anything else is averaged over every axis.
    """
    if array.dtype == np.uint8 and array.ndim == 2:
        return downsample_bytes(array)
    if array.ndim == 3:
        return box_downsample(array, accumulator_for(array, channels=True))
    if array.dtype == np.uint32 and array.ndim == 2:
        return box_downsample(array, accumulator_for(array, packed=True))
    return box_downsample(array)


class PyramidBuilder:
    """
    Builds scale levels 1, 2, ... of a tile stack from its level 0 tiles.

    Parameters
    ----------
    store : TileStore
        Source of level s and destination of level s+1 tiles.
    tile_width, tile_height : int
        Tile size shared by every level.
    background : int
        Value of the placeholder tiles standing in for missing siblings.
    downsample : Callable[[np.ndarray], np.ndarray], optional
        Halves a (2H, 2W[, C]) buffer; `default_downsample` when omitted.
    """
    def __init__(
        self,
        store: TileStore,
        tile_width: int,
        tile_height: int,
        background: int = DEFAULT_BACKGROUND,
        downsample: Optional[Callable[[np.ndarray], np.ndarray]] = None,
    ) -> None:
        check_tile_size(tile_width, tile_height)
        self.store = store
        self.tile_width = int(tile_width)
        self.tile_height = int(tile_height)
        self.background = background
        self.downsample = downsample if downsample is not None else default_downsample

    def compose(self, address: TileAddress) -> np.ndarray:
        """
        (2H, 2W[, C]) buffer of the four children of `address`.

        Missing siblings of the top-left child are replaced by background.

        Raises
        ------
        TileReadError
            If a child cannot be decoded, has the wrong size, or the top-left
            child has disappeared since the level was probed.
        """
        tiles = [self.store.read(child) for child in address.children()]
        top_left = tiles[0]
        if top_left is None:
            raise TileReadError(
                "Top-left child disappeared after probing",
                address.children()[0],
                self.store.path(address.children()[0]),
            )
        expected = (self.tile_height, self.tile_width)
        for child, tile in zip(address.children(), tiles):
            if tile is not None and (tile.shape[:2] != expected or tile.shape != top_left.shape):
                raise TileReadError(
                    f"Tile has shape {tile.shape}, expected {expected + top_left.shape[2:]}",
                    child,
                    self.store.path(child),
                )
        tl, tr, bl, br = (
            tile if tile is not None else np.full_like(top_left, self.background)
            for tile in tiles
        )
        return np.concatenate(
            [np.concatenate([tl, tr], axis=1), np.concatenate([bl, br], axis=1)],
            axis=0,
        )

    def build_tile(self, address: TileAddress):
        tile = self.downsample(self.compose(address))
        path = self.store.write(address, tile)
        logger.debug(f"Wrote tile {path}")
        return path

    def build_section(
        self,
        z: int,
        level0_size: Optional[Tuple[int, int]] = None,
        executor: Optional[Executor] = None,
        fail_fast: bool = True,
        max_scale: Optional[int] = None,
        report: Optional[TileReport] = None,
    ) -> TileReport:
        """
        Grow the pyramid of one z-section, one complete level at a time.

        Parameters
        ----------
        z : int
            Section index.
        level0_size : (int, int), optional
            Known (width, height) in pixels of level 0; used for the stop
            rule instead of the extent inferred from tile presence.
        executor : concurrent.futures.Executor, optional
            Pool the tiles of each level are distributed over.
        fail_fast : bool
            Re-raise the first tile failure instead of continuing.
        max_scale : int, optional
            Highest scale level to build.
        report : TileReport, optional
            Report to record into; a new one is created when omitted.

        Returns
        -------
        TileReport
        """
        report = report if report is not None else TileReport()
        scale = 0
        while max_scale is None or scale < max_scale:
            if not should_build(self.store.exists, scale, z):
                break
            plan = probe_level(self.store.exists, scale, z)
            logger.info(
                f"Section {z}: building scale {scale + 1} "
                f"({plan.count} tiles in {len(plan.row_lengths)} rows)"
            )
            run_tiles(self.build_tile, plan.targets(), report, executor, fail_fast,
                      self.store.path)
            if not should_advance(plan, self.tile_width, self.tile_height, level0_size):
                break
            scale += 1
        return report

    def build(
        self,
        z_range: Iterable[int],
        level0_size: Optional[Tuple[int, int]] = None,
        executor: Optional[Executor] = None,
        fail_fast: bool = True,
        max_scale: Optional[int] = None,
        report: Optional[TileReport] = None,
    ) -> TileReport:
        """
        Grow the pyramids of every section in `z_range`.

        With an executor and more than one section, whole sections run in
        parallel and the tiles of each section sequentially; a single section
        distributes its tiles over the executor instead.
        """
        report = report if report is not None else TileReport()
        sections = list(z_range)
        logger.info(f"Scaling {len(sections)} section(s)")
        if executor is None or len(sections) == 1:
            for z in sections:
                self.build_section(z, level0_size, executor, fail_fast, max_scale, report)
        else:
            futures = [
                executor.submit(self.build_section, z, level0_size, None, fail_fast, max_scale, report)
                for z in sections
            ]
            try:
                for future in as_completed(futures):
                    future.result()
            except BaseException:
                for future in futures:
                    future.cancel()
                raise
        logger.info(f"Scaled {report.written} tiles, {len(report.failures)} failed")
        return report

    def rebuild(
        self,
        addresses: Iterable[TileAddress],
        executor: Optional[Executor] = None,
        fail_fast: bool = True,
        report: Optional[TileReport] = None,
    ) -> TileReport:
        """Rebuild explicit tiles (scale >= 1), lowest scale level first."""
        report = report if report is not None else TileReport()
        by_scale = {}
        for address in addresses:
            address = TileAddress(*address)
            if address.s < 1:
                raise ValueError(f"Scale level 0 tiles cannot be rebuilt from tiles: {address}")
            by_scale.setdefault(address.s, []).append(address)
        for scale in sorted(by_scale):
            logger.info(f"Rebuilding {len(by_scale[scale])} tile(s) at scale {scale}")
            run_tiles(self.build_tile, by_scale[scale], report, executor, fail_fast,
                      self.store.path)
        return report
