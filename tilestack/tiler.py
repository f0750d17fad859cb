"""Scale level 0 export: slicing an oriented volume interval into tiles."""

import logging
from concurrent.futures import Executor
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np

from .addressing import (
    GridRange,
    Interval,
    Orientation,
    TileAddress,
    check_tile_size,
    resolve_grid,
)
from .constants import DEFAULT_BACKGROUND
from .errors import ConfigurationError
from .report import TileReport, run_tiles
from .store import TileStore
from .views import GridView, oriented_view

logger = logging.getLogger(__name__)


class Tiler:
    """
    Slices an export interval of a volume into the scale level 0 tile grid.

    Parameters
    ----------
    volume
        Read-only source exposing `shape`, `pixel_shape`, `dtype` and
        `read_interval(min, size)` in native (x, y, z) order.
    store : TileStore
        Destination of the encoded tiles.
    tile_width, tile_height : int
        Tile size in pixels, fixed for the run.
    background : int
        Fill value for the part of an edge tile outside the export interval.
    """
    def __init__(
        self,
        volume,
        store: TileStore,
        tile_width: int,
        tile_height: int,
        background: int = DEFAULT_BACKGROUND,
    ) -> None:
        check_tile_size(tile_width, tile_height)
        self.volume = volume
        self.store = store
        self.tile_width = int(tile_width)
        self.tile_height = int(tile_height)
        self.background = background

    def plan(
        self,
        interval: Interval,
        orientation,
        grid: Optional[GridRange] = None,
    ) -> Tuple[Interval, GridRange]:
        """
        Oriented view interval and the tile grid to export.

        Raises
        ------
        ConfigurationError
            If `interval` is not inside the volume or `grid` reaches outside
            the tiles covering the interval.
        """
        orientation = Orientation.parse(orientation)
        bounds = Interval.from_size((0, 0, 0), self.volume.shape)
        if interval.ndim != 3 or not bounds.contains(interval):
            raise ConfigurationError(
                f"Export interval {interval} is not inside the volume {bounds}"
            )
        view_interval = orientation.view_interval(interval)
        if grid is None:
            grid = resolve_grid(view_interval, self.tile_width, self.tile_height)
        else:
            grid = resolve_grid(
                view_interval, self.tile_width, self.tile_height, grid.z, grid.rows, grid.cols
            )
        return view_interval, grid

    def blank(self) -> np.ndarray:
        shape = (self.tile_height, self.tile_width) + tuple(self.volume.pixel_shape)
        return np.full(shape, self.background, dtype=self.volume.dtype)

    def render(
        self,
        view: GridView,
        view_interval: Interval,
        z: int,
        r: int,
        c: int,
        transpose_copy: bool = False,
    ) -> np.ndarray:
        """
        Filled (row, col) buffer of tile (z, r, c).

        The tile's source rectangle is clamped against the view interval; when
        it comes out smaller than a full tile the buffer is background
        everywhere except the top-left region that receives the source pixels.

        `transpose_copy` only changes the order in which pixels are copied,
        through a transposed view of the buffer. The resulting tile is the
        same either way: ``tile[row, col] == view[x0 + col, y0 + row, z]``.
        """
        width, height, _ = view_interval.dimensions
        x0, y0 = c * self.tile_width, r * self.tile_height
        w = min(self.tile_width, width - x0)
        h = min(self.tile_height, height - y0)
        if w <= 0 or h <= 0:
            raise ConfigurationError(f"Tile z={z} r={r} c={c} lies outside {view_interval}")

        # [col, row, 1(, channel)]
        block = view.read((x0, y0, z), (w, h, 1))[:, :, 0]
        tile = self.blank()
        if transpose_copy:
            tile.swapaxes(0, 1)[:w, :h] = block
        else:
            tile[:h, :w] = block.swapaxes(0, 1)
        return tile

    def tile(
        self,
        interval: Interval,
        orientation,
        grid: Optional[GridRange] = None,
        targets: Optional[Iterable[Sequence[int]]] = None,
        executor: Optional[Executor] = None,
        fail_fast: bool = True,
        report: Optional[TileReport] = None,
    ) -> TileReport:
        """
        Export every tile of `grid` (or only `targets`) at scale level 0.

        Parameters
        ----------
        interval : Interval
            Export window in native (x, y, z) volume coordinates.
        orientation : Orientation or str
            Which volume axes become tile columns, rows and sections.
        grid : GridRange, optional
            Tile ranges to export; defaults to exactly covering `interval`.
        targets : iterable of (z, r, c), optional
            Restrict the run to these tiles, e.g. the failures of an earlier
            run.
        executor : concurrent.futures.Executor, optional
            Pool the tiles are distributed over; tiles run in the calling
            thread when omitted.
        fail_fast : bool
            Re-raise the first tile failure instead of continuing.
        report : TileReport, optional
            Report to record into; a new one is created when omitted.

        Returns
        -------
        TileReport
            Written count and the per-tile failures.
        """
        orientation = Orientation.parse(orientation)
        view_interval, grid = self.plan(interval, orientation, grid)
        view = oriented_view(self.volume, orientation, interval)

        if targets is None:
            addresses = [TileAddress(0, z, r, c) for z, r, c in grid.cells()]
        else:
            addresses = [TileAddress(0, *map(int, t)) for t in targets]
            for a in addresses:
                if not (
                    grid.z[0] <= a.z <= grid.z[1]
                    and grid.rows[0] <= a.r <= grid.rows[1]
                    and grid.cols[0] <= a.c <= grid.cols[1]
                ):
                    raise ConfigurationError(f"Target tile {a} is outside the grid {grid}")

        logger.info(
            f"Exporting {len(addresses)} tiles ({orientation.name}, "
            f"{self.tile_width}x{self.tile_height}) from interval {interval.min}-{interval.max}"
        )

        def work(address: TileAddress):
            tile = self.render(
                view, view_interval, address.z, address.r, address.c, orientation.transpose_copy
            )
            path = self.store.write(address, tile)
            logger.debug(f"Wrote tile {path}")
            return path

        report = run_tiles(
            work, addresses, report if report is not None else TileReport(), executor, fail_fast,
            self.store.path,
        )
        logger.info(f"Exported {report.written} tiles, {len(report.failures)} failed")
        return report
