"""
Read-only view adapters over random-access grids.

Each adapter remaps block coordinates and delegates to its source, so
permutation and cropping compose without materializing intermediates. Only
the block finally requested is read from the underlying volume.
"""

from typing import Sequence, Tuple

import numpy as np

from .addressing import Interval
from .errors import TileReadError


class GridView:
    """Common capability: `shape`, `read(min_, size)` and `get(coord)`."""

    @property
    def shape(self) -> Tuple[int, ...]:
        raise NotImplementedError

    def read(self, min_: Sequence[int], size: Sequence[int]) -> np.ndarray:
        raise NotImplementedError

    def get(self, coord: Sequence[int]):
        """Single pixel at `coord`."""
        return self.read(coord, (1,) * len(coord))[(0,) * len(coord)]


class VolumeView(GridView):
    """Adapter exposing a volume's `read_interval` as a view."""

    def __init__(self, volume) -> None:
        self.volume = volume

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(self.volume.shape)

    def read(self, min_: Sequence[int], size: Sequence[int]) -> np.ndarray:
        return self.volume.read_interval(tuple(min_), tuple(size))


class PermutedView(GridView):
    """View whose axis i is axis `axes[i]` of the source."""

    def __init__(self, source: GridView, axes: Sequence[int]) -> None:
        self.source = source
        self.axes = tuple(axes)
        self._inverse = tuple(int(i) for i in np.argsort(self.axes))

    @property
    def shape(self) -> Tuple[int, ...]:
        shape = self.source.shape
        return tuple(shape[a] for a in self.axes)

    def read(self, min_: Sequence[int], size: Sequence[int]) -> np.ndarray:
        src_min = [min_[i] for i in self._inverse]
        src_size = [size[i] for i in self._inverse]
        block = self.source.read(src_min, src_size)
        extra = tuple(range(len(self.axes), block.ndim))
        return block.transpose(self.axes + extra)


class CroppedView(GridView):
    """View of `interval` within the source, with its origin moved to interval.min."""

    def __init__(self, source: GridView, interval: Interval) -> None:
        self.source = source
        self.interval = interval

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.interval.dimensions

    def read(self, min_: Sequence[int], size: Sequence[int]) -> np.ndarray:
        for lo, n, limit in zip(min_, size, self.shape):
            if lo < 0 or n <= 0 or lo + n > limit:
                raise TileReadError(
                    f"Block {tuple(min_)}+{tuple(size)} outside cropped view of shape {self.shape}"
                )
        offset = [lo + origin for lo, origin in zip(min_, self.interval.min)]
        return self.source.read(offset, size)


def oriented_view(volume, orientation, interval: Interval) -> CroppedView:
    """
    Export window of `volume` seen in `orientation`.

    Axis 0 of the result maps to tile columns, axis 1 to tile rows and axis 2
    to the z-sweep, with (0, 0, 0) at the corner of the export interval.
    """
    permuted = PermutedView(VolumeView(volume), orientation.axes)
    return CroppedView(permuted, orientation.view_interval(interval))
