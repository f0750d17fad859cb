"""
Tile addressing: path templates, intervals, orientations and tile grids.

Volumes are addressed in their native axis order (x, y, z). An orientation
selects which pair of axes becomes the tile plane (columns, rows) and which
axis is swept as the tile z-index.
"""

import enum
import math
from typing import Iterator, NamedTuple, Optional, Sequence, Tuple

from .constants import TILE_PLACEHOLDERS
from .errors import ConfigurationError


class TileAddress(NamedTuple):
    """Grid coordinate of one tile: scale level, section, row, column."""
    s: int
    z: int
    r: int
    c: int

    def children(self) -> Tuple["TileAddress", "TileAddress", "TileAddress", "TileAddress"]:
        """
        The four scale `s - 1` tiles this tile is built from.

        Order: top-left, top-right, bottom-left, bottom-right.
        """
        if self.s < 1:
            raise ValueError(f"Scale level 0 tiles have no children: {self}")
        s, r, c = self.s - 1, 2 * self.r, 2 * self.c
        return (
            TileAddress(s, self.z, r, c),
            TileAddress(s, self.z, r, c + 1),
            TileAddress(s, self.z, r + 1, c),
            TileAddress(s, self.z, r + 1, c + 1),
        )

    def parent(self) -> "TileAddress":
        return TileAddress(self.s + 1, self.z, self.r // 2, self.c // 2)


def validate_pattern(pattern: str) -> str:
    missing = [p for p in TILE_PLACEHOLDERS if p not in pattern]
    if missing:
        raise ConfigurationError(
            f"Tile pattern '{pattern}' is missing placeholder(s) {', '.join(missing)}"
        )
    return pattern


def tile_name(pattern: str, s: int, z: int, r: int, c: int) -> str:
    """Substitute the tile coordinates into `pattern`."""
    validate_pattern(pattern)
    return (
        pattern.replace("<s>", str(s))
        .replace("<z>", str(z))
        .replace("<r>", str(r))
        .replace("<c>", str(c))
    )


class Interval(NamedTuple):
    """Immutable, inclusive integer bounding box."""
    min: Tuple[int, ...]
    max: Tuple[int, ...]

    @classmethod
    def create(cls, min_: Sequence[int], max_: Sequence[int]) -> "Interval":
        min_ = tuple(int(v) for v in min_)
        max_ = tuple(int(v) for v in max_)
        if len(min_) != len(max_):
            raise ConfigurationError(f"Interval bounds differ in length: {min_} vs {max_}")
        for lo, hi in zip(min_, max_):
            if lo > hi:
                raise ConfigurationError(f"Empty interval {min_}-{max_}")
        return cls(min_, max_)

    @classmethod
    def from_size(cls, min_: Sequence[int], size: Sequence[int]) -> "Interval":
        return cls.create(min_, [m + n - 1 for m, n in zip(min_, size)])

    @property
    def ndim(self) -> int:
        return len(self.min)

    @property
    def dimensions(self) -> Tuple[int, ...]:
        return tuple(hi - lo + 1 for lo, hi in zip(self.min, self.max))

    def permute(self, axes: Sequence[int]) -> "Interval":
        return Interval(tuple(self.min[a] for a in axes), tuple(self.max[a] for a in axes))

    def contains(self, other: "Interval") -> bool:
        return all(
            lo <= olo and ohi <= hi
            for lo, hi, olo, ohi in zip(self.min, self.max, other.min, other.max)
        )


class _OrientationAxes(NamedTuple):
    axes: Tuple[int, int, int]
    transpose_copy: bool


class Orientation(enum.Enum):
    """
    Export orientation of a volume.

    The value is the axis permutation from view (column, row, z) axes to the
    native volume axes, plus whether pixels are copied in transposed order.
    """
    XY = _OrientationAxes((0, 1, 2), False)   # direct
    XZ = _OrientationAxes((0, 2, 1), False)   # swap axes 1 and 2
    ZY = _OrientationAxes((2, 1, 0), True)    # swap axes 0 and 2

    @property
    def axes(self) -> Tuple[int, int, int]:
        return self.value.axes

    @property
    def transpose_copy(self) -> bool:
        return self.value.transpose_copy

    @classmethod
    def parse(cls, name) -> "Orientation":
        if isinstance(name, Orientation):
            return name
        aliases = {
            "direct": cls.XY,
            "swapaxis1and2": cls.XZ,
            "swapaxis0and2": cls.ZY,
        }
        key = str(name).strip()
        try:
            return cls[key.upper()]
        except KeyError:
            pass
        try:
            return aliases[key.lower()]
        except KeyError:
            raise ConfigurationError(
                f"Unknown orientation '{name}', expected one of xy, xz, zy"
            ) from None

    def view_interval(self, interval: Interval) -> Interval:
        """Interval in the oriented (column, row, z) frame."""
        if interval.ndim != 3:
            raise ConfigurationError(f"Orientation needs a 3D interval, got {interval}")
        return interval.permute(self.axes)

    def to_native(self, coords: Sequence[int]) -> Tuple[int, int, int]:
        """Map view-frame values (coordinates or sizes) to native axis order."""
        native = [0, 0, 0]
        for view_axis, native_axis in enumerate(self.axes):
            native[native_axis] = coords[view_axis]
        return tuple(native)


class GridRange(NamedTuple):
    """Inclusive (first, last) tile index ranges for z, rows and columns."""
    z: Tuple[int, int]
    rows: Tuple[int, int]
    cols: Tuple[int, int]

    def cells(self) -> Iterator[Tuple[int, int, int]]:
        """Yield (z, r, c) in z, row, column order."""
        for z in range(self.z[0], self.z[1] + 1):
            for r in range(self.rows[0], self.rows[1] + 1):
                for c in range(self.cols[0], self.cols[1] + 1):
                    yield z, r, c

    @property
    def count(self) -> int:
        return (
            (self.z[1] - self.z[0] + 1)
            * (self.rows[1] - self.rows[0] + 1)
            * (self.cols[1] - self.cols[0] + 1)
        )


def check_tile_size(tile_width: int, tile_height: int) -> None:
    if tile_width <= 0 or tile_height <= 0:
        raise ConfigurationError(
            f"Tile size must be positive, got {tile_width}x{tile_height}"
        )


def default_grid(view_interval: Interval, tile_width: int, tile_height: int) -> GridRange:
    """Tile ranges exactly covering `view_interval` (ceiling division)."""
    check_tile_size(tile_width, tile_height)
    width, height, depth = view_interval.dimensions
    return GridRange(
        z=(0, depth - 1),
        rows=(0, math.ceil(height / tile_height) - 1),
        cols=(0, math.ceil(width / tile_width) - 1),
    )


def resolve_grid(
    view_interval: Interval,
    tile_width: int,
    tile_height: int,
    z: Optional[Tuple[int, int]] = None,
    rows: Optional[Tuple[int, int]] = None,
    cols: Optional[Tuple[int, int]] = None,
) -> GridRange:
    """
    Fill unspecified ranges from the default grid and validate the rest.

    Raises
    ------
    ConfigurationError
        If a requested range is empty or reaches outside the default grid.
    """
    full = default_grid(view_interval, tile_width, tile_height)
    resolved = []
    for name, requested, limit in (("z", z, full.z), ("row", rows, full.rows), ("column", cols, full.cols)):
        if requested is None:
            resolved.append(limit)
            continue
        first, last = int(requested[0]), int(requested[1])
        if first > last or first < limit[0] or last > limit[1]:
            raise ConfigurationError(
                f"Requested {name} range {first}-{last} is outside {limit[0]}-{limit[1]}"
            )
        resolved.append((first, last))
    return GridRange(*resolved)
