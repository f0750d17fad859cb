"""
Box downsampling by a factor of two along every spatial axis.

`box_downsample` is the generic N-dimensional path: every output pixel is the
mean of a 2^D neighborhood, accumulated through a `PixelAccumulator`. The
`downsample_bytes`, `downsample_rgb` and `downsample_channels` functions are
unrolled 2x2 paths for 8-bit gray, packed ARGB and 8-bit multi-channel tiles;
they average each channel with truncating integer division by 4.
"""

import itertools
from typing import Optional, Sequence

import numpy as np

from .accumulator import PixelAccumulator, accumulator_for
from .errors import ConfigurationError


def _check_even(shape: Sequence[int]) -> None:
    if not shape:
        raise ConfigurationError("Cannot downsample an array without spatial axes")
    for n in shape:
        if n <= 0 or n % 2:
            raise ConfigurationError(
                f"Downsample input must have even, non-empty axes, got {tuple(shape)}"
            )


def crop_even(array: np.ndarray, spatial_ndim: Optional[int] = None) -> np.ndarray:
    """Drop the last row/column (per spatial axis) where the length is odd."""
    array = np.asarray(array)
    if spatial_ndim is None:
        spatial_ndim = array.ndim
    index = tuple(slice(0, n - n % 2) for n in array.shape[:spatial_ndim])
    return array[index]


def corner_views(array: np.ndarray, spatial_ndim: int):
    """
    Yield the 2^D shifted, stride-2 views of `array`.

    Offsets are enumerated lexicographically; each axis contributes 0 or 1.
    All views have identical shape, half the input along every spatial axis.
    """
    for offset in itertools.product((0, 1), repeat=spatial_ndim):
        yield array[tuple(slice(o, None, 2) for o in offset)]


def box_downsample(array: np.ndarray, accumulator: Optional[PixelAccumulator] = None) -> np.ndarray:
    """
    Halve `array` along every spatial axis by averaging 2^D neighborhoods.

    Parameters
    ----------
    array : np.ndarray
        Input grid. Trailing axes owned by the accumulator's pixel shape
        (e.g. a channel axis) are not downsampled.
    accumulator : PixelAccumulator, optional
        Accumulation strategy; all-spatial numeric (`accumulator_for(array)`)
        when omitted. Pass one explicitly for channel-last or packed pixels.

    Returns
    -------
    np.ndarray
        Downsampled grid in the stored pixel type.

    Raises
    ------
    ConfigurationError
        If any spatial axis has odd or zero length. Callers crop beforehand
        (see `crop_even`).
    """
    array = np.asarray(array)
    if accumulator is None:
        accumulator = accumulator_for(array)
    spatial_ndim = array.ndim - accumulator.pixel_ndim
    _check_even(array.shape[:spatial_ndim])

    out_shape = tuple(n // 2 for n in array.shape[:spatial_ndim]) + array.shape[spatial_ndim:]
    acc = accumulator.zeros(out_shape)
    for view in corner_views(array, spatial_ndim):
        accumulator.add(acc, view)
    accumulator.scale(acc, 1.0 / (1 << spatial_ndim))
    return accumulator.from_accumulator(acc)


def _quad_sum(a: np.ndarray) -> np.ndarray:
    return (
        a[0::2, 0::2].astype(np.uint32)
        + a[0::2, 1::2]
        + a[1::2, 0::2]
        + a[1::2, 1::2]
    )


def downsample_bytes(array: np.ndarray) -> np.ndarray:
    """2x2 mean of an 8-bit grayscale tile, truncating."""
    array = np.asarray(array)
    if array.ndim != 2 or array.dtype != np.uint8:
        raise ConfigurationError(
            f"downsample_bytes expects a 2D uint8 array, got {array.dtype} {array.shape}"
        )
    _check_even(array.shape)
    return (_quad_sum(array) // 4).astype(np.uint8)


def downsample_channels(array: np.ndarray) -> np.ndarray:
    """2x2 mean of an 8-bit (H, W, C) tile, truncating each channel."""
    array = np.asarray(array)
    if array.ndim != 3 or array.dtype != np.uint8:
        raise ConfigurationError(
            f"downsample_channels expects an (H, W, C) uint8 array, got {array.dtype} {array.shape}"
        )
    _check_even(array.shape[:2])
    return (_quad_sum(array) // 4).astype(np.uint8)


def downsample_rgb(array: np.ndarray) -> np.ndarray:
    """
    2x2 mean of a packed 0xAARRGGBB tile.

    Red, green and blue are averaged independently with truncation; the
    output is always fully opaque.
    """
    array = np.asarray(array)
    if array.ndim != 2 or array.dtype != np.uint32:
        raise ConfigurationError(
            f"downsample_rgb expects a 2D uint32 array, got {array.dtype} {array.shape}"
        )
    _check_even(array.shape)
    out = np.full((array.shape[0] // 2, array.shape[1] // 2), 0xFF000000, dtype=np.uint32)
    for shift in (16, 8, 0):
        channel = (array >> np.uint32(shift)) & np.uint32(0xFF)
        out |= (_quad_sum(channel) // 4).astype(np.uint32) << np.uint32(shift)
    return out
