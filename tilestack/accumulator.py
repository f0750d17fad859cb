"""
Pixel accumulators for box downsampling.

An accumulator converts stored pixels into a wider numeric space where several
samples can be summed without overflow, and converts the averaged result back
to the stored representation. The accumulator owns the rounding rule.
"""

from typing import Tuple

import numpy as np

from .errors import ConfigurationError


class PixelAccumulator:
    """
    Capability set used by the generic downsampler.

    Attributes
    ----------
    pixel_ndim : int
        Number of trailing array axes that belong to a single pixel
        (0 for scalar pixels, 1 for channel-last pixels).
    """
    pixel_ndim = 0

    def zeros(self, shape: Tuple[int, ...]) -> np.ndarray:
        """Return a zeroed accumulation buffer for a stored output array of `shape`."""
        raise NotImplementedError

    def to_accumulator(self, pixels: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def from_accumulator(self, values: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def add(self, acc: np.ndarray, pixels: np.ndarray) -> np.ndarray:
        """Add stored `pixels` into `acc` in place and return it."""
        acc += self.to_accumulator(pixels)
        return acc

    def scale(self, acc: np.ndarray, factor: float) -> np.ndarray:
        acc *= factor
        return acc


class NumericAccumulator(PixelAccumulator):
    """
    Accumulates any numeric dtype in float64.

    Integer storage is restored by rounding half up and clipping to the range
    of the dtype; float storage is cast directly.
    """
    def __init__(self, dtype, channels: bool = False) -> None:
        self.dtype = np.dtype(dtype)
        if self.dtype.kind not in "uif":
            raise ConfigurationError(f"Unsupported pixel dtype {self.dtype}")
        self.channels = channels
        self.pixel_ndim = 1 if channels else 0

    def zeros(self, shape: Tuple[int, ...]) -> np.ndarray:
        return np.zeros(shape, dtype=np.float64)

    def to_accumulator(self, pixels: np.ndarray) -> np.ndarray:
        return np.asarray(pixels, dtype=np.float64)

    def from_accumulator(self, values: np.ndarray) -> np.ndarray:
        if self.dtype.kind == "f":
            return values.astype(self.dtype)
        info = np.iinfo(self.dtype)
        rounded = np.floor(values + 0.5)
        return np.clip(rounded, info.min, info.max).astype(self.dtype)


class PackedRGBAccumulator(PixelAccumulator):
    """
    Accumulator for packed 32-bit ARGB pixels (0xAARRGGBB).

    Each pixel is unpacked into four float64 channels so that summing many
    samples cannot carry from one channel into the next.
    """
    SHIFTS = (24, 16, 8, 0)

    def zeros(self, shape: Tuple[int, ...]) -> np.ndarray:
        return np.zeros(tuple(shape) + (4,), dtype=np.float64)

    def to_accumulator(self, pixels: np.ndarray) -> np.ndarray:
        packed = np.asarray(pixels, dtype=np.uint32)
        return np.stack(
            [((packed >> shift) & 0xFF).astype(np.float64) for shift in self.SHIFTS],
            axis=-1,
        )

    def from_accumulator(self, values: np.ndarray) -> np.ndarray:
        channels = np.clip(np.floor(values + 0.5), 0, 255).astype(np.uint32)
        packed = np.zeros(values.shape[:-1], dtype=np.uint32)
        for i, shift in enumerate(self.SHIFTS):
            packed |= channels[..., i] << np.uint32(shift)
        return packed


def accumulator_for(
    array: np.ndarray, channels: bool = False, packed: bool = False
) -> PixelAccumulator:
    """
    Accumulator for `array` with an explicitly chosen pixel layout.

    By default every axis is spatial and values are accumulated in float64.
    `channels` reserves the trailing axis for channels; `packed` reads uint32
    values as 0xAARRGGBB pixels.
    """
    array = np.asarray(array)
    if packed:
        if array.dtype != np.uint32:
            raise ConfigurationError(f"Packed ARGB pixels must be uint32, got {array.dtype}")
        return PackedRGBAccumulator()
    return NumericAccumulator(array.dtype, channels=channels)
