"""Tile image encoding, decoding and file writing."""

import io
import logging
import os
from pathlib import Path
from typing import Union

import numpy as np
import tifffile
from PIL import Image

from .constants import DEFAULT_FORMAT, DEFAULT_PIXEL_TYPE, DEFAULT_QUALITY, FORMATS, PIXEL_TYPES
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_PIL_FORMATS = {"jpg": "JPEG", "png": "PNG"}
_PIL_MODES = {"gray": "L", "rgb": "RGB"}


def unpack_argb(packed: np.ndarray) -> np.ndarray:
    """(H, W) uint32 0xAARRGGBB -> (H, W, 3) uint8 RGB."""
    packed = np.asarray(packed, dtype=np.uint32)
    return np.stack(
        [((packed >> np.uint32(shift)) & np.uint32(0xFF)).astype(np.uint8) for shift in (16, 8, 0)],
        axis=-1,
    )


def pack_argb(rgb: np.ndarray) -> np.ndarray:
    """(H, W, 3) uint8 RGB -> opaque (H, W) uint32 0xFFRRGGBB."""
    rgb = np.asarray(rgb, dtype=np.uint32)
    return (
        np.uint32(0xFF000000)
        | (rgb[..., 0] << np.uint32(16))
        | (rgb[..., 1] << np.uint32(8))
        | rgb[..., 2]
    )


class TileCodec:
    """
    Converts tile buffers to and from encoded image files.

    Parameters
    ----------
    format : str
        "jpg"/"jpeg" or "png" (Pillow), "tif"/"tiff" (tifffile).
    quality : float
        JPEG quality in [0, 1]; ignored by the other formats.
    pixel_type : str
        "rgb" or "gray"/"grey": the pixel representation written to disk and
        returned by `decode`.
    """
    def __init__(
        self,
        format: str = DEFAULT_FORMAT,
        quality: float = DEFAULT_QUALITY,
        pixel_type: str = DEFAULT_PIXEL_TYPE,
    ) -> None:
        try:
            self.format = FORMATS[format.lower()]
        except KeyError:
            raise ConfigurationError(
                f"Unsupported tile format '{format}', expected one of {sorted(FORMATS)}"
            ) from None
        try:
            self.pixel_type = PIXEL_TYPES[pixel_type.lower()]
        except KeyError:
            raise ConfigurationError(
                f"Unsupported pixel type '{pixel_type}', expected rgb or gray"
            ) from None
        quality = float(quality)
        if not 0.0 <= quality <= 1.0:
            raise ConfigurationError(f"Quality must be within [0, 1], got {quality}")
        self.quality = quality

    @property
    def extension(self) -> str:
        return self.format

    def convert(self, buffer: np.ndarray) -> np.ndarray:
        """Bring `buffer` into the run's pixel type."""
        buffer = np.asarray(buffer)
        if buffer.dtype == np.uint32 and buffer.ndim == 2:
            buffer = unpack_argb(buffer)
        is_rgb = buffer.ndim == 3
        if (self.pixel_type == "rgb") == is_rgb and (not is_rgb or buffer.shape[-1] == 3):
            return buffer
        if buffer.dtype != np.uint8:
            raise ConfigurationError(
                f"Cannot convert {buffer.dtype} pixels of shape {buffer.shape} to {self.pixel_type}"
            )
        return np.asarray(Image.fromarray(buffer).convert(_PIL_MODES[self.pixel_type]))

    def encode(self, buffer: np.ndarray) -> bytes:
        pixels = self.convert(buffer)
        out = io.BytesIO()
        if self.format == "tif":
            tifffile.imwrite(out, pixels)
            return out.getvalue()
        if pixels.dtype != np.uint8:
            raise ConfigurationError(
                f"{self.format} tiles need 8-bit pixels, got {pixels.dtype}; use tif instead"
            )
        img = Image.fromarray(pixels)
        if self.format == "jpg":
            img.save(out, _PIL_FORMATS["jpg"], quality=int(round(self.quality * 100)))
        else:
            img.save(out, _PIL_FORMATS[self.format])
        return out.getvalue()

    def decode(self, data: bytes) -> np.ndarray:
        if self.format == "tif":
            return self.convert(tifffile.imread(io.BytesIO(data)))
        with Image.open(io.BytesIO(data)) as img:
            return np.array(img.convert(_PIL_MODES[self.pixel_type]))

    def write(self, data: bytes, path: Union[str, Path]) -> None:
        """Write `data` to `path` through a temporary file and an atomic rename."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_bytes(data)
        os.replace(tmp, path)
        logger.debug(f"Wrote {len(data)} bytes to {path}")

    def read(self, path: Union[str, Path]) -> bytes:
        return Path(path).read_bytes()
