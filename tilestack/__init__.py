"""Tile export and scale pyramids for tile-based volume viewers."""

from .addressing import GridRange, Interval, Orientation, TileAddress, tile_name
from .codec import TileCodec
from .config import TileSettings, load_settings
from .errors import (
    ConfigurationError,
    TileError,
    TileReadError,
    TilestackError,
    TileWriteError,
)
from .pyramid import PyramidBuilder
from .report import TileReport
from .store import TileStore
from .tiler import Tiler
from .volume import ArrayVolume, TiffStackVolume, open_volume

__version__ = "0.1.0"
