"""Run settings shared by the export and scaling stages."""

import dataclasses
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .addressing import validate_pattern
from .codec import TileCodec
from .constants import (
    DEFAULT_BACKGROUND,
    DEFAULT_FORMAT,
    DEFAULT_PIXEL_TYPE,
    DEFAULT_QUALITY,
    DEFAULT_TILE_PATTERN,
    DEFAULT_TILE_SIZE,
    DEFAULT_WORKERS,
)
from .errors import ConfigurationError
from .store import TileStore

logger = logging.getLogger(__name__)


@dataclass
class TileSettings:
    tile_width: int = DEFAULT_TILE_SIZE[0]
    tile_height: int = DEFAULT_TILE_SIZE[1]
    format: str = DEFAULT_FORMAT
    quality: float = DEFAULT_QUALITY
    pixel_type: str = DEFAULT_PIXEL_TYPE
    base_path: Optional[str] = None
    pattern: str = DEFAULT_TILE_PATTERN
    background: int = DEFAULT_BACKGROUND
    workers: int = DEFAULT_WORKERS
    fail_fast: bool = True

    def validate(self) -> "TileSettings":
        """
        Check every setting, raising `ConfigurationError` on the first bad one.
        """
        if int(self.tile_width) <= 0 or int(self.tile_height) <= 0:
            raise ConfigurationError(
                f"Tile size must be positive, got {self.tile_width}x{self.tile_height}"
            )
        if int(self.workers) < 1:
            raise ConfigurationError(f"Workers must be at least 1, got {self.workers}")
        validate_pattern(self.pattern)
        # format, quality and pixel type are checked by the codec
        self.codec()
        return self

    def codec(self) -> TileCodec:
        return TileCodec(self.format, self.quality, self.pixel_type)

    def store(self, base_path: Union[str, Path, None] = None) -> TileStore:
        base = base_path if base_path is not None else self.base_path
        if base is None:
            raise ConfigurationError("No base path configured for the tile store")
        return TileStore(base, self.pattern, self.codec())

    def replace(self, **changes) -> "TileSettings":
        """Copy with the non-None `changes` applied."""
        return dataclasses.replace(self, **{k: v for k, v in changes.items() if v is not None})


def load_settings(path: Union[str, Path], base: Optional[TileSettings] = None) -> TileSettings:
    """
    Read a JSON object of settings and merge it over `base` (or the defaults).

    Raises
    ------
    FileNotFoundError
        If `path` does not exist.
    ConfigurationError
        If the file is not a JSON object, holds unknown keys or invalid
        values.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Settings file '{path}' does not exist")
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Malformed settings file '{path}': {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file '{path}' must hold a JSON object")

    known = {f.name for f in dataclasses.fields(TileSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown setting(s) in '{path}': {', '.join(unknown)}")

    settings = dataclasses.replace(base if base is not None else TileSettings(), **data)
    logger.info(f"Loaded settings from {path}")
    return settings.validate()
