"""Tile filesystem: addressed reads and writes of encoded tiles."""

import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np

from .addressing import TileAddress, tile_name, validate_pattern
from .codec import TileCodec
from .constants import DEFAULT_TILE_PATTERN
from .errors import ConfigurationError, TileReadError, TileWriteError

logger = logging.getLogger(__name__)


class TileStore:
    """
    Tiles of one stack under `base_path`, named by a tile pattern.

    The path of tile (s, z, r, c) is
    ``base_path / <pattern with s, z, r, c substituted> . <extension>``.
    There is no locking: concurrent writers must target distinct tiles.
    """
    def __init__(
        self,
        base_path: Union[str, Path],
        pattern: str = DEFAULT_TILE_PATTERN,
        codec: Optional[TileCodec] = None,
    ) -> None:
        self.base_path = Path(base_path)
        self.pattern = validate_pattern(pattern)
        self.codec = codec if codec is not None else TileCodec()

    def path(self, address: TileAddress) -> Path:
        name = tile_name(self.pattern, *address)
        return self.base_path / f"{name}.{self.codec.extension}"

    def exists(self, address: TileAddress) -> bool:
        return self.path(address).is_file()

    def read(self, address: TileAddress) -> Optional[np.ndarray]:
        """
        Decode tile `address`.

        Returns
        -------
        np.ndarray or None
            The decoded tile, or None if no file exists for `address`.

        Raises
        ------
        TileReadError
            If the file exists but cannot be read or decoded.
        """
        path = self.path(address)
        try:
            data = self.codec.read(path)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise TileReadError(f"Failed to read tile: {e}", address, path) from e
        try:
            return self.codec.decode(data)
        except (OSError, ValueError) as e:
            raise TileReadError(f"Failed to decode tile: {e}", address, path) from e

    def write(self, address: TileAddress, buffer: np.ndarray) -> Path:
        path = self.path(address)
        try:
            self.codec.write(self.codec.encode(buffer), path)
        except ConfigurationError:
            raise
        except (OSError, ValueError) as e:
            raise TileWriteError(f"Failed to write tile: {e}", address, path) from e
        return path
