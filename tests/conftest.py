import numpy as np
import pytest

from tilestack.addressing import TileAddress
from tilestack.codec import TileCodec
from tilestack.store import TileStore


@pytest.fixture
def gray_store(tmp_path):
    """Lossless grayscale tile store under a temporary directory."""
    return TileStore(tmp_path / "tiles", codec=TileCodec("png", pixel_type="gray"))


@pytest.fixture
def rgb_store(tmp_path):
    return TileStore(tmp_path / "tiles", codec=TileCodec("png", pixel_type="rgb"))


def write_grid(store, rows, cols, size=8, z=0, value=None):
    """
    Write a rows×cols grid of level 0 gray tiles.

    Tile (r, c) is filled with `value`, or with r * 10 + c when omitted.
    """
    for r in range(rows):
        for c in range(cols):
            fill = value if value is not None else r * 10 + c
            store.write(TileAddress(0, z, r, c), np.full((size, size), fill, dtype=np.uint8))
