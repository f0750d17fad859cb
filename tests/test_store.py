import numpy as np
import pytest

from tilestack.addressing import TileAddress
from tilestack.codec import TileCodec, pack_argb, unpack_argb
from tilestack.errors import ConfigurationError, TileReadError, TileWriteError
from tilestack.store import TileStore


def test_path_follows_pattern_and_extension(tmp_path):
    store = TileStore(tmp_path, codec=TileCodec("jpeg"))
    assert store.path(TileAddress(1, 4, 2, 3)) == tmp_path / "4" / "2_3_1.jpg"

    store = TileStore(tmp_path, "<s>/<z>/<r>/<c>", TileCodec("tiff"))
    assert store.path(TileAddress(1, 4, 2, 3)) == tmp_path / "1" / "4" / "2" / "3.tif"


def test_bad_pattern_rejected(tmp_path):
    with pytest.raises(ConfigurationError):
        TileStore(tmp_path, "<z>/<r>_<c>")


def test_gray_round_trip_is_exact(gray_store):
    tile = np.arange(64, dtype=np.uint8).reshape(8, 8)
    address = TileAddress(0, 0, 1, 2)
    path = gray_store.write(address, tile)
    assert path.name == "1_2_0.png"
    assert gray_store.exists(address)
    np.testing.assert_array_equal(gray_store.read(address), tile)
    assert not list(path.parent.glob("*.tmp"))


def test_absent_tile_reads_as_none(gray_store):
    assert gray_store.read(TileAddress(0, 0, 5, 5)) is None
    assert not gray_store.exists(TileAddress(0, 0, 5, 5))


def test_undecodable_tile_raises_with_address(gray_store):
    address = TileAddress(0, 2, 0, 1)
    path = gray_store.path(address)
    path.parent.mkdir(parents=True)
    path.write_bytes(b"not a png")
    with pytest.raises(TileReadError) as err:
        gray_store.read(address)
    assert err.value.address == address
    assert err.value.path == str(path)
    assert "s=0, z=2, r=0, c=1" in str(err.value)


def test_write_failure_raises_tile_write_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    store = TileStore(blocker, codec=TileCodec("png"))
    with pytest.raises(TileWriteError) as err:
        store.write(TileAddress(0, 0, 0, 0), np.zeros((4, 4, 3), np.uint8))
    assert err.value.address == TileAddress(0, 0, 0, 0)


def test_rgb_store_expands_gray_tiles(rgb_store):
    address = TileAddress(0, 0, 0, 0)
    rgb_store.write(address, np.full((4, 4), 9, dtype=np.uint8))
    tile = rgb_store.read(address)
    assert tile.shape == (4, 4, 3)
    assert (tile == 9).all()


def test_packed_argb_is_unpacked():
    packed = np.full((2, 2), 0x80102030, dtype=np.uint32)
    rgb = unpack_argb(packed)
    np.testing.assert_array_equal(rgb[0, 0], [0x10, 0x20, 0x30])
    assert int(pack_argb(rgb)[0, 0]) == 0xFF102030

    codec = TileCodec("png", pixel_type="rgb")
    decoded = codec.decode(codec.encode(packed))
    np.testing.assert_array_equal(decoded, rgb)


def test_jpeg_quality_and_validation():
    tile = np.full((16, 16, 3), 128, dtype=np.uint8)
    small = TileCodec("jpg", quality=0.1).encode(tile)
    assert small[:2] == b"\xff\xd8"
    with pytest.raises(ConfigurationError):
        TileCodec("jpg", quality=1.5)
    with pytest.raises(ConfigurationError):
        TileCodec("bmp")
    with pytest.raises(ConfigurationError):
        TileCodec("png", pixel_type="cmyk")


def test_jpeg_needs_bytes():
    codec = TileCodec("jpg", pixel_type="gray")
    with pytest.raises(ConfigurationError):
        codec.encode(np.zeros((4, 4), dtype=np.uint16))


def test_tif_keeps_wide_dtypes(tmp_path):
    store = TileStore(tmp_path, codec=TileCodec("tif", pixel_type="gray"))
    tile = np.arange(16, dtype=np.uint16).reshape(4, 4) * 1000
    store.write(TileAddress(0, 0, 0, 0), tile)
    out = store.read(TileAddress(0, 0, 0, 0))
    assert out.dtype == np.uint16
    np.testing.assert_array_equal(out, tile)
