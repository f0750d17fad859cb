import dask.array as da
import numpy as np
import pytest

from tilestack.accumulator import NumericAccumulator
from tilestack.downsample import (
    box_downsample,
    corner_views,
    crop_even,
    downsample_bytes,
    downsample_channels,
    downsample_rgb,
)
from tilestack.errors import ConfigurationError


def test_matches_block_mean_on_floats():
    rng = np.random.default_rng(0)
    base = rng.random((8, 6))
    expected = da.coarsen(np.mean, da.from_array(base), {0: 2, 1: 2}).compute()
    np.testing.assert_allclose(box_downsample(base), expected)


def test_matches_block_mean_in_three_dimensions():
    base = np.arange(4 * 6 * 8, dtype=float).reshape(4, 6, 8)
    expected = da.coarsen(np.mean, da.from_array(base), {0: 2, 1: 2, 2: 2}).compute()
    out = box_downsample(base, NumericAccumulator(np.float64))
    assert out.shape == (2, 3, 4)
    np.testing.assert_allclose(out, expected)


def test_each_pixel_is_rounded_mean_of_its_neighborhood():
    rng = np.random.default_rng(1)
    base = rng.integers(0, 256, size=(6, 10), dtype=np.uint8)
    out = box_downsample(base)
    for i in range(3):
        for j in range(5):
            block = base[2 * i:2 * i + 2, 2 * j:2 * j + 2].astype(float)
            assert out[i, j] == np.floor(block.mean() + 0.5)


@pytest.mark.parametrize("shape", [(2, 2, 3), (6, 4, 3), (16, 10, 3)])
def test_uniform_color_stays_uniform(shape):
    base = np.empty(shape, dtype=np.uint8)
    base[...] = (10, 200, 33)
    out = box_downsample(base, NumericAccumulator(np.uint8, channels=True))
    assert out.shape == (shape[0] // 2, shape[1] // 2, 3)
    assert (out == (10, 200, 33)).all()


@pytest.mark.parametrize("shape", [(3, 4), (4, 5), (0, 4)])
def test_odd_or_empty_axes_rejected(shape):
    with pytest.raises(ConfigurationError):
        box_downsample(np.zeros(shape))


def test_default_layout_treats_every_axis_as_spatial():
    out = box_downsample(np.zeros((8, 8, 4)))
    assert out.shape == (4, 4, 2)

    # a trailing axis of length 3 is an odd spatial axis, not RGB
    with pytest.raises(ConfigurationError):
        box_downsample(np.zeros((6, 6, 3), np.uint8))


def test_default_layout_averages_uint32_as_numbers():
    base = np.array([[0, 256], [0, 0]], dtype=np.uint32)
    np.testing.assert_array_equal(box_downsample(base), [[64]])


def test_crop_even_drops_last_row_and_column():
    base = np.arange(35).reshape(5, 7)
    cropped = crop_even(base)
    assert cropped.shape == (4, 6)
    np.testing.assert_array_equal(cropped, base[:4, :6])
    assert box_downsample(cropped).shape == (2, 3)


def test_crop_even_leaves_channel_axis():
    assert crop_even(np.zeros((5, 5, 3)), spatial_ndim=2).shape == (4, 4, 3)


def test_corner_views_are_lexicographic():
    base = np.arange(16).reshape(4, 4)
    firsts = [int(v[0, 0]) for v in corner_views(base, 2)]
    assert firsts == [0, 1, 4, 5]


def test_bytes_fast_path_truncates():
    base = np.array([[1, 2], [2, 2]], dtype=np.uint8)
    np.testing.assert_array_equal(downsample_bytes(base), [[1]])
    np.testing.assert_array_equal(box_downsample(base), [[2]])


def test_bytes_fast_path_rejects_wrong_input():
    with pytest.raises(ConfigurationError):
        downsample_bytes(np.zeros((4, 4), np.uint16))
    with pytest.raises(ConfigurationError):
        downsample_bytes(np.zeros((4, 3), np.uint8))


def test_channels_fast_path():
    base = np.zeros((2, 2, 3), dtype=np.uint8)
    base[..., 0] = [[255, 255], [255, 254]]
    base[..., 2] = 8
    out = downsample_channels(base)
    np.testing.assert_array_equal(out, [[[254, 0, 8]]])


def test_rgb_fast_path_forces_opaque_alpha():
    base = np.array(
        [[0x00102030, 0x00102030],
         [0x00203040, 0x00203040]],
        dtype=np.uint32,
    )
    assert int(downsample_rgb(base)[0, 0]) == 0xFF182838


def test_rgb_fast_path_truncates_each_channel():
    base = np.array([[0xFF000001, 0xFF000001], [0xFF000001, 0xFF000000]], dtype=np.uint32)
    assert int(downsample_rgb(base)[0, 0]) == 0xFF000000
