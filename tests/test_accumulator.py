import numpy as np
import pytest

from tilestack.accumulator import NumericAccumulator, PackedRGBAccumulator, accumulator_for
from tilestack.downsample import box_downsample
from tilestack.errors import ConfigurationError


def test_integer_mean_rounds_half_up():
    acc = NumericAccumulator(np.uint8)
    values = np.array([0.25, 0.5, 1.75, 254.5, 300.0])
    np.testing.assert_array_equal(acc.from_accumulator(values), [0, 1, 2, 255, 255])


def test_float_storage_is_not_rounded():
    acc = NumericAccumulator(np.float32)
    out = acc.from_accumulator(np.array([0.25, 1.5]))
    assert out.dtype == np.float32
    np.testing.assert_allclose(out, [0.25, 1.5])


def test_unsupported_dtype_rejected():
    with pytest.raises(ConfigurationError):
        NumericAccumulator(np.bool_)


def test_sum_of_many_bytes_does_not_overflow():
    block = np.full((2, 2), 250, dtype=np.uint8)
    out = box_downsample(block, NumericAccumulator(np.uint8))
    np.testing.assert_array_equal(out, [[250]])


def test_packed_accumulator_averages_channels_independently():
    block = np.array(
        [[0xFF000000, 0xFF0000FF],
         [0xFFFF0000, 0xFF00FF00]],
        dtype=np.uint32,
    )
    out = box_downsample(block, PackedRGBAccumulator())
    # 255 / 4 = 63.75 -> 64 per colour channel
    assert out.dtype == np.uint32
    assert int(out[0, 0]) == 0xFF404040


def test_packed_accumulator_keeps_alpha_as_channel():
    block = np.array([[0x00000000, 0xFF000000], [0xFF000000, 0xFF000000]], dtype=np.uint32)
    out = box_downsample(block, PackedRGBAccumulator())
    # alpha mean 191.25 -> 191
    assert int(out[0, 0]) >> 24 == 191


def test_accumulator_for_uses_the_requested_layout():
    # no layout guessed from dtype or shape
    plain = accumulator_for(np.zeros((4, 4), np.uint32))
    assert isinstance(plain, NumericAccumulator)
    assert plain.pixel_ndim == 0
    assert accumulator_for(np.zeros((4, 4, 3), np.uint8)).pixel_ndim == 0

    assert isinstance(accumulator_for(np.zeros((4, 4), np.uint32), packed=True), PackedRGBAccumulator)
    assert accumulator_for(np.zeros((4, 4, 3), np.uint8), channels=True).pixel_ndim == 1


def test_packed_layout_requires_uint32():
    with pytest.raises(ConfigurationError):
        accumulator_for(np.zeros((4, 4), np.uint8), packed=True)
