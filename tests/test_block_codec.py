"""Tests for the DXT5 block decoder and the three encoder strategies"""

import struct

import numpy as np
import pytest

from stalker_bump.core.block_codec import (
    ApproxMode,
    CodecConfig,
    CompressionQuality,
    compress_raster,
    compressed_size,
    decode_blocks,
    decompress_raster,
    encode_blocks,
    extract_blocks,
)
from stalker_bump.core.raster import Raster, RGB, RGBA


def make_block(a0, a1, alpha_idx, c0, c1, color_idx):
    alpha_bits = sum(i << (3 * p) for p, i in enumerate(alpha_idx))
    color_bits = sum(i << (2 * p) for p, i in enumerate(color_idx))
    return bytes([a0, a1]) + alpha_bits.to_bytes(6, 'little') + struct.pack('<HHI', c0, c1, color_bits)


def decode_one(block, **kwargs):
    return decode_blocks(np.frombuffer(block, dtype=np.uint8), **kwargs)[0]


RED = 0xF800    # (248, 0, 0)
BLUE = 0x001F   # (0, 0, 248)


class TestDecoder:

    def test_eight_value_alpha_ramp(self):
        block = make_block(200, 100, list(range(8)) * 2, 0, 0, [0] * 16)
        np.testing.assert_array_equal(decode_one(block)[:8, 3],
                                      [200, 100, 185, 171, 157, 142, 128, 114])

    def test_six_value_alpha_ramp(self):
        block = make_block(100, 200, list(range(8)) * 2, 0, 0, [0] * 16)
        np.testing.assert_array_equal(decode_one(block)[:8, 3],
                                      [100, 200, 120, 140, 160, 180, 0, 255])

    def test_equal_alpha_endpoints_use_six_value_ramp(self):
        block = make_block(50, 50, [0, 6, 7, 3] * 4, 0, 0, [0] * 16)
        np.testing.assert_array_equal(decode_one(block)[:4, 3], [50, 0, 255, 50])

    def test_color_palette_thirds(self):
        block = make_block(255, 255, [0] * 16, RED, BLUE, [0, 1, 2, 3] * 4)
        np.testing.assert_array_equal(decode_one(block)[:4, :3], [
            [248, 0, 0],
            [0, 0, 248],
            [165, 0, 83],
            [83, 0, 165],
        ])

    def test_green_expands_by_shift(self):
        block = make_block(255, 255, [0] * 16, 0x07E0, 0x0000, [0] * 16)
        np.testing.assert_array_equal(decode_one(block)[0], [0, 252, 0, 255])

    def test_four_colors_forced_when_c0_not_greater(self):
        block = make_block(255, 255, [0] * 16, BLUE, RED, [2, 3] * 8)
        np.testing.assert_array_equal(decode_one(block)[:2, :3], [[83, 0, 165], [165, 0, 83]])

    def test_three_color_mode_when_not_forced(self):
        block = make_block(255, 255, [0] * 16, BLUE, RED, [2, 3] * 8)
        np.testing.assert_array_equal(decode_one(block, force_four_color=False)[:2, :3],
                                      [[124, 0, 124], [0, 0, 0]])

    def test_pixels_are_row_major(self):
        color_idx = [0] * 16
        color_idx[1 * 4 + 2] = 1  # x=2, y=1
        data = make_block(255, 255, [0] * 16, RED, BLUE, color_idx) * 2
        raster = decompress_raster(data, 8, 4)
        assert raster.pixel(2, 1) == (0, 0, 248, 255)
        assert raster.pixel(6, 1) == (0, 0, 248, 255)
        assert raster.pixel(1, 2) == (248, 0, 0, 255)

    def test_partial_blocks_are_cropped(self):
        data = make_block(9, 9, [0] * 16, RED, RED, [0] * 16) * 4
        raster = decompress_raster(data, 6, 6)
        assert raster.dimensions == (6, 6)
        assert raster.pixel(5, 5) == (248, 0, 0, 9)

    def test_wrong_length(self):
        with pytest.raises(ValueError):
            decompress_raster(b"\x00" * 15, 4, 4)


def uniform_raster(color, size=8):
    return Raster(size, size, RGBA, fill=color)


@pytest.fixture
def random_blocks():
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, size=(64, 16, 4), dtype=np.uint8)


def block_errors(blocks, quality):
    decoded = decode_blocks(encode_blocks(blocks, quality)).astype(np.int64)
    diff = decoded - blocks.astype(np.int64)
    return (diff[..., :3] ** 2).sum(axis=(1, 2)), (diff[..., 3] ** 2).sum(axis=1)


@pytest.mark.parametrize("quality", list(CompressionQuality))
class TestEncoders:

    def test_output_size(self, quality):
        data = compress_raster(uniform_raster((1, 2, 3, 4), 16), quality)
        assert len(data) == compressed_size(16, 16) == 256

    def test_uniform_block_within_quantization(self, quality):
        raster = uniform_raster((100, 150, 200, 77))
        decoded = decompress_raster(compress_raster(raster, quality), 8, 8)
        diff = np.abs(decoded.pixels.astype(int) - raster.pixels.astype(int))
        assert diff[..., 0].max() <= 4
        assert diff[..., 1].max() <= 2
        assert diff[..., 2].max() <= 4
        assert diff[..., 3].max() == 0

    def test_color_endpoints_ordered(self, quality, random_blocks):
        encoded = encode_blocks(random_blocks, quality)
        c0 = encoded[:, 8].astype(int) | (encoded[:, 9].astype(int) << 8)
        c1 = encoded[:, 10].astype(int) | (encoded[:, 11].astype(int) << 8)
        assert np.all(c0 >= c1)

    def test_not_worse_than_fast(self, quality, random_blocks):
        fast_color, fast_alpha = block_errors(random_blocks, CompressionQuality.FAST)
        color, alpha = block_errors(random_blocks, quality)
        assert np.all(color <= fast_color)
        assert np.all(alpha <= fast_alpha)

    def test_smooth_gradient_within_one_step(self, quality):
        y, x = np.mgrid[0:4, 0:4]
        t = (x + y).reshape(-1)
        block = np.stack([96 + 2 * t, 60 + t, 140 + 2 * t, 100 + 10 * t], axis=-1).astype(np.uint8)
        decoded = decode_blocks(encode_blocks(block[np.newaxis], quality))[0]
        diff = np.abs(decoded.astype(int) - block.astype(int))
        # one 5 bit step for red and blue, one 6 bit step for green
        assert diff[:, 0].max() <= 8
        assert diff[:, 1].max() <= 4
        assert diff[:, 2].max() <= 8
        assert diff[:, 3].max() <= 8

    def test_alpha_gradient(self, quality):
        blocks = np.zeros((1, 16, 4), dtype=np.uint8)
        blocks[0, :, 3] = np.arange(16) * 17
        _, alpha = block_errors(blocks, quality)
        # nearest entries of the full 0..255 eight value ramp
        assert alpha[0] <= 1660

    def test_ideal_mode_produces_valid_blocks(self, quality, random_blocks):
        config = CodecConfig(approx_mode=ApproxMode.IDEAL)
        assert encode_blocks(random_blocks, quality, config).shape == (64, 16)


def test_chunking_does_not_change_output(random_blocks):
    whole = encode_blocks(random_blocks, CompressionQuality.HIGH)
    chunked = encode_blocks(random_blocks, CompressionQuality.HIGH, CodecConfig(chunk_blocks=5))
    np.testing.assert_array_equal(whole, chunked)


def test_quality_accepts_plain_int(random_blocks):
    np.testing.assert_array_equal(encode_blocks(random_blocks, 1),
                                  encode_blocks(random_blocks, CompressionQuality.NORMAL))


def test_extract_blocks_order():
    pixels = np.zeros((4, 8, 4), dtype=np.uint8)
    pixels[:, 4:] = 255
    blocks = extract_blocks(Raster.from_array(pixels))
    assert blocks.shape == (2, 16, 4)
    assert not blocks[0].any()
    assert np.all(blocks[1] == 255)


def test_compress_requires_rgba():
    with pytest.raises(ValueError):
        compress_raster(Raster(4, 4, RGB))


def test_compress_requires_block_multiple():
    with pytest.raises(ValueError):
        compress_raster(Raster(6, 4, RGBA))


def test_compress_empty():
    assert compress_raster(Raster(0, 0, RGBA)) == b""


def test_codec_config_dict_round_trip():
    config = CodecConfig(approx_mode=ApproxMode.IDEAL, refine_iterations=2, chunk_blocks=64)
    assert CodecConfig.from_dict(config.to_dict()) == config
