"""Tests for Pillow backed decoding and per-channel resizing"""

import io

import numpy as np
import pytest
from PIL import Image

from stalker_bump.core.image_io import decode_raster, load_raster, resize_raster
from stalker_bump.core.raster import Raster, MONO, RGB, RGBA


def test_load_rgb_png_as_rgba(save_png):
    pixels = np.zeros((4, 8, 3), dtype=np.uint8)
    pixels[1, 2] = (10, 20, 30)
    raster = load_raster(save_png("rgb.png", pixels), RGBA)
    assert raster.dimensions == (8, 4)
    assert raster.pixel(2, 1) == (10, 20, 30, 255)


def test_load_rgb_png_as_mono(save_png):
    pixels = np.full((4, 4, 3), (10, 20, 30), dtype=np.uint8)
    raster = load_raster(save_png("gloss.png", pixels), MONO)
    assert raster.channels == MONO
    assert raster.pixel(0, 0) == (18,)


def test_load_greyscale_keeps_value(save_png):
    raster = load_raster(save_png("height.png", np.full((4, 4), 99, dtype=np.uint8)), MONO)
    assert raster.pixel(3, 3) == (99,)


def test_load_rgba_keeps_alpha(save_png):
    raster = load_raster(save_png("n.png", np.full((4, 4, 4), (1, 2, 3, 4), dtype=np.uint8)), RGBA)
    assert raster.pixel(0, 0) == (1, 2, 3, 4)


def test_sixteen_bit_grey_keeps_high_byte():
    img = Image.fromarray(np.full((4, 4), 0x8040, dtype=np.uint16))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    assert decode_raster(buf.getvalue(), MONO).pixel(0, 0) == (0x80,)


def test_garbage_decodes_to_empty():
    assert decode_raster(b"definitely not an image", RGBA).empty()


def test_missing_file_is_empty(tmp_path):
    assert load_raster(tmp_path / "missing.png", MONO).empty()


def test_oversized_image_decodes_to_empty(monkeypatch):
    buf = io.BytesIO()
    Image.fromarray(np.zeros((16, 16, 3), dtype=np.uint8)).save(buf, format="PNG")
    # twice the pixel limit is a hard error in Pillow
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 10)
    assert decode_raster(buf.getvalue(), RGBA).empty()


class TestResize:

    def test_dimensions(self):
        out = resize_raster(Raster(16, 8, RGB, fill=(1, 2, 3)), 4, 2)
        assert out.dimensions == (4, 2)
        assert out.channels == RGB

    def test_uniform_stays_uniform(self):
        out = resize_raster(Raster(32, 32, MONO, fill=77), 8, 8)
        assert np.abs(out.pixels.astype(int) - 77).max() <= 1

    def test_alpha_does_not_weight_color(self):
        rng = np.random.default_rng(7)
        pixels = np.empty((32, 32, 4), dtype=np.uint8)
        pixels[..., :3] = (200, 100, 50)
        pixels[..., 3] = rng.integers(0, 256, size=(32, 32), dtype=np.uint8)
        out = resize_raster(Raster.from_array(pixels), 8, 8)
        np.testing.assert_allclose(out.pixels[..., :3].astype(int),
                                   np.broadcast_to([200, 100, 50], (8, 8, 3)), atol=1)

    def test_empty_source(self):
        with pytest.raises(ValueError):
            resize_raster(Raster.empty_raster(), 4, 4)
