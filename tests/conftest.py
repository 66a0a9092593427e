"""Shared fixtures for the bump packer tests"""

import numpy as np
import pytest
from PIL import Image

from stalker_bump.core import BumpSettings, CompressionQuality, Raster, MONO


FLAT_NORMAL = (128, 128, 255, 255)


@pytest.fixture
def save_png(tmp_path):
    """Write a (h, w) or (h, w, 3|4) uint8 array as PNG under tmp_path and return the path."""
    def _save(name, pixels):
        path = tmp_path / name
        Image.fromarray(np.ascontiguousarray(pixels)).save(path)
        return path
    return _save


@pytest.fixture
def flat_normal():
    return Raster(64, 64, fill=FLAT_NORMAL)


@pytest.fixture
def noisy_normal():
    rng = np.random.default_rng(1234)
    pixels = np.empty((32, 32, 4), dtype=np.uint8)
    pixels[..., :2] = rng.integers(96, 160, size=(32, 32, 2), dtype=np.uint8)
    pixels[..., 2] = 240
    pixels[..., 3] = 255
    return Raster.from_array(pixels)


@pytest.fixture
def gloss_map():
    return Raster(64, 64, MONO, fill=81)


@pytest.fixture
def sequential_settings():
    return BumpSettings(quality=CompressionQuality.FAST, enable_parallel=False)
