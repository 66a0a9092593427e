"""Tests for the raster buffer and the shared utilities"""

from pathlib import Path

import numpy as np
import pytest

from stalker_bump.core.raster import Raster, MONO, RGB, RGBA
from stalker_bump.core.utils import (
    format_size,
    format_time,
    is_power_of_two,
    log2_floor,
    normalize_format,
    resolve_output_base,
    with_suffix_name,
)


class TestRaster:

    def test_default_is_rgba_zero_filled(self):
        r = Raster(4, 2)
        assert r.channels == RGBA
        assert r.pixels.shape == (2, 4, 4)
        assert not r.pixels.any()

    def test_fill_value_per_channel(self):
        r = Raster(3, 3, RGBA, fill=(1, 2, 3, 4))
        assert r.pixel(2, 1) == (1, 2, 3, 4)

    def test_pixel_addressing_is_row_major(self):
        r = Raster(5, 3, MONO)
        r.pixels[2, 4, 0] = 99
        assert r.pixel(4, 2) == (99,)
        assert r.flat()[2 * 5 + 4, 0] == 99

    def test_empty(self):
        assert Raster(0, 0).empty()
        assert Raster.empty_raster(MONO).empty()
        assert not Raster(1, 1).empty()

    def test_invalid_channels(self):
        with pytest.raises(ValueError):
            Raster(4, 4, 2)

    def test_shape_mismatch(self):
        with pytest.raises(ValueError):
            Raster(4, 4, RGB, pixels=np.zeros((4, 4, 4), dtype=np.uint8))

    def test_from_array_2d_is_mono(self):
        r = Raster.from_array(np.zeros((8, 16), dtype=np.uint8))
        assert r.channels == MONO
        assert r.dimensions == (16, 8)

    def test_from_array_rejects_other_dtypes(self):
        with pytest.raises(ValueError):
            Raster.from_array(np.zeros((4, 4, 4), dtype=np.float32))

    def test_copy_is_independent(self):
        r = Raster(2, 2, MONO, fill=7)
        c = r.copy()
        c.pixels[0, 0, 0] = 0
        assert r.pixel(0, 0) == (7,)
        assert c.same_dimensions(r)

    def test_nbytes(self):
        assert Raster(4, 4, RGB).nbytes == 48


class TestUtils:

    @pytest.mark.parametrize("n,expected", [
        (1, True), (2, True), (4, True), (1024, True),
        (0, False), (3, False), (6, False), (-4, False),
    ])
    def test_is_power_of_two(self, n, expected):
        assert is_power_of_two(n) is expected

    @pytest.mark.parametrize("n,expected", [(1, 0), (2, 1), (4, 2), (5, 2), (256, 8), (1023, 9)])
    def test_log2_floor(self, n, expected):
        assert log2_floor(n) == expected

    def test_format_size(self):
        assert format_size(512) == "512.00 B"
        assert format_size(2048) == "2.00 KB"

    def test_format_time(self):
        assert format_time(1.5) == "1.50s"
        assert format_time(90) == "1m 30.0s"
        assert format_time(3725) == "1h 2m 5s"

    def test_normalize_format(self):
        assert normalize_format('BC3_UNORM') == 'BC3/DXT5'
        assert normalize_format('UNKNOWN') == 'UNKNOWN'

    def test_output_base_defaults_to_source(self):
        assert resolve_output_base(Path("textures/wall.png")) == Path("textures/wall")

    def test_output_base_directory_uses_stem(self, tmp_path):
        assert resolve_output_base(Path("src/wall.tga"), tmp_path) == tmp_path / "wall"

    def test_output_base_prefix_is_kept(self, tmp_path):
        prefix = tmp_path / "brick"
        assert resolve_output_base(Path("wall.png"), prefix) == prefix

    def test_with_suffix_name(self):
        assert with_suffix_name(Path("a/wall"), "_bump#") == Path("a/wall_bump#.dds")
