"""
Raster buffer: a 2D grid of 8-bit pixels with 1 (mono), 3 (RGB) or 4 (RGBA) channels.

Pixels are stored in a numpy array shaped ``(height, width, channels)`` so the
pixel at ``(x, y)`` lives at flat index ``y * width + x``.
"""

from dataclasses import dataclass, field
from typing import Tuple, Union

import numpy as np


MONO = 1
RGB = 3
RGBA = 4

VALID_CHANNELS = (MONO, RGB, RGBA)

FillValue = Union[int, Tuple[int, ...]]


@dataclass(eq=False)
class Raster:
    """Fixed-size 8-bit raster. A raster with zero pixels marks an absent image."""
    width: int
    height: int
    channels: int = RGBA
    fill: FillValue = 0
    pixels: np.ndarray = field(default=None, repr=False)

    def __post_init__(self):
        if self.channels not in VALID_CHANNELS:
            raise ValueError(f"Unsupported channel count: {self.channels}")
        if self.width < 0 or self.height < 0:
            raise ValueError(f"Invalid raster dimensions: {self.width}x{self.height}")

        if self.pixels is None:
            self.pixels = np.empty((self.height, self.width, self.channels), dtype=np.uint8)
            self.pixels[...] = np.asarray(self.fill, dtype=np.uint8)
        elif self.pixels.shape != (self.height, self.width, self.channels):
            raise ValueError(
                f"Pixel array shape {self.pixels.shape} does not match "
                f"{self.width}x{self.height}x{self.channels}"
            )

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> 'Raster':
        """Wrap an existing uint8 array (2D arrays are treated as mono). No copy is made."""
        if pixels.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels, got {pixels.dtype}")
        if pixels.ndim == 2:
            pixels = pixels[:, :, np.newaxis]
        if pixels.ndim != 3:
            raise ValueError(f"Expected a 2D or 3D pixel array, got {pixels.ndim}D")
        height, width, channels = pixels.shape
        return cls(width, height, channels, pixels=pixels)

    @classmethod
    def empty_raster(cls, channels: int = RGBA) -> 'Raster':
        return cls(0, 0, channels)

    def empty(self) -> bool:
        return self.pixels.size == 0

    @property
    def dimensions(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def nbytes(self) -> int:
        return self.pixels.nbytes

    def same_dimensions(self, other: 'Raster') -> bool:
        return self.width == other.width and self.height == other.height

    def copy(self) -> 'Raster':
        return Raster(self.width, self.height, self.channels, pixels=self.pixels.copy())

    def pixel(self, x: int, y: int) -> Tuple[int, ...]:
        return tuple(int(c) for c in self.pixels[y, x])

    def flat(self) -> np.ndarray:
        """Row-major ``(width*height, channels)`` view."""
        return self.pixels.reshape(-1, self.channels)
