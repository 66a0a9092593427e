"""
Mip chain generation.

Levels halve in both dimensions but never go below MIN_MIP_SIZE (the
compressed block size). Level count is floor(log2(max(width, height))).

Each level is resampled from a source at most three levels above it
(``max(0, i - 3)``) instead of the previous level. That limits blur from
repeated halving while keeping the number of large resizes low.
"""

from typing import Callable, List, Optional, Tuple

import numpy as np

from .image_io import resize_raster
from .raster import Raster
from .utils import log2_floor


MIN_MIP_SIZE = 4
SOURCE_LOOKBACK = 3


def mip_count(width: int, height: int) -> int:
    """Number of mip levels generated for a base of width x height."""
    return log2_floor(max(width, height))


def mip_dimensions(width: int, height: int) -> List[Tuple[int, int]]:
    """Dimensions of every level, level 0 first."""
    dims = []
    mip_w, mip_h = width, height
    for _ in range(mip_count(width, height)):
        dims.append((mip_w, mip_h))
        mip_w = max(mip_w // 2, MIN_MIP_SIZE)
        mip_h = max(mip_h // 2, MIN_MIP_SIZE)
    return dims


def mip_source_level(level: int) -> int:
    return max(0, level - SOURCE_LOOKBACK)


def renormalize(pixels: np.ndarray) -> np.ndarray:
    """
    Restore unit length to normals encoded in the first three channels.

    Channels beyond the third are copied unchanged.

    Args:
        pixels: (..., 3|4) uint8 array

    Returns:
        New uint8 array of the same shape
    """
    xyz = np.clip(pixels[..., :3].astype(np.float32) / 255.0, 0.0, 1.0) * 2.0 - 1.0
    length = np.sqrt(np.sum(xyz * xyz, axis=-1, keepdims=True))
    inv_length = 1.0 / np.maximum(length, np.float32(1e-8))
    xyz *= inv_length

    out = pixels.copy()
    out[..., :3] = np.clip((xyz * 0.5 + 0.5) * 255.0, 0.0, 255.0).astype(np.uint8)
    return out


def make_mip(src: Raster, width: int, height: int, normalize: bool = False) -> Raster:
    """Resize ``src`` into a new level, renormalizing vectors for normal maps."""
    mip = resize_raster(src, width, height)
    if normalize and mip.channels >= 3:
        mip = Raster.from_array(renormalize(mip.pixels))
    return mip


def build_mip_chain(base: Raster, normalize: bool = False,
                    progress_callback: Optional[Callable[[int, int], None]] = None) -> List[Raster]:
    """
    Build the full mip chain for ``base``.

    Args:
        base: Level 0. It is placed in the chain as-is, not copied.
        normalize: Treat RGB as encoded unit vectors and renormalize every
                   generated level. Never set this for scalar maps.
        progress_callback: Optional callable(current, total) called per generated level

    Returns:
        List of rasters, level 0 first
    """
    if base.empty():
        raise ValueError("Cannot build mipmaps for an empty raster")
    if base.width < MIN_MIP_SIZE or base.height < MIN_MIP_SIZE:
        raise ValueError(f"Base level {base.width}x{base.height} is smaller than {MIN_MIP_SIZE}x{MIN_MIP_SIZE}")

    dims = mip_dimensions(base.width, base.height)
    mips = [base]
    total = len(dims)

    for i in range(1, total):
        mip_w, mip_h = dims[i]
        mips.append(make_mip(mips[mip_source_level(i)], mip_w, mip_h, normalize))
        if progress_callback:
            progress_callback(i, total - 1)

    return mips
