"""
Pixel-wise channel transforms used to assemble the bump and bump# textures.

Every function returns a new raster; inputs are never modified.

Layouts produced here:
    bump  - R: gloss, G: normal Z, B: normal Y, A: normal X
    bump# - R/G/B: compression error of normal X/Y/Z (error * 2 + 128), A: height
"""

from typing import Optional

import numpy as np

from .raster import Raster, MONO, RGB, RGBA


OPAQUE = 255
ERROR_BIAS = 128
ERROR_SCALE = 2


def luminance(pixels: np.ndarray) -> np.ndarray:
    """
    Fast integer luminance approximation (2r + 5g + b) / 8.

    Args:
        pixels: (..., 3+) uint8 array, only the first three channels are used

    Returns:
        (...) uint8 array
    """
    rgb = pixels[..., :3].astype(np.uint32)
    lum = (rgb[..., 0] << 1) + ((rgb[..., 1] << 2) + rgb[..., 1]) + rgb[..., 2]
    return ((lum >> 3) & 0xFF).astype(np.uint8)


def convert_pixels(pixels: np.ndarray, channels: int) -> np.ndarray:
    """Convert a (height, width, c) uint8 array between mono, RGB and RGBA."""
    src_channels = pixels.shape[-1]
    if src_channels == channels:
        return pixels.copy()

    if channels == MONO:
        if src_channels not in (RGB, RGBA):
            raise ValueError(f"Cannot convert {src_channels} channels to mono")
        return luminance(pixels)[..., np.newaxis]

    height, width = pixels.shape[:2]
    out = np.empty((height, width, channels), dtype=np.uint8)

    if src_channels == MONO:
        out[..., :3] = pixels[..., :1]
    elif src_channels in (RGB, RGBA):
        out[..., :3] = pixels[..., :3]
    else:
        raise ValueError(f"Unsupported channel count: {src_channels}")

    if channels == RGBA:
        out[..., 3] = OPAQUE
    return out


def convert_raster(raster: Raster, channels: int) -> Raster:
    """Arity conversion between mono, RGB and RGBA rasters."""
    return Raster.from_array(convert_pixels(raster.pixels, channels))


def compress_gloss(gloss: np.ndarray) -> np.ndarray:
    """Square-root gloss encoding, gives more precision to low gloss values."""
    encoded = np.rint(np.sqrt(gloss.astype(np.float32) / 255.0) * 255.0)
    return np.clip(encoded, 0, 255).astype(np.uint8)


def pack_bump(normal: Raster, gloss: Optional[Raster] = None, linear_gloss: bool = False) -> Raster:
    """
    Swizzle a normal mip and a gloss mip into a bump mip.

    Args:
        normal: RGBA normal map level
        gloss: Mono gloss level with the same dimensions, or None/empty to leave gloss at zero
        linear_gloss: Store gloss as-is instead of square-root encoded

    Returns:
        New RGBA raster (R=gloss, G=normal.B, B=normal.G, A=normal.R)
    """
    if normal.channels != RGBA:
        raise ValueError("Normal map level must be RGBA")

    src = normal.pixels
    out = np.empty_like(src)

    if gloss is None or gloss.empty():
        out[..., 0] = 0
    else:
        if not gloss.same_dimensions(normal):
            raise ValueError(
                f"Gloss level {gloss.width}x{gloss.height} does not match "
                f"normal level {normal.width}x{normal.height}"
            )
        values = gloss.pixels[..., 0]
        out[..., 0] = values if linear_gloss else compress_gloss(values)

    out[..., 1] = src[..., 2]
    out[..., 2] = src[..., 1]
    out[..., 3] = src[..., 0]
    return Raster.from_array(out)


def _encode_error(original: np.ndarray, decoded: np.ndarray) -> np.ndarray:
    diff = original.astype(np.int32) - decoded.astype(np.int32)
    return np.clip(diff * ERROR_SCALE + ERROR_BIAS, 0, 255).astype(np.uint8)


def pack_error(original: Raster, decoded: Raster) -> Raster:
    """
    Per-channel compression error of a bump mip, un-swizzled back to XYZ order.

    R comes from alpha, G from blue and B from green. Alpha is left at zero.
    """
    if not original.same_dimensions(decoded):
        raise ValueError("Original and decoded levels must share dimensions")

    orig = original.pixels
    dec = decoded.pixels
    out = np.zeros_like(orig)
    out[..., 0] = _encode_error(orig[..., 3], dec[..., 3])
    out[..., 1] = _encode_error(orig[..., 2], dec[..., 2])
    out[..., 2] = _encode_error(orig[..., 1], dec[..., 1])
    return Raster.from_array(out)


def merge_height(bump_x: Raster, height: Raster) -> Raster:
    """Copy the mono height level into the alpha channel, keeping the error channels."""
    if not bump_x.same_dimensions(height):
        raise ValueError("Height level must match the bump# level dimensions")

    out = bump_x.pixels.copy()
    out[..., 3] = height.pixels[..., 0]
    return Raster.from_array(out)
