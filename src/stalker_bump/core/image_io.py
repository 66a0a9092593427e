"""
Image decode and resize backed by Pillow.

Decoding never raises for bad input data: an unreadable or unsupported image
comes back as an empty raster, which callers treat as "absent".
"""

import io
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

from .composer import convert_pixels
from .raster import Raster, MONO, RGB, RGBA


# Pillow modes that map straight onto our channel counts
_NATIVE_MODES = {
    'L': MONO,
    'RGB': RGB,
    'RGBA': RGBA,
}

_WIDE_GREY_MODES = ('I', 'I;16', 'I;16B', 'I;16L', 'I;16N')

RESAMPLE_FILTER = Image.Resampling.LANCZOS


def _to_native(img: Image.Image) -> np.ndarray:
    """Bring any Pillow image to a (height, width, 1|3|4) uint8 array."""
    if img.mode in _NATIVE_MODES:
        arr = np.asarray(img, dtype=np.uint8)
    elif img.mode in _WIDE_GREY_MODES:
        # 16-bit grey, keep the high byte
        wide = np.asarray(img).astype(np.int64)
        arr = np.clip(wide >> 8, 0, 255).astype(np.uint8)
    elif img.mode in ('LA', 'PA') or (img.mode == 'P' and 'transparency' in img.info):
        arr = np.asarray(img.convert('RGBA'), dtype=np.uint8)
    else:
        arr = np.asarray(img.convert('RGB'), dtype=np.uint8)

    if arr.ndim == 2:
        arr = arr[:, :, np.newaxis]
    return arr


def decode_raster(data: bytes, channels: int = RGBA) -> Raster:
    """
    Decode encoded image bytes into a raster with the requested channel count.

    Returns:
        Decoded raster, or an empty raster when the data is not a supported image
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            arr = _to_native(img)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError):
        return Raster.empty_raster(channels)

    return Raster.from_array(convert_pixels(arr, channels))


def load_raster(path: Path, channels: int = RGBA) -> Raster:
    """
    Load an image file. Missing files and undecodable data both give an empty raster.
    """
    try:
        data = Path(path).read_bytes()
    except OSError:
        return Raster.empty_raster(channels)
    return decode_raster(data, channels)


def resize_raster(src: Raster, width: int, height: int) -> Raster:
    """
    Resample a raster to width x height.

    Each channel is filtered on its own so alpha never weights the color
    channels (Pillow would otherwise premultiply RGBA images).
    """
    if src.empty():
        raise ValueError("Cannot resize an empty raster")
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid target dimensions: {width}x{height}")

    out = np.empty((height, width, src.channels), dtype=np.uint8)
    for c in range(src.channels):
        band = Image.fromarray(np.ascontiguousarray(src.pixels[:, :, c]))
        out[:, :, c] = np.asarray(band.resize((width, height), RESAMPLE_FILTER), dtype=np.uint8)
    return Raster.from_array(out)
