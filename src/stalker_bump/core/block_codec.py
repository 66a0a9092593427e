"""
DXT5 (BC3) block compression and decompression.

Block structure (16 bytes per 4x4 pixel block):
    Bytes 0-1:   Two 8-bit alpha endpoints (alpha0, alpha1)
    Bytes 2-7:   4x4 3-bit alpha index table (48 bits, little-endian, pixel 0 in bits 0-2)
    Bytes 8-9:   RGB565 color endpoint 0
    Bytes 10-11: RGB565 color endpoint 1
    Bytes 12-15: 4x4 2-bit color index table (one byte per row, pixel 0 in bits 0-1)

Decoding is exact and fixed: the bump# texture stores the difference between
the source and what comes back out of this decoder, so every decoded value
must be reproducible bit for bit.

Encoding is pluggable. Three strategies trade speed against quality:
    FAST   - bounding box endpoints with a small inset
    NORMAL - principal axis range fit, both alpha ramps tried
    HIGH   - range fit plus iterative least-squares endpoint refinement (default)
All strategies work on (N, 16, 4) uint8 arrays of blocks at once.
"""

from dataclasses import dataclass, asdict
from enum import Enum, IntEnum

import numpy as np

from .raster import Raster, RGBA


BLOCK_SIZE = 4
BLOCK_PIXELS = BLOCK_SIZE * BLOCK_SIZE
BLOCK_BYTES = 16

_ALPHA_SHIFTS = (3 * np.arange(BLOCK_PIXELS)).astype(np.uint64)
_COLOR_SHIFTS = (2 * np.arange(BLOCK_PIXELS)).astype(np.uint32)
_BYTE_SHIFTS_48 = (8 * np.arange(6)).astype(np.uint64)
_BYTE_SHIFTS_32 = (8 * np.arange(4)).astype(np.uint32)

# Weight of endpoint 0 for each color index: c0, c1, 2/3 c0 + 1/3 c1, 1/3 c0 + 2/3 c1
_COLOR_WEIGHTS = np.array([1.0, 0.0, 2.0 / 3.0, 1.0 / 3.0], dtype=np.float32)

# Weight of endpoint 0 for each alpha index in the 8 value ramp (alpha0 > alpha1)
_ALPHA_WEIGHTS = np.array([1.0, 0.0] + [(8 - k) / 7.0 for k in range(2, 8)], dtype=np.float32)

# Index remap applied when the two color endpoints are swapped
_COLOR_SWAP = np.array([1, 0, 3, 2], dtype=np.uint8)


class CompressionQuality(IntEnum):
    """Encoder strategy. Higher is slower and better."""
    FAST = 0
    NORMAL = 1
    HIGH = 2


class ApproxMode(Enum):
    """How encoders expect RGB565 endpoints to be expanded when scoring candidates."""
    DECODER = "decoder"  # shift only, matches decompress_raster exactly
    IDEAL = "ideal"      # bit replication, what most hardware does


@dataclass
class CodecConfig:
    """Encoder configuration, created once and passed to every compress call."""
    approx_mode: ApproxMode = ApproxMode.DECODER
    refine_iterations: int = 4
    chunk_blocks: int = 16384

    def to_dict(self) -> dict:
        """Convert settings to dictionary for multiprocessing"""
        data = asdict(self)
        data['approx_mode'] = self.approx_mode.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'CodecConfig':
        return cls(
            approx_mode=ApproxMode(data.get('approx_mode', ApproxMode.DECODER.value)),
            refine_iterations=data.get('refine_iterations', 4),
            chunk_blocks=data.get('chunk_blocks', 16384),
        )


DEFAULT_CODEC_CONFIG = CodecConfig()


# =============================================================================
# Palettes (shared by the decoder and the encoders)
# =============================================================================

def unpack_565(colors: np.ndarray, mode: ApproxMode = ApproxMode.DECODER) -> np.ndarray:
    """Expand packed RGB565 values to (..., 3) int32 8-bit RGB."""
    colors = colors.astype(np.int32)
    r5 = (colors >> 11) & 0x1F
    g6 = (colors >> 5) & 0x3F
    b5 = colors & 0x1F

    if mode == ApproxMode.IDEAL:
        r = (r5 << 3) | (r5 >> 2)
        g = (g6 << 2) | (g6 >> 4)
        b = (b5 << 3) | (b5 >> 2)
    else:
        r = r5 << 3
        g = g6 << 2
        b = b5 << 3
    return np.stack([r, g, b], axis=-1)


def pack_565(rgb: np.ndarray, mode: ApproxMode = ApproxMode.DECODER) -> np.ndarray:
    """Quantize (..., 3) 8-bit RGB (float or int) to packed RGB565 uint16 values."""
    rgb = np.clip(rgb.astype(np.float32), 0.0, 255.0)
    if mode == ApproxMode.IDEAL:
        r5 = np.rint(rgb[..., 0] * (31.0 / 255.0))
        g6 = np.rint(rgb[..., 1] * (63.0 / 255.0))
        b5 = np.rint(rgb[..., 2] * (31.0 / 255.0))
    else:
        r5 = np.minimum(np.rint(rgb[..., 0] / 8.0), 31)
        g6 = np.minimum(np.rint(rgb[..., 1] / 4.0), 63)
        b5 = np.minimum(np.rint(rgb[..., 2] / 8.0), 31)
    packed = (r5.astype(np.int32) << 11) | (g6.astype(np.int32) << 5) | b5.astype(np.int32)
    return packed.astype(np.uint16)


def color_palette(c0: np.ndarray, c1: np.ndarray, force_four_color: bool = True,
                  mode: ApproxMode = ApproxMode.DECODER) -> np.ndarray:
    """
    Build the 4 entry color palette of every block.

    With ``force_four_color`` (always the case for DXT5) colors 2 and 3 are the
    1/3 and 2/3 interpolants. Without it, blocks with c0 <= c1 use the DXT1
    three color mode: color 2 is the midpoint and color 3 is black.

    Returns:
        (N, 4, 3) int32 array
    """
    e0 = unpack_565(c0, mode)
    e1 = unpack_565(c1, mode)

    four = np.stack([
        e0,
        e1,
        (2 * e0 + e1 + 1) // 3,
        (e0 + 2 * e1 + 1) // 3,
    ], axis=1)

    if force_four_color:
        return four

    three = np.stack([
        e0,
        e1,
        (e0 + e1 + 1) >> 1,
        np.zeros_like(e0),
    ], axis=1)
    use_four = (c0.astype(np.int32) > c1.astype(np.int32))[:, np.newaxis, np.newaxis]
    return np.where(use_four, four, three)


def alpha_palette(a0: np.ndarray, a1: np.ndarray) -> np.ndarray:
    """
    Build the 8 entry alpha ramp of every block.

    Index 0 and 1 are the endpoints. If alpha0 > alpha1 the remaining six are
    interpolated; otherwise four are interpolated and indices 6 and 7 are 0 and 255.

    Returns:
        (N, 8) int32 array
    """
    a0 = a0.astype(np.int32)
    a1 = a1.astype(np.int32)

    eight = [a0, a1] + [((8 - k) * a0 + (k - 1) * a1) // 7 for k in range(2, 8)]
    six = [a0, a1] + [((6 - k) * a0 + (k - 1) * a1) // 5 for k in range(2, 6)]
    six += [np.zeros_like(a0), np.full_like(a0, 255)]

    return np.where((a0 > a1)[:, np.newaxis], np.stack(eight, axis=1), np.stack(six, axis=1))


# =============================================================================
# Decoding
# =============================================================================

def decode_blocks(blocks: np.ndarray, force_four_color: bool = True) -> np.ndarray:
    """
    Decode DXT5 blocks.

    Args:
        blocks: (N, 16) uint8 array of encoded blocks
        force_four_color: Always use the 4 color palette (DXT5 behaviour)

    Returns:
        (N, 16, 4) uint8 array of RGBA pixels, row-major within each block
    """
    blocks = np.asarray(blocks, dtype=np.uint8).reshape(-1, BLOCK_BYTES)
    n = blocks.shape[0]
    rows = np.arange(n)[:, np.newaxis]

    # Alpha
    alpha_bits = np.zeros(n, dtype=np.uint64)
    for i in range(6):
        alpha_bits |= blocks[:, 2 + i].astype(np.uint64) << np.uint64(8 * i)
    alpha_idx = ((alpha_bits[:, np.newaxis] >> _ALPHA_SHIFTS) & np.uint64(0x7)).astype(np.intp)
    alpha = alpha_palette(blocks[:, 0], blocks[:, 1])[rows, alpha_idx]

    # Color
    c0 = blocks[:, 8].astype(np.uint16) | (blocks[:, 9].astype(np.uint16) << 8)
    c1 = blocks[:, 10].astype(np.uint16) | (blocks[:, 11].astype(np.uint16) << 8)
    color_bits = np.zeros(n, dtype=np.uint32)
    for i in range(4):
        color_bits |= blocks[:, 12 + i].astype(np.uint32) << np.uint32(8 * i)
    color_idx = ((color_bits[:, np.newaxis] >> _COLOR_SHIFTS) & np.uint32(0x3)).astype(np.intp)
    rgb = color_palette(c0, c1, force_four_color)[rows, color_idx]

    out = np.empty((n, BLOCK_PIXELS, 4), dtype=np.uint8)
    out[..., :3] = rgb
    out[..., 3] = alpha
    return out


def blocks_for(width: int, height: int) -> tuple:
    """Number of (horizontal, vertical) blocks covering width x height."""
    return (width + BLOCK_SIZE - 1) // BLOCK_SIZE, (height + BLOCK_SIZE - 1) // BLOCK_SIZE


def compressed_size(width: int, height: int) -> int:
    """Byte size of a DXT5 surface."""
    blocks_x, blocks_y = blocks_for(width, height)
    return blocks_x * blocks_y * BLOCK_BYTES


def decompress_raster(data: bytes, width: int, height: int) -> Raster:
    """
    Decode a DXT5 surface into an RGBA raster.

    Partial blocks on the right and bottom edges are decoded and cropped.

    Raises:
        ValueError: If the data length does not match the dimensions
    """
    blocks_x, blocks_y = blocks_for(width, height)
    expected = blocks_x * blocks_y * BLOCK_BYTES
    if len(data) != expected:
        raise ValueError(f"Expected {expected} bytes for {width}x{height} DXT5, got {len(data)}")

    if expected == 0:
        return Raster(width, height, RGBA)

    pixels = decode_blocks(np.frombuffer(data, dtype=np.uint8).reshape(-1, BLOCK_BYTES))
    pixels = pixels.reshape(blocks_y, blocks_x, BLOCK_SIZE, BLOCK_SIZE, 4)
    pixels = pixels.transpose(0, 2, 1, 3, 4).reshape(blocks_y * BLOCK_SIZE, blocks_x * BLOCK_SIZE, 4)
    return Raster.from_array(np.ascontiguousarray(pixels[:height, :width]))


# =============================================================================
# Encoding helpers
# =============================================================================

def _fit_color_indices(pixels: np.ndarray, c0: np.ndarray, c1: np.ndarray, mode: ApproxMode):
    """Nearest palette entry for every pixel. Returns (indices, total squared error)."""
    palette = color_palette(c0, c1, True, mode).astype(np.float32)
    diff = pixels[:, :, np.newaxis, :] - palette[:, np.newaxis, :, :]
    dist = np.einsum('npkc,npkc->npk', diff, diff)
    indices = np.argmin(dist, axis=2)
    error = np.take_along_axis(dist, indices[:, :, np.newaxis], axis=2)[..., 0].sum(axis=1)
    return indices.astype(np.uint8), error


def _color_candidate(pixels: np.ndarray, e0: np.ndarray, e1: np.ndarray, mode: ApproxMode):
    """Quantize float endpoints and fit indices. Returns (c0, c1, indices, error)."""
    c0 = pack_565(e0, mode)
    c1 = pack_565(e1, mode)
    indices, error = _fit_color_indices(pixels, c0, c1, mode)
    return c0, c1, indices, error


def _keep_best(best, candidate):
    """Element-wise pick of the lower error candidate. Both are (c0, c1, indices, error)."""
    better = candidate[3] < best[3]
    return (
        np.where(better, candidate[0], best[0]),
        np.where(better, candidate[1], best[1]),
        np.where(better[:, np.newaxis], candidate[2], best[2]),
        np.where(better, candidate[3], best[3]),
    )


def _bounding_box_endpoints(pixels: np.ndarray):
    hi = pixels.max(axis=1)
    lo = pixels.min(axis=1)
    inset = (hi - lo) / 16.0
    return hi - inset, lo + inset


def _principal_axis_endpoints(pixels: np.ndarray):
    """Endpoints at the extremes of the projection onto the principal axis."""
    mean = pixels.mean(axis=1, keepdims=True)
    centered = pixels - mean
    cov = np.einsum('npi,npj->nij', centered, centered)

    axis = (pixels.max(axis=1) - pixels.min(axis=1)).astype(np.float32)
    axis[np.all(axis == 0, axis=1)] = 1.0
    for _ in range(8):
        axis = np.einsum('nij,nj->ni', cov, axis)
        norm = np.linalg.norm(axis, axis=1, keepdims=True)
        axis = np.where(norm > 1e-6, axis / np.maximum(norm, 1e-6), 0.0)

    proj = np.einsum('npc,nc->np', centered, axis)
    mean = mean[:, 0, :]
    e0 = mean + axis * proj.max(axis=1, keepdims=True)
    e1 = mean + axis * proj.min(axis=1, keepdims=True)
    return e0, e1


def _least_squares_endpoints(pixels: np.ndarray, indices: np.ndarray, weights: np.ndarray,
                             e0: np.ndarray, e1: np.ndarray):
    """
    Solve for the endpoints that best reproduce ``pixels`` with fixed indices.

    Blocks where every pixel uses the same weight have no unique solution and
    keep their current endpoints.
    """
    w = weights[indices.astype(np.intp)]
    v = 1.0 - w
    a = (w * w).sum(axis=1)
    b = (w * v).sum(axis=1)
    c = (v * v).sum(axis=1)
    x = np.einsum('np,np...->n...', w, pixels)
    y = np.einsum('np,np...->n...', v, pixels)

    det = a * c - b * b
    solvable = np.abs(det) > 1e-6
    safe = np.where(solvable, det, 1.0)
    if pixels.ndim == 3:
        safe = safe[:, np.newaxis]
        solvable = solvable[:, np.newaxis]
        a, b, c = a[:, np.newaxis], b[:, np.newaxis], c[:, np.newaxis]

    new0 = (c * x - b * y) / safe
    new1 = (a * y - b * x) / safe
    return (np.clip(np.where(solvable, new0, e0), 0.0, 255.0),
            np.clip(np.where(solvable, new1, e1), 0.0, 255.0))


def _order_color_endpoints(c0, c1, indices):
    """Keep color0 >= color1 so the block reads as 4 color mode on any decoder."""
    swap = c0 < c1
    out0 = np.where(swap, c1, c0)
    out1 = np.where(swap, c0, c1)
    out_idx = np.where(swap[:, np.newaxis], _COLOR_SWAP[indices], indices)
    out_idx[out0 == out1] = 0
    return out0, out1, out_idx


def _fit_alpha_indices(alphas: np.ndarray, a0: np.ndarray, a1: np.ndarray):
    palette = alpha_palette(a0, a1).astype(np.float32)
    dist = (alphas[:, :, np.newaxis] - palette[:, np.newaxis, :]) ** 2
    indices = np.argmin(dist, axis=2)
    error = np.take_along_axis(dist, indices[:, :, np.newaxis], axis=2)[..., 0].sum(axis=1)
    return indices.astype(np.uint8), error


def _alpha_eight_candidate(alphas: np.ndarray, hi: np.ndarray, lo: np.ndarray):
    """8 value ramp. Needs alpha0 > alpha1, flat blocks fall back to equal endpoints."""
    hi = np.clip(np.rint(hi), 0, 255).astype(np.int32)
    lo = np.clip(np.rint(lo), 0, 255).astype(np.int32)
    a0 = np.maximum(hi, lo).astype(np.uint8)
    a1 = np.minimum(hi, lo).astype(np.uint8)
    indices, error = _fit_alpha_indices(alphas, a0, a1)
    return a0, a1, indices, error


def _alpha_six_candidate(alphas: np.ndarray):
    """6 value ramp with explicit 0 and 255, endpoints span the values in between."""
    inner = (alphas > 0) & (alphas < 255)
    has_inner = inner.any(axis=1)
    lo = np.where(inner, alphas, 255.0).min(axis=1)
    hi = np.where(inner, alphas, 0.0).max(axis=1)
    a0 = np.where(has_inner, lo, 0).astype(np.uint8)
    a1 = np.where(has_inner, hi, 0).astype(np.uint8)
    indices, error = _fit_alpha_indices(alphas, a0, a1)
    return a0, a1, indices, error


def _pack_blocks(a0, a1, alpha_idx, c0, c1, color_idx) -> np.ndarray:
    n = a0.shape[0]
    out = np.empty((n, BLOCK_BYTES), dtype=np.uint8)

    alpha_bits = np.bitwise_or.reduce(alpha_idx.astype(np.uint64) << _ALPHA_SHIFTS, axis=1)
    color_bits = np.bitwise_or.reduce(color_idx.astype(np.uint32) << _COLOR_SHIFTS, axis=1)

    out[:, 0] = a0
    out[:, 1] = a1
    out[:, 2:8] = (alpha_bits[:, np.newaxis] >> _BYTE_SHIFTS_48) & np.uint64(0xFF)
    out[:, 8] = c0 & 0xFF
    out[:, 9] = c0 >> 8
    out[:, 10] = c1 & 0xFF
    out[:, 11] = c1 >> 8
    out[:, 12:16] = (color_bits[:, np.newaxis] >> _BYTE_SHIFTS_32) & np.uint32(0xFF)
    return out


# =============================================================================
# Encoder strategies
# =============================================================================

def encode_blocks_fast(blocks: np.ndarray, config: CodecConfig = DEFAULT_CODEC_CONFIG) -> np.ndarray:
    """Bounding box color endpoints, min/max alpha endpoints."""
    pixels = blocks[..., :3].astype(np.float32)
    alphas = blocks[..., 3].astype(np.float32)

    e0, e1 = _bounding_box_endpoints(pixels)
    c0, c1, color_idx, _ = _color_candidate(pixels, e0, e1, config.approx_mode)
    c0, c1, color_idx = _order_color_endpoints(c0, c1, color_idx)

    a0, a1, alpha_idx, _ = _alpha_eight_candidate(alphas, alphas.max(axis=1), alphas.min(axis=1))
    return _pack_blocks(a0, a1, alpha_idx, c0, c1, color_idx)


def encode_blocks_normal(blocks: np.ndarray, config: CodecConfig = DEFAULT_CODEC_CONFIG) -> np.ndarray:
    """Principal axis range fit for color, best of both alpha ramps."""
    pixels = blocks[..., :3].astype(np.float32)
    alphas = blocks[..., 3].astype(np.float32)
    mode = config.approx_mode

    best = _color_candidate(pixels, *_principal_axis_endpoints(pixels), mode)
    best = _keep_best(best, _color_candidate(pixels, *_bounding_box_endpoints(pixels), mode))
    c0, c1, color_idx = _order_color_endpoints(*best[:3])

    alpha = _alpha_eight_candidate(alphas, alphas.max(axis=1), alphas.min(axis=1))
    alpha = _keep_best(alpha, _alpha_six_candidate(alphas))
    return _pack_blocks(alpha[0], alpha[1], alpha[2], c0, c1, color_idx)


def encode_blocks_high(blocks: np.ndarray, config: CodecConfig = DEFAULT_CODEC_CONFIG) -> np.ndarray:
    """Range fit followed by least-squares refinement of both color and alpha endpoints."""
    pixels = blocks[..., :3].astype(np.float32)
    alphas = blocks[..., 3].astype(np.float32)
    mode = config.approx_mode

    e0, e1 = _principal_axis_endpoints(pixels)
    best = _color_candidate(pixels, e0, e1, mode)
    best = _keep_best(best, _color_candidate(pixels, *_bounding_box_endpoints(pixels), mode))

    indices = best[2]
    for _ in range(config.refine_iterations):
        e0, e1 = _least_squares_endpoints(pixels, indices, _COLOR_WEIGHTS, e0, e1)
        candidate = _color_candidate(pixels, e0, e1, mode)
        best = _keep_best(best, candidate)
        indices = candidate[2]
    c0, c1, color_idx = _order_color_endpoints(*best[:3])

    hi = alphas.max(axis=1)
    lo = alphas.min(axis=1)
    alpha = _alpha_eight_candidate(alphas, hi, lo)
    alpha = _keep_best(alpha, _alpha_six_candidate(alphas))

    indices = _alpha_eight_candidate(alphas, hi, lo)[2]
    for _ in range(config.refine_iterations):
        hi, lo = _least_squares_endpoints(alphas, indices, _ALPHA_WEIGHTS, hi, lo)
        candidate = _alpha_eight_candidate(alphas, hi, lo)
        alpha = _keep_best(alpha, candidate)
        # flat refinements collapse to alpha0 == alpha1 and switch ramps, stop following those
        indices = np.where((candidate[0] > candidate[1])[:, np.newaxis], candidate[2], indices)

    return _pack_blocks(alpha[0], alpha[1], alpha[2], c0, c1, color_idx)


ENCODERS = {
    CompressionQuality.FAST: encode_blocks_fast,
    CompressionQuality.NORMAL: encode_blocks_normal,
    CompressionQuality.HIGH: encode_blocks_high,
}


def encode_blocks(blocks: np.ndarray, quality: CompressionQuality = CompressionQuality.HIGH,
                  config: CodecConfig = DEFAULT_CODEC_CONFIG) -> np.ndarray:
    """
    Encode (N, 16, 4) RGBA blocks with the selected strategy.

    Returns:
        (N, 16) uint8 array
    """
    encoder = ENCODERS[CompressionQuality(quality)]
    blocks = np.asarray(blocks, dtype=np.uint8).reshape(-1, BLOCK_PIXELS, 4)

    chunk = max(1, config.chunk_blocks)
    if blocks.shape[0] <= chunk:
        return encoder(blocks, config)
    return np.concatenate([encoder(blocks[i:i + chunk], config)
                           for i in range(0, blocks.shape[0], chunk)])


def extract_blocks(raster: Raster) -> np.ndarray:
    """Split an RGBA raster into (N, 16, 4) blocks in row-major block order."""
    blocks_x = raster.width // BLOCK_SIZE
    blocks_y = raster.height // BLOCK_SIZE
    tiles = raster.pixels.reshape(blocks_y, BLOCK_SIZE, blocks_x, BLOCK_SIZE, 4)
    return tiles.transpose(0, 2, 1, 3, 4).reshape(-1, BLOCK_PIXELS, 4)


def compress_raster(raster: Raster, quality: CompressionQuality = CompressionQuality.HIGH,
                    config: CodecConfig = DEFAULT_CODEC_CONFIG) -> bytes:
    """
    Compress an RGBA raster to DXT5.

    Raises:
        ValueError: If the raster is not RGBA or its dimensions are not multiples of 4
    """
    if raster.channels != RGBA:
        raise ValueError(f"DXT5 compression needs an RGBA raster, got {raster.channels} channels")
    if raster.width % BLOCK_SIZE or raster.height % BLOCK_SIZE:
        raise ValueError(f"Raster {raster.width}x{raster.height} is not a multiple of {BLOCK_SIZE}")
    if raster.empty():
        return b""

    return encode_blocks(extract_blocks(raster), quality, config).tobytes()
