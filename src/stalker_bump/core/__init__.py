"""Core processing functionality for bump / bump# texture generation"""

from .raster import Raster, MONO, RGB, RGBA
from .settings import BumpSettings, BumpTextures, ProcessingResult, NEUTRAL_HEIGHT
from .block_codec import (
    CompressionQuality,
    ApproxMode,
    CodecConfig,
    compress_raster,
    decompress_raster,
    encode_blocks,
    decode_blocks,
)
from .mipmap import build_mip_chain, mip_count, mip_dimensions, renormalize
from .composer import convert_raster, pack_bump, pack_error, merge_height
from .image_io import decode_raster, load_raster, resize_raster
from .dds_writer import build_dds, write_dds, expected_file_size
from .dds_parser import parse_dds_header, parse_dds_bytes, split_dxt5_mips
from .processor import BumpProcessor, SourceImageError, produce_textures
from .utils import format_size, format_time, normalize_format

__all__ = [
    # Rasters
    'Raster',
    'MONO',
    'RGB',
    'RGBA',
    # Settings and results
    'BumpSettings',
    'BumpTextures',
    'ProcessingResult',
    'NEUTRAL_HEIGHT',
    # Block compression
    'CompressionQuality',
    'ApproxMode',
    'CodecConfig',
    'compress_raster',
    'decompress_raster',
    'encode_blocks',
    'decode_blocks',
    # Mipmaps
    'build_mip_chain',
    'mip_count',
    'mip_dimensions',
    'renormalize',
    # Channel packing
    'convert_raster',
    'pack_bump',
    'pack_error',
    'merge_height',
    # Image I/O
    'decode_raster',
    'load_raster',
    'resize_raster',
    # DDS container
    'build_dds',
    'write_dds',
    'expected_file_size',
    'parse_dds_header',
    'parse_dds_bytes',
    'split_dxt5_mips',
    # Pipeline
    'BumpProcessor',
    'SourceImageError',
    'produce_textures',
    # Formatting utilities
    'format_size',
    'format_time',
    'normalize_format',
]
