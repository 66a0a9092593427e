"""
Lightweight DDS header parser.

Reads the 128 byte header for width, height, format and mip count, and can
slice the mip levels back out of a DXT5 file. Used to inspect the textures
this package writes; other pixel formats are reported as UNKNOWN.
"""

import struct
from pathlib import Path
from typing import List, Optional, Tuple

from .block_codec import compressed_size


DDS_MAGIC = b'DDS '
DDS_HEADER_SIZE = 124
DDS_PIXELFORMAT_SIZE = 32

FOURCC_DXT5 = 0x35545844  # 'DXT5'

# Pixel format flags
DDPF_FOURCC = 0x000004

BC3_UNORM = 'BC3_UNORM'
UNKNOWN = "UNKNOWN"

DDSInfo = Tuple[Optional[Tuple[int, int]], str, int]


def parse_dds_bytes(data: bytes) -> DDSInfo:
    """
    Parse a DDS header from the start of ``data``.

    Returns:
        ((width, height), format_string, mipmap_count) or (None, "UNKNOWN", 0) on error.
        format_string is BC3_UNORM for DXT5 and UNKNOWN for anything else.
    """
    if len(data) < 4 + DDS_HEADER_SIZE or data[0:4] != DDS_MAGIC:
        return None, UNKNOWN, 0

    header = data[4:4 + DDS_HEADER_SIZE]
    dw_size = struct.unpack_from('<I', header, 0)[0]
    if dw_size != DDS_HEADER_SIZE:
        return None, UNKNOWN, 0

    dw_height, dw_width = struct.unpack_from('<2I', header, 8)
    dw_mipmap_count = struct.unpack_from('<I', header, 24)[0]

    # Some writers leave the mip count at 0 for single level textures
    if dw_mipmap_count == 0:
        dw_mipmap_count = 1

    # Pixel format starts 72 bytes into the header
    pf_flags, pf_fourcc = struct.unpack_from('<2I', header, 72 + 4)
    format_str = BC3_UNORM if pf_flags & DDPF_FOURCC and pf_fourcc == FOURCC_DXT5 else UNKNOWN

    return (dw_width, dw_height), format_str, dw_mipmap_count


def parse_dds_header(filepath: Path) -> DDSInfo:
    """
    Parse the header of a DDS file.

    Returns:
        ((width, height), format_string, mipmap_count) or (None, "UNKNOWN", 0) on error
    """
    try:
        with open(filepath, 'rb') as f:
            return parse_dds_bytes(f.read(4 + DDS_HEADER_SIZE))
    except OSError:
        return None, UNKNOWN, 0


def split_dxt5_mips(data: bytes, min_size: int = 4) -> List[Tuple[int, int, bytes]]:
    """
    Slice the compressed mip levels out of DXT5 container bytes.

    Args:
        data: Whole file contents
        min_size: Smallest dimension a level is allowed to shrink to

    Returns:
        List of (width, height, level_bytes), level 0 first

    Raises:
        ValueError: If the data is not a DXT5 DDS or is truncated
    """
    dims, fmt, mip_count = parse_dds_bytes(data)
    if dims is None or fmt != BC3_UNORM:
        raise ValueError(f"Not a DXT5 DDS file (format {fmt})")

    width, height = dims
    offset = 4 + DDS_HEADER_SIZE
    levels = []
    for _ in range(mip_count):
        size = compressed_size(width, height)
        if offset + size > len(data):
            raise ValueError(f"Truncated DDS data at {width}x{height}")
        levels.append((width, height, data[offset:offset + size]))
        offset += size
        width = max(width // 2, min_size)
        height = max(height // 2, min_size)

    return levels
