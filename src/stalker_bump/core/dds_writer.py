"""
DDS container writer for DXT5 mip chains.

Layout: 4 byte magic, 124 byte DDS_HEADER, then the compressed data of every
mip level (largest first) with no padding in between.
"""

import struct
from pathlib import Path
from typing import List, Sequence, Tuple

from .block_codec import compressed_size
from .dds_parser import (
    DDS_MAGIC,
    DDS_HEADER_SIZE,
    DDS_PIXELFORMAT_SIZE,
    DDPF_FOURCC,
    FOURCC_DXT5,
)
from .mipmap import MIN_MIP_SIZE


# DDS_HEADER flags
DDSD_CAPS = 0x00000001
DDSD_HEIGHT = 0x00000002
DDSD_WIDTH = 0x00000004
DDSD_PIXELFORMAT = 0x00001000
DDSD_MIPMAPCOUNT = 0x00020000

DDS_HEADER_FLAGS = DDSD_CAPS | DDSD_HEIGHT | DDSD_WIDTH | DDSD_PIXELFORMAT | DDSD_MIPMAPCOUNT  # 0x00021007

# Surface caps
DDSCAPS_TEXTURE = 0x00001000
DDSCAPS_MIPMAP = 0x00400000

DDS_CAPS = DDSCAPS_TEXTURE | DDSCAPS_MIPMAP  # 0x00401000

# magic + header
DDS_FILE_HEADER_SIZE = len(DDS_MAGIC) + DDS_HEADER_SIZE

_HEADER_STRUCT = struct.Struct('<7I44x8I4I4x')


def build_dds_header(width: int, height: int, mip_count: int) -> bytes:
    """Magic plus DDS_HEADER for a mip-mapped DXT5 texture."""
    header = _HEADER_STRUCT.pack(
        DDS_HEADER_SIZE,
        DDS_HEADER_FLAGS,
        height,
        width,
        0,  # pitch / linear size
        0,  # depth
        mip_count,
        # pixel format
        DDS_PIXELFORMAT_SIZE,
        DDPF_FOURCC,
        FOURCC_DXT5,
        0, 0, 0, 0, 0,  # bit count and masks
        # caps
        DDS_CAPS, 0, 0, 0,
    )
    return DDS_MAGIC + header


def mip_chain_dimensions(width: int, height: int, mip_count: int) -> List[Tuple[int, int]]:
    """Dimensions of ``mip_count`` levels starting at width x height (floored at the block size)."""
    dims = []
    mip_w, mip_h = width, height
    for _ in range(mip_count):
        dims.append((mip_w, mip_h))
        mip_w = max(mip_w // 2, MIN_MIP_SIZE)
        mip_h = max(mip_h // 2, MIN_MIP_SIZE)
    return dims


def expected_file_size(width: int, height: int, mip_count: int) -> int:
    """Total byte size of the container for the given top level and mip count."""
    return DDS_FILE_HEADER_SIZE + sum(
        compressed_size(w, h) for w, h in mip_chain_dimensions(width, height, mip_count)
    )


def _validate_mips(mips: Sequence[bytes], width: int, height: int):
    for level, ((mip_w, mip_h), data) in enumerate(zip(mip_chain_dimensions(width, height, len(mips)), mips)):
        expected = compressed_size(mip_w, mip_h)
        if len(data) != expected:
            raise ValueError(
                f"Mip {level} ({mip_w}x{mip_h}) has {len(data)} bytes, expected {expected}"
            )


def build_dds(mips: Sequence[bytes], width: int, height: int) -> bytes:
    """
    Serialize a DXT5 mip chain into DDS container bytes.

    Args:
        mips: Compressed data per level, level 0 first
        width: Level 0 width
        height: Level 0 height

    Raises:
        ValueError: If a level's size does not match its dimensions
    """
    _validate_mips(mips, width, height)
    return build_dds_header(width, height, len(mips)) + b"".join(mips)


def write_dds(path: Path, mips: Sequence[bytes], width: int, height: int) -> int:
    """
    Write a DXT5 mip chain to ``path``.

    Returns:
        Number of bytes written

    Raises:
        OSError: If the file cannot be opened or written
        ValueError: If a level's size does not match its dimensions
    """
    _validate_mips(mips, width, height)

    written = 0
    with open(path, 'wb') as f:
        header = build_dds_header(width, height, len(mips))
        f.write(header)
        written += len(header)
        for data in mips:
            f.write(data)
            written += len(data)
        f.flush()

    return written
