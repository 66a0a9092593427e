"""Shared utility functions for the bump packer"""

from pathlib import Path
from typing import Optional


def format_size(bytes_size: int) -> str:
    """Format file size in human-readable format"""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if bytes_size < 1024.0:
            return f"{bytes_size:.2f} {unit}"
        bytes_size /= 1024.0
    return f"{bytes_size:.2f} TB"


def format_time(seconds: float) -> str:
    """Format time in human-readable format"""
    if seconds < 60:
        return f"{seconds:.2f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = seconds % 60
        return f"{minutes}m {secs:.1f}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        secs = seconds % 60
        return f"{hours}h {minutes}m {secs:.0f}s"


# DXGI names -> friendly names
FORMAT_TO_FRIENDLY = {
    'BC3_UNORM': 'BC3/DXT5',
}


def normalize_format(fmt: str) -> str:
    """
    Normalize format names to friendly format (e.g., BC3_UNORM -> BC3/DXT5).

    Unknown names are returned unchanged.
    """
    return FORMAT_TO_FRIENDLY.get(fmt, fmt)


def is_power_of_two(n: int) -> bool:
    """True for 1, 2, 4, 8, ...; False for zero and negatives."""
    return n > 0 and (n & (n - 1)) == 0


def log2_floor(n: int) -> int:
    """Position of the highest set bit (0 for n <= 1)."""
    result = 0
    while n > 1:
        n >>= 1
        result += 1
    return result


def resolve_output_base(normal_path: Path, output: Optional[Path] = None) -> Path:
    """
    Work out the path prefix both output textures are derived from.

    Args:
        normal_path: Source normal map
        output: Optional user supplied output. A directory gets the normal
                map's stem appended; anything else is used as-is.

    Returns:
        Path without extension, e.g. ``textures/wall`` for ``textures/wall_bump.dds``
    """
    if output is None:
        return normal_path.parent / normal_path.stem

    if output.is_dir():
        return output / normal_path.stem

    return output


def with_suffix_name(base: Path, suffix: str, extension: str = ".dds") -> Path:
    """Append ``suffix`` + ``extension`` to the file name of ``base``."""
    return base.parent / f"{base.name}{suffix}{extension}"
