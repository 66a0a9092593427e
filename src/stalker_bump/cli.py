"""
Command line front end.

Usage:
    bumpx -n normal.png [-g gloss.png] [--height height.png] [-o output] [-q 0|1|2] [-l]

The original colon style (-n:normal.png -g:gloss.png -h:height.png -l:g -q:2 -o:out)
is accepted as well.
"""

import argparse
import sys
import time
from pathlib import Path
from typing import List, Optional

from .core import (
    BumpProcessor,
    BumpSettings,
    CompressionQuality,
    format_size,
    format_time,
    normalize_format,
    parse_dds_header,
)


# -x:value legacy switches -> modern arguments
_LEGACY_SWITCHES = {
    'n': '--normal',
    'g': '--gloss',
    'h': '--height',
    'o': '--output',
    'q': '--quality',
}


def translate_legacy_args(argv: List[str]) -> List[str]:
    """Rewrite ``-n:path`` style arguments into their argparse equivalents."""
    translated = []
    for arg in argv:
        if len(arg) > 3 and arg[0] == '-' and arg[2] == ':':
            switch, value = arg[1], arg[3:]
            if switch == 'l':
                if value.startswith('g'):
                    translated.append('--linear-gloss')
                continue
            if switch in _LEGACY_SWITCHES:
                translated.extend([_LEGACY_SWITCHES[switch], value])
                continue
        translated.append(arg)
    return translated


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bumpx",
        description="Build X-Ray engine bump and bump# textures from a normal map "
                    "and optional gloss and height maps.",
    )
    parser.add_argument("-n", "--normal", type=Path, required=True, help="Path to the normal map")
    parser.add_argument("-g", "--gloss", type=Path, help="Path to the gloss map (optional)")
    parser.add_argument("--height", type=Path, help="Path to the height map (optional)")
    parser.add_argument("-o", "--output", type=Path,
                        help="Output path prefix or directory. Defaults to the normal map's name and folder")
    parser.add_argument("-q", "--quality", type=int, choices=[q.value for q in CompressionQuality],
                        default=int(CompressionQuality.HIGH),
                        help="0 - fast compression, worst quality, 2 - slowest, best quality (default)")
    parser.add_argument("-l", "--linear-gloss", action="store_true",
                        help="Store gloss linearly instead of square-root encoded")
    parser.add_argument("--no-parallel", action="store_true", help="Compress mip levels sequentially")
    parser.add_argument("--workers", type=int, help="Number of worker processes")
    parser.add_argument("--quiet", action="store_true", help="Only print warnings and errors")
    return parser


def settings_from_args(args: argparse.Namespace) -> BumpSettings:
    settings = BumpSettings(
        quality=CompressionQuality(args.quality),
        linear_gloss=args.linear_gloss,
        enable_parallel=not args.no_parallel,
    )
    if args.workers:
        settings.max_workers = max(1, args.workers)
    return settings


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser()
    args = parser.parse_args(translate_legacy_args(argv))

    settings = settings_from_args(args)
    processor = BumpProcessor(settings)

    log = None if args.quiet else print

    if log and args.output is None:
        log("No output option provided, using source name and folder")
    elif log and args.output.is_dir():
        log("A directory was provided as an output, source name will be used")

    start = time.time()
    result = processor.process(args.normal, args.gloss, args.height, args.output, log_callback=log)

    if args.quiet:
        for warning in result.warnings:
            print(warning, file=sys.stderr)

    if result.error_msg:
        print(result.error_msg, file=sys.stderr)
        return 1

    for error in result.write_errors:
        print(error, file=sys.stderr)

    if not result.success:
        return 1

    if not args.quiet:
        for path in (result.bump_path, result.bump_x_path):
            dims, fmt, mips = parse_dds_header(Path(path))
            print(f"  {Path(path).name}: {dims[0]}x{dims[1]} {normalize_format(fmt)}, {mips} mips")
        width, height = result.dims
        print(f"{width}x{height}, {result.mip_count} mips: "
              f"{format_size(result.bump_size)} bump + {format_size(result.bump_x_size)} bump# "
              f"in {format_time(time.time() - start)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
