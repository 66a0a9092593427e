"""
Core logic for bump / bump# generation.
Handles loading, mip generation, packing, compression and saving independently of the CLI.

Pipeline per normal map:
    1. build mip chains for the normal, gloss and height maps
    2. pack bump levels (R: gloss, G: NZ, B: NY, A: NX) and compress them
    3. decompress every bump level, store the error * 2 + 128 in RGB and height in A
    4. compress the bump# levels
    5. write <name>_bump.dds and <name>_bump#.dds
"""

from pathlib import Path
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import Callable, List, Optional, Tuple

from .block_codec import (
    CodecConfig,
    CompressionQuality,
    compress_raster,
    decompress_raster,
)
from .composer import convert_raster, merge_height, pack_bump, pack_error
from .dds_writer import write_dds
from .image_io import load_raster
from .mipmap import MIN_MIP_SIZE, build_mip_chain
from .raster import Raster, MONO, RGBA
from .settings import BumpSettings, BumpTextures, ProcessingResult
from .utils import format_size, is_power_of_two, resolve_output_base, with_suffix_name


LogCallback = Optional[Callable[[str], None]]
ProgressCallback = Optional[Callable[[int, int], None]]


class SourceImageError(ValueError):
    """The normal map cannot be used; nothing is written."""


def _log(log_callback: LogCallback, message: str):
    if log_callback:
        log_callback(message)


# Static helper for multiprocessing workers
def _compress_mip_worker(args) -> Tuple[int, bytes]:
    """Worker function for parallel compression. Must be at module level for pickling."""
    level, pixels, quality, codec_dict = args
    data = compress_raster(Raster.from_array(pixels), CompressionQuality(quality),
                           CodecConfig.from_dict(codec_dict))
    return level, data


def compress_mips(mips: List[Raster], quality: CompressionQuality, settings: BumpSettings,
                  label: str = "mip", log_callback: LogCallback = None) -> List[bytes]:
    """
    Compress every level of a mip chain to DXT5.

    Levels are compressed in a process pool when parallel processing is enabled;
    the output is identical to the sequential path.
    """
    compressed: List[Optional[bytes]] = [None] * len(mips)

    if settings.enable_parallel and len(mips) > 1 and settings.max_workers > 1:
        codec_dict = settings.codec.to_dict()
        with ProcessPoolExecutor(max_workers=settings.max_workers) as executor:
            future_to_level = {}
            for level, mip in enumerate(mips):
                future = executor.submit(_compress_mip_worker, (level, mip.pixels, int(quality), codec_dict))
                future_to_level[future] = level

            for future in as_completed(future_to_level):
                level, data = future.result()
                compressed[level] = data
                mip = mips[level]
                _log(log_callback, f"Compressed {label} {level} ({mip.width}x{mip.height}): "
                                   f"{format_size(mip.nbytes)} -> {format_size(len(data))}")
    else:
        for level, mip in enumerate(mips):
            _log(log_callback, f"Compressing {label} {level}...")
            data = compress_raster(mip, quality, settings.codec)
            compressed[level] = data
            _log(log_callback, f"Done, compressed {mip.nbytes} bytes to {len(data)} bytes")

    return compressed


def validate_normal_map(normal: Raster):
    """
    Raises:
        SourceImageError: If the normal map is empty, not power of two or too small to compress
    """
    if normal.empty():
        raise SourceImageError("Couldn't load normal map, not an image or unsupported format?")
    if not is_power_of_two(normal.width) or not is_power_of_two(normal.height):
        raise SourceImageError(
            f"Normal map width & height must be power of two, got {normal.width}x{normal.height}"
        )
    if normal.width < MIN_MIP_SIZE or normal.height < MIN_MIP_SIZE:
        raise SourceImageError(
            f"Normal map must be at least {MIN_MIP_SIZE}x{MIN_MIP_SIZE}, got {normal.width}x{normal.height}"
        )


def _check_scalar_map(raster: Optional[Raster], normal: Raster, name: str,
                      consequence: str, warnings: List[str]) -> Optional[Raster]:
    """Return a usable mono raster, or None (with a warning) when it has to be dropped."""
    if raster is None:
        return None

    if raster.empty():
        warnings.append(f"Couldn't load {name}, not an image or unsupported format? {consequence}")
        return None

    if not raster.same_dimensions(normal):
        warnings.append(
            f"{name.capitalize()} is {raster.width}x{raster.height} but the normal map is "
            f"{normal.width}x{normal.height}. {consequence}"
        )
        return None

    return raster if raster.channels == MONO else convert_raster(raster, MONO)


def produce_textures(normal: Raster,
                     gloss: Optional[Raster] = None,
                     height: Optional[Raster] = None,
                     quality: Optional[CompressionQuality] = None,
                     linear_gloss: Optional[bool] = None,
                     settings: Optional[BumpSettings] = None,
                     log_callback: LogCallback = None,
                     progress_callback: ProgressCallback = None) -> BumpTextures:
    """
    Build the compressed bump and bump# mip chains.

    Args:
        normal: Normal map, power of two in both dimensions
        gloss: Optional gloss map. Dropped with a warning if empty or mismatched.
        height: Optional height map. Replaced by a neutral height if empty or mismatched.
        quality: Encoder strategy, defaults to ``settings.quality``
        linear_gloss: Store gloss linearly instead of square-root encoded, defaults to ``settings.linear_gloss``
        settings: Codec, neutral height and parallelism settings
        log_callback: Optional callable(message) for progress messages
        progress_callback: Optional callable(current, total), called once per finished stage

    Returns:
        BumpTextures with both mip chains and any warnings

    Raises:
        SourceImageError: If the normal map is unusable
    """
    settings = settings or BumpSettings()
    quality = settings.quality if quality is None else CompressionQuality(quality)
    linear_gloss = settings.linear_gloss if linear_gloss is None else linear_gloss
    validate_normal_map(normal)

    warnings: List[str] = []
    gloss = _check_scalar_map(gloss, normal, "glossmap",
                              "This is not a showstopper, just gloss will be omitted from the result.",
                              warnings)
    height = _check_scalar_map(height, normal, "heightmap",
                               "This is not a showstopper, default (neutral) height will be used.",
                               warnings)
    for warning in warnings:
        _log(log_callback, warning)

    if height is None:
        height = Raster(normal.width, normal.height, MONO, fill=settings.neutral_height)
    if normal.channels != RGBA:
        normal = convert_raster(normal, RGBA)

    stages = 4
    width, height_px = normal.width, normal.height

    # Step 1: mip chains
    _log(log_callback, "Computing mipmaps for the source normalmap...")
    normal_mips = build_mip_chain(normal, normalize=True)
    _log(log_callback, f"Successfully created {len(normal_mips)} mips")

    gloss_mips: List[Optional[Raster]] = [None] * len(normal_mips)
    if gloss is not None:
        _log(log_callback, "Computing mipmaps for the source glossmap...")
        gloss_mips = build_mip_chain(gloss)

    _log(log_callback, "Computing mipmaps for the heightmap...")
    height_mips = build_mip_chain(height)
    if progress_callback:
        progress_callback(1, stages)

    # Step 2: bump = gloss, NZ, NY, NX
    _log(log_callback, "Assembling bump (a - NX, b - NY, g - NZ, r - Gloss)...")
    bump_mips = [pack_bump(n, g, linear_gloss) for n, g in zip(normal_mips, gloss_mips)]
    del normal_mips, gloss_mips
    bump_compressed = compress_mips(bump_mips, quality, settings, "bump mip", log_callback)
    if progress_callback:
        progress_callback(2, stages)

    # Step 3: bump# = compression error of the bump + height
    bump_x_mips = []
    for level, (bump_mip, data, height_mip) in enumerate(zip(bump_mips, bump_compressed, height_mips)):
        _log(log_callback, f"Calculating error for mip {level}...")
        decoded = decompress_raster(data, bump_mip.width, bump_mip.height)
        bump_x_mips.append(merge_height(pack_error(bump_mip, decoded), height_mip))
    del bump_mips, height_mips
    if progress_callback:
        progress_callback(3, stages)

    # Step 4: compress bump#
    bump_x_compressed = compress_mips(bump_x_mips, quality, settings, "bump# mip", log_callback)
    if progress_callback:
        progress_callback(4, stages)

    return BumpTextures(
        bump_mips=bump_compressed,
        bump_x_mips=bump_x_compressed,
        width=width,
        height=height_px,
        warnings=warnings,
    )


class BumpProcessor:
    """File level processor: loads the sources, runs the pipeline and writes both textures"""

    def __init__(self, settings: BumpSettings):
        self.settings = settings

    def output_paths(self, normal_path: Path, output: Optional[Path] = None) -> Tuple[Path, Path]:
        """(bump_path, bump_x_path) for a normal map and an optional output location."""
        base = resolve_output_base(Path(normal_path), Path(output) if output is not None else None)
        return (with_suffix_name(base, self.settings.bump_suffix),
                with_suffix_name(base, self.settings.bump_x_suffix))

    def _load_optional(self, path: Optional[Path], name: str, consequence: str,
                       result: ProcessingResult, log_callback: LogCallback) -> Optional[Raster]:
        if path is None:
            return None
        path = Path(path)
        if not path.is_file():
            message = f"Provided {name} path does not exist or not a valid file. {consequence}"
            result.warnings.append(message)
            _log(log_callback, message)
            return None
        return load_raster(path, MONO)

    def process(self, normal_path: Path,
                gloss_path: Optional[Path] = None,
                height_path: Optional[Path] = None,
                output: Optional[Path] = None,
                log_callback: LogCallback = None,
                progress_callback: ProgressCallback = None) -> ProcessingResult:
        """
        Process one normal map (plus optional gloss and height maps).

        Both outputs are always attempted; a failed write is recorded in
        ``write_errors`` and does not stop the other one.
        """
        normal_path = Path(normal_path)
        result = ProcessingResult(success=False, normal_path=str(normal_path))

        if not normal_path.is_file():
            result.error_msg = "Provided normalmap path does not exist or not a valid file!"
            return result
        result.input_size = normal_path.stat().st_size

        gloss = self._load_optional(gloss_path, "glossmap",
                                    "This is not a showstopper, just gloss will be omitted from the result.",
                                    result, log_callback)
        height = self._load_optional(height_path, "heightmap",
                                     "This is not a showstopper, default (neutral) height will be used.",
                                     result, log_callback)

        normal = load_raster(normal_path, RGBA)
        _log(log_callback, f"Using quality level {int(self.settings.quality)}")

        try:
            textures = produce_textures(
                normal, gloss, height,
                settings=self.settings,
                log_callback=log_callback,
                progress_callback=progress_callback,
            )
        except SourceImageError as e:
            result.error_msg = str(e)
            return result

        result.dims = (textures.width, textures.height)
        result.mip_count = textures.mip_count
        result.warnings.extend(textures.warnings)

        bump_path, bump_x_path = self.output_paths(normal_path, output)
        result.bump_path = str(bump_path)
        result.bump_x_path = str(bump_x_path)

        try:
            result.bump_size = write_dds(bump_path, textures.bump_mips, textures.width, textures.height)
            _log(log_callback, f"Successfully saved {bump_path}")
        except OSError as e:
            result.write_errors.append(f"Failed to write bump texture to {bump_path}: {e}")

        try:
            result.bump_x_size = write_dds(bump_x_path, textures.bump_x_mips, textures.width, textures.height)
            _log(log_callback, f"Successfully saved {bump_x_path}")
        except OSError as e:
            result.write_errors.append(f"Failed to write bump# texture to {bump_x_path}: {e}")

        result.success = not result.write_errors
        return result
