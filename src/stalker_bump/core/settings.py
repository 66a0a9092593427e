"""Settings and result types for bump texture processing"""

from dataclasses import dataclass, field, asdict
from multiprocessing import cpu_count
from typing import List, Optional, Tuple

from .block_codec import CodecConfig, CompressionQuality
from .dds_writer import build_dds


NEUTRAL_HEIGHT = 128


@dataclass
class BumpSettings:
    """Configuration for bump / bump# generation"""

    # Compression settings
    quality: CompressionQuality = CompressionQuality.HIGH
    codec: CodecConfig = field(default_factory=CodecConfig)

    # Gloss is stored square-root encoded unless this is set
    linear_gloss: bool = False

    # Height used when no (valid) height map is given
    neutral_height: int = NEUTRAL_HEIGHT

    # Output naming
    bump_suffix: str = "_bump"
    bump_x_suffix: str = "_bump#"

    # Performance settings
    enable_parallel: bool = True
    max_workers: int = max(1, cpu_count() - 1)

    def __post_init__(self):
        self.quality = CompressionQuality(self.quality)
        if not 0 <= self.neutral_height <= 255:
            raise ValueError(f"Neutral height must be 0-255, got {self.neutral_height}")

    def to_dict(self) -> dict:
        """Convert settings to dictionary for multiprocessing"""
        data = asdict(self)
        data['quality'] = int(self.quality)
        data['codec'] = self.codec.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'BumpSettings':
        return cls(
            quality=CompressionQuality(data.get('quality', CompressionQuality.HIGH)),
            codec=CodecConfig.from_dict(data.get('codec', {})),
            linear_gloss=data.get('linear_gloss', False),
            neutral_height=data.get('neutral_height', NEUTRAL_HEIGHT),
            bump_suffix=data.get('bump_suffix', "_bump"),
            bump_x_suffix=data.get('bump_x_suffix', "_bump#"),
            enable_parallel=data.get('enable_parallel', True),
            max_workers=data.get('max_workers', max(1, cpu_count() - 1)),
        )


@dataclass
class BumpTextures:
    """Compressed mip chains of both textures"""
    bump_mips: List[bytes]
    bump_x_mips: List[bytes]
    width: int
    height: int
    warnings: List[str] = field(default_factory=list)

    @property
    def mip_count(self) -> int:
        return len(self.bump_mips)

    @property
    def bump(self) -> bytes:
        """bump container bytes"""
        return build_dds(self.bump_mips, self.width, self.height)

    @property
    def bump_x(self) -> bytes:
        """bump# container bytes"""
        return build_dds(self.bump_x_mips, self.width, self.height)


@dataclass
class ProcessingResult:
    """Result from processing a single normal map"""
    success: bool
    normal_path: str
    input_size: int = 0
    dims: Optional[Tuple[int, int]] = None
    mip_count: int = 0
    bump_path: Optional[str] = None
    bump_x_path: Optional[str] = None
    bump_size: int = 0
    bump_x_size: int = 0
    error_msg: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    write_errors: List[str] = field(default_factory=list)

    @property
    def output_size(self) -> int:
        return self.bump_size + self.bump_x_size
