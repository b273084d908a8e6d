from dataclasses import dataclass
from pathlib import Path

KIB = 1024
MIB = 1024 * 1024


@dataclass
class ChaffConfig:
    """
    Settings for one fill-and-shred run

    Attributes:
        directory: Where chaff files are created
        file_size: Target size of each numbered chaff file (default 100 MiB)
        threshold: Low-space threshold; at or below it only the final file
            is written (default 10 MiB)
        chunk_size: Write unit for generation and every shred pass (1 MiB)
        prefix: Filename prefix of every chaff file
        extension: Filename extension of every chaff file
        final_tag: Suffix of the final file, kept out of the numbered series
        max_stalls: Consecutive iterations without progress before the fill
            loop gives up
    """
    directory: Path = Path('./chaff')
    file_size: int = 100 * MIB
    threshold: int = 10 * MIB
    chunk_size: int = 1 * MIB
    prefix: str = 'chaff_'
    extension: str = '.dat'
    final_tag: str = 'FINAL'
    max_stalls: int = 5

    def __post_init__(self):
        self.directory = Path(self.directory)

    def validate(self):
        if self.file_size <= 0:
            raise ValueError("file_size must be positive")
        if self.threshold < 0:
            raise ValueError("threshold must not be negative")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.max_stalls < 1:
            raise ValueError("max_stalls must be at least 1")
        if not self.prefix or '/' in self.prefix or '\\' in self.prefix:
            raise ValueError(f"Invalid file prefix: {self.prefix!r}")
        if self.final_tag.isdigit():
            # A numeric tag could collide with the numbered series
            raise ValueError(f"final_tag must not be numeric: {self.final_tag!r}")
        return self

    def numbered_path(self, index):
        return self.directory / f"{self.prefix}{index:06d}{self.extension}"

    def final_path(self):
        return self.directory / f"{self.prefix}{self.final_tag}{self.extension}"
