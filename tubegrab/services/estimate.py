from types import MappingProxyType
from typing import Optional

MB = 1024 * 1024

# Typical sizes in MB by pixel height, used when the provider has no exact length
VIDEO_SIZE_ESTIMATES_MB = MappingProxyType({
    144: 2,
    240: 4,
    360: 8,
    480: 15,
    720: 25,
    1080: 50,
    1440: 80,
    2160: 150,
})
DEFAULT_VIDEO_SIZE_MB = 10
DEFAULT_AUDIO_SIZE_MB = 3


def round_megabytes(size_bytes: int) -> int:
    """Half-up rounding to whole megabytes"""
    return int(size_bytes / MB + 0.5)


def estimate_video_mb(resolution: int) -> int:
    return VIDEO_SIZE_ESTIMATES_MB.get(resolution, DEFAULT_VIDEO_SIZE_MB)


class SizeEstimate:
    """Byte size plus the rounded megabytes shown to users"""
    __slots__ = ("size_bytes", "size_mb")

    def __init__(self, size_bytes: int, size_mb: int):
        self.size_bytes = size_bytes
        self.size_mb = size_mb

    @classmethod
    def from_exact(cls, size_bytes: int) -> "SizeEstimate":
        return cls(size_bytes, round_megabytes(size_bytes))

    @classmethod
    def from_megabytes(cls, size_mb: int) -> "SizeEstimate":
        return cls(size_mb * MB, size_mb)

    def __add__(self, other: "SizeEstimate") -> "SizeEstimate":
        return SizeEstimate(self.size_bytes + other.size_bytes, self.size_mb + other.size_mb)

    def __repr__(self) -> str:
        return f"SizeEstimate(size_bytes={self.size_bytes}, size_mb={self.size_mb})"


def video_size(content_length: Optional[int], resolution: int) -> SizeEstimate:
    if content_length:
        return SizeEstimate.from_exact(content_length)
    return SizeEstimate.from_megabytes(estimate_video_mb(resolution))


def audio_size(content_length: Optional[int]) -> SizeEstimate:
    if content_length:
        return SizeEstimate.from_exact(content_length)
    return SizeEstimate.from_megabytes(DEFAULT_AUDIO_SIZE_MB)
