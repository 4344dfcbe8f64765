import re
from typing import Dict, Iterable, List, Optional, Sequence

from tubegrab.models.internal import RawRendition
from tubegrab.models.response import RenditionOption
from tubegrab.services.estimate import SizeEstimate, audio_size, video_size
from tubegrab.utils.formatting import format_megabytes

RESOLUTION_RE = re.compile(r"(\d+)p")

AUDIO_ONLY_KEY = "audio_only"
AUDIO_ONLY_LABEL = "Audio Only"
AUDIO_ONLY_CONTAINER = "mp3"
SPLIT_CONTAINER = "mp4"
HIGH_QUALITY_MIN_RESOLUTION = 1080
HIGH_QUALITY_SUFFIX = " (High Quality)"


def parse_resolution(quality_label: Optional[str]) -> int:
    """Pixel height from labels like "1080p" or "720p60", 0 when absent"""
    if not quality_label:
        return 0
    match = RESOLUTION_RE.search(quality_label)
    return int(match.group(1)) if match else 0


def combined_key(quality: str) -> str:
    return f"{quality}_combined"


def high_key(quality: str) -> str:
    return f"{quality}_high"


def option_key(option: RenditionOption) -> str:
    """Catalog key of an already built option"""
    if option.quality == AUDIO_ONLY_LABEL:
        return AUDIO_ONLY_KEY
    if option.is_split:
        return high_key(option.quality.replace(HIGH_QUALITY_SUFFIX, ""))
    return combined_key(option.quality)


def is_audio_option(option: RenditionOption) -> bool:
    return option.quality == AUDIO_ONLY_LABEL


class CatalogBuilder:
    """Turn the provider's rendition list into ranked, de-duplicated options"""

    @staticmethod
    def build(renditions: Sequence[RawRendition]) -> List[RenditionOption]:
        options: Dict[str, RenditionOption] = {}

        for rendition in CatalogBuilder.premuxed(renditions):
            key = combined_key(rendition.quality_label)
            if key not in options:
                options[key] = CatalogBuilder._combined_option(rendition)

        best_audio = CatalogBuilder.best_audio(renditions)
        if best_audio is not None:
            for video in CatalogBuilder.best_video_only(renditions):
                key = high_key(video.quality_label)
                if key not in options:
                    options[key] = CatalogBuilder._split_option(video, best_audio)

            options[AUDIO_ONLY_KEY] = CatalogBuilder._audio_option(best_audio)

        return sort_options(options.values())

    @staticmethod
    def premuxed(renditions: Iterable[RawRendition]) -> List[RawRendition]:
        return [r for r in renditions if r.has_video and r.has_audio and r.quality_label]

    @staticmethod
    def best_video_only(renditions: Iterable[RawRendition]) -> List[RawRendition]:
        """Highest-bitrate mp4 video-only rendition per quality label.

        A replaced entry moves to the end, the way a filter-and-append reduce
        would order it.
        """
        best: Dict[str, RawRendition] = {}
        for rendition in renditions:
            if not (rendition.has_video and not rendition.has_audio
                    and rendition.container == SPLIT_CONTAINER and rendition.quality_label):
                continue

            quality = rendition.quality_label
            existing = best.get(quality)
            if existing is None:
                best[quality] = rendition
            elif (rendition.bitrate or 0) > (existing.bitrate or 0):
                del best[quality]
                best[quality] = rendition

        return list(best.values())

    @staticmethod
    def best_audio(renditions: Iterable[RawRendition]) -> Optional[RawRendition]:
        candidates = [r for r in renditions if r.has_audio and not r.has_video]
        if not candidates:
            return None
        # max() keeps the first of equal bitrates
        return max(candidates, key=lambda r: r.audio_bitrate or 0)

    @staticmethod
    def _combined_option(rendition: RawRendition) -> RenditionOption:
        resolution = parse_resolution(rendition.quality_label)
        size = video_size(rendition.content_length, resolution)
        return RenditionOption(
            quality=rendition.quality_label,
            format=rendition.container or SPLIT_CONTAINER,
            filesize=format_megabytes(size.size_mb),
            estimated_size_bytes=size.size_bytes,
            resolution=resolution,
            is_high_quality=False,
            itag=rendition.identifier,
            mime_type=rendition.mime_type,
            has_video=True,
            has_audio=True,
        )

    @staticmethod
    def _split_option(video: RawRendition, audio: RawRendition) -> RenditionOption:
        resolution = parse_resolution(video.quality_label)
        is_high_quality = resolution >= HIGH_QUALITY_MIN_RESOLUTION
        size: SizeEstimate = video_size(video.content_length, resolution) + audio_size(audio.content_length)
        quality = f"{video.quality_label}{HIGH_QUALITY_SUFFIX}" if is_high_quality else video.quality_label
        return RenditionOption(
            quality=quality,
            format=SPLIT_CONTAINER,
            filesize=format_megabytes(size.size_mb),
            estimated_size_bytes=size.size_bytes,
            resolution=resolution,
            is_high_quality=is_high_quality,
            video_itag=video.identifier,
            audio_itag=audio.identifier,
            mime_type=video.mime_type,
            has_video=True,
            has_audio=True,
        )

    @staticmethod
    def _audio_option(audio: RawRendition) -> RenditionOption:
        size = audio_size(audio.content_length)
        return RenditionOption(
            quality=AUDIO_ONLY_LABEL,
            format=AUDIO_ONLY_CONTAINER,
            filesize=format_megabytes(size.size_mb),
            estimated_size_bytes=size.size_bytes,
            resolution=0,
            is_high_quality=False,
            itag=audio.identifier,
            mime_type=audio.mime_type,
            has_video=False,
            has_audio=True,
        )


def sort_options(options: Iterable[RenditionOption]) -> List[RenditionOption]:
    """Audio last, then highest resolution, high quality first on ties. Stable."""
    return sorted(
        options,
        key=lambda o: (is_audio_option(o), -o.resolution, not o.is_high_quality),
    )
