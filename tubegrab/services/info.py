from fastapi import Request

from tubegrab.core.logging import log_info
from tubegrab.models.internal import VideoMetadata
from tubegrab.models.response import AnalyzeResponse
from tubegrab.services.catalog import CatalogBuilder
from tubegrab.services.provider import MediaProvider
from tubegrab.utils.formatting import format_count, format_duration

PLACEHOLDER_THUMBNAIL = "/placeholder.svg?height=180&width=320"


class VideoInfoService:
    """Video analysis service. Nothing here is cached; options are rebuilt per request."""

    @staticmethod
    async def analyze(url: str, provider: MediaProvider, request: Request = None) -> AnalyzeResponse:
        metadata = await provider.fetch_metadata(url)
        response = VideoInfoService.describe(metadata)
        log_info(request, f"Built {len(response.formats)} options from {len(metadata.renditions)} renditions")
        return response

    @staticmethod
    def describe(metadata: VideoMetadata) -> AnalyzeResponse:
        return AnalyzeResponse(
            title=metadata.title,
            # The provider lists thumbnails smallest first
            thumbnail=metadata.thumbnails[-1] if metadata.thumbnails else PLACEHOLDER_THUMBNAIL,
            duration=format_duration(metadata.duration_seconds),
            views=format_count(metadata.view_count),
            likes=format_count(metadata.like_count) if metadata.like_count else "N/A",
            author=metadata.author,
            formats=CatalogBuilder.build(metadata.renditions),
        )
