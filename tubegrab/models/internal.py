from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RawRendition(BaseModel):
    """One rendition as reported by the provider. Read-only."""
    model_config = ConfigDict(frozen=True)

    identifier: str
    has_video: bool
    has_audio: bool
    container: Optional[str] = None
    quality_label: Optional[str] = None
    bitrate: Optional[float] = None
    audio_bitrate: Optional[float] = None
    content_length: Optional[int] = None
    mime_type: Optional[str] = None
    # Provider-private, needed to open the stream
    stream_url: Optional[str] = Field(default=None, repr=False)
    http_headers: Dict[str, str] = Field(default_factory=dict, repr=False)


class VideoMetadata(BaseModel):
    """Video details plus every rendition the provider offers"""
    video_id: Optional[str] = None
    title: str = "Unknown"
    author: Optional[str] = None
    duration_seconds: int = 0
    view_count: int = 0
    like_count: Optional[int] = None
    thumbnails: List[str] = []
    renditions: List[RawRendition] = []

    def find_rendition(self, identifier: Optional[str]) -> Optional[RawRendition]:
        if identifier is None:
            return None
        for rendition in self.renditions:
            if rendition.identifier == identifier:
                return rendition
        return None


class TransferPath(str, Enum):
    MUXED = "muxed"
    AUDIO = "audio"
    SINGLE = "single"


class TransferPlan(BaseModel):
    """What the dispatcher decided for one download request"""
    path: TransferPath
    filename: str
    media_type: str
    content_length: Optional[int] = None
    single: Optional[RawRendition] = None
    video: Optional[RawRendition] = None
    audio: Optional[RawRendition] = None

    @property
    def headers(self) -> Dict[str, str]:
        safe_filename = self.filename.replace('"', '\\"')
        headers = {
            'Content-Type': self.media_type,
            'Content-Disposition': f'attachment; filename="{safe_filename}"',
            'Cache-Control': 'no-cache',
            'X-Content-Type-Options': 'nosniff',
        }
        if self.content_length:
            headers['Content-Length'] = str(self.content_length)
        return headers
