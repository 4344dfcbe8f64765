from typing import List, Optional

from pydantic import BaseModel


class RenditionOption(BaseModel):
    """A downloadable choice offered to the client and sent back on download"""
    quality: str
    format: str
    filesize: str
    estimated_size_bytes: int
    resolution: int = 0
    is_high_quality: bool = False
    itag: Optional[str] = None
    video_itag: Optional[str] = None
    audio_itag: Optional[str] = None
    mime_type: Optional[str] = None
    has_video: bool = True
    has_audio: bool = True

    @property
    def is_split(self) -> bool:
        return self.video_itag is not None and self.audio_itag is not None


class AnalyzeResponse(BaseModel):
    """Video information response"""
    title: str
    thumbnail: str
    duration: str
    views: str
    likes: str
    author: Optional[str] = None
    formats: List[RenditionOption] = []


class HealthResponse(BaseModel):
    status: str
    ytdlWorking: bool
    ytdlp_version: str
    ffmpeg_version: str
    timestamp: str
