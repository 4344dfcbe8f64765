import asyncio
import json
import re
from typing import Any, Dict, List, Optional, Protocol

import httpx

from tubegrab.config.settings import config
from tubegrab.core.errors import (
    AgeRestricted,
    FormatNotFound,
    Internal,
    InvalidInput,
    SignInRequired,
    TubeGrabError,
    UpstreamFailure,
    VideoUnavailable,
)
from tubegrab.core.state import state
from tubegrab.models.internal import RawRendition, VideoMetadata
from tubegrab.services.streams import ElementaryStream, HttpElementaryStream
from tubegrab.services.ytdlp import SubprocessExecutor, YTDLPCommandBuilder

# Only plain progressive downloads can be relayed with a single GET
STREAMABLE_PROTOCOLS = ("https", "http")
QUALITY_LABEL_RE = re.compile(r"^\d+p\d*")

UNAVAILABLE_MARKERS = (
    "video unavailable",
    "private video",
    "this video is unavailable",
    "has been removed",
    "does not exist",
    "not available",
)


class MediaProvider(Protocol):
    """Metadata lookup plus access to individual elementary streams"""

    async def fetch_metadata(self, url: str) -> VideoMetadata: ...

    async def open_stream(self, url: str, rendition: RawRendition) -> ElementaryStream: ...


def classify_provider_error(message: str) -> TubeGrabError:
    """Map extractor stderr to the error taxonomy"""
    lowered = message.lower()
    summary = message.strip()[:200]

    if "age-restricted" in lowered or "confirm your age" in lowered or "age restricted" in lowered:
        return AgeRestricted(summary)
    if any(marker in lowered for marker in UNAVAILABLE_MARKERS):
        return VideoUnavailable(summary)
    if "sign in" in lowered or "login required" in lowered:
        return SignInRequired(summary)
    if "unsupported url" in lowered or "is not a valid url" in lowered:
        return InvalidInput(summary, message_key="error.invalid_url")
    return UpstreamFailure(summary or "yt-dlp failed")


def quality_label_for(fmt: Dict[str, Any], has_video: bool) -> Optional[str]:
    if not has_video:
        return None
    note = (fmt.get("format_note") or "").split(",")[0].strip()
    match = QUALITY_LABEL_RE.match(note)
    if match:
        return match.group(0)
    height = fmt.get("height")
    return f"{height}p" if height else None


def rendition_from_format(fmt: Dict[str, Any], default_headers: Dict[str, str]) -> RawRendition:
    vcodec = fmt.get("vcodec")
    acodec = fmt.get("acodec")
    has_video = vcodec not in (None, "none")
    has_audio = acodec not in (None, "none")
    ext = fmt.get("ext")

    codecs = ", ".join(c for c in (vcodec, acodec) if c not in (None, "none"))
    mime_type = None
    if ext:
        mime_type = f"{'video' if has_video else 'audio'}/{ext}"
        if codecs:
            mime_type += f'; codecs="{codecs}"'

    return RawRendition(
        identifier=str(fmt.get("format_id")),
        has_video=has_video,
        has_audio=has_audio,
        container=ext,
        quality_label=quality_label_for(fmt, has_video),
        bitrate=fmt.get("tbr") or fmt.get("vbr"),
        audio_bitrate=fmt.get("abr"),
        # filesize_approx is an estimate, not an exact length
        content_length=fmt.get("filesize"),
        mime_type=mime_type,
        stream_url=fmt.get("url"),
        http_headers=fmt.get("http_headers") or default_headers,
    )


def parse_metadata(info: Dict[str, Any]) -> VideoMetadata:
    default_headers = info.get("http_headers") or {}
    renditions: List[RawRendition] = []
    for fmt in info.get("formats") or []:
        if fmt.get("format_id") is None or not fmt.get("url"):
            continue
        if fmt.get("protocol") not in STREAMABLE_PROTOCOLS:
            continue
        renditions.append(rendition_from_format(fmt, default_headers))

    thumbnails = [t["url"] for t in info.get("thumbnails") or [] if t.get("url")]
    if not thumbnails and info.get("thumbnail"):
        thumbnails = [info["thumbnail"]]

    return VideoMetadata(
        video_id=info.get("id"),
        title=info.get("title") or "Unknown",
        author=info.get("uploader") or info.get("channel"),
        duration_seconds=int(info.get("duration") or 0),
        view_count=int(info.get("view_count") or 0),
        like_count=info.get("like_count"),
        thumbnails=thumbnails,
        renditions=renditions,
    )


class YtDlpProvider:
    """Provider backed by the yt-dlp executable and direct HTTP reads"""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        client = self._client or state.http_client
        if client is None:
            raise Internal("HTTP client is not initialized")
        return client

    async def fetch_metadata(self, url: str) -> VideoMetadata:
        cmd = YTDLPCommandBuilder.build_info_command(url)

        try:
            result = await SubprocessExecutor.run(cmd, timeout=config.download.metadata_timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamFailure("yt-dlp timed out") from e
        except OSError as e:
            raise Internal(f"yt-dlp could not be started: {e}") from e

        if result.returncode != 0:
            raise classify_provider_error(result.stderr.decode(errors="replace"))

        try:
            info = json.loads(result.stdout.decode(errors="replace"))
        except ValueError as e:
            raise UpstreamFailure("Failed to parse yt-dlp output") from e

        return parse_metadata(info)

    async def open_stream(self, url: str, rendition: RawRendition) -> ElementaryStream:
        if not rendition.stream_url:
            raise FormatNotFound(f"Rendition {rendition.identifier} has no direct URL")

        headers = {**rendition.http_headers, "Accept-Encoding": "identity", "Referer": url}
        request = self.client.build_request("GET", rendition.stream_url, headers=headers)

        try:
            response = await self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise UpstreamFailure(f"Could not open rendition {rendition.identifier}: {e}") from e

        if response.status_code >= 400:
            await response.aclose()
            raise UpstreamFailure(
                f"Rendition {rendition.identifier} answered HTTP {response.status_code}"
            )

        return HttpElementaryStream(response, label=f"rendition {rendition.identifier}")


def get_provider() -> MediaProvider:
    """FastAPI dependency; tests override it with a scripted provider"""
    return YtDlpProvider()
