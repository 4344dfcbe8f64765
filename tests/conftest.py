import asyncio
import os
import stat
import sys
from typing import Dict, Iterable, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient

from tubegrab.config.settings import config
from tubegrab.models.internal import RawRendition, VideoMetadata

MB = 1024 * 1024
FAKE_FFMPEG = os.path.join(os.path.dirname(__file__), "fake_ffmpeg.py")
WATCH_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


class MemoryStream:
    """Scripted elementary stream"""

    def __init__(
        self,
        chunks: Iterable[bytes],
        error: Optional[BaseException] = None,
        hang: bool = False,
        content_length: Optional[int] = None,
    ):
        self._chunks = list(chunks)
        self._error = error
        self._hang = hang
        self.content_length = content_length
        self.close_count = 0

    @property
    def closed(self) -> bool:
        return self.close_count > 0

    async def chunks(self):
        for chunk in self._chunks:
            await asyncio.sleep(0)
            yield chunk
        if self._error is not None:
            raise self._error
        if self._hang:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.close_count += 1


class FakeProvider:
    """Provider double with scripted metadata and streams"""

    def __init__(
        self,
        metadata: Optional[VideoMetadata] = None,
        streams: Optional[Dict[str, MemoryStream]] = None,
        error: Optional[BaseException] = None,
        fail_on: Optional[Dict[str, BaseException]] = None,
    ):
        self.metadata = metadata
        self.streams = streams or {}
        self.error = error
        self.fail_on = fail_on or {}
        self.opened: List[str] = []

    async def fetch_metadata(self, url: str) -> VideoMetadata:
        if self.error is not None:
            raise self.error
        return self.metadata

    async def open_stream(self, url: str, rendition: RawRendition) -> MemoryStream:
        self.opened.append(rendition.identifier)
        if rendition.identifier in self.fail_on:
            raise self.fail_on[rendition.identifier]
        return self.streams[rendition.identifier]


def rendition(identifier: str, **kwargs) -> RawRendition:
    return RawRendition(identifier=identifier, **kwargs)


def sample_renditions() -> List[RawRendition]:
    """A typical mix: two pre-muxed, three usable video-only, one webm, two audio"""
    return [
        rendition("18", has_video=True, has_audio=True, container="mp4", quality_label="360p",
                  bitrate=500, content_length=5 * MB, mime_type="video/mp4"),
        rendition("22", has_video=True, has_audio=True, container="mp4", quality_label="720p",
                  bitrate=1200, mime_type="video/mp4"),
        rendition("399", has_video=True, has_audio=False, container="mp4", quality_label="1080p",
                  bitrate=2000, mime_type="video/mp4"),
        rendition("137", has_video=True, has_audio=False, container="mp4", quality_label="1080p",
                  bitrate=4000, content_length=100 * MB, mime_type="video/mp4"),
        rendition("136", has_video=True, has_audio=False, container="mp4", quality_label="720p",
                  bitrate=1500, mime_type="video/mp4"),
        rendition("248", has_video=True, has_audio=False, container="webm", quality_label="1080p",
                  bitrate=5000, mime_type="video/webm"),
        rendition("140", has_video=False, has_audio=True, container="m4a",
                  audio_bitrate=129, content_length=3 * MB, mime_type="audio/m4a"),
        rendition("251", has_video=False, has_audio=True, container="webm",
                  audio_bitrate=160, content_length=4 * MB, mime_type="audio/webm"),
    ]


def sample_metadata(renditions: Optional[List[RawRendition]] = None, **kwargs) -> VideoMetadata:
    fields = dict(
        video_id="dQw4w9WgXcQ",
        title="My Video: Part #1!",
        author="Some Channel",
        duration_seconds=3661,
        view_count=2_300_000,
        like_count=1500,
        thumbnails=["https://i.ytimg.com/vi/x/default.jpg", "https://i.ytimg.com/vi/x/maxres.jpg"],
        renditions=sample_renditions() if renditions is None else renditions,
    )
    fields.update(kwargs)
    return VideoMetadata(**fields)


def fake_ffmpeg_program(mode: str = "concat") -> List[str]:
    return [sys.executable, FAKE_FFMPEG, "--mode", mode]


@pytest.fixture
def fake_ffmpeg_binary(tmp_path, monkeypatch):
    """Point config.ffmpeg.binary at an executable wrapper around fake_ffmpeg.py"""

    def install(mode: str = "concat") -> str:
        wrapper = tmp_path / f"ffmpeg-{mode}"
        wrapper.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_FFMPEG}" --mode {mode} "$@"\n')
        wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        monkeypatch.setattr(config.ffmpeg, "binary", str(wrapper))
        return str(wrapper)

    return install


@pytest.fixture(autouse=True)
def no_dns(monkeypatch):
    """Tests never resolve hosts"""
    monkeypatch.setattr(config.security, "enable_ssrf_protection", False)


@pytest.fixture
def app():
    from tubegrab.main import app as fastapi_app

    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def use_provider(app):
    from tubegrab.services.provider import get_provider

    def install(provider: FakeProvider) -> FakeProvider:
        app.dependency_overrides[get_provider] = lambda: provider
        return provider

    return install


def api_client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
