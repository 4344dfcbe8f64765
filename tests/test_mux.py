import asyncio

import pytest
from conftest import MemoryStream, fake_ffmpeg_program

from tubegrab.core.errors import UpstreamFailure
from tubegrab.services.mux import MuxPipeline
from tubegrab.services.ytdlp import FFmpegCommandBuilder


async def collect(pipeline):
    return b"".join([chunk async for chunk in pipeline.chunks()])


def test_mux_command_reads_both_pipes():
    cmd = FFmpegCommandBuilder.build_mux_command(5, 7, program=["ffmpeg"])

    assert cmd[0] == "ffmpeg"
    assert cmd[cmd.index("-i") + 1] == "pipe:5"
    assert "pipe:7" in cmd
    assert cmd[cmd.index("-c:v") + 1] == "copy"
    assert "frag_keyframe+empty_moov" in cmd
    assert cmd[-1] == "pipe:1"


@pytest.mark.asyncio
async def test_mux_feeds_both_inputs():
    video = MemoryStream([b"video-1 ", b"video-2 "])
    audio = MemoryStream([b"audio-1"])
    pipeline = MuxPipeline(video, audio, program=fake_ffmpeg_program("concat"))
    await pipeline.start()

    try:
        output = await asyncio.wait_for(collect(pipeline), timeout=10)
    finally:
        await pipeline.aclose()

    assert output == b"video-1 video-2 audio-1"
    assert pipeline.process.returncode == 0
    assert video.close_count == 1
    assert audio.close_count == 1


@pytest.mark.asyncio
async def test_mux_large_inputs_do_not_deadlock():
    video = MemoryStream([b"v" * 65536] * 8)
    audio = MemoryStream([b"a" * 65536] * 8)
    pipeline = MuxPipeline(video, audio, program=fake_ffmpeg_program("concat"))
    await pipeline.start()

    try:
        output = await asyncio.wait_for(collect(pipeline), timeout=20)
    finally:
        await pipeline.aclose()

    assert output == b"v" * 65536 * 8 + b"a" * 65536 * 8


@pytest.mark.asyncio
async def test_mux_input_failure_kills_muxer():
    error = UpstreamFailure("rendition 137 stream failed")
    video = MemoryStream([b"video-1"], error=error)
    audio = MemoryStream([b"audio-1"])
    pipeline = MuxPipeline(video, audio, program=fake_ffmpeg_program("concat"))
    await pipeline.start()

    try:
        with pytest.raises(UpstreamFailure) as exc_info:
            await asyncio.wait_for(collect(pipeline), timeout=10)
    finally:
        await pipeline.aclose()

    assert exc_info.value is error
    assert pipeline.process.returncode != 0
    assert video.closed
    assert audio.closed


@pytest.mark.asyncio
async def test_mux_failure_exit_is_upstream_failure():
    video = MemoryStream([b"video-1"])
    audio = MemoryStream([b"audio-1"])
    pipeline = MuxPipeline(video, audio, program=fake_ffmpeg_program("fail"))
    await pipeline.start()

    try:
        with pytest.raises(UpstreamFailure):
            await asyncio.wait_for(collect(pipeline), timeout=10)
    finally:
        await pipeline.aclose()

    assert pipeline.process.returncode == 1


@pytest.mark.asyncio
async def test_mux_close_mid_stream_kills_muxer():
    video = MemoryStream([b"video-1"], hang=True)
    audio = MemoryStream([b"audio-1"], hang=True)
    pipeline = MuxPipeline(video, audio, program=fake_ffmpeg_program("hang"))
    await pipeline.start()

    chunks = pipeline.chunks()
    first = await asyncio.wait_for(chunks.__anext__(), timeout=10)
    assert first

    await chunks.aclose()
    await asyncio.wait_for(pipeline.aclose(), timeout=10)
    await pipeline.aclose()

    assert pipeline.process.returncode is not None
    assert video.close_count == 1
    assert audio.close_count == 1


@pytest.mark.asyncio
async def test_mux_missing_binary():
    video, audio = MemoryStream([]), MemoryStream([])
    pipeline = MuxPipeline(video, audio, program=["/nonexistent/ffmpeg"])

    with pytest.raises(UpstreamFailure):
        await pipeline.start()
    await pipeline.aclose()

    assert pipeline.process is None
    assert video.closed
    assert audio.closed
