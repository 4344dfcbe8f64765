import asyncio
import os
from collections import deque
from contextlib import suppress
from typing import AsyncIterator, List, Optional, Sequence

from fastapi import Request

from tubegrab.config.settings import config
from tubegrab.core.errors import UpstreamFailure
from tubegrab.core.logging import log_debug, log_error, log_warning
from tubegrab.services.streams import ElementaryStream
from tubegrab.services.ytdlp import FFmpegCommandBuilder

STDERR_MAX_LINES = 50


async def open_pipe_writer(fd: int) -> asyncio.StreamWriter:
    """Wrap the write end of an os.pipe() in a StreamWriter with drain() backpressure"""
    loop = asyncio.get_running_loop()
    pipe = os.fdopen(fd, "wb", buffering=0)
    try:
        transport, protocol = await loop.connect_write_pipe(
            lambda: asyncio.streams.FlowControlMixin(loop=loop),
            pipe,
        )
    except BaseException:
        pipe.close()
        raise
    return asyncio.StreamWriter(transport, protocol, None, loop)


class MuxPipeline:
    """
    Video and audio elementary streams in, one fragmented MP4 stream out.

    Each input is fed by its own task into a dedicated pipe inherited by
    ffmpeg, so a stalled input never blocks the other one or the output.
    The first failure anywhere kills ffmpeg, which ends the output; the
    failure is then raised from `chunks()`. `aclose()` tears everything
    down once, whatever path led there.
    """

    content_length = None

    def __init__(
        self,
        video: ElementaryStream,
        audio: ElementaryStream,
        request: Optional[Request] = None,
        program: Optional[Sequence[str]] = None,
        chunk_size: Optional[int] = None,
    ):
        self.video = video
        self.audio = audio
        self.process: Optional[asyncio.subprocess.Process] = None
        self._request = request
        self._program = program
        self._chunk_size = chunk_size or config.download.chunk_size
        self._writers: List[asyncio.StreamWriter] = []
        self._pending_fds: List[int] = []
        self._tasks: List[asyncio.Task] = []
        self._stderr_lines: deque = deque(maxlen=STDERR_MAX_LINES)
        self._error: Optional[BaseException] = None
        self._cleanup: Optional[asyncio.Future] = None

    async def start(self) -> None:
        video_read, video_write = os.pipe()
        audio_read, audio_write = os.pipe()
        self._pending_fds = [video_write, audio_write]

        cmd = FFmpegCommandBuilder.build_mux_command(video_read, audio_read, program=self._program)
        try:
            self.process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                pass_fds=(video_read, audio_read),
            )
        except OSError as e:
            raise UpstreamFailure(f"Could not start muxer: {e}") from e
        finally:
            # The child has its own copies of the read ends
            os.close(video_read)
            os.close(audio_read)

        for fd in (video_write, audio_write):
            self._writers.append(await open_pipe_writer(fd))
            self._pending_fds.remove(fd)

        video_writer, audio_writer = self._writers
        self._tasks = [
            asyncio.create_task(self._feed(self.video, video_writer, "video")),
            asyncio.create_task(self._feed(self.audio, audio_writer, "audio")),
            asyncio.create_task(self._drain_stderr()),
        ]

    async def _feed(self, source: ElementaryStream, writer: asyncio.StreamWriter, label: str) -> None:
        try:
            async for chunk in source.chunks():
                writer.write(chunk)
                await writer.drain()
        except (BrokenPipeError, ConnectionResetError):
            self._fail(UpstreamFailure(f"Muxer stopped reading the {label} input"))
        except UpstreamFailure as e:
            self._fail(e)
        except Exception as e:
            self._fail(UpstreamFailure(f"{label} input failed: {e}"))
        else:
            # EOF for this input only; the other one keeps flowing
            writer.close()
            log_debug(self._request, f"{label} input complete")

    async def _drain_stderr(self) -> None:
        """Keep ffmpeg diagnostics in the server log, never in the response"""
        stderr = self.process.stderr
        while True:
            try:
                line = await stderr.readline()
            except ValueError:
                # Overlong line; skip it
                continue
            if not line:
                break
            decoded = line.decode(errors="replace").rstrip()
            if decoded:
                self._stderr_lines.append(decoded)
                log_debug(self._request, f"ffmpeg: {decoded}")

    def _fail(self, exc: BaseException) -> None:
        if self._error is None:
            self._error = exc
            log_error(self._request, f"Mux pipeline failed: {exc}")
        self._kill()

    def _kill(self) -> None:
        if self.process is not None and self.process.returncode is None:
            with suppress(ProcessLookupError):
                self.process.kill()

    def stderr_summary(self) -> str:
        return "\n".join(self._stderr_lines)[-200:]

    async def chunks(self) -> AsyncIterator[bytes]:
        if self.process is None:
            raise RuntimeError("MuxPipeline.start() was not awaited")

        stdout = self.process.stdout
        while True:
            chunk = await stdout.read(self._chunk_size)
            if not chunk:
                break
            yield chunk

        returncode = await self.process.wait()
        if self._error is not None:
            raise self._error
        if returncode != 0:
            summary = self.stderr_summary()
            log_warning(self._request, f"ffmpeg exited with {returncode}: {summary}")
            raise UpstreamFailure(f"Muxer exited with code {returncode}")

    async def aclose(self) -> None:
        if self._cleanup is None:
            # Synchronous part first: the subprocess and pipes go even if
            # the caller is cancelled while awaiting the rest
            self._kill()
            for task in self._tasks:
                task.cancel()
            for writer in self._writers:
                writer.close()
            for fd in self._pending_fds:
                with suppress(OSError):
                    os.close(fd)
            self._pending_fds.clear()
            self._cleanup = asyncio.ensure_future(self._release())
        await asyncio.shield(self._cleanup)

    async def _release(self) -> None:
        await asyncio.gather(*self._tasks, return_exceptions=True)
        if self.process is not None:
            await self.process.wait()
        await asyncio.gather(self.video.aclose(), self.audio.aclose(), return_exceptions=True)
