import asyncio
from typing import List, NamedTuple, Optional, Sequence

from tubegrab.config.settings import config


class CompletedProcess(NamedTuple):
    """Subprocess result"""
    returncode: int
    stdout: bytes
    stderr: bytes


class SubprocessExecutor:
    """Execute subprocess with consistent error handling"""

    @staticmethod
    async def run(
        cmd: List[str],
        timeout: float,
        capture_stderr: bool = True
    ) -> CompletedProcess:
        """
        Run subprocess with timeout and proper cleanup.
        Prevents process leaks and ensures consistent error handling.
        """
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE if capture_stderr else asyncio.subprocess.DEVNULL,
            stdin=asyncio.subprocess.DEVNULL
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout
            )

            return CompletedProcess(
                returncode=process.returncode,
                stdout=stdout,
                stderr=stderr if capture_stderr else b""
            )

        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise
        except BaseException:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

    @staticmethod
    async def version(cmd: List[str], timeout: float = 10.0) -> Optional[str]:
        """First line of a `--version` style command, None if the tool is unusable"""
        try:
            result = await SubprocessExecutor.run(cmd, timeout=timeout)
        except (OSError, asyncio.TimeoutError):
            return None
        if result.returncode != 0:
            return None
        lines = result.stdout.decode(errors="replace").strip().splitlines()
        return lines[0] if lines else None


class YTDLPCommandBuilder:
    """Build yt-dlp commands"""

    @staticmethod
    def build_info_command(url: str) -> List[str]:
        """Build command for fetching video info and formats"""
        cmd = [
            config.provider.binary,
            '--dump-json',
            '--no-playlist',
            '--no-warnings',
            '--socket-timeout', str(config.download.socket_timeout),
        ]

        if config.provider.js_runtime:
            cmd.extend(['--js-runtimes', config.provider.js_runtime])

        cmd.append(url)

        return cmd

    @staticmethod
    def build_version_command() -> List[str]:
        return [config.provider.binary, '--version']


class FFmpegCommandBuilder:
    """Build ffmpeg commands"""

    @staticmethod
    def build_mux_command(
        video_fd: int,
        audio_fd: int,
        program: Optional[Sequence[str]] = None
    ) -> List[str]:
        """
        Mux two inherited pipes into fragmented MP4 on stdout.
        Video is copied, audio is re-encoded for MP4 compatibility.
        """
        cmd = list(program) if program else [config.ffmpeg.binary]
        cmd.extend([
            '-hide_banner',
            '-loglevel', config.ffmpeg.log_level,
            '-nostdin',
            '-i', f'pipe:{video_fd}',
            '-i', f'pipe:{audio_fd}',
            '-map', '0:v:0',
            '-map', '1:a:0',
            '-c:v', 'copy',
            '-c:a', config.ffmpeg.audio_codec,
            '-f', 'mp4',
            # Fragmented output can be written to a non-seekable pipe
            '-movflags', 'frag_keyframe+empty_moov',
            'pipe:1',
        ])
        return cmd

    @staticmethod
    def build_version_command() -> List[str]:
        return [config.ffmpeg.binary, '-version']
