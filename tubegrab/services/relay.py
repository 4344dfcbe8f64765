import asyncio
from typing import AsyncIterator, Awaitable, Callable, Optional

from fastapi import Request
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from tubegrab.config.settings import config
from tubegrab.core.errors import UpstreamFailure
from tubegrab.core.logging import log_error, log_info, log_warning
from tubegrab.models.internal import TransferPlan
from tubegrab.services.streams import ElementaryStream


async def relay(source: ElementaryStream, request: Optional[Request] = None) -> AsyncIterator[bytes]:
    """
    Forward every chunk of `source` in order and unmodified.

    Pull-driven: the next chunk is only read once the server has taken the
    previous one, so a slow client slows the upstream read instead of
    growing a buffer.
    """
    chunks = source.chunks()
    sent = 0
    try:
        async for chunk in chunks:
            sent += len(chunk)
            yield chunk
    except asyncio.CancelledError:
        log_warning(request, f"Transfer cancelled after {sent} bytes")
        raise
    except UpstreamFailure as e:
        log_error(request, f"Transfer aborted after {sent} bytes: {e}")
        raise
    except Exception as e:
        log_error(request, f"Transfer aborted after {sent} bytes: {e}")
        raise UpstreamFailure(str(e)) from e
    else:
        log_info(request, f"Transfer complete ({sent} bytes)")
    finally:
        close_chunks = getattr(chunks, "aclose", None)
        if close_chunks is not None:
            await close_chunks()
        await source.aclose()


class TransferResponse(StreamingResponse):
    """
    Streaming response that owns its transfer session.

    Whatever ends the response (completion, upstream error, client
    disconnect or the download time ceiling) the source is closed exactly
    once before `__call__` returns.
    """

    def __init__(
        self,
        source: ElementaryStream,
        plan: TransferPlan,
        request: Optional[Request] = None,
        timeout: Optional[float] = None,
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.source = source
        self.request = request
        self.timeout = timeout or config.download.timeout_seconds
        self.on_close = on_close
        super().__init__(
            relay(source, request),
            media_type=plan.media_type,
            headers=plan.headers,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await asyncio.wait_for(super().__call__(scope, receive, send), timeout=self.timeout)
        except asyncio.TimeoutError:
            log_error(self.request, f"Download exceeded {self.timeout} seconds, aborting")
            raise UpstreamFailure("Download timed out") from None
        finally:
            await self.body_iterator.aclose()
            await self.source.aclose()
            if self.on_close is not None:
                await self.on_close()
