import asyncio
from typing import AsyncIterator, Optional, Protocol, runtime_checkable

import httpx

from tubegrab.config.settings import config
from tubegrab.core.errors import UpstreamFailure


@runtime_checkable
class ElementaryStream(Protocol):
    """
    Producer side of every transfer.

    `chunks()` yields byte chunks in order and then either ends or raises
    exactly once. `aclose()` may be called at any time, from any path, any
    number of times; it stops the producer and releases what it holds.
    """
    content_length: Optional[int]

    def chunks(self) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None: ...


class HttpElementaryStream:
    """A provider rendition read straight from its media URL"""

    def __init__(self, response: httpx.Response, label: str, chunk_size: Optional[int] = None):
        self._response = response
        self._chunk_size = chunk_size or config.download.chunk_size
        self._closing: Optional[asyncio.Future] = None
        self.label = label
        length = response.headers.get("content-length")
        self.content_length = int(length) if length and length.isdigit() else None

    async def chunks(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_raw(self._chunk_size):
                yield chunk
        except (httpx.HTTPError, httpx.StreamError) as e:
            raise UpstreamFailure(f"{self.label} stream failed: {e}") from e

    async def aclose(self) -> None:
        if self._closing is None:
            self._closing = asyncio.ensure_future(self._response.aclose())
        await asyncio.shield(self._closing)
