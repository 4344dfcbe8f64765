import logging
import uuid
from typing import Any, Optional

from fastapi import Request
from rich.logging import RichHandler
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from tubegrab.config.settings import config

logger = logging.getLogger("tubegrab")


def setup_logging() -> None:
    """Install the root handler once, honouring the logging config section."""
    root = logging.getLogger()
    if getattr(root, "_tubegrab_configured", False):
        return

    if config.logging.enable_rich:
        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(config.logging.format))

    root.addHandler(handler)
    root.setLevel(config.logging.level)
    root._tubegrab_configured = True


def request_id_of(request: Optional[Request]) -> str:
    if request is None:
        return "unknown"
    return getattr(request.state, "request_id", "unknown")


def log_with_context(
    request: Optional[Request],
    level: int,
    message: str,
    **kwargs: Any
) -> None:
    """
    Log with request context.
    Automatically includes request_id for tracing.
    """
    extra = {
        "request_id": request_id_of(request),
        **kwargs
    }
    logger.log(level, f"[{extra['request_id']}] {message}", extra=extra)

def log_info(request: Optional[Request], message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.INFO, message, **kwargs)

def log_error(request: Optional[Request], message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.ERROR, message, **kwargs)

def log_warning(request: Optional[Request], message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.WARNING, message, **kwargs)

def log_debug(request: Optional[Request], message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.DEBUG, message, **kwargs)


class RequestIdMiddleware:
    """Pure ASGI middleware so streaming bodies pass through untouched"""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        incoming = dict(scope.get("headers") or []).get(b"x-request-id", b"")
        request_id = incoming.decode("latin-1")[:64] or uuid.uuid4().hex[:12]
        scope.setdefault("state", {})["request_id"] = request_id

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers") or [])
                headers.append((b"x-request-id", request_id.encode("latin-1")))
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_request_id)
