import os

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tubegrab.api import analyze, download, health
from tubegrab.config.settings import CONFIG_PATH, config
from tubegrab.core.logging import RequestIdMiddleware, log_info, setup_logging
from tubegrab.core.state import state
from tubegrab.i18n import i18n
from tubegrab.infra.concurrency import release_download_slot
from tubegrab.infra.redis import close_redis, init_redis
from tubegrab.services.ytdlp import FFmpegCommandBuilder, SubprocessExecutor, YTDLPCommandBuilder

setup_logging()

app = FastAPI(
    title=config.api.title,
    description=config.api.description,
    version=config.api.version,
    docs_url="/docs" if config.api.debug else None,
    redoc_url=None
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Request-ID"],
)
app.add_middleware(RequestIdMiddleware)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are plain 400s, like a missing URL"""
    await release_download_slot(request)
    _ = i18n.translator(request.headers.get("accept-language"))
    return JSONResponse(status_code=400, content={"detail": _("error.invalid_input")})


# Routes
app.include_router(health.router, tags=["Health"])
app.include_router(analyze.router, tags=["Analyze"])
app.include_router(download.router, tags=["Download"])


@app.on_event("startup")
async def startup_event():
    # Write the effective configuration on first start
    config_dir = os.path.dirname(CONFIG_PATH)
    if config_dir and not os.path.exists(config_dir):
        os.makedirs(config_dir, exist_ok=True)
    if not os.path.exists(CONFIG_PATH):
        config.save_to_file(CONFIG_PATH)

    state.redis = await init_redis()
    state.http_client = httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(config.download.socket_timeout, read=config.download.socket_timeout * 3),
    )

    state.ytdlp_version = await SubprocessExecutor.version(YTDLPCommandBuilder.build_version_command()) or "unknown"
    state.ffmpeg_version = await SubprocessExecutor.version(FFmpegCommandBuilder.build_version_command()) or "unknown"
    log_info(None, f"yt-dlp {state.ytdlp_version}, {state.ffmpeg_version}")


@app.on_event("shutdown")
async def shutdown_event():
    if state.http_client is not None:
        await state.http_client.aclose()
        state.http_client = None
    await close_redis()
