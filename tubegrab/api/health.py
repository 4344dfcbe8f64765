from datetime import datetime, timezone

from fastapi import APIRouter

from tubegrab.core.state import state
from tubegrab.i18n import i18n
from tubegrab.models.response import HealthResponse

router = APIRouter()

UNKNOWN = "unknown"


@router.get("/api/health", response_model=HealthResponse)
async def health_check():
    """Reports whether the extractor and the muxer were found at startup"""
    ytdl_working = state.ytdlp_version != UNKNOWN
    healthy = ytdl_working and state.ffmpeg_version != UNKNOWN

    return HealthResponse(
        status=i18n.get("health.healthy" if healthy else "health.degraded"),
        ytdlWorking=ytdl_working,
        ytdlp_version=state.ytdlp_version,
        ffmpeg_version=state.ffmpeg_version,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
