from fastapi import APIRouter, Depends, HTTPException, Request

from tubegrab.api.common import to_http_exception, validated_url
from tubegrab.core.errors import TubeGrabError
from tubegrab.core.logging import log_error, log_info
from tubegrab.i18n import i18n
from tubegrab.infra.rate_limit import analyze_rate_limiter
from tubegrab.models.request import AnalyzeRequest
from tubegrab.models.response import AnalyzeResponse
from tubegrab.services.info import VideoInfoService
from tubegrab.services.provider import MediaProvider, get_provider
from tubegrab.utils.locale import safe_url_for_log

router = APIRouter()


@router.post("/api/analyze", response_model=AnalyzeResponse, dependencies=[Depends(analyze_rate_limiter)])
async def analyze_video(
    request: Request,
    video_request: AnalyzeRequest,
    provider: MediaProvider = Depends(get_provider),
):
    """Video details plus the ranked download options"""

    _ = i18n.translator(request.headers.get("accept-language"))

    url = await validated_url(video_request.url, _)
    log_info(request, _("log.analyzing", url=safe_url_for_log(url)))

    try:
        result = await VideoInfoService.analyze(url, provider, request)
    except TubeGrabError as e:
        log_error(request, f"Analyze failed ({type(e).__name__}): {e}")
        raise to_http_exception(e, _, "error.analyze_failed")
    except Exception as e:
        log_error(request, f"Analyze error: {str(e)}")
        raise HTTPException(status_code=500, detail=_("error.analyze_failed"))

    log_info(request, _("log.analyzed", title=result.title, count=len(result.formats)))
    return result
