import functools

from fastapi import APIRouter, Depends, HTTPException, Request

from tubegrab.api.common import to_http_exception, validated_url
from tubegrab.core.errors import TubeGrabError
from tubegrab.core.logging import log_error, log_info
from tubegrab.i18n import i18n
from tubegrab.infra.concurrency import concurrency_limiter, release_download_slot
from tubegrab.infra.rate_limit import download_rate_limiter
from tubegrab.models.request import DownloadRequest
from tubegrab.services.dispatch import DownloadDispatcher
from tubegrab.services.provider import MediaProvider, get_provider
from tubegrab.services.relay import TransferResponse
from tubegrab.utils.locale import safe_url_for_log

router = APIRouter()


@router.post("/api/download", dependencies=[Depends(download_rate_limiter), Depends(concurrency_limiter)])
async def download_video(
    request: Request,
    video_request: DownloadRequest,
    provider: MediaProvider = Depends(get_provider),
):
    """Stream the chosen option; split video and audio are muxed on the fly"""

    _ = i18n.translator(request.headers.get("accept-language"))

    try:
        if not video_request.url or video_request.format is None:
            raise HTTPException(status_code=400, detail=_("error.format_required"))

        url = await validated_url(video_request.url, _)
        option = video_request.format

        # Stream URLs expire, so ids are resolved against a fresh lookup
        metadata = await provider.fetch_metadata(url)
        plan = DownloadDispatcher.plan(metadata, option)
        log_info(
            request,
            _("log.starting_download", path=plan.path.value, url=safe_url_for_log(url), quality=option.quality),
        )
        source = await DownloadDispatcher.open(plan, provider, url, request)

    except HTTPException:
        await release_download_slot(request)
        raise
    except TubeGrabError as e:
        await release_download_slot(request)
        log_error(request, f"Download failed ({type(e).__name__}): {e}")
        raise to_http_exception(e, _, "error.download_failed")
    except Exception as e:
        await release_download_slot(request)
        log_error(request, f"Download error: {str(e)}")
        raise HTTPException(status_code=500, detail=_("error.download_failed"))

    try:
        return TransferResponse(
            source,
            plan,
            request=request,
            on_close=functools.partial(release_download_slot, request),
        )
    except Exception as e:
        # Nothing owns the source yet
        await source.aclose()
        await release_download_slot(request)
        log_error(request, f"Could not start the transfer: {e}")
        raise HTTPException(status_code=500, detail=_("error.download_failed"))
