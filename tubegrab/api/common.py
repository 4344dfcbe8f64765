from typing import Optional

from fastapi import HTTPException

from tubegrab.core.errors import Forbidden, InvalidInput, NotFound, TubeGrabError
from tubegrab.core.security import SecurityValidator, UrlValidationResult
from tubegrab.i18n import Translate


async def validated_url(url: Optional[str], _: Translate) -> str:
    """Reject missing, foreign-host and private-network URLs before any lookup"""
    if not url:
        raise HTTPException(status_code=400, detail=_("error.url_required"))

    validation_result = await SecurityValidator.validate_url(url)
    if validation_result == UrlValidationResult.BLOCKED:
        raise HTTPException(status_code=403, detail=_("error.private_ip"))
    if validation_result != UrlValidationResult.OK:
        raise HTTPException(status_code=400, detail=_("error.invalid_url"))
    return url


def to_http_exception(error: TubeGrabError, _: Translate, fallback_key: str) -> HTTPException:
    """Client-facing errors keep their own status; everything else is a generic 500"""
    if isinstance(error, (InvalidInput, NotFound, Forbidden)):
        return HTTPException(status_code=error.status_code, detail=_(error.message_key))
    return HTTPException(status_code=500, detail=_(fallback_key))
