from typing import Optional


class TubeGrabError(Exception):
    """Base error. `status_code` is used when the error happens before any byte is sent."""
    status_code = 500
    message_key = "error.internal"

    def __init__(self, message: str = "", *, message_key: Optional[str] = None):
        super().__init__(message)
        if message_key:
            self.message_key = message_key


class InvalidInput(TubeGrabError):
    status_code = 400
    message_key = "error.invalid_input"


class NotFound(TubeGrabError):
    status_code = 404
    message_key = "error.not_found"


class Forbidden(TubeGrabError):
    status_code = 403
    message_key = "error.forbidden"


class UpstreamFailure(TubeGrabError):
    """Provider stream or muxer failed. Mid-stream this aborts the response."""
    status_code = 502
    message_key = "error.upstream_failed"


class Internal(TubeGrabError):
    status_code = 500
    message_key = "error.internal"


# Provider conditions

class VideoUnavailable(NotFound):
    message_key = "error.video_unavailable"


class AgeRestricted(Forbidden):
    message_key = "error.age_restricted"


class SignInRequired(Forbidden):
    message_key = "error.sign_in_required"


class FormatNotFound(NotFound):
    message_key = "error.format_not_found"
