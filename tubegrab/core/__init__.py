from .errors import (
    AgeRestricted,
    Forbidden,
    FormatNotFound,
    Internal,
    InvalidInput,
    NotFound,
    SignInRequired,
    TubeGrabError,
    UpstreamFailure,
    VideoUnavailable,
)

__all__ = [
    "AgeRestricted",
    "Forbidden",
    "FormatNotFound",
    "Internal",
    "InvalidInput",
    "NotFound",
    "SignInRequired",
    "TubeGrabError",
    "UpstreamFailure",
    "VideoUnavailable",
]
