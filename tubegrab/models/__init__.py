from .internal import RawRendition, TransferPath, TransferPlan, VideoMetadata
from .request import AnalyzeRequest, DownloadRequest
from .response import AnalyzeResponse, HealthResponse, RenditionOption

__all__ = [
    "AnalyzeRequest",
    "AnalyzeResponse",
    "DownloadRequest",
    "HealthResponse",
    "RawRendition",
    "RenditionOption",
    "TransferPath",
    "TransferPlan",
    "VideoMetadata",
]
