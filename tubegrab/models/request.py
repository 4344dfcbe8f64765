from typing import Optional

from pydantic import BaseModel, Field, validator

from tubegrab.models.response import RenditionOption


class AnalyzeRequest(BaseModel):
    url: Optional[str] = Field(None, description="Video page URL")

    @validator('url')
    def strip_url(cls, v):
        return v.strip() if isinstance(v, str) else v


class DownloadRequest(AnalyzeRequest):
    format: Optional[RenditionOption] = Field(None, description="An option previously returned by /api/analyze")
