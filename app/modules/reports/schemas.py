from pydantic import BaseModel, Field


class ReportStats(BaseModel):
    error_count: int = 0
    warning_count: int = 0
    success: bool = True
    has_warnings: bool = False


class ReportRenderRequest(BaseModel):
    markdown: str = Field(default="", max_length=200_000)


class RenderedReport(BaseModel):
    html: str
    stats: ReportStats
