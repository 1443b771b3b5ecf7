from fastapi import APIRouter, Depends
from app.modules.reports.rendering import render_markdown, extract_report_stats
from app.modules.reports.schemas import ReportRenderRequest, RenderedReport, ReportStats
from app.core.dependencies import get_current_user
from typing import Dict

router = APIRouter(prefix="/reports", tags=["reports"])


def build_rendered_report(markdown: str) -> RenderedReport:
    return RenderedReport(
        html=render_markdown(markdown),
        stats=ReportStats(**extract_report_stats(markdown)),
    )


@router.post("/render", response_model=RenderedReport)
async def render_report(
    report: ReportRenderRequest,
    current_user: Dict = Depends(get_current_user)
):
    """Render a markdown report to sanitised HTML with its error/warning counts"""
    return build_rendered_report(report.markdown)
