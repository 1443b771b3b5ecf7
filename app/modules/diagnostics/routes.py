from fastapi import APIRouter, Depends
from app.database.supabase_client import get_user_supabase
from app.modules.diagnostics.schemas import FamilyHealthResponse
from app.modules.diagnostics.service import FamilyHealthService
from app.modules.reports.routes import build_rendered_report
from app.modules.reports.schemas import RenderedReport
from app.core.dependencies import get_current_user
from supabase import Client
from typing import Dict

router = APIRouter(prefix="/diagnostics", tags=["diagnostics"])


def get_health_service(supabase: Client = Depends(get_user_supabase)) -> FamilyHealthService:
    return FamilyHealthService(supabase)


@router.get("/family-health", response_model=FamilyHealthResponse)
async def family_health(
    current_user: Dict = Depends(get_current_user),
    service: FamilyHealthService = Depends(get_health_service)
):
    """Check that family creation and lookups can work for the current user"""
    return service.check_health()


@router.get("/family-health/report", response_model=RenderedReport)
async def family_health_report(
    current_user: Dict = Depends(get_current_user),
    service: FamilyHealthService = Depends(get_health_service)
):
    """Health check rendered as HTML"""
    return build_rendered_report(service.check_health().report)
