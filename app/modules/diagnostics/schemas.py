from pydantic import BaseModel
from typing import Optional, List, Literal, Dict, Any

HealthStatus = Literal["healthy", "warning", "error"]


class FamilyHealthResponse(BaseModel):
    status: HealthStatus
    issues: List[str] = []
    can_create_family: bool
    details: Optional[Dict[str, Any]] = None
    report: str = ""
