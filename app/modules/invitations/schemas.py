from pydantic import BaseModel, EmailStr
from typing import Optional
from datetime import datetime
from app.modules.families.schemas import FamilyRole


class InvitationCreate(BaseModel):
    email: EmailStr
    name: Optional[str] = None
    role: FamilyRole = "member"


class InvitationResponse(BaseModel):
    id: str
    family_id: str
    email: str
    name: Optional[str] = None
    role: str
    status: str = "pending"
    invited_at: Optional[datetime] = None
    invited_by: Optional[str] = None
    last_invited: Optional[datetime] = None

    class Config:
        from_attributes = True
