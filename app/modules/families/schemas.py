from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Literal
from datetime import datetime

FamilyRole = Literal["admin", "member", "child"]
EmailFrequency = Literal["daily", "weekly", "biweekly", "monthly", "never"]

FAMILY_ROLES = ("admin", "member", "child")


def validate_family_name(name: str) -> str:
    if not name:
        raise ValueError("Family name cannot be empty")
    if not name.strip():
        raise ValueError("Family name cannot be only whitespace")
    name = name.strip()
    if len(name) < 2:
        raise ValueError("Family name must be at least 2 characters")
    if len(name) > 100:
        raise ValueError("Family name must be less than 100 characters")
    return name


class InitialMember(BaseModel):
    """Member listed when creating a family; invalid entries are dropped, not rejected."""
    email: str = ""
    name: Optional[str] = None
    role: str = "member"


class FamilyCreate(BaseModel):
    name: str
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    members: List[InitialMember] = []

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return validate_family_name(value)


class FamilyUpdate(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")

    @field_validator("name")
    @classmethod
    def check_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return validate_family_name(value)


class FamilyResponse(BaseModel):
    id: str
    name: str
    color: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FamilyCreateResponse(FamilyResponse):
    invitations_sent: int = 0
    warning: Optional[str] = None


class FamilyMemberResponse(BaseModel):
    id: str
    family_id: str
    user_id: str
    email: str
    name: Optional[str] = None
    role: str
    joined_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FamilyMemberUpdate(BaseModel):
    role: FamilyRole


class EmailPreferencesUpdate(BaseModel):
    reminder_enabled: Optional[bool] = None
    reminder_days_threshold: Optional[int] = Field(default=None, ge=0, le=60)
    summary_frequency: Optional[EmailFrequency] = None
    summary_months_ahead: Optional[int] = Field(default=None, ge=1, le=12)


class EmailPreferencesResponse(BaseModel):
    family_id: str
    reminder_enabled: bool = True
    reminder_days_threshold: int = 1
    summary_frequency: str = "weekly"
    summary_months_ahead: int = 1
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
