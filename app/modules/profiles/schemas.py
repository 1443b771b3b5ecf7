from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime


class ProfileResponse(BaseModel):
    id: str
    full_name: Optional[str] = None
    # Column is "Email" in the profiles table
    email: Optional[str] = Field(default=None, validation_alias="Email")
    notification_preferences: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        populate_by_name = True


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, max_length=200)
    notification_preferences: Optional[Dict[str, Any]] = None
