from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
import datetime as dt

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class EventCreate(BaseModel):
    name: str = Field(..., max_length=200)
    date: dt.date
    end_date: Optional[dt.date] = None
    time: str = Field(default="00:00", pattern=TIME_PATTERN)
    description: Optional[str] = None
    all_day: Optional[bool] = None
    family_ids: List[str] = []

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Event name is required")
        return value.strip()

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date and self.end_date < self.date:
            raise ValueError("End date cannot be before the start date")
        return self


class EventUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    description: Optional[str] = None
    all_day: Optional[bool] = None
    family_ids: Optional[List[str]] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("Event name is required")
        return value.strip() if value else value

    @model_validator(mode="after")
    def check_dates(self):
        if self.date and self.end_date and self.end_date < self.date:
            raise ValueError("End date cannot be before the start date")
        return self


class EventResponse(BaseModel):
    id: str
    name: str
    date: dt.date
    end_date: Optional[dt.date] = None
    time: str
    description: str = ""
    creator_id: str
    all_day: bool = False
    family_ids: List[str] = []
    creator_name: str = "Unknown"

    class Config:
        from_attributes = True


class EventMutationResponse(EventResponse):
    warning: Optional[str] = None


class EventDeleteResponse(BaseModel):
    message: str
