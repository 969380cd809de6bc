from datetime import datetime
from typing import List, Optional
from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from coursehub_backend.interface.base import CamelModel, not_null


class SessionCreate(CamelModel):
    title: str = Field(min_length=1, max_length=255, description="Session title")
    description: Optional[str] = None
    session_date: datetime = Field(description="Scheduled start of the session")
    duration_minutes: int = Field(60, gt=0, description="Duration in minutes, must be positive")
    timezone: str = Field("UTC", max_length=64)
    meeting_url: Optional[str] = Field(None, max_length=2048)
    display_order: int = 0


class SessionUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    session_date: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, gt=0)
    timezone: Optional[str] = Field(None, max_length=64)
    meeting_url: Optional[str] = Field(None, max_length=2048)
    display_order: Optional[int] = None

    @field_validator("title", "session_date", "duration_minutes", "timezone", "display_order", mode="before")
    @classmethod
    def reject_null(cls, v):
        return not_null(v)


class SessionGet(CamelModel):
    id: str
    course_id: str
    title: str
    description: Optional[str] = None
    session_date: datetime
    duration_minutes: int
    timezone: str
    meeting_url: Optional[str] = None
    display_order: int = 0

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class SessionOrder(CamelModel):
    id: str = Field(min_length=1)
    display_order: int


class SessionReorder(CamelModel):
    sessions: List[SessionOrder] = Field(min_length=1)
