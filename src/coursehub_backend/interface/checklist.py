from datetime import datetime
from typing import List, Literal, Optional
from pydantic import Field, field_validator

from coursehub_backend.interface.base import CamelModel


class ChecklistItem(CamelModel):
    id: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None


class ChecklistUpdate(CamelModel):
    items: List[ChecklistItem] = Field(default_factory=list)

    @field_validator("items")
    @classmethod
    def unique_item_ids(cls, v):
        ids = [item.id for item in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Checklist item ids must be unique")
        return v


class ItemProgress(CamelModel):
    item_id: str
    completed: bool = False
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None


class ProgressUpdate(CamelModel):
    item_id: str = Field(min_length=1)
    completed: bool
    notes: Optional[str] = Field(None, max_length=2000)


class StudentChecklistGet(CamelModel):
    course_id: str
    items: List[ChecklistItem] = Field(default_factory=list)
    items_progress: List[ItemProgress] = Field(default_factory=list)
    status: Literal["pending", "in_progress", "completed"] = "pending"
