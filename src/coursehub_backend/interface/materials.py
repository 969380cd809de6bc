from datetime import datetime
from typing import Optional
from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from coursehub_backend.interface.base import CamelModel


class MaterialGet(CamelModel):
    id: str
    course_id: str
    session_id: Optional[str] = None
    original_filename: str
    display_filename: str
    file_url: str
    resource_type: str = "file"
    file_type: str
    file_size_bytes: Optional[int] = None
    mime_type: Optional[str] = None
    external_link_url: Optional[str] = None
    uploaded_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class MaterialUpdate(CamelModel):
    display_filename: str = Field(max_length=255)

    @field_validator("display_filename")
    @classmethod
    def validate_display_filename(cls, v):
        if not v or not v.strip():
            raise ValueError("Display filename is required")
        return v.strip()


class MaterialLinkCreate(CamelModel):
    url: str = Field(min_length=1, max_length=2048)
    display_name: Optional[str] = Field(None, max_length=255)
    session_id: Optional[str] = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        return v.strip()
