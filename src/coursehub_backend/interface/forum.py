from datetime import datetime
from typing import List, Optional
from pydantic import Field, field_validator

from coursehub_backend.interface.base import CamelModel


def _strip_required(value: str) -> str:
    return value.strip() if isinstance(value, str) else value


class PostCreate(CamelModel):
    title: str = Field(min_length=5, max_length=255, description="Title must be 5 to 255 characters")
    body: str = Field(min_length=20, max_length=10000, description="Body must be 20 to 10000 characters")

    @field_validator("title", "body", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip_required(v)


class AnswerCreate(CamelModel):
    body: str = Field(min_length=10, max_length=10000, description="Answer must be at least 10 characters")

    @field_validator("body", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip_required(v)


class AnswerUpdate(AnswerCreate):
    pass


class AuthorGet(CamelModel):
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class AnswerGet(CamelModel):
    id: str
    post_id: str
    body: str
    is_verified: bool = False
    author: AuthorGet
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PostListItem(CamelModel):
    id: str
    course_id: str
    title: str
    body: str
    is_pinned: bool = False
    author: AuthorGet
    answer_count: int = 0
    has_verified_answer: bool = False
    created_at: Optional[datetime] = None


class PostGet(PostListItem):
    answers: List[AnswerGet] = Field(default_factory=list)
