import re
from datetime import datetime
from typing import Annotated, Literal, Optional
from pydantic import AfterValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from coursehub_backend.interface.base import CamelModel, not_null

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def validate_slug(value: str) -> str:
    if not SLUG_PATTERN.match(value):
        raise ValueError("Slug can only contain lowercase letters, numbers and single hyphens")
    return value


Slug = Annotated[str, Field(min_length=1, max_length=255), AfterValidator(validate_slug)]
SignupStatus = Literal["active", "pending", "confirmed", "enrolled", "cancelled", "expired"]


class CourseCreate(CamelModel):
    slug: Slug
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    status: str = Field("draft", max_length=32)
    price_cents: int = Field(0, ge=0)


class CourseUpdate(CamelModel):
    slug: Optional[Slug] = None
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[str] = Field(None, max_length=32)
    price_cents: Optional[int] = Field(None, ge=0)

    @field_validator("slug", "title", "status", "price_cents", mode="before")
    @classmethod
    def reject_null(cls, v):
        return not_null(v)


class CourseGet(CamelModel):
    id: str
    slug: str
    title: str
    description: Optional[str] = None
    status: str
    cover_image_url: Optional[str] = None
    price_cents: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class InstructorAssign(CamelModel):
    instructor_id: str = Field(min_length=1)
    instructor_role: str = Field("instructor", max_length=64)
    display_order: int = 0


class InstructorAssignmentUpdate(CamelModel):
    instructor_role: str = Field(min_length=1, max_length=64)
    display_order: Optional[int] = None

    @field_validator("display_order", mode="before")
    @classmethod
    def reject_null(cls, v):
        return not_null(v)


class CourseInstructorGet(CamelModel):
    id: str
    course_id: str
    instructor_id: str
    instructor_role: str
    display_order: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None


class EnrolledStudentGet(CamelModel):
    signup_id: str
    student_id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    status: str
    enrolled_at: Optional[datetime] = None


class SignupStatusUpdate(CamelModel):
    status: SignupStatus


class StudentCourseGet(CamelModel):
    course: CourseGet
    signup_id: str
    signup_status: str
    enrolled_at: Optional[datetime] = None
