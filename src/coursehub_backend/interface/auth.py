import re
from typing import Annotated, Literal, Optional
from pydantic import AfterValidator, BeforeValidator, EmailStr, Field

from coursehub_backend.interface.base import CamelModel
from coursehub_backend.utils.password_validation import MAX_PASSWORD_LENGTH, MIN_PASSWORD_LENGTH

NAME_PATTERN = re.compile(r"^[a-zA-Z\s\-']+$")
MAX_EMAIL_LENGTH = 255
RESET_TOKEN_MIN_LENGTH = 32

UserTypeLiteral = Literal["student", "instructor"]


def normalize_email_value(value):
    if isinstance(value, str):
        value = value.strip().lower()
        if len(value) > MAX_EMAIL_LENGTH:
            raise ValueError(f"Email must be at most {MAX_EMAIL_LENGTH} characters")
    return value


def validate_person_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("Name cannot be empty")
    if not NAME_PATTERN.match(value):
        raise ValueError("Name can only contain letters, spaces, hyphens, and apostrophes")
    return value


NormalizedEmail = Annotated[EmailStr, BeforeValidator(normalize_email_value)]
PersonName = Annotated[str, Field(min_length=1, max_length=100), AfterValidator(validate_person_name)]
Password = Annotated[str, Field(min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)]


class LoginRequest(CamelModel):
    email: NormalizedEmail
    password: str = Field(min_length=1, max_length=MAX_PASSWORD_LENGTH)
    user_type: Optional[UserTypeLiteral] = None


class SignupRequest(CamelModel):
    email: NormalizedEmail
    password: Password
    first_name: PersonName
    last_name: PersonName
    user_type: UserTypeLiteral = "student"


class SwitchViewRequest(CamelModel):
    view: UserTypeLiteral


class PasswordChangeRequest(CamelModel):
    current_password: str = Field(min_length=1, max_length=MAX_PASSWORD_LENGTH)
    new_password: Password


class PasswordResetRequest(CamelModel):
    email: NormalizedEmail


class PasswordResetConfirm(CamelModel):
    token: str = Field(min_length=RESET_TOKEN_MIN_LENGTH)
    password: Password


class ProfileUpdate(CamelModel):
    first_name: PersonName
    last_name: PersonName
    email: NormalizedEmail
    # Applied to the profile behind the current view
    phone: Optional[str] = Field(None, max_length=50)
    bio: Optional[str] = Field(None, max_length=4096)
