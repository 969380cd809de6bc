from datetime import datetime
from typing import List, Literal, Optional
from pydantic import Field

from coursehub_backend.interface.auth import NormalizedEmail, Password, PersonName
from coursehub_backend.interface.base import CamelModel

RoleTag = Literal["super_admin", "billing_admin", "instructor", "student"]


class AdminUserCreate(CamelModel):
    email: NormalizedEmail = Field(description="User's email address")
    first_name: PersonName = Field(description="User's first name")
    last_name: PersonName = Field(description="User's last name")
    password: Password
    roles: List[RoleTag] = Field(default_factory=list, description="Role tags granted to the user")
    is_active: bool = True


class AdminUserUpdate(CamelModel):
    email: Optional[NormalizedEmail] = None
    first_name: Optional[PersonName] = None
    last_name: Optional[PersonName] = None
    password: Optional[Password] = None
    roles: Optional[List[RoleTag]] = Field(None, description="Replaces every role tag of the user")
    is_active: Optional[bool] = None


class AdminUserGet(CamelModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool
    roles: List[str] = Field(default_factory=list)
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
