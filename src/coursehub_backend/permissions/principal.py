from typing import Iterable, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

from coursehub_backend.permissions.roles import (
    PermissionLike,
    has_permission,
    has_any_permission,
    has_all_permissions,
)

UserType = Literal["student", "instructor"]


class SessionUser(BaseModel):
    """Identity resolved from the session cookie and re-checked against the database"""

    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    user_type: UserType
    role: Optional[Literal["instructor", "admin"]] = None
    roles: List[str] = Field(default_factory=list)
    has_student_profile: bool = False
    has_instructor_profile: bool = False
    current_view: UserType

    model_config = ConfigDict(frozen=True)

    @property
    def is_admin(self) -> bool:
        return self.user_type == "instructor" and self.role == "admin"

    @property
    def is_super_admin(self) -> bool:
        return "super_admin" in self.roles

    def permitted(self, permission: PermissionLike) -> bool:
        """Role eligibility only; own-scope ownership is checked separately."""
        return has_permission(self.role, permission)

    def permitted_any(self, permissions: Iterable[PermissionLike]) -> bool:
        return has_any_permission(self.role, permissions)

    def permitted_all(self, permissions: Iterable[PermissionLike]) -> bool:
        return has_all_permissions(self.role, permissions)

    def to_response(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "userType": self.user_type,
            "role": self.role,
            "roles": list(self.roles),
            "hasStudentProfile": self.has_student_profile,
            "hasInstructorProfile": self.has_instructor_profile,
            "currentView": self.current_view,
        }
