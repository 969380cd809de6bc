"""
Static role to permission table.

Two roles exist: ``instructor`` holds own-scope capabilities only, ``admin``
holds every capability. The admin set is computed from the ``Permission``
enumeration so that a new capability is never missing from it.
"""

from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Union


class Permission(str, Enum):
    # Courses
    COURSES_VIEW_OWN = "courses.view.own"
    COURSES_VIEW_ALL = "courses.view.all"
    COURSES_CREATE = "courses.create"
    COURSES_EDIT_OWN = "courses.edit.own"
    COURSES_EDIT_ALL = "courses.edit.all"
    COURSES_DELETE_OWN = "courses.delete.own"
    COURSES_DELETE_ALL = "courses.delete.all"
    # Enrollments
    ENROLLMENTS_VIEW_OWN = "enrollments.view.own"
    ENROLLMENTS_VIEW_ALL = "enrollments.view.all"
    ENROLLMENTS_MANAGE = "enrollments.manage"
    # Instructors
    INSTRUCTORS_VIEW_ALL = "instructors.view.all"
    INSTRUCTORS_ASSIGN = "instructors.assign"
    INSTRUCTORS_REMOVE = "instructors.remove"
    INSTRUCTORS_MANAGE = "instructors.manage"
    # Students
    STUDENTS_VIEW_OWN = "students.view.own"
    STUDENTS_VIEW_ALL = "students.view.all"
    STUDENTS_MANAGE = "students.manage"
    # Analytics
    ANALYTICS_VIEW_OWN = "analytics.view.own"
    ANALYTICS_VIEW_ALL = "analytics.view.all"
    # System
    SYSTEM_SETTINGS = "system.settings"
    SYSTEM_LOGS = "system.logs"


class Role(str, Enum):
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


PermissionLike = Union[Permission, str]
RoleLike = Union[Role, str]

ADMIN_TAGS: FrozenSet[str] = frozenset({"super_admin", "billing_admin"})
INSTRUCTOR_FAMILY_TAGS: FrozenSet[str] = ADMIN_TAGS | {"instructor"}

INSTRUCTOR_PERMISSIONS: FrozenSet[Permission] = frozenset({
    Permission.COURSES_VIEW_OWN,
    Permission.COURSES_EDIT_OWN,
    Permission.ENROLLMENTS_VIEW_OWN,
    Permission.STUDENTS_VIEW_OWN,
    Permission.ANALYTICS_VIEW_OWN,
})

ROLE_DESCRIPTIONS: Dict[Role, Dict[str, str]] = {
    Role.INSTRUCTOR: {
        "name": "Instructor",
        "description": "Can view and edit assigned courses, view enrolled students and analytics for their courses",
    },
    Role.ADMIN: {
        "name": "Administrator",
        "description": "Full access to all courses, instructors, students and system settings",
    },
}


def _parse_permission(permission: PermissionLike) -> Optional[Permission]:
    try:
        return Permission(permission)
    except ValueError:
        return None


def _parse_role(role: Optional[RoleLike]) -> Optional[Role]:
    if role is None:
        return None
    try:
        return Role(role)
    except ValueError:
        return None


class RolePermissionTable:
    """Role to permission-set mapping with set combinators"""

    def __init__(self):
        self._table: Dict[Role, Set[Permission]] = {}
        self.reset()

    def reset(self):
        self._table = {
            Role.INSTRUCTOR: set(INSTRUCTOR_PERMISSIONS),
            Role.ADMIN: set(Permission),
        }

    def permissions_for(self, role: Optional[RoleLike]) -> FrozenSet[Permission]:
        parsed = _parse_role(role)
        if parsed is None:
            return frozenset()
        return frozenset(self._table.get(parsed, set()))

    def has(self, role: Optional[RoleLike], permission: PermissionLike) -> bool:
        parsed_role = _parse_role(role)
        parsed_permission = _parse_permission(permission)
        if parsed_role is None or parsed_permission is None:
            return False
        return parsed_permission in self._table.get(parsed_role, set())

    def has_any(self, role: Optional[RoleLike], permissions: Iterable[PermissionLike]) -> bool:
        return any(self.has(role, p) for p in permissions)

    def has_all(self, role: Optional[RoleLike], permissions: Iterable[PermissionLike]) -> bool:
        return all(self.has(role, p) for p in permissions)

    def grant(self, role: RoleLike, permission: PermissionLike):
        parsed_role = _parse_role(role)
        parsed_permission = _parse_permission(permission)
        if parsed_role is None or parsed_permission is None:
            raise ValueError(f"Unknown role or permission: {role}, {permission}")
        self._table.setdefault(parsed_role, set()).add(parsed_permission)

    def revoke(self, role: RoleLike, permission: PermissionLike):
        parsed_role = _parse_role(role)
        parsed_permission = _parse_permission(permission)
        if parsed_role is None or parsed_permission is None:
            raise ValueError(f"Unknown role or permission: {role}, {permission}")
        self._table.get(parsed_role, set()).discard(parsed_permission)


role_permissions = RolePermissionTable()


def has_permission(role: Optional[RoleLike], permission: PermissionLike) -> bool:
    return role_permissions.has(role, permission)


def has_any_permission(role: Optional[RoleLike], permissions: Iterable[PermissionLike]) -> bool:
    return role_permissions.has_any(role, permissions)


def has_all_permissions(role: Optional[RoleLike], permissions: Iterable[PermissionLike]) -> bool:
    return role_permissions.has_all(role, permissions)


def is_admin_role(role: Optional[RoleLike]) -> bool:
    return role_permissions.has(role, Permission.INSTRUCTORS_ASSIGN)


def get_role_name(role: RoleLike) -> str:
    parsed = _parse_role(role)
    return ROLE_DESCRIPTIONS[parsed]["name"] if parsed else str(role)


def get_role_description(role: RoleLike) -> str:
    parsed = _parse_role(role)
    return ROLE_DESCRIPTIONS[parsed]["description"] if parsed else ""


def get_all_roles() -> List[dict]:
    return [
        {
            "value": role.value,
            "name": ROLE_DESCRIPTIONS[role]["name"],
            "description": ROLE_DESCRIPTIONS[role]["description"],
            "permissions": sorted(p.value for p in role_permissions.permissions_for(role)),
        }
        for role in Role
    ]


def effective_role(role_tags: Iterable[str], instructor_profile_role: Optional[str]) -> Optional[Role]:
    """Collapse the user role tags and the instructor profile role into one role.

    The tags are authoritative. A legacy ``admin`` profile role only counts
    while the user still holds an instructor-family tag.
    """
    tags = set(role_tags)
    if tags & ADMIN_TAGS:
        return Role.ADMIN
    if not tags & INSTRUCTOR_FAMILY_TAGS:
        return None
    if instructor_profile_role == Role.ADMIN.value:
        return Role.ADMIN
    return Role.INSTRUCTOR
