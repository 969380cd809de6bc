"""
Session and authorization layer.

Request flow: CSRF guard (mutating verbs) -> session resolver -> role table
and course ownership checks.
"""

from coursehub_backend.permissions.principal import SessionUser
from coursehub_backend.permissions.roles import (
    Permission,
    Role,
    role_permissions,
    has_permission,
    has_any_permission,
    has_all_permissions,
    is_admin_role,
)
from coursehub_backend.permissions.auth import (
    get_session_user,
    require_session,
    require_user_type,
    require_instructor,
    require_student,
    require_admin,
    require_super_admin,
)
from coursehub_backend.permissions.csrf import csrf_protect

__all__ = [
    'SessionUser',
    'Permission',
    'Role',
    'role_permissions',
    'has_permission',
    'has_any_permission',
    'has_all_permissions',
    'is_admin_role',
    'get_session_user',
    'require_session',
    'require_user_type',
    'require_instructor',
    'require_student',
    'require_admin',
    'require_super_admin',
    'csrf_protect',
]
