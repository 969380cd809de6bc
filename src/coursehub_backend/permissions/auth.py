"""
Session resolution and authentication.

The session cookie only carries advisory claims. Every request re-reads the
user, its role tags and its profiles so that a deactivated or demoted account
stops working before its token expires.
"""

import logging
from typing import Callable, Iterable, Optional, Tuple

from fastapi import Depends, Request, Response
from fastapi.security.utils import get_authorization_scheme_param
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from coursehub_backend.api.exceptions import ForbiddenException, UnauthorizedException
from coursehub_backend.database import get_db
from coursehub_backend.model.auth import InstructorProfile, StudentProfile, User, UserRole
from coursehub_backend.model.base import utcnow
from coursehub_backend.permissions import tokens
from coursehub_backend.permissions.principal import SessionUser
from coursehub_backend.permissions.roles import ADMIN_TAGS, INSTRUCTOR_FAMILY_TAGS, effective_role
from coursehub_backend.settings import settings

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

USER_TYPES = ("student", "instructor")

_UNRESOLVED = object()


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Unrecognised hash format
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class ProfileState:
    """Live role and profile facts for one user"""

    def __init__(self, role_tags: list, student_profile: Optional[StudentProfile],
                 instructor_profile: Optional[InstructorProfile]):
        self.role_tags = role_tags
        self.has_student_profile = student_profile is not None
        # Instructor access follows the tags; a leftover profile row grants nothing
        self.has_instructor_profile = bool(INSTRUCTOR_FAMILY_TAGS & set(role_tags))
        self.role = None
        if self.has_instructor_profile:
            role = effective_role(role_tags, instructor_profile.role if instructor_profile else None)
            self.role = role.value if role else None

    def has_profile(self, user_type: str) -> bool:
        if user_type == "student":
            return self.has_student_profile
        if user_type == "instructor":
            return self.has_instructor_profile
        return False

    def default_user_type(self) -> Optional[str]:
        if self.has_instructor_profile:
            return "instructor"
        if self.has_student_profile:
            return "student"
        return None


def load_profile_state(user_id: str, db: Session) -> ProfileState:
    role_tags = [row[0] for row in db.query(UserRole.role).filter(UserRole.user_id == user_id).all()]
    student_profile = db.query(StudentProfile).filter(StudentProfile.user_id == user_id).first()
    instructor_profile = db.query(InstructorProfile).filter(InstructorProfile.user_id == user_id).first()
    return ProfileState(sorted(role_tags), student_profile, instructor_profile)


def sync_role_profiles(db: Session, user_id: str, role_tags: Iterable[str]):
    """Bring the profile rows in line with the role tags.

    Runs inside the caller's transaction. Profiles whose tag is gone are
    deleted and an ``admin`` instructor profile is downgraded once no admin
    tag remains.
    """
    tags = set(role_tags)

    student_profile = db.query(StudentProfile).filter(StudentProfile.user_id == user_id).first()
    if "student" in tags and student_profile is None:
        db.add(StudentProfile(user_id=user_id))
    elif "student" not in tags and student_profile is not None:
        db.delete(student_profile)

    instructor_profile = db.query(InstructorProfile).filter(InstructorProfile.user_id == user_id).first()
    profile_role = "admin" if tags & ADMIN_TAGS else "instructor"
    if tags & INSTRUCTOR_FAMILY_TAGS:
        if instructor_profile is None:
            db.add(InstructorProfile(user_id=user_id, role=profile_role))
        elif instructor_profile.role == "admin" and profile_role != "admin":
            instructor_profile.role = profile_role
    elif instructor_profile is not None:
        db.delete(instructor_profile)

    db.flush()


def build_session_claims(user: User, user_type: str, current_view: Optional[str] = None) -> dict:
    return {
        "sub": user.id,
        "email": user.email,
        "user_type": user_type,
        "current_view": current_view or user_type,
    }


def resolve_session_user(claims: dict, db: Session) -> Optional[SessionUser]:
    """Turn verified token claims into a SessionUser, or None when they no longer hold."""
    user = db.query(User).filter(User.id == claims.get("sub")).first()

    if user is None or not user.is_active:
        return None

    declared_type = claims.get("user_type")
    if declared_type not in USER_TYPES:
        return None

    state = load_profile_state(user.id, db)

    # Stale claim: the profile behind the declared type is gone
    if not state.has_profile(declared_type):
        return None

    # Older tokens carry no current view
    current_view = claims.get("current_view") or declared_type
    if current_view not in USER_TYPES or not state.has_profile(current_view):
        return None

    return SessionUser(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        user_type=current_view,
        role=state.role,
        roles=state.role_tags,
        has_student_profile=state.has_student_profile,
        has_instructor_profile=state.has_instructor_profile,
        current_view=current_view,
    )


def read_session_token(request: Request) -> Optional[str]:
    token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if token:
        return token

    authorization = request.headers.get("Authorization")
    if authorization:
        scheme, param = get_authorization_scheme_param(authorization)
        if scheme.lower() == "bearer" and param:
            return param

    return None


def get_session(request: Request, db: Session) -> Optional[SessionUser]:
    cached = getattr(request.state, "session_user", _UNRESOLVED)
    if cached is not _UNRESOLVED:
        return cached

    session_user = None
    claims = tokens.verify(read_session_token(request))
    if claims is not None:
        session_user = resolve_session_user(claims, db)

    request.state.session_user = session_user
    return session_user


async def get_session_user(request: Request, db: Session = Depends(get_db)) -> Optional[SessionUser]:
    """Resolve the session once per request; None when there is no valid session."""
    return get_session(request, db)


async def require_session(
    session_user: Optional[SessionUser] = Depends(get_session_user)
) -> SessionUser:
    if session_user is None:
        raise UnauthorizedException()
    return session_user


def require_user_type(kind: str) -> Callable:

    async def dependency(session_user: SessionUser = Depends(require_session)) -> SessionUser:
        if session_user.user_type != kind:
            raise ForbiddenException("Forbidden: Invalid user type")
        return session_user

    dependency.__name__ = f"require_{kind}"
    return dependency


require_instructor = require_user_type("instructor")
require_student = require_user_type("student")


async def require_admin(session_user: SessionUser = Depends(require_session)) -> SessionUser:
    if not session_user.is_admin:
        raise ForbiddenException("Forbidden: Admin access required")
    return session_user


async def require_super_admin(session_user: SessionUser = Depends(require_session)) -> SessionUser:
    if not session_user.is_super_admin:
        raise ForbiddenException("Forbidden: Super admin access required")
    return session_user


class AuthenticationService:
    """Credential checks for the login and password change flows"""

    @staticmethod
    def authenticate(email: str, password: str, user_type: Optional[str], db: Session) -> Tuple[User, str]:
        """Return the user and the user type to put into the session.

        Every failure is reported as the same error so that callers cannot tell
        unknown accounts, wrong passwords and disabled accounts apart.
        """
        user = db.query(User).filter(User.email == normalize_email(email)).first()

        if user is None or not verify_password(password, user.password_hash):
            raise UnauthorizedException("Invalid credentials")

        if not user.is_active:
            logger.warning(f"Login attempt for inactive user {user.id}")
            raise UnauthorizedException("Invalid credentials")

        state = load_profile_state(user.id, db)
        resolved_type = user_type or state.default_user_type()

        if resolved_type is None or not state.has_profile(resolved_type):
            raise UnauthorizedException("Invalid credentials")

        user.last_login_at = utcnow()
        db.commit()

        logger.info(f"User {user.id} signed in as {resolved_type}")
        return user, resolved_type


def set_session_cookie(response: Response, token: str):
    response.set_cookie(
        key=settings.AUTH_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_TTL_SECONDS,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response):
    response.delete_cookie(key=settings.AUTH_COOKIE_NAME, path="/")
