import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from coursehub_backend.api.exceptions import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    InternalServerException,
    TooManyRequestsException,
)
from coursehub_backend.database import get_db, transaction
from coursehub_backend.interface.auth import (
    LoginRequest,
    PasswordChangeRequest,
    PasswordResetConfirm,
    PasswordResetRequest,
    ProfileUpdate,
    SignupRequest,
    SwitchViewRequest,
)
from coursehub_backend.model.auth import InstructorProfile, StudentProfile, User, UserRole
from coursehub_backend.permissions import tokens
from coursehub_backend.permissions.auth import (
    AuthenticationService,
    build_session_claims,
    clear_session_cookie,
    get_session_user,
    hash_password,
    require_session,
    resolve_session_user,
    set_session_cookie,
    sync_role_profiles,
    verify_password,
)
from coursehub_backend.permissions.csrf import clear_csrf_cookie, csrf_protect, get_or_create_csrf_token
from coursehub_backend.permissions.principal import SessionUser
from coursehub_backend.permissions.roles import ADMIN_TAGS
from coursehub_backend.services.email_service import MailService, get_mail_service
from coursehub_backend.services.password_reset import (
    check_reset_token,
    confirm_password_reset,
    request_password_reset,
)
from coursehub_backend.services.rate_limit import get_client_ip, login_rate_limiter
from coursehub_backend.settings import settings
from coursehub_backend.utils.password_validation import validate_password

logger = logging.getLogger(__name__)

auth_router = APIRouter()


def _require_strong_password(password: str):
    valid, errors = validate_password(password)
    if not valid:
        raise BadRequestException(errors[0])


def _email_registered(db: Session, email: str, exclude_user_id: Optional[str] = None) -> bool:
    query = db.query(User.id).filter(User.email == email)
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    return query.first() is not None


def _start_session(request: Request, response: Response, user: User, user_type: str, db: Session) -> dict:
    token = tokens.mint(build_session_claims(user, user_type))
    set_session_cookie(response, token)
    csrf_token = get_or_create_csrf_token(request, response)
    session_user = resolve_session_user(tokens.verify(token), db)
    if session_user is None:
        logger.error(f"Freshly minted session for user {user.id} did not resolve")
        raise InternalServerException("Could not establish session")
    return {"success": True, "user": session_user.to_response(), "csrfToken": csrf_token}


@auth_router.get("/session")
async def read_session(
    request: Request,
    response: Response,
    session_user: Annotated[SessionUser | None, Depends(get_session_user)],
):
    csrf_token = get_or_create_csrf_token(request, response)

    if session_user is None:
        return {"user": None}

    return {"user": session_user.to_response(), "csrfToken": csrf_token}


@auth_router.post("/session")
async def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    if not await login_rate_limiter.hit(get_client_ip(request), settings.LOGIN_RATE_LIMIT, settings.LOGIN_RATE_WINDOW_SECONDS):
        raise TooManyRequestsException()

    user, user_type = AuthenticationService.authenticate(payload.email, payload.password, payload.user_type, db)
    return _start_session(request, response, user, user_type, db)


@auth_router.delete("/session", dependencies=[Depends(csrf_protect)])
async def logout(response: Response):
    clear_session_cookie(response)
    clear_csrf_cookie(response)
    return {"success": True}


@auth_router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(payload: SignupRequest, db: Session = Depends(get_db)):
    _require_strong_password(payload.password)

    if _email_registered(db, payload.email):
        raise ConflictException("This email is already registered")

    user = User(
        email=payload.email,
        password_hash=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        is_active=True,
    )

    with transaction(db, conflict="This email is already registered"):
        db.add(user)
        db.flush()
        db.add(UserRole(user_id=user.id, role=payload.user_type))
        sync_role_profiles(db, user.id, [payload.user_type])

    logger.info(f"Registered new {payload.user_type} {user.id}")
    return {"success": True, "user": {"id": user.id, "email": user.email, "userType": payload.user_type}}


@auth_router.post("/switch-view", dependencies=[Depends(csrf_protect)])
async def switch_view(
    payload: SwitchViewRequest,
    request: Request,
    response: Response,
    session_user: Annotated[SessionUser, Depends(require_session)],
    db: Session = Depends(get_db),
):
    if payload.view == "student" and not session_user.has_student_profile:
        raise ForbiddenException("You do not have a student profile")
    if payload.view == "instructor" and not session_user.has_instructor_profile:
        raise ForbiddenException("You do not have an instructor profile")

    user = db.query(User).filter(User.id == session_user.id).first()
    return _start_session(request, response, user, payload.view, db)


@auth_router.post("/password", dependencies=[Depends(csrf_protect)])
async def change_password(
    payload: PasswordChangeRequest,
    session_user: Annotated[SessionUser, Depends(require_session)],
    db: Session = Depends(get_db),
):
    user = db.query(User).filter(User.id == session_user.id).first()

    if not verify_password(payload.current_password, user.password_hash):
        raise BadRequestException("Current password is incorrect")

    _require_strong_password(payload.new_password)

    user.password_hash = hash_password(payload.new_password)
    db.commit()

    logger.info(f"Password changed for user {user.id}")
    return {"success": True}


@auth_router.patch("/profile", dependencies=[Depends(csrf_protect)])
async def update_profile(
    payload: ProfileUpdate,
    session_user: Annotated[SessionUser, Depends(require_session)],
    db: Session = Depends(get_db),
):
    """Update the caller's own name and e-mail plus the profile behind the current view."""
    if _email_registered(db, payload.email, exclude_user_id=session_user.id):
        raise ConflictException("This email is already in use")

    user = db.query(User).filter(User.id == session_user.id).first()
    changed = payload.model_fields_set

    with transaction(db, conflict="This email is already in use"):
        user.first_name = payload.first_name
        user.last_name = payload.last_name
        user.email = payload.email

        if session_user.user_type == "student" and "phone" in changed:
            profile = db.query(StudentProfile).filter(StudentProfile.user_id == user.id).first()
            profile.phone = payload.phone

        if session_user.user_type == "instructor" and "bio" in changed:
            profile = db.query(InstructorProfile).filter(InstructorProfile.user_id == user.id).first()
            if profile is None:
                profile = InstructorProfile(
                    user_id=user.id,
                    role="admin" if ADMIN_TAGS & set(session_user.roles) else "instructor",
                )
                db.add(profile)
            profile.bio = payload.bio

    logger.info(f"Profile updated for user {user.id}")
    claims = build_session_claims(user, session_user.user_type, session_user.current_view)
    return {"success": True, "user": resolve_session_user(claims, db).to_response()}


@auth_router.post("/password-reset/request")
async def password_reset_request(
    payload: PasswordResetRequest,
    db: Session = Depends(get_db),
    mail_service: MailService = Depends(get_mail_service),
):
    await request_password_reset(db, payload.email, mail_service)
    return {"success": True, "message": "If an account exists for this email, a reset link has been sent."}


@auth_router.get("/password-reset/verify")
async def password_reset_verify(token: str = "", db: Session = Depends(get_db)):
    record, error = check_reset_token(db, token)
    if record is None:
        return {"valid": False, "error": error}
    return {"valid": True}


@auth_router.post("/password-reset/confirm")
async def password_reset_confirm(payload: PasswordResetConfirm, db: Session = Depends(get_db)):
    _require_strong_password(payload.password)
    confirm_password_reset(db, payload.token, payload.password)
    return {"success": True}
