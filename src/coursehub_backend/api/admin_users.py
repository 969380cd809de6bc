import logging
from collections import defaultdict
from typing import Annotated, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from coursehub_backend.api.exceptions import BadRequestException, ConflictException, NotFoundException
from coursehub_backend.database import get_db, transaction
from coursehub_backend.interface.users import AdminUserCreate, AdminUserGet, AdminUserUpdate
from coursehub_backend.model.auth import User, UserRole
from coursehub_backend.permissions.auth import hash_password, require_super_admin, sync_role_profiles
from coursehub_backend.permissions.csrf import csrf_protect
from coursehub_backend.permissions.principal import SessionUser

logger = logging.getLogger(__name__)

admin_users_router = APIRouter(dependencies=[Depends(csrf_protect)])


def _roles_by_user(db: Session, user_ids: List[str]) -> Dict[str, List[str]]:
    roles: Dict[str, List[str]] = defaultdict(list)
    if not user_ids:
        return roles
    for user_id, role in db.query(UserRole.user_id, UserRole.role).filter(UserRole.user_id.in_(user_ids)).all():
        roles[user_id].append(role)
    return roles


def _to_response(user: User, roles: List[str]) -> dict:
    return AdminUserGet(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        is_active=user.is_active,
        roles=sorted(roles),
        last_login_at=user.last_login_at,
        created_at=user.created_at,
    ).model_dump(by_alias=True, mode="json")


def _email_taken(db: Session, email: str, exclude_user_id: Optional[str] = None) -> bool:
    query = db.query(User.id).filter(User.email == email)
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    return query.first() is not None


@admin_users_router.get("")
async def list_users(
    session_user: Annotated[SessionUser, Depends(require_super_admin)],
    db: Session = Depends(get_db),
):
    users = db.query(User).order_by(User.created_at.desc()).all()
    roles = _roles_by_user(db, [u.id for u in users])
    return {"success": True, "users": [_to_response(u, roles.get(u.id, [])) for u in users]}


@admin_users_router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: AdminUserCreate,
    session_user: Annotated[SessionUser, Depends(require_super_admin)],
    db: Session = Depends(get_db),
):
    if _email_taken(db, payload.email):
        raise ConflictException("Email already exists")

    user = User(
        email=payload.email,
        first_name=payload.first_name,
        last_name=payload.last_name,
        password_hash=hash_password(payload.password),
        is_active=payload.is_active,
    )
    roles = sorted(set(payload.roles))

    with transaction(db, conflict="Email already exists"):
        db.add(user)
        db.flush()
        for role in roles:
            db.add(UserRole(user_id=user.id, role=role))
        sync_role_profiles(db, user.id, roles)

    logger.info(f"Super admin {session_user.id} created user {user.id}")
    return {"success": True, "user": _to_response(user, roles)}


@admin_users_router.put("/{user_id}")
async def update_user(
    user_id: str,
    payload: AdminUserUpdate,
    session_user: Annotated[SessionUser, Depends(require_super_admin)],
    db: Session = Depends(get_db),
):
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundException("User not found")

    if payload.email is not None and payload.email != user.email:
        if _email_taken(db, payload.email, exclude_user_id=user_id):
            raise ConflictException("Email already exists")

    with transaction(db, conflict="Email already exists"):
        if payload.email is not None:
            user.email = payload.email
        if payload.first_name is not None:
            user.first_name = payload.first_name
        if payload.last_name is not None:
            user.last_name = payload.last_name
        if payload.password is not None:
            user.password_hash = hash_password(payload.password)
        if payload.is_active is not None:
            user.is_active = payload.is_active

        if payload.roles is not None:
            db.query(UserRole).filter(UserRole.user_id == user_id).delete(synchronize_session=False)
            for role in sorted(set(payload.roles)):
                db.add(UserRole(user_id=user_id, role=role))
            db.flush()
            sync_role_profiles(db, user_id, payload.roles)

    roles = _roles_by_user(db, [user_id]).get(user_id, [])
    logger.info(f"Super admin {session_user.id} updated user {user_id}")
    return {"success": True, "user": _to_response(user, roles)}


@admin_users_router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    session_user: Annotated[SessionUser, Depends(require_super_admin)],
    db: Session = Depends(get_db),
):
    if user_id == session_user.id:
        raise BadRequestException("Cannot delete your own account")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundException("User not found")

    with transaction(db):
        db.query(UserRole).filter(UserRole.user_id == user_id).delete(synchronize_session=False)
        db.delete(user)

    logger.info(f"Super admin {session_user.id} deleted user {user_id}")
    return {"success": True}
