"""
Password reset tokens.

Only a sha256 digest of each reset token is stored. Requesting a reset never
reveals whether the address belongs to an account: unknown, inactive and
rate limited addresses all look like a successful request to the caller.
"""

import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Optional, Tuple
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from ..api.exceptions import BadRequestException
from ..database import transaction
from ..model.auth import PasswordResetToken, User
from ..model.base import as_utc, utcnow
from ..permissions.auth import hash_password, normalize_email
from ..settings import settings
from .email_service import MailService
from .rate_limit import RateLimiter, password_reset_rate_limiter

logger = logging.getLogger(__name__)

RATE_WINDOW_SECONDS = 60 * 60


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def build_reset_url(token: str) -> str:
    return f"{settings.APP_URL.rstrip('/')}/reset-password?{urlencode({'token': token})}"


async def request_password_reset(
    db: Session,
    email: str,
    mail_service: MailService,
    rate_limiter: RateLimiter = password_reset_rate_limiter
) -> bool:
    """Issue a reset token and mail it. Returns True only if a message was handed to the mailer."""
    email = normalize_email(email)

    if not await rate_limiter.hit(email, settings.PASSWORD_RESET_MAX_PER_HOUR, RATE_WINDOW_SECONDS):
        return False

    user = db.query(User).filter(User.email == email).first()
    if user is None or not user.is_active:
        logger.info("Password reset requested for unknown or inactive account")
        return False

    token = secrets.token_hex(32)
    now = utcnow()

    with transaction(db):
        # Older unused tokens stop working once a new one is issued
        db.query(PasswordResetToken).filter(
            PasswordResetToken.user_id == user.id,
            PasswordResetToken.used_at.is_(None)
        ).update({PasswordResetToken.used_at: now}, synchronize_session=False)

        db.add(PasswordResetToken(
            user_id=user.id,
            token_hash=hash_reset_token(token),
            expires_at=now + timedelta(seconds=settings.PASSWORD_RESET_TTL_SECONDS),
        ))

    logger.info(f"Password reset token issued for user {user.id}")
    return await mail_service.send_password_reset(user.email, user.first_name, build_reset_url(token))


def check_reset_token(db: Session, token: str) -> Tuple[Optional[PasswordResetToken], Optional[str]]:
    """Look up a reset token. Returns (record, None) when usable, else (None, reason)."""
    if not token:
        return None, "Invalid reset link"

    record = db.query(PasswordResetToken).filter(
        PasswordResetToken.token_hash == hash_reset_token(token)
    ).first()

    if record is None:
        return None, "Invalid reset link"
    if record.used_at is not None:
        return None, "This reset link has already been used"
    if as_utc(record.expires_at) < utcnow():
        return None, "This reset link has expired"

    return record, None


def confirm_password_reset(db: Session, token: str, new_password: str) -> User:
    record, error = check_reset_token(db, token)
    if record is None:
        raise BadRequestException(error)

    user = db.query(User).filter(User.id == record.user_id).first()
    if user is None or not user.is_active:
        raise BadRequestException("Invalid reset link")

    with transaction(db):
        user.password_hash = hash_password(new_password)
        record.used_at = utcnow()

    logger.info(f"Password reset completed for user {user.id}")
    return user
