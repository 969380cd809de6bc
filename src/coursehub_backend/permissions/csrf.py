"""
Double-submit CSRF protection.

A random token lives in a cookie readable by page scripts; every mutating
request must echo it in the ``X-CSRF-Token`` header (or a ``csrf_token`` form
field). The check runs before session resolution.
"""

import hmac
import logging
import secrets
from typing import Optional

from fastapi import Request, Response

from coursehub_backend.api.exceptions import ForbiddenException
from coursehub_backend.settings import settings

logger = logging.getLogger(__name__)

CSRF_FORM_FIELD = "csrf_token"
MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def generate_csrf_token() -> str:
    return secrets.token_hex(32)


def set_csrf_cookie(response: Response, token: str):
    response.set_cookie(
        key=settings.CSRF_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_TTL_SECONDS,
        httponly=False,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def clear_csrf_cookie(response: Response):
    response.delete_cookie(key=settings.CSRF_COOKIE_NAME, path="/")


def get_or_create_csrf_token(request: Request, response: Response) -> str:
    token = request.cookies.get(settings.CSRF_COOKIE_NAME)
    if not token:
        token = generate_csrf_token()
        set_csrf_cookie(response, token)
    return token


def tokens_match(cookie_token: Optional[str], submitted_token: Optional[str]) -> bool:
    if not cookie_token or not submitted_token:
        return False
    return hmac.compare_digest(cookie_token.encode("utf-8"), submitted_token.encode("utf-8"))


async def _submitted_token(request: Request) -> Optional[str]:
    header_token = request.headers.get(settings.CSRF_HEADER_NAME)
    if header_token:
        return header_token

    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        value = form.get(CSRF_FORM_FIELD)
        if isinstance(value, str):
            return value

    return None


async def verify_csrf(request: Request) -> bool:
    return tokens_match(request.cookies.get(settings.CSRF_COOKIE_NAME), await _submitted_token(request))


async def csrf_protect(request: Request):
    """Reject mutating requests whose CSRF header does not match the cookie."""
    if request.method.upper() not in MUTATING_METHODS:
        return

    if not await verify_csrf(request):
        logger.warning(f"CSRF validation failed for {request.method} {request.url.path}")
        raise ForbiddenException("Invalid CSRF token")
