"""
Signed session tokens.

Tokens are HS256 JWTs holding the subject id, the declared user type and the
current view. They are never stored server side and never refreshed in place:
a new token is minted on login and on an explicit view switch.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt, JWTError, ExpiredSignatureError

from coursehub_backend.settings import settings

logger = logging.getLogger(__name__)

TOKEN_TYPE = "access"


class TokenError(Exception):
    """Base class for token decoding failures"""


class InvalidToken(TokenError):
    """Malformed token or bad signature"""


class ExpiredToken(TokenError):
    """Signature is valid but the token is past its expiry"""


def mint(claims: Dict[str, Any], ttl: Optional[timedelta] = None) -> str:
    """Sign ``claims`` with issued-at and absolute expiry instants."""
    issued_at = datetime.now(timezone.utc)
    lifetime = ttl if ttl is not None else timedelta(seconds=settings.SESSION_TTL_SECONDS)

    payload = dict(claims)
    payload.update({
        "type": TOKEN_TYPE,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + lifetime).timestamp()),
    })

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode(token: str) -> Dict[str, Any]:
    """Decode and check a token, raising ``InvalidToken`` or ``ExpiredToken``."""
    if not token or not isinstance(token, str):
        raise InvalidToken("Empty token")

    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError as e:
        raise ExpiredToken(str(e))
    except JWTError as e:
        raise InvalidToken(str(e))

    if payload.get("type") != TOKEN_TYPE or not payload.get("sub"):
        raise InvalidToken("Unexpected token payload")

    return payload


def verify(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the token claims, or None for any invalid or expired token."""
    try:
        return decode(token)
    except ExpiredToken:
        logger.debug("Session token expired")
    except InvalidToken:
        logger.debug("Session token rejected")
    return None
