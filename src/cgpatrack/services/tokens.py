import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from cgpatrack.config.settings import settings

logger = logging.getLogger(__name__)

TOKEN_ALGORITHM = "HS256"
TOKEN_COOKIE = "jwt"
SESSION_TTL = timedelta(days=7)
REMEMBER_ME_TTL = timedelta(days=30)


class InvalidTokenError(Exception):
    pass


def token_ttl(remember_me: bool = False) -> timedelta:
    return REMEMBER_ME_TTL if remember_me else SESSION_TTL


def issue_token(
    user_id: int,
    remember_me: bool = False,
    *,
    now: Optional[datetime] = None,
    secret: str = "",
) -> str:
    """Sign a session token for `user_id` that expires after 7 days, or 30 with remember-me."""
    issued_at = now or datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "iat": issued_at,
        "exp": issued_at + token_ttl(remember_me),
    }
    return jwt.encode(claims, secret or settings.jwt_secret, algorithm=TOKEN_ALGORITHM)


def token_user_id(token: str, *, secret: str = "") -> int:
    try:
        claims = jwt.decode(token, secret or settings.jwt_secret, algorithms=[TOKEN_ALGORITHM])
        return int(claims["sub"])
    except jwt.ExpiredSignatureError as exc:
        raise InvalidTokenError("Session expired") from exc
    except (jwt.PyJWTError, KeyError, ValueError) as exc:
        logger.warning("Rejected session token: %s", exc)
        raise InvalidTokenError("Invalid session token") from exc
