"""
Bearer-token authentication helpers.

Access tokens are short-lived HS256 JWTs issued by the external login
collaborator (or issue_access_token() below):
    sub  - user id (string)
    role - role at issue time (informational; the current role is always
           re-read from the database by deps.require_actor)

Only `Authorization: Bearer <jwt>` is accepted.
"""
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt
from fastapi import Header

from config import settings
from domain.errors import DomainError, UnauthorizedError

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def _require_secret() -> str:
    if not settings.jwt_secret:
        raise DomainError(
            "Server auth misconfigured (JWT secret missing).",
            status_code=500,
            code="AUTH_MISCONFIGURED",
        )
    return settings.jwt_secret


def decode_access_token(token: str) -> dict:
    secret = _require_secret()
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Access token expired.", code="TOKEN_EXPIRED")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid access token.", code="TOKEN_INVALID")


def issue_access_token(*, user_id: int, role: str) -> str:
    secret = _require_secret()
    now = _now_utc()
    exp = now.replace(microsecond=0) + timedelta(minutes=settings.jwt_access_ttl_minutes)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": str(user_id),
        "role": getattr(role, "value", role),
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, secret, algorithm="HS256")


async def require_user_id(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> int:
    """Resolve the bearer token to a user id, or fail with 401."""
    token = _parse_bearer_token(authorization)
    if not token:
        raise UnauthorizedError("Authentication required. Provide Authorization: Bearer <token>.")

    payload = decode_access_token(token)
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        logger.warning(f"Rejected token with malformed subject: {payload.get('sub')!r}")
        raise UnauthorizedError("Invalid access token.", code="TOKEN_INVALID")
