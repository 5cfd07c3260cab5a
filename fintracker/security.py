"""Password hashing and bearer token handling.

Passwords are stored as bcrypt digests. Tokens are JWTs signed with the
shared secret from :class:`~fintracker.config.Settings`; only the HMAC family
of algorithms is accepted when verifying, so a token re-signed with another
algorithm (or with ``none``) never authenticates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Optional

import bcrypt
from fastapi import Header, Request
from jose import JWTError, jwt

from .config import HMAC_ALGORITHMS, Settings
from .errors import AuthError, AuthFailure
from .models import MAX_ID

__all__ = [
    "AuthorizedContext",
    "authenticate",
    "hash_password",
    "issue_token",
    "require_user",
    "verify_password",
]

LOG = logging.getLogger(__name__)
BEARER_PREFIX = "Bearer "
USER_ID_CLAIM = "user_id"
BCRYPT_MAX_BYTES = 72


@dataclass(frozen=True, slots=True)
class AuthorizedContext:
    """Identity of the caller, required by every ownership-scoped store call."""

    user_id: int


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_digest: str) -> bool:
    raw = password.encode("utf-8")
    if len(raw) > BCRYPT_MAX_BYTES:
        return False
    return bcrypt.checkpw(raw, password_digest.encode("utf-8"))


def issue_token(user_id: int, settings: Settings, *, now: Optional[datetime] = None) -> str:
    """Mint a signed token for ``user_id`` expiring after ``settings.token_ttl``."""

    issued_at = now or datetime.now(UTC)
    claims = {USER_ID_CLAIM: int(user_id), "exp": issued_at + settings.token_ttl}
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _strip_bearer(raw: str) -> str:
    if len(raw) > len(BEARER_PREFIX) and raw.startswith(BEARER_PREFIX):
        return raw[len(BEARER_PREFIX):]
    return raw


def _user_id_from_claims(claims: dict[str, Any]) -> int:
    value = claims.get(USER_ID_CLAIM)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise AuthError(AuthFailure.MALFORMED_CLAIMS)
    if isinstance(value, float) and not value.is_integer():
        raise AuthError(AuthFailure.MALFORMED_CLAIMS)
    if not 0 < value <= MAX_ID:
        raise AuthError(AuthFailure.MALFORMED_CLAIMS)
    return int(value)


def authenticate(authorization: Optional[str], settings: Settings) -> AuthorizedContext:
    """Resolve the caller behind an ``Authorization`` header value.

    Raises:
      AuthError: ``MISSING`` without a token, ``INVALID_OR_EXPIRED`` when the
        signature, algorithm or expiry check fails, ``MALFORMED_CLAIMS`` when
        the claims carry no numeric ``user_id``.
    """

    if not authorization:
        raise AuthError(AuthFailure.MISSING)
    token = _strip_bearer(authorization)
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=list(HMAC_ALGORITHMS))
    except JWTError as exc:
        LOG.warning("Rejected bearer token: %s", exc)
        raise AuthError(AuthFailure.INVALID_OR_EXPIRED) from exc
    try:
        return AuthorizedContext(user_id=_user_id_from_claims(claims))
    except AuthError:
        LOG.warning("Rejected bearer token without a numeric %s claim", USER_ID_CLAIM)
        raise


def require_user(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> AuthorizedContext:
    """FastAPI dependency guarding protected routes."""

    ctx = authenticate(authorization, request.app.state.settings)
    request.state.user_id = ctx.user_id
    return ctx
