"""Password hashing and JWT primitives.

These are thin wrappers over bcrypt and PyJWT that fix the credential model:
passwords are bcrypt hashes with a per-hash salt, and tokens are HS256 JWTs
carrying ``sub`` (user id), ``type``, ``iat``, ``exp`` and a random ``jti``.
"""

import enum
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import bcrypt
import jwt
from jwt.exceptions import PyJWTError

from cleanmatch.core import settings
from cleanmatch.services.errors import (
    InvalidTokenError,
    InvalidTokenFormatError,
    TokenExpiredError,
)

# bcrypt only looks at the first 72 bytes; longer inputs are rejected outright
MAX_PASSWORD_BYTES = 72


class TokenKind(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    RESET = "reset"


@dataclass(frozen=True)
class TokenClaims:
    """The claims CleanMatch reads back out of a token."""

    user_id: UUID
    kind: str | None
    issued_at: datetime | None
    expires_at: datetime
    jti: str | None = None


def hash_password(password: str, rounds: int | None = None) -> str:
    """Hash a password with bcrypt at the configured cost factor."""
    salt = bcrypt.gensalt(rounds=rounds or settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a bcrypt hash. Never raises."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash, or a password over bcrypt's 72-byte limit
        return False


def issue_token(user_id: UUID, kind: TokenKind, secret: str, ttl: timedelta) -> str:
    """Sign a JWT for ``user_id`` that expires ``ttl`` from now.

    ``iat`` is a float so that a logout-all stamp can order tokens issued
    within the same second.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "type": TokenKind(kind).value,
        "iat": now.timestamp(),
        "exp": now + ttl,
        "jti": secrets.token_hex(16),
    }
    token = jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)
    return str(token)


def create_access_token(user_id: UUID) -> str:
    return issue_token(
        user_id, TokenKind.ACCESS, settings.effective_jwt_secret, settings.access_token_ttl
    )


def create_refresh_token(user_id: UUID) -> str:
    return issue_token(
        user_id,
        TokenKind.REFRESH,
        settings.effective_jwt_refresh_secret,
        settings.refresh_token_ttl,
    )


def create_reset_token(user_id: UUID) -> str:
    return issue_token(
        user_id, TokenKind.RESET, settings.effective_jwt_secret, settings.password_reset_ttl
    )


def _to_claims(payload: dict[str, Any]) -> TokenClaims:
    try:
        user_id = UUID(str(payload["sub"]))
        expires_at = datetime.fromtimestamp(float(payload["exp"]), tz=UTC)
        iat = payload.get("iat")
        issued_at = datetime.fromtimestamp(float(iat), tz=UTC) if iat is not None else None
    except (KeyError, TypeError, ValueError, OverflowError) as e:
        raise InvalidTokenFormatError(f"Token is missing or has malformed claims: {e}") from e
    return TokenClaims(
        user_id=user_id,
        kind=payload.get("type"),
        issued_at=issued_at,
        expires_at=expires_at,
        jti=payload.get("jti"),
    )


def decode_token(token: str) -> TokenClaims:
    """Read a token's claims WITHOUT checking signature or expiry.

    Only for bookkeeping such as computing how long a blacklist entry must
    live. Never use the result to authenticate anything.
    """
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except PyJWTError as e:
        raise InvalidTokenFormatError("Invalid token format") from e
    return _to_claims(payload)


def verify_token(token: str, secret: str, kind: TokenKind | None = None) -> TokenClaims:
    """Verify signature and expiry (and optionally the token type)."""
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenExpiredError("Token has expired") from e
    except PyJWTError as e:
        raise InvalidTokenError(f"Invalid token: {e}") from e

    if kind is not None and payload.get("type") != TokenKind(kind).value:
        raise InvalidTokenError(f"Not a {TokenKind(kind).value} token")

    try:
        return _to_claims(payload)
    except InvalidTokenFormatError as e:
        raise InvalidTokenError(str(e)) from e
