"""Authentication service: credentials, token pairs and session revocation."""

import functools
import re
import secrets
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import ParamSpec, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cleanmatch.core import settings
from cleanmatch.core.database import STORAGE_ERRORS
from cleanmatch.core.logging import get_logger
from cleanmatch.models.token_blacklist import RevocationReason
from cleanmatch.models.user import (
    CLEANING_FREQUENCIES,
    MAX_CLEANING_SERVICE_LENGTH,
    SELF_REGISTERABLE_ROLES,
    CleanerProfile,
    User,
    UserRole,
)
from cleanmatch.schemas.auth import RegisterRequest
from cleanmatch.services.errors import (
    INVALID_CREDENTIALS_MESSAGE,
    AuthenticationError,
    ConflictError,
    InvalidTokenError,
    InvalidTokenFormatError,
    NotFoundError,
    StorageError,
    TokenExpiredError,
    ValidationError,
)
from cleanmatch.services.security import (
    MAX_PASSWORD_BYTES,
    TokenClaims,
    TokenKind,
    create_access_token,
    create_refresh_token,
    create_reset_token,
    hash_password,
    verify_password,
    verify_token,
)
from cleanmatch.services.token_blacklist import TokenBlacklistStore, hash_token

logger = get_logger("auth")

REFRESH_FAILED_MESSAGE = "Invalid or expired refresh token"
RESET_FAILED_MESSAGE = "Invalid or expired reset token"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PASSWORD_SPECIALS = "!@#$%^&*"

P = ParamSpec("P")
R = TypeVar("R")


@dataclass
class AuthResult:
    """A user together with freshly issued tokens."""

    user: User
    access_token: str
    refresh_token: str | None = None


def validate_password_strength(password: str, field: str = "password") -> None:
    """Raise ValidationError unless the password meets the strength policy."""
    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long", field=field)
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(
            f"Password cannot exceed {MAX_PASSWORD_BYTES} bytes", field=field
        )
    if not re.search(r"[a-z]", password):
        raise ValidationError("Password must contain at least one lowercase letter", field=field)
    if not re.search(r"[A-Z]", password):
        raise ValidationError("Password must contain at least one uppercase letter", field=field)
    if not re.search(r"[0-9]", password):
        raise ValidationError("Password must contain at least one number", field=field)
    if not any(c in _PASSWORD_SPECIALS for c in password):
        raise ValidationError(
            f"Password must contain at least one special character ({_PASSWORD_SPECIALS})",
            field=field,
        )


def issued_before_invalidation(claims: TokenClaims, user: User) -> bool:
    """True if the token predates the user's last logout-all/reset/suspension."""
    if user.token_invalidation_date is None:
        return False
    if claims.issued_at is None:
        return True
    return claims.issued_at < user.token_invalidation_date


@functools.lru_cache(maxsize=1)
def _dummy_password_hash() -> str:
    return hash_password(secrets.token_urlsafe(16))


def _storage_guard(
    func: Callable[P, Awaitable[R]],
) -> Callable[P, Awaitable[R]]:
    """Turn raw database and driver errors into StorageError, logging the real cause."""

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await func(*args, **kwargs)
        except STORAGE_ERRORS as e:
            logger.exception(f"Database error during {func.__name__}")
            service = args[0]
            if isinstance(service, AuthService):
                await service._rollback_quietly()
            raise StorageError() from e

    return wrapper


class AuthService:
    """Service for authentication operations.

    The session and blacklist are injected so that the same service runs
    against PostgreSQL in production and against test doubles in tests.
    """

    def __init__(self, session: AsyncSession, blacklist: TokenBlacklistStore):
        self.session = session
        self.blacklist = blacklist

    # --- lookups ---

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> User | None:
        result = await self.session.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def get_user_by_user_name(self, user_name: str) -> User | None:
        result = await self.session.execute(select(User).where(User.user_name == user_name))
        return result.scalar_one_or_none()

    # --- registration & login ---

    @_storage_guard
    async def register(self, data: RegisterRequest) -> AuthResult:
        """Create a customer or cleaner account and sign it in."""
        self._validate_registration(data)
        email = data.email.strip().lower()
        user_name = data.user_name.strip() if data.user_name else None

        if await self.get_user_by_email(email):
            raise ConflictError("User with this email already exists", field="email")
        if user_name and await self.get_user_by_user_name(user_name):
            raise ConflictError("Username is already taken", field="userName")

        user = User(
            email=email,
            user_name=user_name,
            password_hash=hash_password(data.password),
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
            phone=data.phone,
            role=data.role,
            address=data.address,
            city=data.city,
            state=data.state,
            zip_code=data.zip_code,
        )
        if data.role == UserRole.CLEANER.value:
            user.cleaner_profile = CleanerProfile(
                cleaning_services=list(data.cleaning_services or []),
                cleaning_frequency=data.cleaning_frequency,
                preferred_hours=data.preferred_hours,
            )
        self.session.add(user)

        try:
            await self.session.flush()
        except IntegrityError as e:
            # Lost a race with a concurrent registration for the same email/handle
            await self._rollback_quietly()
            raise ConflictError("User with this email or username already exists") from e

        await self.session.commit()
        await self.session.refresh(user)

        logger.info(f"Registered {user.role} account", extra={"user_id": str(user.id)})
        return self._issue_session(user)

    @_storage_guard
    async def login(self, email: str, password: str) -> AuthResult:
        """Authenticate by email and password.

        Unknown email, wrong password and inactive account all raise the same
        AuthenticationError so responses cannot be used to enumerate accounts.
        """
        user = await self.get_user_by_email(email.strip())

        if user is None:
            # Burn the same bcrypt time as a real check
            verify_password(password, _dummy_password_hash())
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        if not verify_password(password, user.password_hash):
            logger.info("Login failed: wrong password", extra={"user_id": str(user.id)})
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        if not user.is_active:
            logger.info("Login refused for inactive account", extra={"user_id": str(user.id)})
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        user.last_login_at = datetime.now(UTC)
        await self.session.commit()

        return self._issue_session(user)

    @_storage_guard
    async def refresh(self, refresh_token: str) -> AuthResult:
        """Issue a new access token from a refresh token.

        The refresh token is reused as-is unless JWT_ROTATE_REFRESH_TOKENS is
        set, in which case a new one is issued and the old one is revoked.
        """
        try:
            claims = verify_token(
                refresh_token, settings.effective_jwt_refresh_secret, TokenKind.REFRESH
            )
        except InvalidTokenError as e:
            logger.info(f"Refresh rejected: {e}")
            raise AuthenticationError(REFRESH_FAILED_MESSAGE) from e

        if await self.blacklist.is_revoked(refresh_token):
            logger.warning(
                "Refresh rejected: token is revoked", extra={"user_id": str(claims.user_id)}
            )
            raise AuthenticationError(REFRESH_FAILED_MESSAGE)

        user = await self._load_session_user(claims, REFRESH_FAILED_MESSAGE)
        result = AuthResult(user=user, access_token=create_access_token(user.id))

        if settings.jwt_rotate_refresh_tokens:
            if not await self.blacklist.add(refresh_token, user.id, RevocationReason.LOGOUT):
                raise StorageError()
            await self.session.commit()
            result.refresh_token = create_refresh_token(user.id)

        return result

    # --- logout ---

    async def logout(
        self,
        access_token: str,
        user: User,
        refresh_token: str | None = None,
    ) -> None:
        """Revoke the presented token(s). Best-effort: never raises.

        The client throws its copy away regardless, so a failed blacklist
        write is logged rather than reported.
        """
        tokens = [access_token]
        if refresh_token and self._is_own_refresh_token(refresh_token, user):
            tokens.append(refresh_token)

        for token in tokens:
            try:
                recorded = await self.blacklist.add(token, user.id, RevocationReason.LOGOUT)
            except InvalidTokenFormatError:
                logger.warning("Skipping undecodable token on logout")
                continue
            if not recorded:
                logger.warning(
                    "Logout could not persist token revocation",
                    extra={"user_id": str(user.id), "token_hash": hash_token(token)[:12]},
                )

        user.last_logout_at = datetime.now(UTC)
        try:
            await self.session.commit()
        except STORAGE_ERRORS:
            logger.exception("Failed to commit logout", extra={"user_id": str(user.id)})
            await self._rollback_quietly()

        logger.info("User logged out", extra={"user_id": str(user.id)})

    @_storage_guard
    async def logout_all(self, user: User) -> None:
        """Invalidate every token issued to ``user`` so far."""
        await self.revoke_all_sessions(user, RevocationReason.LOGOUT)

    async def revoke_all_sessions(self, user: User, reason: RevocationReason) -> None:
        now = datetime.now(UTC)
        user.token_invalidation_date = now
        if reason == RevocationReason.LOGOUT:
            user.last_logout_at = now
        await self.session.commit()
        logger.info(
            "Revoked all sessions",
            extra={"user_id": str(user.id), "reason": RevocationReason(reason).value},
        )

    # --- request verification ---

    @_storage_guard
    async def verify_request(self, token: str) -> User:
        """Authenticate a bearer token for a protected route.

        The token must be a correctly signed, unexpired access token that is
        not blacklisted, belong to an existing active user, and have been
        issued after that user's last logout-all. Every failure raises the
        same AuthenticationError; the actual cause is only logged.
        """
        try:
            claims = verify_token(token, settings.effective_jwt_secret, TokenKind.ACCESS)
        except TokenExpiredError as e:
            logger.debug("Rejected expired access token")
            raise AuthenticationError() from e
        except InvalidTokenError as e:
            logger.info(f"Rejected access token: {e}")
            raise AuthenticationError() from e

        if await self.blacklist.is_revoked(token):
            logger.warning(
                "Rejected revoked access token",
                extra={"user_id": str(claims.user_id), "token_hash": hash_token(token)[:12]},
            )
            raise AuthenticationError()

        return await self._load_session_user(claims)

    async def _load_session_user(
        self, claims: TokenClaims, failure_message: str | None = None
    ) -> User:
        user = await self.get_user_by_id(claims.user_id)
        cause = None
        if user is None:
            cause = "user not found"
        elif not user.is_active:
            cause = "account is inactive"
        elif issued_before_invalidation(claims, user):
            cause = "token issued before session invalidation"

        if cause is not None:
            logger.info(
                f"Rejected {claims.kind} token: {cause}", extra={"user_id": str(claims.user_id)}
            )
            raise AuthenticationError(failure_message)
        return user

    # --- password reset ---

    @_storage_guard
    async def forgot_password(self, email: str) -> str | None:
        """Issue a password-reset token for an active account.

        Returns the token (None if no active account matches). Callers must
        answer identically either way. There is no mail integration, so the
        link is only written to the debug log.
        """
        user = await self.get_user_by_email(email.strip())
        if user is None or not user.is_active:
            logger.info("Password reset requested for unknown or inactive email")
            return None

        token = create_reset_token(user.id)
        logger.info("Password reset token issued", extra={"user_id": str(user.id)})
        logger.debug(f"Password reset link: {settings.frontend_url}/reset-password?token={token}")
        return token

    @_storage_guard
    async def reset_password(self, token: str, new_password: str) -> None:
        """Set a new password from a reset token and end every session.

        The reset token is blacklisted afterwards, so it works only once.
        """
        try:
            claims = verify_token(token, settings.effective_jwt_secret, TokenKind.RESET)
        except InvalidTokenError as e:
            logger.info(f"Password reset rejected: {e}")
            raise ValidationError(RESET_FAILED_MESSAGE, field="token") from e

        if await self.blacklist.is_revoked(token):
            raise ValidationError(RESET_FAILED_MESSAGE, field="token")

        validate_password_strength(new_password, field="newPassword")

        user = await self.get_user_by_id(claims.user_id)
        if user is None or not user.is_active or issued_before_invalidation(claims, user):
            raise ValidationError(RESET_FAILED_MESSAGE, field="token")

        user.password_hash = hash_password(new_password)
        if not await self.blacklist.add(token, user.id, RevocationReason.PASSWORD_RESET):
            logger.warning(
                "Could not blacklist used reset token", extra={"user_id": str(user.id)}
            )
        await self.revoke_all_sessions(user, RevocationReason.PASSWORD_RESET)

    # --- administration ---

    @_storage_guard
    async def suspend_user(self, user_id: UUID, actor: User) -> User:
        """Deactivate an account and invalidate all of its tokens."""
        if user_id == actor.id:
            raise ValidationError("You cannot suspend your own account", field="userId")
        user = await self.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        user.is_active = False
        await self.revoke_all_sessions(user, RevocationReason.ACCOUNT_SUSPENDED)
        logger.info(
            "Account suspended",
            extra={"user_id": str(user.id), "actor_id": str(actor.id)},
        )
        return user

    @_storage_guard
    async def reactivate_user(self, user_id: UUID, actor: User) -> User:
        user = await self.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        user.is_active = True
        await self.session.commit()
        logger.info(
            "Account reactivated",
            extra={"user_id": str(user.id), "actor_id": str(actor.id)},
        )
        return user

    @_storage_guard
    async def ensure_admin(
        self,
        email: str,
        password: str,
        first_name: str = "Admin",
        last_name: str = "User",
    ) -> tuple[User, str]:
        """Create an admin account, or promote an existing one.

        Admins cannot self-register; this is the out-of-band path used by
        ``scripts/create_admin.py``. Returns the user and one of
        ``"created"``, ``"promoted"`` or ``"already_admin"``.
        """
        email = email.strip().lower()
        if not _EMAIL_RE.match(email):
            raise ValidationError("Please provide a valid email address", field="email")

        user = await self.get_user_by_email(email)
        if user is not None:
            if user.role == UserRole.ADMIN.value:
                return user, "already_admin"
            user.role = UserRole.ADMIN.value
            await self.session.commit()
            logger.info("Promoted account to admin", extra={"user_id": str(user.id)})
            return user, "promoted"

        validate_password_strength(password)
        user = User(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            role=UserRole.ADMIN.value,
        )
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)
        logger.info("Created admin account", extra={"user_id": str(user.id)})
        return user, "created"

    # --- helpers ---

    def _issue_session(self, user: User) -> AuthResult:
        return AuthResult(
            user=user,
            access_token=create_access_token(user.id),
            refresh_token=create_refresh_token(user.id),
        )

    def _is_own_refresh_token(self, token: str, user: User) -> bool:
        try:
            claims = verify_token(token, settings.effective_jwt_refresh_secret, TokenKind.REFRESH)
        except InvalidTokenError:
            return False
        return claims.user_id == user.id

    async def _rollback_quietly(self) -> None:
        try:
            await self.session.rollback()
        except STORAGE_ERRORS:
            logger.exception("Rollback failed")

    def _validate_registration(self, data: RegisterRequest) -> None:
        required = {
            "email": data.email,
            "password": data.password,
            "firstName": data.first_name,
            "lastName": data.last_name,
            "role": data.role,
        }
        missing = [name for name, value in required.items() if not (value or "").strip()]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}", field=missing[0]
            )

        if not _EMAIL_RE.match(data.email.strip()):
            raise ValidationError("Please provide a valid email address", field="email")

        validate_password_strength(data.password)

        if data.role not in {role.value for role in SELF_REGISTERABLE_ROLES}:
            raise ValidationError("Role must be either customer or cleaner", field="role")

        if data.role == UserRole.CUSTOMER.value:
            user_name = (data.user_name or "").strip()
            if not user_name:
                raise ValidationError("Username is required", field="userName")
            if not 3 <= len(user_name) <= 30:
                raise ValidationError(
                    "Username must be between 3 and 30 characters", field="userName"
                )
            return

        # Cleaner
        for name, value in (
            ("address", data.address),
            ("city", data.city),
            ("state", data.state),
            ("zipCode", data.zip_code),
        ):
            if not (value or "").strip():
                raise ValidationError(f"{name} is required for cleaners", field=name)
        if not data.cleaning_services:
            raise ValidationError(
                "Please select at least one cleaning service", field="cleaningServices"
            )
        for service in data.cleaning_services:
            if not service.strip() or len(service) > MAX_CLEANING_SERVICE_LENGTH:
                raise ValidationError(
                    f"Each cleaning service must be 1 to {MAX_CLEANING_SERVICE_LENGTH} characters",
                    field="cleaningServices",
                )
        if data.cleaning_frequency not in CLEANING_FREQUENCIES:
            raise ValidationError(
                "Cleaning frequency must be part-time, full-time, or preferred-hours",
                field="cleaningFrequency",
            )
        if data.cleaning_frequency == "preferred-hours" and not (data.preferred_hours or "").strip():
            raise ValidationError(
                "Preferred hours are required when selecting preferred-hours frequency",
                field="preferredHours",
            )
