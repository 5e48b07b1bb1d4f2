"""Shared FastAPI dependencies: auth service wiring and route guards."""

from collections.abc import Awaitable, Callable

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from cleanmatch.core import get_db, settings
from cleanmatch.core.request_utils import extract_bearer_token
from cleanmatch.models.user import User, UserRole
from cleanmatch.services.auth import AuthService
from cleanmatch.services.errors import AuthenticationError, AuthorizationError
from cleanmatch.services.token_blacklist import (
    DatabaseTokenBlacklist,
    MemoryTokenBlacklist,
    TokenBlacklistStore,
)


def get_token_blacklist(db: AsyncSession = Depends(get_db)) -> TokenBlacklistStore:
    """Blacklist backend selected by TOKEN_BLACKLIST_BACKEND."""
    if settings.token_blacklist_backend == "memory":
        return MemoryTokenBlacklist.get_instance()
    return DatabaseTokenBlacklist(db)


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    blacklist: TokenBlacklistStore = Depends(get_token_blacklist),
) -> AuthService:
    """Dependency to get auth service."""
    return AuthService(db, blacklist)


def get_bearer_token(request: Request) -> str:
    token = extract_bearer_token(request)
    if token is None:
        raise AuthenticationError("No token provided")
    return token


async def get_current_user(
    token: str = Depends(get_bearer_token),
    auth_service: AuthService = Depends(get_auth_service),
) -> User:
    """Dependency to get the current authenticated user from JWT token."""
    return await auth_service.verify_request(token)


def require_role(*roles: UserRole) -> Callable[..., Awaitable[User]]:
    """Build a dependency that admits only users holding one of ``roles``."""
    allowed = {UserRole(role).value for role in roles}

    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise AuthorizationError(
                f"User role {current_user.role} is not authorized to access this route"
            )
        return current_user

    return dependency


require_admin = require_role(UserRole.ADMIN)
