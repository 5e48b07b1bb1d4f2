"""Authentication API endpoints."""

import time
from collections import defaultdict
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status

from cleanmatch.api.deps import (
    get_auth_service,
    get_bearer_token,
    get_current_user,
    require_admin,
)
from cleanmatch.core import settings
from cleanmatch.core.logging import get_logger
from cleanmatch.core.request_utils import get_client_ip
from cleanmatch.models.user import User
from cleanmatch.schemas.auth import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    ResetPasswordRequest,
    UserEnvelope,
    UserResponse,
)
from cleanmatch.services.auth import AuthService
from cleanmatch.services.errors import AuthenticationError

logger = get_logger("api.auth")

FORGOT_PASSWORD_MESSAGE = (
    "If an account with that email exists, a password reset link has been sent"
)

# Failed login attempts per client IP (monotonic timestamps)
_login_attempts: dict[str, list[float]] = defaultdict(list)


def _check_login_rate_limit(client_ip: str) -> None:
    """Check if a client IP has exceeded the failed-login limit."""
    now = time.monotonic()
    window = settings.login_window_seconds
    attempts = [t for t in _login_attempts[client_ip] if now - t < window]
    _login_attempts[client_ip] = attempts
    if len(attempts) >= settings.login_max_attempts:
        logger.warning(f"Login rate limit exceeded for {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts. Please try again later.",
        )


def _record_login_attempt(client_ip: str) -> None:
    _login_attempts[client_ip].append(time.monotonic())


def prune_login_attempts() -> int:
    """Drop IPs with no failures inside the window. Returns how many were dropped."""
    now = time.monotonic()
    window = settings.login_window_seconds
    stale = [
        ip
        for ip, attempts in list(_login_attempts.items())
        if not any(now - t < window for t in attempts)
    ]
    for ip in stale:
        _login_attempts.pop(ip, None)
    return len(stale)


def reset_login_attempts() -> None:
    """Forget all recorded failures."""
    _login_attempts.clear()


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register(
    request: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Register a customer or cleaner account and return a token pair."""
    result = await auth_service.register(request)
    return AuthResponse(
        message="User registered successfully",
        user=UserResponse.model_validate(result.user),
        token=result.access_token,
        refresh_token=result.refresh_token or "",
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    http_request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Authenticate with email and password.

    Rate limited per client IP: after LOGIN_MAX_ATTEMPTS failures inside
    LOGIN_WINDOW_SECONDS further attempts get 429.
    """
    client_ip = get_client_ip(http_request)
    _check_login_rate_limit(client_ip)

    try:
        result = await auth_service.login(request.email, request.password)
    except AuthenticationError:
        _record_login_attempt(client_ip)
        raise

    logger.info("User logged in", extra={"user_id": str(result.user.id)})
    return AuthResponse(
        message="Login successful",
        user=UserResponse.model_validate(result.user),
        token=result.access_token,
        refresh_token=result.refresh_token or "",
    )


@router.post("/refresh", response_model=RefreshResponse, response_model_exclude_unset=True)
async def refresh_token(
    request: RefreshRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> RefreshResponse:
    """Exchange a refresh token for a new access token."""
    result = await auth_service.refresh(request.refresh_token)
    response = RefreshResponse(
        success=True,
        token=result.access_token,
        user=UserResponse.model_validate(result.user),
    )
    if result.refresh_token:
        # Only present when rotation is enabled
        response.refresh_token = result.refresh_token
    return response


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: LogoutRequest | None = Body(default=None),
    token: str = Depends(get_bearer_token),
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Log out the current session.

    The bearer token is blacklisted until it expires; a refresh token passed
    in the body is revoked as well.
    """
    await auth_service.logout(
        token,
        current_user,
        refresh_token=request.refresh_token if request else None,
    )
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Invalidate every token issued to the current user."""
    await auth_service.logout_all(current_user)
    return MessageResponse(message="Logged out from all devices successfully")


@router.get("/me", response_model=UserEnvelope)
async def get_current_user_info(
    current_user: User = Depends(get_current_user),
) -> UserEnvelope:
    """Get the current user's information."""
    return UserEnvelope(user=UserResponse.model_validate(current_user))


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    request: ForgotPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Start a password reset. The response never reveals whether the email exists."""
    await auth_service.forgot_password(request.email)
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    request: ResetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Set a new password using a reset token. Ends every existing session."""
    await auth_service.reset_password(request.token, request.new_password)
    return MessageResponse(message="Password has been reset successfully")


@router.post("/users/{user_id}/suspend", response_model=MessageResponse)
async def suspend_user(
    user_id: UUID,
    admin: User = Depends(require_admin),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Suspend an account (admin only)."""
    await auth_service.suspend_user(user_id, actor=admin)
    return MessageResponse(message="User suspended successfully")


@router.post("/users/{user_id}/reactivate", response_model=MessageResponse)
async def reactivate_user(
    user_id: UUID,
    admin: User = Depends(require_admin),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Reactivate a suspended account (admin only)."""
    await auth_service.reactivate_user(user_id, actor=admin)
    return MessageResponse(message="User reactivated successfully")
