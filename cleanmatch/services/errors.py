"""Error taxonomy for the auth service and its primitives.

Service-level errors (``AuthError`` subclasses) carry an HTTP status and a
client-safe message; the API layer renders them as ``{success: false,
error: ...}``. Token-level errors (``TokenError`` subclasses) are internal to
the primitives and the blacklist and are turned into ``AuthenticationError``
before they reach a client.
"""

AUTH_FAILED_MESSAGE = "Invalid or expired token"
INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
INTERNAL_ERROR_MESSAGE = "Internal server error"


class AuthError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = 500
    default_message: str = INTERNAL_ERROR_MESSAGE

    def __init__(self, message: str | None = None, field: str | None = None):
        self.message = message or self.default_message
        self.field = field
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed or missing input."""

    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(AuthError):
    """Bad credentials, or a token that is invalid, revoked or expired."""

    status_code = 401
    default_message = AUTH_FAILED_MESSAGE


class AuthorizationError(AuthError):
    """Authenticated, but not allowed to do this."""

    status_code = 403
    default_message = "Access denied"


class NotFoundError(AuthError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(AuthError):
    """Unique field already taken."""

    status_code = 409
    default_message = "Resource already exists"


class StorageError(AuthError):
    """Wraps a database failure; the cause is only logged."""

    status_code = 500
    default_message = INTERNAL_ERROR_MESSAGE


class TokenError(Exception):
    """Base token error."""

    pass


class InvalidTokenError(TokenError):
    """Signature, expiry or token-type check failed."""

    pass


class TokenExpiredError(InvalidTokenError):
    """JWT token has expired."""

    pass


class InvalidTokenFormatError(TokenError):
    """Token could not be decoded at all."""

    pass
