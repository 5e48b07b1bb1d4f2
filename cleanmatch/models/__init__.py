# CleanMatch Models
from cleanmatch.models.base import BaseModel
from cleanmatch.models.token_blacklist import RevocationReason, TokenBlacklist
from cleanmatch.models.user import CleanerProfile, User, UserRole

__all__ = [
    "BaseModel",
    "CleanerProfile",
    "RevocationReason",
    "TokenBlacklist",
    "User",
    "UserRole",
]
