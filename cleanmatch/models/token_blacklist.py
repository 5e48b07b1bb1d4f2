"""Revoked JWTs, keyed by a SHA-256 digest of the raw token."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from cleanmatch.core.database import Base


class RevocationReason(str, enum.Enum):
    LOGOUT = "logout"
    PASSWORD_RESET = "password_reset"
    ACCOUNT_SUSPENDED = "account_suspended"


class TokenBlacklist(Base):
    """A revoked token.

    The raw token is never stored. An entry blocks its token while
    ``expires_at`` is in the future; after that it is dead weight and the
    hourly sweep deletes it.
    """

    __tablename__ = "token_blacklist"

    token_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    reason: Mapped[str] = mapped_column(
        Enum(
            *(reason.value for reason in RevocationReason),
            name="revocation_reason",
            create_constraint=True,
        ),
        nullable=False,
        default=RevocationReason.LOGOUT.value,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<TokenBlacklist {self.token_hash[:12]}… reason={self.reason}>"
