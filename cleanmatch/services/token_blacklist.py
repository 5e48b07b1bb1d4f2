"""Token blacklist - persistent revocation for otherwise-valid JWTs.

Tokens are stored by SHA-256 digest only. An entry blocks its token until the
token's own ``exp``; after that the entry is irrelevant and ``sweep_expired``
removes it. There is no un-revoke.

Two backends share the same contract:

* ``DatabaseTokenBlacklist`` - the ``token_blacklist`` table; survives
  restarts and is shared by every replica.
* ``MemoryTokenBlacklist`` - a process-local dict for single-process
  deployments and tests.
"""

import hashlib
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession

from cleanmatch.core import settings
from cleanmatch.core.database import STORAGE_ERRORS
from cleanmatch.core.logging import get_logger
from cleanmatch.models.token_blacklist import RevocationReason, TokenBlacklist
from cleanmatch.services.security import decode_token

logger = get_logger("token_blacklist")


def hash_token(token: str) -> str:
    """Hex SHA-256 of the raw token; the only form in which tokens are stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenBlacklistStore(ABC):
    """Revocation list contract shared by all backends."""

    hash_token = staticmethod(hash_token)

    @abstractmethod
    async def add(
        self,
        token: str,
        user_id: UUID | None,
        reason: RevocationReason = RevocationReason.LOGOUT,
    ) -> bool:
        """Revoke ``token`` until its own expiry.

        Idempotent: revoking an already revoked token succeeds without a
        second entry. Returns False if the backend could not record it.
        Raises InvalidTokenFormatError if the token cannot be decoded.
        """

    @abstractmethod
    async def is_revoked(self, token: str) -> bool:
        """True if ``token`` has an unexpired blacklist entry."""

    @abstractmethod
    async def sweep_expired(self) -> int:
        """Delete every entry with ``expires_at <= now``; return how many."""


class DatabaseTokenBlacklist(TokenBlacklistStore):
    """PostgreSQL-backed blacklist.

    Every statement runs in a SAVEPOINT so a failed blacklist read or write
    never aborts the caller's surrounding transaction.

    ``is_revoked`` fails OPEN by default: when the database cannot be
    queried the token is treated as not revoked, so an outage degrades
    logout enforcement instead of locking every user out. Set
    ``TOKEN_BLACKLIST_FAIL_OPEN=false`` to reject instead.
    """

    def __init__(self, session: AsyncSession, fail_open: bool | None = None):
        self.session = session
        self.fail_open = settings.token_blacklist_fail_open if fail_open is None else fail_open

    async def add(
        self,
        token: str,
        user_id: UUID | None,
        reason: RevocationReason = RevocationReason.LOGOUT,
    ) -> bool:
        token_hash = hash_token(token)
        expires_at = decode_token(token).expires_at

        stmt = (
            insert(TokenBlacklist)
            .values(
                token_hash=token_hash,
                user_id=user_id,
                expires_at=expires_at,
                reason=RevocationReason(reason).value,
            )
            .on_conflict_do_nothing(index_elements=[TokenBlacklist.token_hash])
        )
        try:
            async with self.session.begin_nested():
                await self.session.execute(stmt)
        except STORAGE_ERRORS:
            logger.exception(
                "Failed to blacklist token",
                extra={"user_id": str(user_id), "token_hash": token_hash[:12]},
            )
            return False
        return True

    async def is_revoked(self, token: str) -> bool:
        token_hash = hash_token(token)
        stmt = select(TokenBlacklist.token_hash).where(
            TokenBlacklist.token_hash == token_hash,
            TokenBlacklist.expires_at > datetime.now(UTC),
        )
        try:
            async with self.session.begin_nested():
                result = await self.session.execute(stmt)
                return result.scalar_one_or_none() is not None
        except STORAGE_ERRORS as e:
            logger.warning(
                f"Token blacklist lookup failed, treating token as "
                f"{'not revoked (fail-open)' if self.fail_open else 'revoked (fail-closed)'}: {e}",
                extra={"token_hash": token_hash[:12]},
            )
            return not self.fail_open

    async def sweep_expired(self) -> int:
        stmt = delete(TokenBlacklist).where(TokenBlacklist.expires_at <= datetime.now(UTC))
        async with self.session.begin_nested():
            result: CursorResult[Any] = await self.session.execute(stmt)  # type: ignore[assignment]
        return result.rowcount or 0


@dataclass
class BlacklistEntry:
    token_hash: str
    user_id: UUID | None
    expires_at: datetime
    reason: RevocationReason
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class MemoryTokenBlacklist(TokenBlacklistStore):
    """In-process blacklist guarded by a lock.

    Revocations are lost on restart and invisible to other processes; only
    suitable for a single worker or for tests.
    """

    _instance: Optional["MemoryTokenBlacklist"] = None
    _instance_lock: threading.Lock = threading.Lock()

    def __init__(self):
        self._entries: dict[str, BlacklistEntry] = {}
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> "MemoryTokenBlacklist":
        """Process-wide instance used when TOKEN_BLACKLIST_BACKEND=memory."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    async def add(
        self,
        token: str,
        user_id: UUID | None,
        reason: RevocationReason = RevocationReason.LOGOUT,
    ) -> bool:
        token_hash = hash_token(token)
        expires_at = decode_token(token).expires_at
        with self._lock:
            self._entries.setdefault(
                token_hash,
                BlacklistEntry(
                    token_hash=token_hash,
                    user_id=user_id,
                    expires_at=expires_at,
                    reason=RevocationReason(reason),
                ),
            )
        return True

    async def is_revoked(self, token: str) -> bool:
        token_hash = hash_token(token)
        with self._lock:
            entry = self._entries.get(token_hash)
        return entry is not None and entry.expires_at > datetime.now(UTC)

    async def sweep_expired(self) -> int:
        now = datetime.now(UTC)
        with self._lock:
            expired = [h for h, entry in self._entries.items() if entry.expires_at <= now]
            for token_hash in expired:
                del self._entries[token_hash]
        return len(expired)

    def get_entry(self, token: str) -> BlacklistEntry | None:
        with self._lock:
            return self._entries.get(hash_token(token))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
