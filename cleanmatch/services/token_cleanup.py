"""Token cleanup service - periodically sweeps expired blacklist entries."""

import asyncio
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from cleanmatch.core import async_session_maker, settings
from cleanmatch.core.logging import get_logger
from cleanmatch.services.token_blacklist import (
    DatabaseTokenBlacklist,
    MemoryTokenBlacklist,
    TokenBlacklistStore,
)

logger = get_logger("token_cleanup")

# Let the app finish starting before the first sweep
STARTUP_DELAY_SECONDS = 60


class TokenCleanupService:
    """Background service that removes blacklist entries past their expiry.

    Entries only need to outlive the token they block, so the sweep is
    housekeeping: ``is_revoked`` already ignores expired rows.
    """

    _instance: Optional["TokenCleanupService"] = None
    _instance_lock: threading.Lock = threading.Lock()
    _task: asyncio.Task | None = None

    def __init__(
        self,
        interval_seconds: int | None = None,
        session_factory: Callable[[], AsyncSession] | None = None,
        store: TokenBlacklistStore | None = None,
    ):
        self._running = False
        self.interval_seconds = interval_seconds or settings.token_sweep_interval_seconds
        self.startup_delay = STARTUP_DELAY_SECONDS
        self._session_factory = session_factory or async_session_maker
        self._store = store
        self.last_run_at: datetime | None = None
        self.last_removed: int | None = None

    @classmethod
    def get_instance(cls) -> "TokenCleanupService":
        """Get singleton instance of the cleanup service (thread-safe)."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """Start the background sweep task."""
        if self._running:
            logger.warning("Token cleanup service is already running")
            return

        self._running = True
        TokenCleanupService._task = asyncio.create_task(self._cleanup_loop())
        logger.info(
            f"Token cleanup service started (backend: {settings.token_blacklist_backend}, "
            f"interval: {self.interval_seconds}s)"
        )

    async def stop(self):
        """Stop the background sweep task."""
        self._running = False
        if TokenCleanupService._task:
            TokenCleanupService._task.cancel()
            try:
                await TokenCleanupService._task
            except asyncio.CancelledError:
                pass
            TokenCleanupService._task = None
        logger.info("Token cleanup service stopped")

    async def _cleanup_loop(self):
        await asyncio.sleep(self.startup_delay)

        while self._running:
            try:
                await self.run_cleanup_now()
            except Exception as e:
                logger.error(f"Error in token blacklist cleanup: {e}")

            await asyncio.sleep(self.interval_seconds)

    async def run_cleanup_now(self) -> int:
        """Run one sweep immediately.

        Returns:
            Number of blacklist entries removed
        """
        if self._store is not None:
            removed = await self._store.sweep_expired()
        elif settings.token_blacklist_backend == "memory":
            removed = await MemoryTokenBlacklist.get_instance().sweep_expired()
        else:
            removed = await self._sweep_database()

        self.last_run_at = datetime.now(UTC)
        self.last_removed = removed
        if removed > 0:
            logger.info(f"Token blacklist cleanup: removed {removed} expired entries")
        else:
            logger.debug("Token blacklist cleanup: nothing to remove")
        return removed

    async def _sweep_database(self) -> int:
        async with self._session_factory() as db:
            try:
                removed = await DatabaseTokenBlacklist(db).sweep_expired()
                await db.commit()
            except Exception as e:
                logger.exception(f"Error during token blacklist cleanup: {e}")
                await db.rollback()
                raise
        return removed
