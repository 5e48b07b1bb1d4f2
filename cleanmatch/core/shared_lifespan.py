"""Startup/shutdown sequence for the CleanMatch API."""

import asyncio
import logging

from cleanmatch.core import settings, setup_logging
from cleanmatch.core.logging import get_logger
from cleanmatch.services.token_cleanup import TokenCleanupService

_logger = get_logger("lifespan")

# How often idle login-throttle buckets are pruned
LOGIN_THROTTLE_PRUNE_SECONDS = 600


def task_done_callback(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        _logger.error(f"Background task {task.get_name()} failed: {exc}")


async def _login_throttle_prune_loop(logger: logging.Logger) -> None:
    """Periodically forget IPs whose failed logins have aged out."""
    from cleanmatch.api.auth import prune_login_attempts

    while True:
        try:
            await asyncio.sleep(LOGIN_THROTTLE_PRUNE_SECONDS)
            removed = prune_login_attempts()
            if removed > 0:
                logger.debug(f"Login throttle cleanup: removed {removed} idle clients")
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.warning(f"Login throttle cleanup error: {e}")


async def common_startup(logger: logging.Logger) -> list[asyncio.Task]:
    """Configure logging, report insecure settings and start background work.

    Returns the managed background tasks; pass them to ``common_shutdown``.
    """
    setup_logging(
        level=settings.log_level,
        format_type="structured" if not settings.debug else "dev",
    )

    for warning in settings.check_security_configuration():
        logger.warning(f"SECURITY: {warning}")

    await TokenCleanupService.get_instance().start()

    tasks: list[asyncio.Task] = []
    prune_task = asyncio.create_task(_login_throttle_prune_loop(logger))
    prune_task.add_done_callback(task_done_callback)
    tasks.append(prune_task)

    return tasks


async def common_shutdown(
    logger: logging.Logger,
    tasks: list[asyncio.Task],
) -> None:
    """Cancel managed background tasks and stop the token sweeper."""
    for task in tasks:
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    await TokenCleanupService.get_instance().stop()
    logger.info("Background services stopped")
