"""
Reset token cleanup scheduler

Sweeps password reset requests older than PASSWORD_RESET_TTL_HOURS every
RESET_TOKEN_CLEANUP_INTERVAL_MINUTES.
Started from the app lifespan; runs until cancelled during shutdown.
"""
import asyncio
import logging
from datetime import datetime, timezone

from app.core.config import settings
from app.core.database import get_db_session
from app.services.password_reset_service import PasswordResetService

logger = logging.getLogger(__name__)

cleanup_heartbeat: dict = {
    "last_run": None,
    "last_success": None,
    "records_processed": 0,
    "errors": 0,
}


async def run_token_cleanup() -> int:
    """
    One cleanup pass. Updates heartbeat metrics for the health endpoint.

    Returns:
        Number of expired reset requests removed
    """
    cleanup_heartbeat["last_run"] = datetime.now(timezone.utc).isoformat()

    try:
        async with get_db_session() as db:
            removed = await PasswordResetService(db).cleanup_expired()
    except Exception as e:
        cleanup_heartbeat["errors"] += 1
        logger.error(f"Reset token cleanup failed: {e}")
        return 0

    cleanup_heartbeat["last_success"] = datetime.now(timezone.utc).isoformat()
    cleanup_heartbeat["records_processed"] += removed

    return removed


async def token_cleanup_scheduler():
    interval_seconds = settings.RESET_TOKEN_CLEANUP_INTERVAL_MINUTES * 60
    logger.info(
        f"Reset token cleanup scheduler started (interval: {settings.RESET_TOKEN_CLEANUP_INTERVAL_MINUTES} minutes)"
    )

    while True:
        await run_token_cleanup()
        await asyncio.sleep(interval_seconds)
