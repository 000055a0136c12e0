"""Delete password reset tokens older than PASSWORD_RESET_TTL_HOURS.

Usage: python scripts/cleanup_expired_tokens.py
Safe to run from cron at any frequency; prints the number of rows removed.
"""
import asyncio
import logging
import os
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.database import engine, get_db_session
from app.services.password_reset_service import PasswordResetService


async def cleanup_expired_tokens() -> int:
    async with get_db_session() as db:
        removed = await PasswordResetService(db).cleanup_expired()
    await engine.dispose()
    return removed


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    removed = asyncio.run(cleanup_expired_tokens())
    print(f"Removed {removed} expired password reset token(s)")
