"""
Password reset lifecycle

Issued -> Consumed (redeemed once) | Expired (older than PASSWORD_RESET_TTL_HOURS)

- request_reset(): unknown emails return None; the route still answers with the
  same generic message so account existence never leaks
- redeem(): deletes the request row with a conditional DELETE; only the caller
  whose DELETE removed the row may change the password, so two concurrent
  redeemers of one token produce exactly one winner
- cleanup_expired(): bulk delete of stale rows, safe to run on any schedule
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import get_password_hash
from app.models.password_reset import PasswordResetRequest
from app.models.user import User
from app.services.email_service import EmailService
from app.services.user_service import UserService

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def generate_reset_token() -> str:
    """64 hex chars from 32 bytes of CSPRNG output."""
    return secrets.token_hex(TOKEN_BYTES)


class PasswordResetService:

    def __init__(self, db: AsyncSession, email_service: Optional[EmailService] = None):
        self.db = db
        self.email_service = email_service

    @staticmethod
    def _cutoff() -> datetime:
        return datetime.now(timezone.utc) - timedelta(hours=settings.PASSWORD_RESET_TTL_HOURS)

    async def issue_for_user(self, user: User) -> PasswordResetRequest:
        """Create and persist a new reset request for user (no email)."""
        reset = PasswordResetRequest(
            user_id=user.id,
            token=generate_reset_token(),
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(reset)
        await self.db.flush()
        return reset

    async def request_reset(self, email: str) -> Optional[PasswordResetRequest]:
        """
        Issue a reset token for the account with this email and mail the link.

        Returns:
            The new reset request, or None if no account has this email
        """
        user = await UserService(self.db).get_user_by_email(email)
        if not user:
            logger.info("Password reset requested for unknown email")
            return None

        reset = await self.issue_for_user(user)
        await self.db.commit()

        if self.email_service is not None:
            result = await self.email_service.send_password_reset(user.email, user.username, reset.token)
            if not result.success:
                logger.warning(f"Password reset email for user {user.id} not delivered: {result.error}")

        return reset

    async def find_valid(self, token: str) -> Optional[PasswordResetRequest]:
        """Exact token match created within the TTL."""
        if not token:
            return None
        result = await self.db.execute(
            select(PasswordResetRequest).where(
                PasswordResetRequest.token == token,
                PasswordResetRequest.created_at >= self._cutoff(),
            )
        )
        return result.scalar_one_or_none()

    async def redeem(self, token: str, new_password: str) -> Optional[User]:
        """
        Consume a reset token and set the user's new password.

        The caller validates new_password against the password policy first.

        Returns:
            The updated user, or None if the token is unknown, expired or
            was consumed concurrently
        """
        reset = await self.find_valid(token)
        if not reset:
            return None

        reset_id, user_id = reset.id, reset.user_id
        deleted = await self.db.execute(
            delete(PasswordResetRequest).where(PasswordResetRequest.id == reset_id)
        )
        if deleted.rowcount != 1:
            logger.info(f"Reset request {reset_id} already consumed")
            return None

        user = await self.db.get(User, user_id)
        if not user:
            return None

        user.hashed_password = get_password_hash(new_password)
        user.record_password_change()
        await self.db.commit()

        logger.info(f"Password reset completed for user {user.id}")
        return user

    async def cleanup_expired(self) -> int:
        """
        Delete every reset request older than the TTL.

        Returns:
            Number of rows removed
        """
        result = await self.db.execute(
            delete(PasswordResetRequest).where(PasswordResetRequest.created_at < self._cutoff())
        )
        await self.db.commit()

        removed = result.rowcount or 0
        if removed > 0:
            logger.info(f"Password reset cleanup: removed {removed} expired requests")
        return removed
