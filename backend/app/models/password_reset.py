"""
Password reset request model

One row per issued reset link. The row is deleted when the link is redeemed or
by the cleanup sweep once it is older than PASSWORD_RESET_TTL_HOURS.
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from sqlalchemy.orm import relationship

from app.core.database import Base


class PasswordResetRequest(Base):
    __tablename__ = "password_reset_request"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # 32 random bytes, hex encoded
    token = Column(String(64), unique=True, nullable=False, index=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        default=lambda: datetime.now(timezone.utc),
    )

    user = relationship("User", back_populates="reset_requests")

    def __repr__(self):
        return f"<PasswordResetRequest(id={self.id}, user_id={self.user_id})>"
