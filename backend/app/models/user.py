"""
User model
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship

from app.core.database import Base

ROLE_USER = "user"
ROLE_ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(180), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String(20), nullable=False, default=ROLE_USER)
    is_active = Column(Boolean, default=True)

    # Timestamps (UTC-aware)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    password_changed_at = Column(DateTime(timezone=True), nullable=True)

    # Reset requests go with the user
    reset_requests = relationship(
        "PasswordResetRequest",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}')>"

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def record_password_change(self) -> None:
        self.password_changed_at = datetime.now(timezone.utc)
