"""
Trip checklist item (read-only here; CRUD lives outside this service)
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime

from app.core.database import Base


class Item(Base):
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    category = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
