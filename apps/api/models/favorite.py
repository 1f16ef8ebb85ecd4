"""Favorite model: a user's starred content."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.sql import func

from database import Base


class Favorite(Base):
    __tablename__ = "favorites"
    __table_args__ = (
        UniqueConstraint("user_id", "file_id", name="uq_favorites_user_file"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    file_id = Column(String, ForeignKey("content.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
