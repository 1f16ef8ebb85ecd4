"""SharedFile model for tokenized public file links."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.sql import func

from database import Base


class SharedFile(Base):
    """Public share token for a specific content artifact."""

    __tablename__ = "shared_files"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    file_id = Column(String, ForeignKey("content.id"), nullable=False, index=True)
    shared_by = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    share_token = Column(String, nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_accessed_at = Column(DateTime(timezone=True), nullable=True)
