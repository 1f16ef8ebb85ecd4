"""CreditBalance model: the per-user credit counter."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class CreditBalance(Base):
    """Exactly one row per user; mutated only through atomic increments."""

    __tablename__ = "credit_balances"
    __table_args__ = (
        CheckConstraint("total_credits >= 0", name="ck_credit_balances_total_non_negative"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, unique=True, index=True)
    total_credits = Column(Integer, nullable=False, default=0)
    referral_credits = Column(Integer, nullable=False, default=0)
    ad_credits = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="credit_balance")
