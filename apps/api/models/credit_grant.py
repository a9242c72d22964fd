"""CreditGrant model: one row per periodic top-up applied to an account."""

import uuid

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from database import Base


class CreditGrant(Base):
    """Idempotency record for periodic grants, unique per user/source/period."""

    __tablename__ = "credit_grants"
    __table_args__ = (
        UniqueConstraint("user_id", "source", "period_key", name="uq_credit_grants_user_source_period"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    source = Column(String, nullable=False)
    period_key = Column(String, nullable=False, index=True)
    credits = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
