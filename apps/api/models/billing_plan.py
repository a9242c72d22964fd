"""BillingPlan model."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from database import Base


class BillingPlan(Base):
    __tablename__ = "billing_plans"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    slug = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    period = Column(String, nullable=False, default="monthly")
    credits = Column(Integer, nullable=False, default=0)
    credits_monthly = Column(Integer, nullable=False, default=0)
    price_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String, nullable=False, default="BRL")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
