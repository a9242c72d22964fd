"""UsageLog model for the append-only audit trail of charged actions."""

import uuid

from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from database import Base


class UsageLog(Base):
    """Write-once usage entry. Diagnostic only, never authoritative for balances."""

    __tablename__ = "usage_logs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    action = Column(String, nullable=False)
    model = Column(String, nullable=True)
    size = Column(String, nullable=True)
    quality = Column(String, nullable=True)
    n = Column(Integer, nullable=False, default=1)
    credits_used = Column(Integer, nullable=False, default=0)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
