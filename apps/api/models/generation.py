"""Generation model: history of completed generate/edit calls."""

import uuid

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from database import Base


class Generation(Base):
    """Append-only record created after a successful provider call."""

    __tablename__ = "generations"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    kind = Column(String, nullable=False)
    prompt = Column(Text, nullable=True)
    size = Column(String, nullable=True)
    quality = Column(String, nullable=True)
    n = Column(Integer, nullable=False, default=1)
    results = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
