"""
Idempotency record model
"""
from sqlalchemy import Column, String, DateTime, JSON

from .base import Base


class IdempotencyRecordModel(Base):
    __tablename__ = "idempotency_records"

    key = Column(String(255), primary_key=True)
    status = Column(String(20), nullable=False, comment="reserved/completed")
    result = Column(JSON, nullable=True)
    owner = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    lease_expires_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
