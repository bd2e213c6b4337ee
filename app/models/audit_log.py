"""
AuditLog: who changed an entitlement and why.
actor_type: admin (REST) or payment_provider (webhook).
"""
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String

from app.db.base import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor_type = Column(String, nullable=False)
    actor_id = Column(String, nullable=True)        # provider name / telegram id
    action = Column(String, nullable=False, index=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=True)
    payload = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
