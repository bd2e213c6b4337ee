from typing import Any

from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog

ACTOR_ADMIN = "admin"
ACTOR_PAYMENT_PROVIDER = "payment_provider"


class AuditService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def log(
        self,
        actor_type: str,
        actor_id: str | None,
        action: str,
        entity_type: str,
        entity_id: str | None,
        payload: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Add an entry to the current transaction; it lands with the caller's commit."""
        entry = AuditLog(
            actor_type=actor_type,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=payload or {},
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def entries_for(self, entity_type: str, entity_id: str) -> list[AuditLog]:
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.id)
            .all()
        )
