from datetime import datetime, timezone
from uuid import UUID
from sqlalchemy.orm import Session
from . import models


def log_action(
    db: Session,
    user_id: str | UUID,
    action: str,
    target_type: str | None = None,
    target_id: str | UUID | None = None,
    details: dict | None = None,
):
    log = models.AuditLog(
        user_id=UUID(str(user_id)),
        action=action,
        target_type=target_type,
        target_id=str(target_id) if target_id else None,
        details=details or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(log)
    db.commit()
    db.refresh(log)
    return log


def actions_for_target(db: Session, target_type: str, target_id: str | UUID) -> list[str]:
    rows = (
        db.query(models.AuditLog.action)
        .filter(
            models.AuditLog.target_type == target_type,
            models.AuditLog.target_id == str(target_id),
        )
        .order_by(models.AuditLog.created_at.asc())
        .all()
    )
    return [row[0] for row in rows]
