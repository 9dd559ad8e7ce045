from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.time_utils import as_utc
from backend.app.models.audit import AuditLog


def log_action(
    db: Session,
    *,
    user_id: UUID | None,
    action: str,
    resource_type: str,
    resource_id: str,
    changes: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> None:
    """Stage one audit_logs row in the caller's transaction (no commit).

    The row is committed or rolled back together with the mutation it
    describes.
    """
    db.add(
        AuditLog(
            table_name=resource_type,
            record_id=resource_id,
            action=action,
            changed_by=user_id,
            new_values=changes,
            ip_address=ip_address,
        )
    )


def list_trail(db: Session, resource_type: str, resource_id: str) -> list[dict]:
    """Audit entries for one record, oldest first."""
    rows = (
        db.query(AuditLog)
        .filter(AuditLog.table_name == resource_type, AuditLog.record_id == resource_id)
        .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
        .all()
    )
    return [
        {
            "action": row.action,
            "changed_by": str(row.changed_by) if row.changed_by else None,
            "changes": row.new_values or {},
            "created_at": as_utc(row.created_at).isoformat() if row.created_at else None,
        }
        for row in rows
    ]
