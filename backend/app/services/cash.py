from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.time_utils import as_utc, utcnow
from backend.app.models.cash import CashMovement, CashMovementType

ZERO = Decimal("0")


def record_cash_movement(
    db: Session,
    movement_type: CashMovementType,
    amount: Decimal,
    reason: str,
    payment_id: UUID | None = None,
    created_at: datetime | None = None,
) -> CashMovement:
    """Stage a drawer movement in the caller's transaction (no commit)."""
    movement = CashMovement(
        type=movement_type,
        amount=amount,
        reason=reason,
        payment_id=payment_id,
        created_at=created_at or utcnow(),
    )
    db.add(movement)
    return movement


def list_cash_movements(db: Session, since: datetime | None = None) -> dict:
    """Movements for shift reconciliation, oldest first, with IN/OUT totals."""
    query = db.query(CashMovement)
    if since is not None:
        query = query.filter(CashMovement.created_at >= since)
    movements = query.order_by(CashMovement.created_at.asc()).all()

    total_in = sum(
        (Decimal(str(m.amount)) for m in movements if m.type == CashMovementType.IN),
        ZERO,
    )
    total_out = sum(
        (Decimal(str(m.amount)) for m in movements if m.type == CashMovementType.OUT),
        ZERO,
    )
    return {
        "movements": [
            {
                "id": str(m.id),
                "type": m.type.value,
                "amount": str(m.amount),
                "reason": m.reason,
                "payment_id": str(m.payment_id) if m.payment_id else None,
                "created_at": as_utc(m.created_at).isoformat(),
            }
            for m in movements
        ],
        "total_in": str(total_in),
        "total_out": str(total_out),
        "net": str(total_in - total_out),
    }
