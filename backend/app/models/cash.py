from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.database import Base


class CashMovementType(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"


class CashMovement(Base):
    """Drawer cash in/out, consumed by shift reconciliation."""

    __tablename__ = "cash_movements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    type: Mapped[CashMovementType] = mapped_column(
        Enum(CashMovementType), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    payment_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("payments.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_cash_movement_amount_positive"),
        Index("ix_cash_movements_created_at", "created_at"),
    )
