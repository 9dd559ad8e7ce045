from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class PaymentCreate(BaseModel):
    client_id: UUID
    amount: Decimal = Field(gt=0)
    note: str | None = None


class PaymentBreakdownOut(BaseModel):
    invoice_id: UUID
    paid_amount: str
    remaining_balance: str
    invoice_total: str


class PaymentResultOut(BaseModel):
    payment_id: UUID
    client_id: UUID
    client_name: str
    date: datetime
    previous_balance: str
    new_balance: str
    amount_paid: str
    unallocated_amount: str
    details: list[PaymentBreakdownOut]
