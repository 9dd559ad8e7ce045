from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field


class ClientCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    credit_limit: Decimal = Field(default=Decimal("0"), ge=0)


class ClientOut(BaseModel):
    id: str
    name: str
    email: str | None
    phone: str | None
    credit_limit: str
    current_balance: str


class OpenInvoiceOut(BaseModel):
    id: str
    sold_at: str
    total: str
    remaining_balance: str
    amount_tendered: str


class ClientDetailOut(ClientOut):
    open_invoices: list[OpenInvoiceOut]
