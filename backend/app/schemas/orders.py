from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from backend.app.schemas.sales import QUANTITY_PLACES


class OrderStatusEnum(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    READY = "READY"
    DELIVERED = "DELIVERED"


class OrderPriorityEnum(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


# ─── Order creation ───────────────────────────────────────────────────────────


class OrderItemCreate(BaseModel):
    product_id: UUID | None = None
    name: str = Field(min_length=1)
    sku: str | None = None
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    quantity: Decimal

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        if v.normalize().as_tuple().exponent < -QUANTITY_PLACES:
            raise ValueError("Quantity cannot have more than 4 decimal places")
        return v


class OrderCreate(BaseModel):
    customer_name: str = Field(min_length=1)
    delivery_date: datetime
    items: list[OrderItemCreate] = Field(min_length=1)
    client_id: UUID | None = None
    customer_phone: str | None = None
    customer_address: str | None = None
    order_folio: str | None = None
    priority: OrderPriorityEnum = OrderPriorityEnum.MEDIUM
    advance_payment: Decimal = Field(default=Decimal("0"), ge=0)
    notes: str | None = None


# ─── State machine ────────────────────────────────────────────────────────────


class TransitionRequest(BaseModel):
    to_status: OrderStatusEnum
    # Status the board showed when the card was moved; stale moves are rejected
    expected_status: OrderStatusEnum | None = None


class AuthorizationSubmit(BaseModel):
    secret: str = Field(min_length=1)
