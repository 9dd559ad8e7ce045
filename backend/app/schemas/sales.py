from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

# Stock and quantity columns are Numeric(20,4)
QUANTITY_PLACES = 4


class PaymentMethodEnum(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    CREDIT = "CREDIT"


# ─── Request ──────────────────────────────────────────────────────────────────


class CartLine(BaseModel):
    product_id: UUID
    quantity: Decimal
    name: str | None = None
    # Catalog price is used when neither price is given
    unit_price: Decimal | None = None
    final_price: Decimal | None = None
    is_pack_sale: bool = False
    presentation_quantity: Decimal | None = None

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        if v.normalize().as_tuple().exponent < -QUANTITY_PLACES:
            raise ValueError("Quantity cannot have more than 4 decimal places")
        return v

    @field_validator("unit_price", "final_price")
    @classmethod
    def price_non_negative(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v < 0:
            raise ValueError("Price cannot be negative")
        return v

    @field_validator("presentation_quantity")
    @classmethod
    def presentation_positive(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v <= 0:
            raise ValueError("Presentation quantity must be greater than zero")
        if v is not None and v.normalize().as_tuple().exponent < -QUANTITY_PLACES:
            raise ValueError(
                "Presentation quantity cannot have more than 4 decimal places"
            )
        return v


class PaymentDetails(BaseModel):
    amount_tendered: Decimal | None = None
    change: Decimal | None = None
    card_auth_code: str | None = None


class SaleRequest(BaseModel):
    items: list[CartLine] = Field(min_length=1)
    total: Decimal
    payment_method: PaymentMethodEnum
    client_id: UUID | None = None
    customer_name: str | None = None
    payment_details: PaymentDetails | None = None


# ─── Response ─────────────────────────────────────────────────────────────────


class SaleLineOut(BaseModel):
    product_id: UUID
    name: str
    unit_price: str
    quantity: str
    line_subtotal: str
    stock_deducted: str


class StockShortfallOut(BaseModel):
    product_id: UUID
    product_name: str
    requested: str
    available: str
    message: str


class SaleOut(BaseModel):
    id: UUID
    client_id: UUID | None
    customer_name: str | None
    payment_method: str
    total: str
    remaining_balance: str
    amount_tendered: str
    sold_at: datetime
    items: list[SaleLineOut]
    warnings: list[StockShortfallOut]
