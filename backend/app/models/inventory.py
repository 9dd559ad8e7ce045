from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.database import Base


class Product(Base):
    """Catalog product, referenced by sales and orders.

    Catalog maintenance lives elsewhere; this service only reads prices and
    decrements ``stock``. Stock is fractional so weighable items can be
    sold by weight.
    """

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    stock: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    # Catalog base units represented by one "pack" unit
    pack_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_weighable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("unit_price >= 0", name="ck_product_unit_price_non_negative"),
        CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),
        CheckConstraint("pack_quantity >= 1", name="ck_product_pack_quantity_positive"),
        Index("ix_products_sku", "sku"),
    )
