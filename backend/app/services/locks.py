"""Row locks shared by the mutating services.

Every lock is a ``SELECT ... FOR UPDATE`` inside the caller's transaction
and is released on commit or rollback.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.exceptions import NotFoundError
from backend.app.models.inventory import Product
from backend.app.models.order import Order


def lock_order(db: Session, order_id: UUID) -> Order:
    order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
    if not order:
        raise NotFoundError("Order not found", order_id=str(order_id))
    return order


def lock_products(db: Session, product_ids: Iterable[UUID]) -> dict[UUID, Product]:
    """Lock every listed product in one statement, always in id order.

    Two carts naming the same products in different orders then queue on
    the first shared row instead of deadlocking. Unknown ids are simply
    absent from the result.
    """
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    products = (
        db.query(Product)
        .filter(Product.id.in_(ids))
        .order_by(Product.id)
        .with_for_update()
        .all()
    )
    return {p.id: p for p in products}
