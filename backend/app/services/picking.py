from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.database import transaction
from backend.app.core.exceptions import InvalidTransitionError, NotFoundError
from backend.app.models.order import Order, OrderStatus
from backend.app.services.audit import log_action
from backend.app.services.locks import lock_order

logger = logging.getLogger(__name__)

# Finishing picking never moves an order backwards or past PROCESSING
PICKABLE_STATUSES = {OrderStatus.PENDING, OrderStatus.PROCESSING}


def _checklist_out(order: Order) -> dict:
    checked = sum(1 for item in order.items if item.is_checked)
    return {
        "order_id": str(order.id),
        "order_folio": order.order_folio,
        "status": order.status.value,
        "picking_completed": order.picking_completed,
        "checked_count": checked,
        "total_items": len(order.items),
        "items": [
            {
                "id": str(item.id),
                "name": item.name,
                "sku": item.sku,
                "quantity": str(item.quantity),
                "is_checked": item.is_checked,
            }
            for item in order.items
        ],
    }


def get_checklist(db: Session, order_id: UUID) -> dict:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError("Order not found", order_id=str(order_id))
    return _checklist_out(order)


def toggle_checklist_item(db: Session, order_id: UUID, item_id: UUID) -> dict:
    """Flip one item's picked mark."""
    with transaction(db):
        order = lock_order(db, order_id)
        item = next((i for i in order.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError(
                "Item does not belong to this order",
                order_id=str(order_id),
                item_id=str(item_id),
            )
        item.is_checked = not item.is_checked
        db.flush()
        out = _checklist_out(order)
    return out


def finish_picking(db: Session, order_id: UUID, user_id: UUID | None = None) -> dict:
    """Mark picking done and park the order in PROCESSING.

    Unchecked items do not block finishing; they are reported in
    ``warnings`` so the caller can confirm. Repeating the call is harmless.
    Reaching READY still needs its own transition request.
    """
    with transaction(db):
        order = lock_order(db, order_id)
        if order.status not in PICKABLE_STATUSES:
            raise InvalidTransitionError(
                f"Cannot finish picking an order that is {order.status.value}",
                current_status=order.status.value,
            )

        total_items = len(order.items)
        checked = sum(1 for item in order.items if item.is_checked)
        warnings: list[str] = []
        if checked < total_items:
            warnings.append(
                f"{total_items - checked} of {total_items} items were not checked"
            )

        previous_status = order.status
        already_done = order.picking_completed
        order.picking_completed = True
        order.status = OrderStatus.PROCESSING

        if not already_done or previous_status != OrderStatus.PROCESSING:
            log_action(
                db,
                user_id=user_id,
                action="PICKING_FINISHED",
                resource_type="orders",
                resource_id=str(order.id),
                changes={
                    "checked_count": checked,
                    "total_items": total_items,
                    "from": previous_status.value,
                },
            )
        db.flush()
        out = _checklist_out(order)

    if warnings:
        logger.warning("Order %s finished picking with %s", order_id, warnings[0])
    logger.info("Picking finished for order %s", order_id)
    out["warnings"] = warnings
    return out
