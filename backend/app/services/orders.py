"""Fulfillment orders and their status state machine.

PENDING -> PROCESSING -> READY -> DELIVERED. Forward moves into READY (or
beyond) need the picking checklist finished; backward moves are parked
behind the supervisor authorization gate; DELIVERED is terminal.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from backend.app.core.database import transaction
from backend.app.core.exceptions import (
    AuthorizationPendingError,
    CreditLimitExceededError,
    InvalidAmountError,
    InvalidTransitionError,
    NotFoundError,
    PickingIncompleteError,
)
from backend.app.core.time_utils import as_utc, utcnow
from backend.app.models.order import (
    Order,
    OrderItem,
    OrderPriority,
    OrderStatus,
)
from backend.app.schemas.orders import OrderItemCreate
from backend.app.services.audit import log_action
from backend.app.services.authorization import (
    discard_if_expired,
    open_pending_authorization,
    pending_out,
)
from backend.app.services.clients import get_client_or_404
from backend.app.services.locks import lock_order

logger = logging.getLogger(__name__)

Q = Decimal("0.0001")
ZERO = Decimal("0")


# ─── Serialization ────────────────────────────────────────────────────────────


def order_out(order: Order) -> dict:
    delivery = as_utc(order.delivery_date)
    pending = order.pending_authorization
    return {
        "id": str(order.id),
        "order_folio": order.order_folio,
        "client_id": str(order.client_id) if order.client_id else None,
        "customer_name": order.customer_name,
        "customer_phone": order.customer_phone,
        "customer_address": order.customer_address,
        "status": order.status.value,
        "picking_completed": order.picking_completed,
        "priority": order.priority.value,
        "total": str(order.total),
        "advance_payment": str(order.advance_payment),
        "balance": str(order.balance),
        "notes": order.notes,
        "delivery_date": delivery.isoformat(),
        "created_at": as_utc(order.created_at).isoformat(),
        "is_late": delivery < utcnow() and order.status != OrderStatus.DELIVERED,
        "pending_authorization": pending_out(pending) if pending else None,
        "items": [
            {
                "id": str(item.id),
                "product_id": str(item.product_id) if item.product_id else None,
                "name": item.name,
                "sku": item.sku,
                "quantity": str(item.quantity),
                "unit_price": str(item.unit_price),
                "is_checked": item.is_checked,
            }
            for item in order.items
        ],
    }


# ─── CRUD-ish operations ─────────────────────────────────────────────────────


def create_order(
    db: Session,
    customer_name: str,
    delivery_date: datetime | None,
    items: list[OrderItemCreate],
    user_id: UUID | None = None,
    client_id: UUID | None = None,
    customer_phone: str | None = None,
    customer_address: str | None = None,
    order_folio: str | None = None,
    priority: OrderPriority | str = OrderPriority.MEDIUM,
    advance_payment: Decimal = ZERO,
    notes: str | None = None,
) -> dict:
    """Create an order in PENDING with an unfinished picking checklist.

    When a client is attached, the order's open balance must fit under the
    client's credit limit (0 means unlimited). The client's balance itself
    is not changed; only posted credit sales move it.
    """
    if delivery_date is None:
        raise InvalidAmountError("Delivery date is required")
    if not items:
        raise InvalidAmountError("Order must have at least one item")
    if advance_payment < ZERO:
        raise InvalidAmountError("Advance payment cannot be negative")

    total = sum(
        ((item.unit_price * item.quantity).quantize(Q, rounding=ROUND_HALF_UP) for item in items),
        ZERO,
    )
    balance = total - advance_payment
    if balance < ZERO:
        raise InvalidAmountError("Advance payment cannot exceed the order total")

    now = utcnow()
    order_id = uuid.uuid4()
    with transaction(db):
        if client_id is not None:
            client = get_client_or_404(db, client_id)
            limit = Decimal(str(client.credit_limit))
            projected = Decimal(str(client.current_balance)) + balance
            if limit > ZERO and projected > limit:
                raise CreditLimitExceededError(
                    f"Credit limit exceeded. Limit: {limit}, "
                    f"Current balance: {client.current_balance}, Order: {balance}",
                    credit_limit=str(limit),
                    current_balance=str(client.current_balance),
                )

        order = Order(
            id=order_id,
            # Timestamps alone collide between terminals
            order_folio=order_folio
            or f"PED-{int(now.timestamp() * 1000)}-{order_id.hex[:6].upper()}",
            client_id=client_id,
            customer_name=customer_name,
            customer_phone=customer_phone,
            customer_address=customer_address,
            status=OrderStatus.PENDING,
            picking_completed=False,
            priority=OrderPriority(priority),
            total=total,
            advance_payment=advance_payment,
            balance=balance,
            notes=notes,
            delivery_date=delivery_date,
            created_at=now,
            items=[
                OrderItem(
                    position=position,
                    product_id=item.product_id,
                    name=item.name,
                    sku=item.sku,
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                    is_checked=False,
                )
                for position, item in enumerate(items)
            ],
        )
        db.add(order)
        db.flush()
        log_action(
            db,
            user_id=user_id,
            action="ORDER_CREATED",
            resource_type="orders",
            resource_id=str(order.id),
            changes={
                "order_folio": order.order_folio,
                "total": str(total),
                "item_count": len(items),
            },
        )

    logger.info("Created order %s (%s)", order.id, order.order_folio)
    return order_out(order)


def get_order(db: Session, order_id: UUID) -> dict:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError("Order not found", order_id=str(order_id))
    return order_out(order)


def list_board(db: Session, status: OrderStatus | None = None) -> dict[str, list[dict]]:
    """Kanban board: every status column present, newest orders first."""
    query = db.query(Order).options(
        selectinload(Order.items), selectinload(Order.pending_authorization)
    )
    if status is not None:
        query = query.filter(Order.status == status)
    orders = query.order_by(Order.created_at.desc()).all()

    board: dict[str, list[dict]] = {s.value: [] for s in OrderStatus}
    for order in orders:
        board[order.status.value].append(order_out(order))
    return board


def list_picking_queue(db: Session) -> list[dict]:
    """Orders a picker can still work on, oldest first."""
    orders = (
        db.query(Order)
        .filter(
            (Order.status == OrderStatus.PENDING)
            | (
                (Order.status == OrderStatus.PROCESSING)
                & (Order.picking_completed.is_(False))
            )
        )
        .order_by(Order.created_at.asc())
        .all()
    )
    return [order_out(o) for o in orders]


def delete_order(db: Session, order_id: UUID, user_id: UUID | None = None) -> None:
    """Administrative removal; not a state transition."""
    with transaction(db):
        order = lock_order(db, order_id)
        folio = order.order_folio
        status = order.status.value
        db.delete(order)
        log_action(
            db,
            user_id=user_id,
            action="ORDER_DELETED",
            resource_type="orders",
            resource_id=str(order_id),
            changes={"order_folio": folio, "status": status},
        )
    logger.info("Deleted order %s (%s)", order_id, folio)


# ─── State machine ────────────────────────────────────────────────────────────


def request_transition(
    db: Session,
    order_id: UUID,
    to_status: OrderStatus | str,
    user_id: UUID | None = None,
    expected_status: OrderStatus | str | None = None,
) -> dict:
    """Ask to move an order to *to_status*.

    Returns ``{"result": "applied", ...}`` when the status was written, or
    ``{"result": "pending_authorization", ...}`` when a backward move was
    parked for a supervisor. Rejections raise and leave the order untouched.
    """
    target = OrderStatus(to_status)

    with transaction(db):
        order = lock_order(db, order_id)
        current = order.status

        if expected_status is not None and OrderStatus(expected_status) != current:
            raise InvalidTransitionError(
                f"Order is {current.value}, not {OrderStatus(expected_status).value}; "
                "refresh the board and try again",
                current_status=current.value,
            )

        discard_if_expired(db, order)
        if order.pending_authorization is not None:
            raise AuthorizationPendingError(
                "Another move for this order is waiting for supervisor authorization",
                pending=pending_out(order.pending_authorization),
            )

        if current == OrderStatus.DELIVERED and target != current:
            raise InvalidTransitionError(
                "Delivered orders cannot change status",
                current_status=current.value,
            )

        if (
            current.rank < OrderStatus.READY.rank <= target.rank
            and not order.picking_completed
        ):
            raise PickingIncompleteError(
                "Finish picking this order before marking it ready",
                current_status=current.value,
            )

        if target.rank < current.rank:
            pending = open_pending_authorization(db, order, target, user_id=user_id)
            db.flush()
            out = {
                "result": "pending_authorization",
                "order_id": str(order.id),
                "status": current.value,
                "pending": pending_out(pending),
            }
            outcome = "parked"
        else:
            order.status = target
            if target != current:
                log_action(
                    db,
                    user_id=user_id,
                    action="ORDER_STATUS_CHANGED",
                    resource_type="orders",
                    resource_id=str(order.id),
                    changes={"from": current.value, "to": target.value},
                )
            out = {
                "result": "applied",
                "order_id": str(order.id),
                "status": target.value,
                # Entering PROCESSING with picking outstanding: the board
                # should open the checklist
                "open_checklist": (
                    target == OrderStatus.PROCESSING and not order.picking_completed
                ),
            }
            outcome = "applied"

    if outcome == "parked":
        logger.info(
            "Backward move %s -> %s for order %s awaits authorization",
            current.value, target.value, order_id,
        )
    else:
        logger.info("Order %s moved %s -> %s", order_id, current.value, target.value)
    return out
