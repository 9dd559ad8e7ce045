from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from backend.app.api.deps import client_ip
from backend.app.api.errors import http_error
from backend.app.api.permission_deps import require_permission
from backend.app.core.database import get_db
from backend.app.core.exceptions import LedgerError
from backend.app.middleware.rate_limit import InMemoryRateLimiter
from backend.app.models.order import OrderPriority, OrderStatus
from backend.app.models.user import User
from backend.app.schemas.orders import (
    AuthorizationSubmit,
    OrderCreate,
    OrderStatusEnum,
    TransitionRequest,
)
from backend.app.services.audit import list_trail
from backend.app.services.authorization import (
    Authorizer,
    cancel_authorization,
    get_authorizer,
    submit_authorization,
)
from backend.app.services.orders import (
    create_order,
    delete_order,
    get_order,
    list_board,
    list_picking_queue,
    request_transition,
)
from backend.app.services.picking import (
    finish_picking,
    get_checklist,
    toggle_checklist_item,
)

router = APIRouter()

# Per-order PIN guessing limit on top of the per-request attempt counter
_authorization_limiter = InMemoryRateLimiter(window_seconds=60, max_attempts=10)


# ─── Board ────────────────────────────────────────────────────────────────────


@router.post("", status_code=status.HTTP_201_CREATED)
def create(
    body: OrderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("order:write")),
) -> dict:
    try:
        return create_order(
            db,
            customer_name=body.customer_name,
            delivery_date=body.delivery_date,
            items=body.items,
            user_id=current_user.id,
            client_id=body.client_id,
            customer_phone=body.customer_phone,
            customer_address=body.customer_address,
            order_folio=body.order_folio,
            priority=OrderPriority(body.priority.value),
            advance_payment=body.advance_payment,
            notes=body.notes,
        )
    except LedgerError as e:
        raise http_error(e)


@router.get("")
def board(
    status_filter: OrderStatusEnum | None = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("order:read")),
) -> dict[str, list[dict]]:
    status_value = OrderStatus(status_filter.value) if status_filter else None
    return list_board(db, status=status_value)


@router.get("/picking-queue")
def picking_queue(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("order:read")),
) -> list[dict]:
    return list_picking_queue(db)


@router.get("/{order_id}")
def detail(
    order_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("order:read")),
) -> dict:
    try:
        return get_order(db, order_id)
    except LedgerError as e:
        raise http_error(e)


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete(
    order_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("order:delete")),
) -> Response:
    try:
        delete_order(db, order_id, user_id=current_user.id)
    except LedgerError as e:
        raise http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ─── State machine ────────────────────────────────────────────────────────────


@router.post("/{order_id}/transition")
def transition(
    order_id: UUID,
    body: TransitionRequest,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("order:transition")),
) -> dict:
    try:
        result = request_transition(
            db,
            order_id,
            OrderStatus(body.to_status.value),
            user_id=current_user.id,
            expected_status=(
                OrderStatus(body.expected_status.value) if body.expected_status else None
            ),
        )
    except LedgerError as e:
        raise http_error(e)
    if result["result"] == "pending_authorization":
        response.status_code = status.HTTP_202_ACCEPTED
    return result


@router.post("/{order_id}/authorization")
def authorize(
    order_id: UUID,
    body: AuthorizationSubmit,
    db: Session = Depends(get_db),
    authorizer: Authorizer = Depends(get_authorizer),
    current_user: User = Depends(require_permission("order:transition")),
    ip: str = Depends(client_ip),
) -> dict:
    _authorization_limiter.check(f"{ip}:{order_id}")
    try:
        return submit_authorization(
            db, order_id, body.secret, authorizer, user_id=current_user.id
        )
    except LedgerError as e:
        raise http_error(e)


@router.delete("/{order_id}/authorization")
def cancel(
    order_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("order:transition")),
) -> dict:
    try:
        return cancel_authorization(db, order_id, user_id=current_user.id)
    except LedgerError as e:
        raise http_error(e)


# ─── Picking ──────────────────────────────────────────────────────────────────


@router.get("/{order_id}/checklist")
def checklist(
    order_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("order:read")),
) -> dict:
    try:
        return get_checklist(db, order_id)
    except LedgerError as e:
        raise http_error(e)


@router.post("/{order_id}/checklist/{item_id}/toggle")
def toggle(
    order_id: UUID,
    item_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("picking:write")),
) -> dict:
    try:
        return toggle_checklist_item(db, order_id, item_id)
    except LedgerError as e:
        raise http_error(e)


@router.post("/{order_id}/finish-picking")
def finish(
    order_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("picking:write")),
) -> dict:
    try:
        return finish_picking(db, order_id, user_id=current_user.id)
    except LedgerError as e:
        raise http_error(e)


# ─── History ──────────────────────────────────────────────────────────────────


@router.get("/{order_id}/history")
def history(
    order_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("order:read")),
) -> list[dict]:
    """Audit trail of the order, oldest first."""
    try:
        get_order(db, order_id)
    except LedgerError as e:
        raise http_error(e)
    return list_trail(db, "orders", str(order_id))
