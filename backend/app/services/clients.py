from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.database import transaction
from backend.app.core.exceptions import InvalidAmountError, NotFoundError
from backend.app.core.time_utils import as_utc
from backend.app.models.client import Client
from backend.app.models.invoice import Invoice
from backend.app.models.payment import Payment
from backend.app.services.audit import log_action

ZERO = Decimal("0")


def get_client_or_404(db: Session, client_id: UUID, *, lock: bool = False) -> Client:
    query = db.query(Client).filter(Client.id == client_id)
    if lock:
        query = query.with_for_update()
    client = query.first()
    if not client:
        raise NotFoundError("Client not found", client_id=str(client_id))
    return client


def open_invoices_query(db: Session, client_id: UUID):
    """Invoices still owing money, oldest sale first (FIFO)."""
    return (
        db.query(Invoice)
        .filter(Invoice.client_id == client_id, Invoice.remaining_balance > ZERO)
        .order_by(Invoice.sold_at.asc(), Invoice.id.asc())
    )


def create_client(
    db: Session,
    name: str,
    user_id: UUID | None = None,
    credit_limit: Decimal = ZERO,
    email: str | None = None,
    phone: str | None = None,
    address: str | None = None,
) -> dict:
    if credit_limit < ZERO:
        raise InvalidAmountError("Credit limit cannot be negative")

    with transaction(db):
        client = Client(
            name=name,
            email=email,
            phone=phone,
            address=address,
            credit_limit=credit_limit,
            current_balance=ZERO,
        )
        db.add(client)
        db.flush()
        log_action(
            db,
            user_id=user_id,
            action="CLIENT_CREATED",
            resource_type="clients",
            resource_id=str(client.id),
            changes={"name": name, "credit_limit": str(credit_limit)},
        )
    return _client_out(client)


def get_client_detail(db: Session, client_id: UUID) -> dict:
    client = get_client_or_404(db, client_id)
    out = _client_out(client)
    out["open_invoices"] = [
        {
            "id": str(inv.id),
            "sold_at": as_utc(inv.sold_at).isoformat(),
            "total": str(inv.total),
            "remaining_balance": str(inv.remaining_balance),
            "amount_tendered": str(inv.amount_tendered),
        }
        for inv in open_invoices_query(db, client.id).all()
    ]
    return out


def list_client_payments(db: Session, client_id: UUID) -> list[dict]:
    client = get_client_or_404(db, client_id)
    payments = (
        db.query(Payment)
        .filter(Payment.client_id == client.id)
        .order_by(Payment.created_at.desc())
        .all()
    )
    return [
        {
            "id": str(p.id),
            "amount": str(p.amount),
            "unallocated_amount": str(p.unallocated_amount),
            "previous_balance": str(p.previous_balance),
            "new_balance": str(p.new_balance),
            "note": p.note,
            "recorded_by": p.recorded_by,
            "created_at": as_utc(p.created_at).isoformat(),
            "allocations": [
                {
                    "invoice_id": str(a.invoice_id),
                    "paid_amount": str(a.amount),
                    "remaining_balance": str(a.remaining_after),
                }
                for a in p.allocations
            ],
        }
        for p in payments
    ]


def _client_out(client: Client) -> dict:
    return {
        "id": str(client.id),
        "name": client.name,
        "email": client.email,
        "phone": client.phone,
        "credit_limit": str(client.credit_limit),
        "current_balance": str(client.current_balance),
    }
