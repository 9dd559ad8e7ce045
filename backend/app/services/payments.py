"""Client payment allocation.

A payment is spread over the client's open invoices oldest-first (FIFO).
The whole allocation, the balance update, the cash movement and the
payment record are written in a single transaction while the client row
is locked, so concurrent payments for the same client are serialized and
always see a consistent set of open invoices.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.database import transaction
from backend.app.core.exceptions import InvalidAmountError
from backend.app.core.time_utils import as_utc, utcnow
from backend.app.models.cash import CashMovementType
from backend.app.models.payment import Payment, PaymentAllocation
from backend.app.services.audit import log_action
from backend.app.services.cash import record_cash_movement
from backend.app.services.clients import get_client_or_404, open_invoices_query

logger = logging.getLogger(__name__)

Q = Decimal("0.0001")
ZERO = Decimal("0")
DEFAULT_HISTORY_NOTE = "partial payment"


def to_money(value: Decimal | int | str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    return amount.quantize(Q, rounding=ROUND_HALF_UP)


def register_payment(
    db: Session,
    client_id: UUID,
    amount: Decimal,
    note: str | None = None,
    user_id: UUID | None = None,
    recorded_by: str | None = None,
    payment_date: datetime | None = None,
) -> dict:
    """Apply *amount* across the client's open invoices, oldest first.

    Any remainder after every open invoice is settled is kept on the
    payment as ``unallocated_amount``; it still lowers the client balance
    (floored at zero) but no credit note is created.
    """
    amount = to_money(amount)
    if amount <= ZERO:
        raise InvalidAmountError("Payment amount must be greater than zero")

    now = payment_date or utcnow()

    with transaction(db):
        client = get_client_or_404(db, client_id, lock=True)
        previous_balance = Decimal(str(client.current_balance))

        open_invoices = open_invoices_query(db, client.id).with_for_update().all()

        # Amounts are fixed-point at Q, so any positive remainder is real money
        remaining_payment = amount
        breakdown: list[dict] = []
        for invoice in open_invoices:
            if remaining_payment <= ZERO:
                break
            debt = Decimal(str(invoice.remaining_balance))
            applied = min(remaining_payment, debt)
            new_remaining = debt - applied

            invoice.remaining_balance = new_remaining
            invoice.amount_tendered = Decimal(str(invoice.amount_tendered)) + applied
            # Reassign so the JSON column is flagged dirty
            invoice.payment_history = [
                *(invoice.payment_history or []),
                {
                    "date": now.isoformat(),
                    "amount": str(applied),
                    "note": note or DEFAULT_HISTORY_NOTE,
                },
            ]

            remaining_payment -= applied
            breakdown.append(
                {
                    "invoice_id": invoice.id,
                    "paid_amount": applied,
                    "remaining_balance": new_remaining,
                    "invoice_total": Decimal(str(invoice.total)),
                }
            )

        new_balance = max(ZERO, previous_balance - amount)
        client.current_balance = new_balance

        payment = Payment(
            client_id=client.id,
            amount=amount,
            unallocated_amount=remaining_payment,
            previous_balance=previous_balance,
            new_balance=new_balance,
            note=note,
            recorded_by=recorded_by,
            created_at=now,
        )
        db.add(payment)
        db.flush()

        for position, line in enumerate(breakdown):
            db.add(
                PaymentAllocation(
                    payment_id=payment.id,
                    invoice_id=line["invoice_id"],
                    position=position,
                    amount=line["paid_amount"],
                    remaining_after=line["remaining_balance"],
                )
            )

        record_cash_movement(
            db,
            CashMovementType.IN,
            amount,
            reason=f"payment from {client.name}",
            payment_id=payment.id,
            created_at=now,
        )

        log_action(
            db,
            user_id=user_id,
            action="PAYMENT_REGISTERED",
            resource_type="payments",
            resource_id=str(payment.id),
            changes={
                "client_id": str(client.id),
                "amount": str(amount),
                "previous_balance": str(previous_balance),
                "new_balance": str(new_balance),
                "invoices_touched": len(breakdown),
                "unallocated_amount": str(remaining_payment),
            },
        )
        client_name = client.name
        payment_id = payment.id

    if remaining_payment > ZERO:
        logger.warning(
            "Payment %s for client %s left %s unallocated",
            payment_id, client_id, remaining_payment,
        )
    logger.info(
        "Registered payment %s of %s for client %s across %d invoice(s)",
        payment_id, amount, client_id, len(breakdown),
    )

    return {
        "payment_id": str(payment_id),
        "client_id": str(client_id),
        "client_name": client_name,
        "date": as_utc(now).isoformat(),
        "previous_balance": str(previous_balance),
        "new_balance": str(new_balance),
        "amount_paid": str(amount),
        "unallocated_amount": str(remaining_payment),
        "details": [
            {
                "invoice_id": str(line["invoice_id"]),
                "paid_amount": str(line["paid_amount"]),
                "remaining_balance": str(line["remaining_balance"]),
                "invoice_total": str(line["invoice_total"]),
            }
            for line in breakdown
        ],
    }
