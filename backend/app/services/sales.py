from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.database import transaction
from backend.app.core.exceptions import (
    CreditLimitExceededError,
    InvalidAmountError,
    NotFoundError,
)
from backend.app.core.time_utils import as_utc, utcnow
from backend.app.models.inventory import Product
from backend.app.models.invoice import Invoice, InvoiceItem, PaymentMethod
from backend.app.schemas.sales import CartLine, PaymentDetails
from backend.app.services.audit import log_action
from backend.app.services.clients import get_client_or_404
from backend.app.services.locks import lock_products
from backend.app.services.payments import to_money

logger = logging.getLogger(__name__)

Q = Decimal("0.0001")
ZERO = Decimal("0")


@dataclass(frozen=True)
class StockShortfall:
    """Non-fatal: more units sold than were on hand; stock was floored at 0."""

    product_id: str
    product_name: str
    requested: str
    available: str

    @property
    def message(self) -> str:
        return (
            f"Stock shortfall for '{self.product_name}': "
            f"{self.available} available, {self.requested} sold"
        )


def units_to_deduct(line: CartLine, product: Product) -> Decimal:
    """Catalog units removed from stock for one cart line.

    An explicit presentation size wins; otherwise a pack sale multiplies by
    the product's pack quantity.
    """
    if line.presentation_quantity is not None:
        multiplier = line.presentation_quantity
    elif line.is_pack_sale:
        multiplier = Decimal(product.pack_quantity or 1)
    else:
        multiplier = Decimal("1")
    return (line.quantity * multiplier).quantize(Q, rounding=ROUND_HALF_UP)


def _effective_unit_price(line: CartLine, product: Product) -> Decimal:
    if line.final_price is not None:
        return line.final_price
    if line.unit_price is not None:
        return line.unit_price
    return Decimal(str(product.unit_price))


def post_sale(
    db: Session,
    items: list[CartLine],
    total: Decimal,
    payment_method: PaymentMethod | str,
    client_id: UUID | None = None,
    payment_details: PaymentDetails | None = None,
    customer_name: str | None = None,
    user_id: UUID | None = None,
    sold_at: datetime | None = None,
) -> dict:
    """Turn a completed cart into an invoice and deduct stock.

    Credit sales open a receivable (``remaining_balance = total``) and raise
    the client's balance by the same amount. Stock never goes negative:
    a shortfall is reported in ``warnings`` and the sale still goes through.
    """
    total = to_money(total)
    if total <= ZERO:
        raise InvalidAmountError("Sale total must be greater than zero")
    if not items:
        raise InvalidAmountError("Cart must contain at least one item")

    method = PaymentMethod(payment_method)
    details = payment_details or PaymentDetails()
    now = sold_at or utcnow()

    with transaction(db):
        client = None
        if client_id is not None:
            client = get_client_or_404(db, client_id, lock=True)

        if method == PaymentMethod.CREDIT:
            if client is None:
                raise InvalidAmountError("A credit sale requires a client")
            limit = Decimal(str(client.credit_limit))
            projected = Decimal(str(client.current_balance)) + total
            if limit > ZERO and projected > limit:
                raise CreditLimitExceededError(
                    f"Credit limit exceeded. Limit: {limit}, "
                    f"Current balance: {client.current_balance}, Sale: {total}",
                    credit_limit=str(limit),
                    current_balance=str(client.current_balance),
                )

        if method == PaymentMethod.CREDIT:
            remaining_balance = total
            amount_tendered = ZERO
        else:
            remaining_balance = ZERO
            amount_tendered = (
                to_money(details.amount_tendered)
                if details.amount_tendered is not None
                else total
            )

        invoice = Invoice(
            client_id=client.id if client else None,
            customer_name=customer_name or (client.name if client else None),
            payment_method=method,
            total=total,
            remaining_balance=remaining_balance,
            amount_tendered=amount_tendered,
            change=to_money(details.change) if details.change is not None else ZERO,
            card_auth_code=details.card_auth_code,
            payment_history=[],
            sold_at=now,
            created_by=user_id,
        )
        db.add(invoice)
        db.flush()

        warnings: list[StockShortfall] = []
        line_out: list[dict] = []
        products = lock_products(db, (line.product_id for line in items))
        for line in items:
            product = products.get(line.product_id)
            if not product:
                raise NotFoundError(
                    f"Product {line.product_id} not found",
                    product_id=str(line.product_id),
                )
            if not product.is_weighable and line.quantity != line.quantity.to_integral_value():
                raise InvalidAmountError(
                    f"'{product.name}' is not sold by weight; quantity must be whole"
                )

            unit_price = _effective_unit_price(line, product)
            line_subtotal = (unit_price * line.quantity).quantize(Q, rounding=ROUND_HALF_UP)
            deduct = units_to_deduct(line, product)

            on_hand = Decimal(str(product.stock))
            if deduct > on_hand:
                shortfall = StockShortfall(
                    product_id=str(product.id),
                    product_name=product.name,
                    requested=str(deduct),
                    available=str(on_hand),
                )
                warnings.append(shortfall)
                logger.warning(shortfall.message)
            product.stock = max(ZERO, on_hand - deduct)

            db.add(
                InvoiceItem(
                    invoice_id=invoice.id,
                    product_id=product.id,
                    name=line.name or product.name,
                    unit_price=unit_price,
                    quantity=line.quantity,
                    line_subtotal=line_subtotal,
                    stock_deducted=deduct,
                )
            )
            line_out.append(
                {
                    "product_id": str(product.id),
                    "name": line.name or product.name,
                    "unit_price": str(unit_price),
                    "quantity": str(line.quantity),
                    "line_subtotal": str(line_subtotal),
                    "stock_deducted": str(deduct),
                }
            )

        if method == PaymentMethod.CREDIT:
            client.current_balance = Decimal(str(client.current_balance)) + total

        log_action(
            db,
            user_id=user_id,
            action="SALE_POSTED",
            resource_type="invoices",
            resource_id=str(invoice.id),
            changes={
                "payment_method": method.value,
                "total": str(total),
                "client_id": str(client.id) if client else None,
                "item_count": len(items),
                "stock_shortfalls": len(warnings),
            },
        )
        invoice_id = invoice.id

    logger.info("Posted %s sale %s for %s", method.value, invoice_id, total)

    return {
        "id": str(invoice_id),
        "client_id": str(client_id) if client_id else None,
        "customer_name": customer_name or (client.name if client else None),
        "payment_method": method.value,
        "total": str(total),
        "remaining_balance": str(remaining_balance),
        "amount_tendered": str(amount_tendered),
        "sold_at": as_utc(now).isoformat(),
        "items": line_out,
        "warnings": [dict(asdict(w), message=w.message) for w in warnings],
    }


def get_invoice_detail(db: Session, invoice_id: UUID) -> dict:
    invoice = db.query(Invoice).filter(Invoice.id == invoice_id).first()
    if not invoice:
        raise NotFoundError("Invoice not found", invoice_id=str(invoice_id))

    return {
        "id": str(invoice.id),
        "client_id": str(invoice.client_id) if invoice.client_id else None,
        "customer_name": invoice.customer_name,
        "payment_method": invoice.payment_method.value,
        "total": str(invoice.total),
        "remaining_balance": str(invoice.remaining_balance),
        "amount_tendered": str(invoice.amount_tendered),
        "change": str(invoice.change),
        "card_auth_code": invoice.card_auth_code,
        "sold_at": as_utc(invoice.sold_at).isoformat(),
        "payment_history": list(invoice.payment_history or []),
        "items": [
            {
                "product_id": str(item.product_id),
                "name": item.name,
                "unit_price": str(item.unit_price),
                "quantity": str(item.quantity),
                "line_subtotal": str(item.line_subtotal),
                "stock_deducted": str(item.stock_deducted),
            }
            for item in invoice.items
        ],
    }
