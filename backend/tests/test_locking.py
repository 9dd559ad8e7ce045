"""Row locks taken by the mutating operations.

SQLite ignores ``FOR UPDATE``, so each ORM SELECT the session runs is
rendered with the PostgreSQL dialect and the locked tables are read off the
SQL. Dropping a ``with_for_update()`` from any of these paths fails here.
"""
from __future__ import annotations

import re
import uuid
from collections.abc import Generator
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import ORMExecuteState, Session

from backend.app.models.client import Client
from backend.app.models.inventory import Product
from backend.app.models.invoice import PaymentMethod
from backend.app.models.order import Order, OrderStatus
from backend.app.schemas.sales import CartLine
from backend.app.services.authorization import (
    CredentialAuthorizer,
    cancel_authorization,
    submit_authorization,
)
from backend.app.services.locks import lock_products
from backend.app.services.orders import request_transition
from backend.app.services.payments import register_payment
from backend.app.services.picking import finish_picking, toggle_checklist_item
from backend.app.services.sales import post_sale
from backend.tests.conftest import SUPERVISOR_PIN, add_open_invoice

_FROM = re.compile(r"\bFROM (\w+)")


@pytest.fixture()
def locked_selects(db: Session) -> Generator[list[str], None, None]:
    """PostgreSQL rendering of every locking SELECT the session issues."""
    seen: list[str] = []

    def _record(state: ORMExecuteState) -> None:
        if not state.is_select or state.is_relationship_load:
            return
        sql = str(state.statement.compile(dialect=postgresql.dialect()))
        if "FOR UPDATE" in sql:
            seen.append(sql)

    event.listen(db, "do_orm_execute", _record)
    yield seen
    event.remove(db, "do_orm_execute", _record)


def _tables(statements: list[str]) -> list[str]:
    return [_FROM.search(sql).group(1) for sql in statements]


class TestPaymentLocks:
    def test_client_and_open_invoices(
        self, db: Session, credit_client: Client, locked_selects: list[str]
    ) -> None:
        add_open_invoice(db, credit_client, Decimal("100"))

        register_payment(db, credit_client.id, Decimal("40"))

        assert _tables(locked_selects) == ["clients", "invoices"]


class TestSaleLocks:
    def test_products_locked_once_in_id_order(
        self,
        db: Session,
        product_a: Product,
        pack_product: Product,
        locked_selects: list[str],
    ) -> None:
        post_sale(
            db,
            items=[
                CartLine(product_id=pack_product.id, quantity=Decimal("1")),
                CartLine(product_id=product_a.id, quantity=Decimal("1")),
                CartLine(product_id=pack_product.id, quantity=Decimal("2")),
            ],
            total=Decimal("130"),
            payment_method=PaymentMethod.CASH,
        )

        assert _tables(locked_selects) == ["products"]
        assert "ORDER BY products.id" in locked_selects[0]

    def test_credit_sale_locks_client_first(
        self,
        db: Session,
        credit_client: Client,
        product_a: Product,
        locked_selects: list[str],
    ) -> None:
        post_sale(
            db,
            items=[CartLine(product_id=product_a.id, quantity=Decimal("1"))],
            total=Decimal("100"),
            payment_method=PaymentMethod.CREDIT,
            client_id=credit_client.id,
        )

        assert _tables(locked_selects) == ["clients", "products"]

    def test_lock_products_skips_unknown_ids(
        self, db: Session, product_a: Product, pack_product: Product
    ) -> None:
        missing = uuid.uuid4()

        locked = lock_products(db, [pack_product.id, missing, product_a.id])

        assert set(locked) == {product_a.id, pack_product.id}
        assert lock_products(db, []) == {}


class TestOrderLocks:
    def test_transition(
        self, db: Session, pending_order: Order, locked_selects: list[str]
    ) -> None:
        request_transition(db, pending_order.id, OrderStatus.PROCESSING)
        assert _tables(locked_selects) == ["orders"]

    def test_picking(
        self, db: Session, pending_order: Order, locked_selects: list[str]
    ) -> None:
        toggle_checklist_item(db, pending_order.id, pending_order.items[0].id)
        finish_picking(db, pending_order.id)
        assert _tables(locked_selects) == ["orders", "orders"]

    def test_authorization_gate(
        self,
        db: Session,
        ready_order: Order,
        authorizer: CredentialAuthorizer,
        locked_selects: list[str],
    ) -> None:
        request_transition(db, ready_order.id, OrderStatus.PENDING)
        cancel_authorization(db, ready_order.id)
        request_transition(db, ready_order.id, OrderStatus.PROCESSING)
        submit_authorization(db, ready_order.id, SUPERVISOR_PIN, authorizer)

        assert _tables(locked_selects) == ["orders"] * 4
