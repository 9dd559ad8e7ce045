"""Tests for sale posting: invoices, stock deduction and credit balances."""
from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from backend.app.core.exceptions import (
    CreditLimitExceededError,
    InvalidAmountError,
    NotFoundError,
    PersistenceFailure,
)
from backend.app.models.client import Client
from backend.app.models.inventory import Product
from backend.app.models.invoice import Invoice, InvoiceItem, PaymentMethod
from backend.app.models.user import User
from backend.app.schemas.sales import CartLine, PaymentDetails
from backend.app.services.sales import post_sale
from backend.tests.conftest import auth

ZERO = Decimal("0")


def _stock(db: Session, product: Product) -> Decimal:
    db.refresh(product)
    return Decimal(str(product.stock))


# ─── Service-level tests ─────────────────────────────────────────────────────


class TestCashSale:
    def test_invoice_and_stock(
        self, db: Session, admin_user: User, product_a: Product
    ) -> None:
        result = post_sale(
            db,
            items=[CartLine(product_id=product_a.id, quantity=Decimal("3"))],
            total=Decimal("300"),
            payment_method=PaymentMethod.CASH,
            payment_details=PaymentDetails(
                amount_tendered=Decimal("500"), change=Decimal("200")
            ),
            user_id=admin_user.id,
        )

        assert Decimal(result["remaining_balance"]) == ZERO
        assert Decimal(result["amount_tendered"]) == Decimal("500")
        assert result["warnings"] == []
        assert _stock(db, product_a) == Decimal("47")

        invoice = db.query(Invoice).one()
        assert Decimal(str(invoice.change)) == Decimal("200")
        assert invoice.client_id is None
        item = db.query(InvoiceItem).one()
        assert Decimal(str(item.line_subtotal)) == Decimal("300")

    def test_card_sale_keeps_auth_code(self, db: Session, product_a: Product) -> None:
        post_sale(
            db,
            items=[CartLine(product_id=product_a.id, quantity=Decimal("1"))],
            total=Decimal("100"),
            payment_method="CARD",
            payment_details=PaymentDetails(card_auth_code="AUTH-778"),
        )

        invoice = db.query(Invoice).one()
        assert invoice.card_auth_code == "AUTH-778"
        # Tendered defaults to the total when not given
        assert Decimal(str(invoice.amount_tendered)) == Decimal("100")

    def test_final_price_drives_line_subtotal(
        self, db: Session, product_a: Product
    ) -> None:
        result = post_sale(
            db,
            items=[
                CartLine(
                    product_id=product_a.id,
                    quantity=Decimal("2"),
                    unit_price=Decimal("100"),
                    final_price=Decimal("85"),
                )
            ],
            total=Decimal("170"),
            payment_method=PaymentMethod.CASH,
        )

        line = result["items"][0]
        assert Decimal(line["unit_price"]) == Decimal("85")
        assert Decimal(line["line_subtotal"]) == Decimal("170")


class TestStockFloor:
    def test_oversell_floors_at_zero_with_warning(
        self, db: Session, product_a: Product
    ) -> None:
        result = post_sale(
            db,
            items=[CartLine(product_id=product_a.id, quantity=Decimal("60"))],
            total=Decimal("6000"),
            payment_method=PaymentMethod.CASH,
        )

        assert _stock(db, product_a) == ZERO
        assert len(result["warnings"]) == 1
        warning = result["warnings"][0]
        assert warning["product_id"] == str(product_a.id)
        assert Decimal(warning["requested"]) == Decimal("60")
        assert "Stock shortfall" in warning["message"]
        # The sale still went through
        assert db.query(Invoice).count() == 1


class TestPackMultiplier:
    def test_pack_sale_deducts_pack_quantity(
        self, db: Session, pack_product: Product
    ) -> None:
        result = post_sale(
            db,
            items=[
                CartLine(
                    product_id=pack_product.id,
                    quantity=Decimal("2"),
                    unit_price=Decimal("110"),
                    is_pack_sale=True,
                )
            ],
            total=Decimal("220"),
            payment_method=PaymentMethod.CASH,
        )

        assert _stock(db, pack_product) == Decimal("76")
        assert Decimal(result["items"][0]["stock_deducted"]) == Decimal("24")

    def test_unit_sale_of_pack_product_deducts_units(
        self, db: Session, pack_product: Product
    ) -> None:
        post_sale(
            db,
            items=[CartLine(product_id=pack_product.id, quantity=Decimal("2"))],
            total=Decimal("20"),
            payment_method=PaymentMethod.CASH,
        )

        assert _stock(db, pack_product) == Decimal("98")

    def test_explicit_presentation_quantity_wins(
        self, db: Session, pack_product: Product
    ) -> None:
        post_sale(
            db,
            items=[
                CartLine(
                    product_id=pack_product.id,
                    quantity=Decimal("3"),
                    is_pack_sale=True,
                    presentation_quantity=Decimal("6"),
                )
            ],
            total=Decimal("150"),
            payment_method=PaymentMethod.CASH,
        )

        assert _stock(db, pack_product) == Decimal("82")


class TestWeighable:
    def test_fractional_quantity_for_weighable(
        self, db: Session, weighable_product: Product
    ) -> None:
        post_sale(
            db,
            items=[CartLine(product_id=weighable_product.id, quantity=Decimal("2.25"))],
            total=Decimal("45"),
            payment_method=PaymentMethod.CASH,
        )

        assert _stock(db, weighable_product) == Decimal("8.25")

    def test_fractional_quantity_rejected_for_units(
        self, db: Session, product_a: Product
    ) -> None:
        with pytest.raises(InvalidAmountError, match="not sold by weight"):
            post_sale(
                db,
                items=[CartLine(product_id=product_a.id, quantity=Decimal("1.5"))],
                total=Decimal("150"),
                payment_method=PaymentMethod.CASH,
            )

        assert db.query(Invoice).count() == 0
        assert _stock(db, product_a) == Decimal("50")


class TestCreditSale:
    def test_opens_receivable_and_raises_balance(
        self, db: Session, credit_client: Client, product_a: Product
    ) -> None:
        result = post_sale(
            db,
            items=[CartLine(product_id=product_a.id, quantity=Decimal("2"))],
            total=Decimal("200"),
            payment_method=PaymentMethod.CREDIT,
            client_id=credit_client.id,
        )

        assert Decimal(result["remaining_balance"]) == Decimal("200")
        assert Decimal(result["amount_tendered"]) == ZERO
        assert result["customer_name"] == "Test Credit Client"
        db.refresh(credit_client)
        assert Decimal(str(credit_client.current_balance)) == Decimal("200")

    def test_requires_client(self, db: Session, product_a: Product) -> None:
        with pytest.raises(InvalidAmountError, match="requires a client"):
            post_sale(
                db,
                items=[CartLine(product_id=product_a.id, quantity=Decimal("1"))],
                total=Decimal("100"),
                payment_method=PaymentMethod.CREDIT,
            )

    def test_unknown_client(self, db: Session, product_a: Product) -> None:
        with pytest.raises(NotFoundError):
            post_sale(
                db,
                items=[CartLine(product_id=product_a.id, quantity=Decimal("1"))],
                total=Decimal("100"),
                payment_method=PaymentMethod.CREDIT,
                client_id=uuid.uuid4(),
            )

    def test_credit_limit_enforced(
        self, db: Session, limited_client: Client, product_a: Product
    ) -> None:
        with pytest.raises(CreditLimitExceededError):
            post_sale(
                db,
                items=[CartLine(product_id=product_a.id, quantity=Decimal("6"))],
                total=Decimal("600"),
                payment_method=PaymentMethod.CREDIT,
                client_id=limited_client.id,
            )

        db.refresh(limited_client)
        assert Decimal(str(limited_client.current_balance)) == ZERO
        assert _stock(db, product_a) == Decimal("50")

    def test_zero_limit_means_unlimited(
        self, db: Session, credit_client: Client, product_a: Product
    ) -> None:
        post_sale(
            db,
            items=[CartLine(product_id=product_a.id, quantity=Decimal("40"))],
            total=Decimal("4000"),
            payment_method=PaymentMethod.CREDIT,
            client_id=credit_client.id,
        )

        db.refresh(credit_client)
        assert Decimal(str(credit_client.current_balance)) == Decimal("4000")


class TestSaleValidation:
    @pytest.mark.parametrize("total", ["0", "-1"])
    def test_non_positive_total(
        self, db: Session, product_a: Product, total: str
    ) -> None:
        with pytest.raises(InvalidAmountError):
            post_sale(
                db,
                items=[CartLine(product_id=product_a.id, quantity=Decimal("1"))],
                total=Decimal(total),
                payment_method=PaymentMethod.CASH,
            )

    def test_empty_cart(self, db: Session) -> None:
        with pytest.raises(InvalidAmountError):
            post_sale(db, items=[], total=Decimal("10"), payment_method="CASH")

    def test_unknown_product_rolls_back(
        self, db: Session, product_a: Product
    ) -> None:
        with pytest.raises(NotFoundError):
            post_sale(
                db,
                items=[
                    CartLine(product_id=product_a.id, quantity=Decimal("1")),
                    CartLine(product_id=uuid.uuid4(), quantity=Decimal("1")),
                ],
                total=Decimal("200"),
                payment_method=PaymentMethod.CASH,
            )

        assert db.query(Invoice).count() == 0
        assert _stock(db, product_a) == Decimal("50")


# ─── API tests ────────────────────────────────────────────────────────────────


class TestCartOrdering:
    def test_lines_in_any_order(
        self, db: Session, product_a: Product, pack_product: Product
    ) -> None:
        first, second = sorted([product_a, pack_product], key=lambda p: p.id)

        post_sale(
            db,
            items=[
                CartLine(product_id=second.id, quantity=Decimal("1")),
                CartLine(product_id=first.id, quantity=Decimal("1")),
            ],
            total=Decimal("110"),
            payment_method=PaymentMethod.CASH,
        )

        assert _stock(db, product_a) == Decimal("49")
        assert _stock(db, pack_product) == Decimal("99")

    def test_repeated_product_deducts_every_line(
        self, db: Session, product_a: Product
    ) -> None:
        post_sale(
            db,
            items=[
                CartLine(product_id=product_a.id, quantity=Decimal("2")),
                CartLine(product_id=product_a.id, quantity=Decimal("3")),
            ],
            total=Decimal("500"),
            payment_method=PaymentMethod.CASH,
        )

        assert _stock(db, product_a) == Decimal("45")
        assert db.query(InvoiceItem).count() == 2


class TestStoreFailure:
    def test_rolls_back_stock_and_balance(
        self,
        db: Session,
        credit_client: Client,
        product_a: Product,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def _store_down(*args, **kwargs):
            raise OperationalError(
                "INSERT INTO audit_logs", {}, Exception("disk I/O error")
            )

        # Audit is the last write, after stock and balance have changed
        monkeypatch.setattr("backend.app.services.sales.log_action", _store_down)

        with pytest.raises(PersistenceFailure):
            post_sale(
                db,
                items=[CartLine(product_id=product_a.id, quantity=Decimal("5"))],
                total=Decimal("500"),
                payment_method=PaymentMethod.CREDIT,
                client_id=credit_client.id,
            )

        assert _stock(db, product_a) == Decimal("50")
        db.refresh(credit_client)
        assert Decimal(str(credit_client.current_balance)) == ZERO
        assert db.query(Invoice).count() == 0
        assert db.query(InvoiceItem).count() == 0


class TestQuantityScale:
    def test_more_than_four_places_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CartLine(product_id=uuid.uuid4(), quantity=Decimal("0.00004"))
        with pytest.raises(ValidationError):
            CartLine(
                product_id=uuid.uuid4(),
                quantity=Decimal("1"),
                presentation_quantity=Decimal("0.12345"),
            )

    def test_trailing_zeros_are_fine(self) -> None:
        line = CartLine(product_id=uuid.uuid4(), quantity=Decimal("1.500000"))
        assert line.quantity == Decimal("1.5")

    def test_smallest_weighable_quantity_moves_stock(
        self, db: Session, weighable_product: Product
    ) -> None:
        result = post_sale(
            db,
            items=[CartLine(product_id=weighable_product.id, quantity=Decimal("0.0004"))],
            total=Decimal("0.008"),
            payment_method=PaymentMethod.CASH,
        )

        assert Decimal(result["items"][0]["stock_deducted"]) == Decimal("0.0004")
        assert _stock(db, weighable_product) == Decimal("10.4996")


class TestSaleApi:
    def test_post_and_fetch_sale(
        self, client: TestClient, cashier_token: str, product_a: Product
    ) -> None:
        resp = client.post(
            "/api/v1/sales",
            json={
                "items": [{"product_id": str(product_a.id), "quantity": "2"}],
                "total": "200",
                "payment_method": "CASH",
                "payment_details": {"amount_tendered": "250", "change": "50"},
            },
            headers=auth(cashier_token),
        )
        assert resp.status_code == 200, resp.text
        sale_id = resp.json()["id"]

        resp = client.get(f"/api/v1/sales/{sale_id}", headers=auth(cashier_token))
        assert resp.status_code == 200
        body = resp.json()
        assert Decimal(body["change"]) == Decimal("50")
        assert len(body["items"]) == 1

    def test_credit_sale_without_client_is_400(
        self, client: TestClient, cashier_token: str, product_a: Product
    ) -> None:
        resp = client.post(
            "/api/v1/sales",
            json={
                "items": [{"product_id": str(product_a.id), "quantity": "1"}],
                "total": "100",
                "payment_method": "CREDIT",
            },
            headers=auth(cashier_token),
        )
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "INVALID_AMOUNT"

    def test_requires_authentication(
        self, client: TestClient, product_a: Product
    ) -> None:
        resp = client.post(
            "/api/v1/sales",
            json={
                "items": [{"product_id": str(product_a.id), "quantity": "1"}],
                "total": "100",
                "payment_method": "CASH",
            },
        )
        assert resp.status_code == 401

    def test_over_precise_quantity_is_422(
        self, client: TestClient, cashier_token: str, weighable_product: Product
    ) -> None:
        resp = client.post(
            "/api/v1/sales",
            json={
                "items": [{"product_id": str(weighable_product.id), "quantity": "0.00004"}],
                "total": "1",
                "payment_method": "CASH",
            },
            headers=auth(cashier_token),
        )
        assert resp.status_code == 422
