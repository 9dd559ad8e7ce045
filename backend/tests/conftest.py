"""Shared test fixtures.

Every test gets a fresh in-memory SQLite schema, so services can commit
freely without tests polluting each other.
"""

from __future__ import annotations

import os

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"

from datetime import timedelta
from decimal import Decimal
from typing import Generator
from uuid import UUID

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

import backend.app.models.registry  # noqa: F401
from backend.app.api.v1.endpoints import auth as auth_endpoints
from backend.app.api.v1.endpoints import orders as order_endpoints
from backend.app.core.database import Base, SessionLocal, engine, get_db
from backend.app.core.security import create_access_token, get_password_hash
from backend.app.core.time_utils import utcnow
from backend.app.main import app
from backend.app.models.client import Client
from backend.app.models.inventory import Product
from backend.app.models.invoice import Invoice, PaymentMethod
from backend.app.models.order import Order, OrderStatus
from backend.app.models.user import RoleEnum, User
from backend.app.schemas.orders import OrderItemCreate
from backend.app.services.authorization import CredentialAuthorizer, get_authorizer
from backend.app.services.orders import create_order

SUPERVISOR_PIN = "1234"
MASTER_OVERRIDE = "override-9999"


# ─── DB session on a fresh schema ─────────────────────────────────────────────


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> None:
    auth_endpoints._login_limiter.reset()
    order_endpoints._authorization_limiter.reset()


@pytest.fixture(scope="session")
def authorizer() -> CredentialAuthorizer:
    return CredentialAuthorizer(
        [get_password_hash(SUPERVISOR_PIN)], get_password_hash(MASTER_OVERRIDE)
    )


@pytest.fixture()
def client(db: Session, authorizer: CredentialAuthorizer) -> Generator[TestClient, None, None]:
    """FastAPI TestClient wired to the test session and the test credentials."""

    def _override_get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_authorizer] = lambda: authorizer
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ─── Auth helpers ─────────────────────────────────────────────────────────────


def _make_user(db: Session, username: str, role: RoleEnum) -> User:
    user = User(
        username=username,
        hashed_password=get_password_hash("pass"),
        role=role,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture()
def admin_user(db: Session) -> User:
    return _make_user(db, "test_admin", RoleEnum.ADMIN)


@pytest.fixture()
def cashier_user(db: Session) -> User:
    return _make_user(db, "test_cashier", RoleEnum.CASHIER)


@pytest.fixture()
def picker_user(db: Session) -> User:
    return _make_user(db, "test_picker", RoleEnum.PICKER)


@pytest.fixture()
def admin_token(admin_user: User) -> str:
    return create_access_token(subject=str(admin_user.id))


@pytest.fixture()
def cashier_token(cashier_user: User) -> str:
    return create_access_token(subject=str(cashier_user.id))


@pytest.fixture()
def picker_token(picker_user: User) -> str:
    return create_access_token(subject=str(picker_user.id))


def auth(token: str) -> dict[str, str]:
    """Return Authorization header dict."""
    return {"Authorization": f"Bearer {token}"}


# ─── Ledger fixtures ──────────────────────────────────────────────────────────


@pytest.fixture()
def credit_client(db: Session) -> Client:
    c = Client(name="Test Credit Client", phone="0501234567")
    db.add(c)
    db.commit()
    return c


@pytest.fixture()
def limited_client(db: Session) -> Client:
    c = Client(name="Limited Client", credit_limit=Decimal("500.0000"))
    db.add(c)
    db.commit()
    return c


def add_open_invoice(
    db: Session,
    client: Client,
    remaining: Decimal,
    *,
    total: Decimal | None = None,
    days_ago: int = 0,
) -> Invoice:
    """Insert a credit invoice directly and raise the client's balance to match."""
    total = total if total is not None else remaining
    invoice = Invoice(
        client_id=client.id,
        customer_name=client.name,
        payment_method=PaymentMethod.CREDIT,
        total=total,
        remaining_balance=remaining,
        amount_tendered=total - remaining,
        change=Decimal("0"),
        payment_history=[],
        sold_at=utcnow() - timedelta(days=days_ago),
    )
    db.add(invoice)
    client.current_balance = Decimal(str(client.current_balance)) + remaining
    db.commit()
    return invoice


# ─── Inventory fixtures ───────────────────────────────────────────────────────


@pytest.fixture()
def product_a(db: Session) -> Product:
    p = Product(
        name="Product A",
        sku="SKU-A",
        unit_price=Decimal("100.0000"),
        stock=Decimal("50"),
    )
    db.add(p)
    db.commit()
    return p


@pytest.fixture()
def pack_product(db: Session) -> Product:
    p = Product(
        name="Water 600ml",
        sku="SKU-WATER",
        unit_price=Decimal("10.0000"),
        stock=Decimal("100"),
        pack_quantity=12,
    )
    db.add(p)
    db.commit()
    return p


@pytest.fixture()
def weighable_product(db: Session) -> Product:
    p = Product(
        name="Rice (kg)",
        sku="SKU-RICE",
        unit_price=Decimal("20.0000"),
        stock=Decimal("10.5"),
        is_weighable=True,
    )
    db.add(p)
    db.commit()
    return p


# ─── Order fixtures ───────────────────────────────────────────────────────────


def new_order(
    db: Session,
    *,
    items: int = 2,
    status: OrderStatus = OrderStatus.PENDING,
    picking_completed: bool = False,
    **kwargs,
) -> Order:
    """Create an order through the service, then force it into *status*."""
    result = create_order(
        db,
        customer_name=kwargs.pop("customer_name", "Walk-in"),
        delivery_date=kwargs.pop("delivery_date", utcnow() + timedelta(days=1)),
        items=[
            OrderItemCreate(
                name=f"Item {n}", sku=f"SKU-{n}", unit_price=Decimal("10"), quantity=Decimal("1")
            )
            for n in range(1, items + 1)
        ],
        **kwargs,
    )
    order = db.query(Order).filter(Order.id == UUID(result["id"])).one()
    order.status = status
    order.picking_completed = picking_completed
    db.commit()
    return order


@pytest.fixture()
def pending_order(db: Session) -> Order:
    return new_order(db)


@pytest.fixture()
def processing_order(db: Session) -> Order:
    return new_order(db, status=OrderStatus.PROCESSING)


@pytest.fixture()
def ready_order(db: Session) -> Order:
    return new_order(db, status=OrderStatus.READY, picking_completed=True)
