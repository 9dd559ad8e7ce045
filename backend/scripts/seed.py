"""Create the schema and seed staff users plus a small demo catalog.

Usage:
    python -m backend.scripts.seed
"""

from __future__ import annotations

import os
from decimal import Decimal

from backend.app.core.database import Base, SessionLocal, engine
from backend.app.core.security import get_password_hash
from backend.app.models.client import Client
from backend.app.models.inventory import Product
from backend.app.models.user import RoleEnum, User

import backend.app.models.registry  # noqa: F401

USERS: list[tuple[str, str, RoleEnum]] = [
    ("admin", "Administrator", RoleEnum.ADMIN),
    ("supervisor", "Shift Supervisor", RoleEnum.SUPERVISOR),
    ("cashier", "Front Counter", RoleEnum.CASHIER),
    ("picker", "Warehouse Picker", RoleEnum.PICKER),
]

PRODUCTS: list[tuple[str, str, Decimal, Decimal, int, bool]] = [
    # sku, name, unit price, stock, pack quantity, weighable
    ("WATER-600", "Bottled water 600ml", Decimal("12.0000"), Decimal("240"), 24, False),
    ("RICE-KG", "Rice (kg)", Decimal("28.5000"), Decimal("150.5"), 1, True),
    ("SOAP-BAR", "Soap bar", Decimal("9.0000"), Decimal("80"), 12, False),
]


def seed() -> None:
    Base.metadata.create_all(bind=engine)
    password = os.environ.get("SEED_PASSWORD", "ChangeMe!2026")

    db = SessionLocal()
    try:
        # ── Staff ──────────────────────────────────────────────────────
        for username, full_name, role in USERS:
            user = db.query(User).filter_by(username=username).first()
            if user:
                user.role = role
                user.is_active = True
                user.failed_login_attempts = 0
                user.locked_until = None
                print(f"Updated user: {username}")
            else:
                db.add(
                    User(
                        username=username,
                        full_name=full_name,
                        hashed_password=get_password_hash(password),
                        role=role,
                    )
                )
                print(f"Created user: {username} ({role.value})")

        # ── Catalog ────────────────────────────────────────────────────
        for sku, name, price, stock, pack, weighable in PRODUCTS:
            if db.query(Product).filter_by(sku=sku).first():
                continue
            db.add(
                Product(
                    sku=sku,
                    name=name,
                    unit_price=price,
                    stock=stock,
                    pack_quantity=pack,
                    is_weighable=weighable,
                )
            )
            print(f"Created product {sku} - {name}")

        # Walk-in credit client
        if not db.query(Client).filter_by(name="Demo Credit Client").first():
            db.add(Client(name="Demo Credit Client", credit_limit=Decimal("5000.0000")))
            print("Created client: Demo Credit Client")

        db.commit()
        print("Seed complete.")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
