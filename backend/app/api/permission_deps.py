"""Granular permission dependencies.

Usage in endpoints::

    @router.post("")
    def register(
        body: PaymentCreate,
        db: Session = Depends(get_db),
        current_user: User = Depends(require_permission("payment:write")),
    ):
        ...
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, status

from backend.app.api.deps import get_current_user
from backend.app.models.user import RoleEnum, User

ALL_PERMISSION_CODES: list[tuple[str, str]] = [
    ("client:read", "View clients and their open invoices"),
    ("client:write", "Create clients"),
    ("payment:write", "Register client payments"),
    ("sale:read", "View posted sales"),
    ("sale:write", "Post POS sales"),
    ("cash:read", "View cash movements"),
    ("order:read", "View the order board"),
    ("order:write", "Create orders"),
    ("order:transition", "Move orders on the board"),
    ("order:delete", "Delete orders"),
    ("picking:write", "Work the picking checklist"),
]

_ALL_CODES = frozenset(code for code, _ in ALL_PERMISSION_CODES)

ROLE_PERMISSIONS: dict[RoleEnum, frozenset[str]] = {
    RoleEnum.ADMIN: _ALL_CODES,
    RoleEnum.SUPERVISOR: _ALL_CODES,
    RoleEnum.CASHIER: frozenset(
        {
            "client:read",
            "client:write",
            "payment:write",
            "sale:read",
            "sale:write",
            "cash:read",
            "order:read",
            "order:write",
            "order:transition",
        }
    ),
    RoleEnum.PICKER: frozenset(
        {"order:read", "order:transition", "picking:write"}
    ),
}


def permissions_for(user: User) -> frozenset[str]:
    return ROLE_PERMISSIONS.get(user.role, frozenset())


def require_permission(*permission_codes: str):
    """FastAPI dependency factory; checks the user has **all** listed permissions.

    Returns the authenticated ``User`` so the endpoint can use it::

        current_user = Depends(require_permission("order:transition"))
    """

    def _checker(current_user: User = Depends(get_current_user)) -> User:
        missing = set(permission_codes) - permissions_for(current_user)
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permissions: {', '.join(sorted(missing))}",
            )
        return current_user

    return _checker
