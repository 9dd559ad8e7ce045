from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from backend.app.api.errors import http_error
from backend.app.api.permission_deps import require_permission
from backend.app.core.database import get_db
from backend.app.core.exceptions import LedgerError
from backend.app.models.user import User
from backend.app.schemas.clients import ClientCreate, ClientDetailOut, ClientOut
from backend.app.services.clients import (
    create_client,
    get_client_detail,
    list_client_payments,
)

router = APIRouter()


@router.post("", response_model=ClientOut, status_code=status.HTTP_201_CREATED)
def create(
    body: ClientCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("client:write")),
) -> dict:
    try:
        return create_client(
            db,
            name=body.name,
            user_id=current_user.id,
            credit_limit=body.credit_limit,
            email=body.email,
            phone=body.phone,
            address=body.address,
        )
    except LedgerError as e:
        raise http_error(e)


@router.get("/{client_id}", response_model=ClientDetailOut)
def detail(
    client_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("client:read")),
) -> dict:
    try:
        return get_client_detail(db, client_id)
    except LedgerError as e:
        raise http_error(e)


@router.get("/{client_id}/payments")
def payments(
    client_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("client:read")),
) -> list[dict]:
    try:
        return list_client_payments(db, client_id)
    except LedgerError as e:
        raise http_error(e)
