from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.api.errors import http_error
from backend.app.api.permission_deps import require_permission
from backend.app.core.database import get_db
from backend.app.core.exceptions import LedgerError
from backend.app.models.user import User
from backend.app.schemas.sales import SaleOut, SaleRequest
from backend.app.services.sales import get_invoice_detail, post_sale

router = APIRouter()


@router.post("", response_model=SaleOut)
def create_sale(
    payload: SaleRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("sale:write")),
) -> dict:
    try:
        return post_sale(
            db,
            items=payload.items,
            total=payload.total,
            payment_method=payload.payment_method.value,
            client_id=payload.client_id,
            payment_details=payload.payment_details,
            customer_name=payload.customer_name,
            user_id=current_user.id,
        )
    except LedgerError as e:
        raise http_error(e)


@router.get("/{invoice_id}")
def get_sale(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("sale:read")),
) -> dict:
    try:
        return get_invoice_detail(db, invoice_id)
    except LedgerError as e:
        raise http_error(e)
