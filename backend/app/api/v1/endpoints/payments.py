from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.api.errors import http_error
from backend.app.api.permission_deps import require_permission
from backend.app.core.database import get_db
from backend.app.core.exceptions import LedgerError
from backend.app.models.user import User
from backend.app.schemas.payments import PaymentCreate, PaymentResultOut
from backend.app.services.payments import register_payment

router = APIRouter()


@router.post("", response_model=PaymentResultOut)
def make_payment(
    body: PaymentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("payment:write")),
) -> dict:
    """Register a client payment; the result carries the receipt breakdown."""
    try:
        return register_payment(
            db,
            client_id=body.client_id,
            amount=body.amount,
            note=body.note,
            user_id=current_user.id,
            recorded_by=current_user.display_name,
        )
    except LedgerError as e:
        raise http_error(e)
