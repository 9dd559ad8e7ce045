from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.app.api.permission_deps import require_permission
from backend.app.core.database import get_db
from backend.app.models.user import User
from backend.app.services.cash import list_cash_movements

router = APIRouter()


@router.get("/movements")
def movements(
    since: datetime | None = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("cash:read")),
) -> dict:
    return list_cash_movements(db, since=since)
