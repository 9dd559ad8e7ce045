from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from backend.app.api.deps import client_ip
from backend.app.core.config import settings
from backend.app.core.database import get_db
from backend.app.core.security import create_access_token, verify_password
from backend.app.core.time_utils import as_utc, utcnow
from backend.app.middleware.rate_limit import InMemoryRateLimiter
from backend.app.models.user import User
from backend.app.services.audit import log_action

router = APIRouter()

# Per-IP, per-process
_login_limiter = InMemoryRateLimiter(window_seconds=60, max_attempts=5)


def _minutes_locked(user: User) -> int:
    """Minutes left on an active lockout; an expired lockout is cleared."""
    if user.locked_until is None:
        return 0
    left = as_utc(user.locked_until) - utcnow()
    if left.total_seconds() <= 0:
        user.failed_login_attempts = 0
        user.locked_until = None
        return 0
    return int(left.total_seconds() // 60) + 1


def _record_failure(db: Session, user: User | None, username: str, ip: str) -> None:
    if user is not None:
        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
        if user.failed_login_attempts >= settings.MAX_LOGIN_ATTEMPTS:
            user.locked_until = utcnow() + timedelta(minutes=settings.LOCKOUT_MINUTES)
            log_action(
                db,
                user_id=user.id,
                action="ACCOUNT_LOCKED",
                resource_type="auth",
                resource_id=username,
                ip_address=ip,
                changes={"failed_attempts": user.failed_login_attempts},
            )
    log_action(
        db,
        user_id=user.id if user else None,
        action="LOGIN_FAILED",
        resource_type="auth",
        resource_id=username,
        ip_address=ip,
        changes={"reason": "invalid_credentials"},
    )
    db.commit()


@router.post("/login/access-token")
def login_access_token(
    db: Session = Depends(get_db),
    form_data: OAuth2PasswordRequestForm = Depends(),
    ip: str = Depends(client_ip),
) -> dict[str, str]:
    _login_limiter.check(ip)

    user = db.query(User).filter(User.username == form_data.username).first()

    if user is not None:
        minutes = _minutes_locked(user)
        if minutes:
            log_action(
                db,
                user_id=user.id,
                action="LOGIN_BLOCKED",
                resource_type="auth",
                resource_id=form_data.username,
                ip_address=ip,
                changes={"reason": "account_locked"},
            )
            db.commit()
            raise HTTPException(
                status_code=status.HTTP_423_LOCKED,
                detail=f"Account locked. Try again in {minutes} minutes.",
            )

    if user is None or not verify_password(form_data.password, user.hashed_password):
        _record_failure(db, user, form_data.username, ip)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user"
        )

    user.failed_login_attempts = 0
    user.locked_until = None
    log_action(
        db,
        user_id=user.id,
        action="LOGIN_SUCCESS",
        resource_type="auth",
        resource_id=str(user.id),
        ip_address=ip,
        changes={"username": user.username, "role": user.role.value},
    )
    db.commit()

    return {
        "access_token": create_access_token(subject=str(user.id)),
        "token_type": "bearer",
    }
