"""Supervisor authorization gate for backward order transitions.

A backward move on the board is parked as a ``PendingAuthorization`` row
(one per order, with a TTL) instead of being applied. It is resolved by
submitting a supervisor credential, cancelled explicitly, or discarded once
it expires or collects too many failed attempts.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.database import transaction
from backend.app.core.exceptions import AuthorizationDeniedError, NotFoundError
from backend.app.core.security import verify_secret
from backend.app.core.time_utils import as_utc, utcnow
from backend.app.models.order import Order, OrderStatus, PendingAuthorization
from backend.app.services.audit import log_action
from backend.app.services.locks import lock_order

logger = logging.getLogger(__name__)


class Authorizer(Protocol):
    def authorize(self, secret: str) -> bool: ...


class CredentialAuthorizer:
    """Accepts any configured supervisor PIN or the master override.

    Credentials are passlib hashes; plaintext never leaves the request.
    """

    def __init__(self, pin_hashes: list[str], master_hash: str | None = None) -> None:
        self._hashes = list(pin_hashes)
        if master_hash:
            self._hashes.append(master_hash)

    def authorize(self, secret: str) -> bool:
        if not secret:
            return False
        return verify_secret(secret, self._hashes)


def get_authorizer() -> Authorizer:
    """FastAPI dependency; override in tests or to plug in another backend."""
    return CredentialAuthorizer(
        settings.SUPERVISOR_PIN_HASHES, settings.MASTER_OVERRIDE_HASH
    )


def pending_out(pending: PendingAuthorization) -> dict:
    return {
        "order_id": str(pending.order_id),
        "from_status": pending.from_status.value,
        "to_status": pending.to_status.value,
        "failed_attempts": pending.failed_attempts,
        "requested_at": as_utc(pending.requested_at).isoformat(),
        "expires_at": as_utc(pending.expires_at).isoformat(),
    }


def open_pending_authorization(
    db: Session,
    order: Order,
    to_status: OrderStatus,
    user_id: UUID | None = None,
) -> PendingAuthorization:
    """Stage a pending backward transition in the caller's transaction."""
    now = utcnow()
    pending = PendingAuthorization(
        order_id=order.id,
        from_status=order.status,
        to_status=to_status,
        requested_by=user_id,
        failed_attempts=0,
        requested_at=now,
        expires_at=now + timedelta(seconds=settings.PENDING_AUTHORIZATION_TTL_SECONDS),
    )
    order.pending_authorization = pending
    log_action(
        db,
        user_id=user_id,
        action="AUTHORIZATION_REQUESTED",
        resource_type="orders",
        resource_id=str(order.id),
        changes={"from": order.status.value, "to": to_status.value},
    )
    return pending


def discard_if_expired(db: Session, order: Order) -> bool:
    """Drop the order's pending request when its TTL has passed (no commit)."""
    pending = order.pending_authorization
    if pending is None:
        return False
    if as_utc(pending.expires_at) > utcnow():
        return False
    logger.warning(
        "Pending authorization for order %s (%s -> %s) expired",
        order.id, pending.from_status.value, pending.to_status.value,
    )
    order.pending_authorization = None
    db.flush()
    return True


def purge_expired(db: Session) -> int:
    """Delete every pending request past its TTL. Returns how many went."""
    with transaction(db):
        expired = (
            db.query(PendingAuthorization)
            .filter(PendingAuthorization.expires_at <= utcnow())
            .with_for_update()
            .all()
        )
        for pending in expired:
            db.delete(pending)
        removed = len(expired)

    if removed:
        logger.info("Purged %d expired pending authorization(s)", removed)
    return removed


def submit_authorization(
    db: Session,
    order_id: UUID,
    secret: str,
    authorizer: Authorizer,
    user_id: UUID | None = None,
) -> dict:
    """Resolve the order's pending backward transition with a credential.

    On success the parked transition is applied and the request discarded.
    On failure the order is untouched, the attempt is counted, and
    ``AuthorizationDeniedError`` is raised; the request stays open for a
    retry until the attempt limit is reached.
    """
    denied: AuthorizationDeniedError | None = None
    result: dict = {}

    with transaction(db):
        order = lock_order(db, order_id)
        expired = discard_if_expired(db, order)
        pending = order.pending_authorization

        if pending is None:
            result = {"expired": expired}
        elif authorizer.authorize(secret):
            from_status = order.status
            order.status = pending.to_status
            order.pending_authorization = None
            log_action(
                db,
                user_id=user_id,
                action="AUTHORIZATION_GRANTED",
                resource_type="orders",
                resource_id=str(order.id),
                changes={"from": from_status.value, "to": order.status.value},
            )
            log_action(
                db,
                user_id=user_id,
                action="ORDER_STATUS_CHANGED",
                resource_type="orders",
                resource_id=str(order.id),
                changes={
                    "from": from_status.value,
                    "to": order.status.value,
                    "authorized": True,
                },
            )
            result = {"granted": True, "status": order.status.value}
        else:
            pending.failed_attempts += 1
            remaining = settings.MAX_AUTHORIZATION_ATTEMPTS - pending.failed_attempts
            log_action(
                db,
                user_id=user_id,
                action="AUTHORIZATION_DENIED",
                resource_type="orders",
                resource_id=str(order.id),
                changes={"failed_attempts": pending.failed_attempts},
            )
            if remaining <= 0:
                order.pending_authorization = None
                denied = AuthorizationDeniedError(
                    "Too many failed attempts; the pending move was discarded",
                    attempts_remaining=0,
                    discarded=True,
                )
            else:
                denied = AuthorizationDeniedError(
                    "Incorrect PIN or insufficient permissions",
                    attempts_remaining=remaining,
                    discarded=False,
                )

    if denied is not None:
        logger.warning("Authorization denied for order %s: %s", order_id, denied.message)
        raise denied

    if not result.get("granted"):
        reason = "expired" if result.get("expired") else "not found"
        raise NotFoundError(
            f"No pending authorization for this order ({reason})",
            order_id=str(order_id),
        )

    logger.info("Authorization granted for order %s -> %s", order_id, result["status"])
    return {"result": "granted", "order_id": str(order_id), "status": result["status"]}


def cancel_authorization(
    db: Session, order_id: UUID, user_id: UUID | None = None
) -> dict:
    """Discard the pending request without touching the order."""
    with transaction(db):
        order = lock_order(db, order_id)
        pending = order.pending_authorization
        if pending is None:
            raise NotFoundError(
                "No pending authorization for this order", order_id=str(order_id)
            )
        to_status = pending.to_status
        order.pending_authorization = None
        log_action(
            db,
            user_id=user_id,
            action="AUTHORIZATION_CANCELLED",
            resource_type="orders",
            resource_id=str(order.id),
            changes={"to": to_status.value},
        )
        status = order.status.value

    logger.info("Pending authorization for order %s cancelled", order_id)
    return {"result": "cancelled", "order_id": str(order_id), "status": status}
