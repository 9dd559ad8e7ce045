"""Periodic cleanup tasks."""

from __future__ import annotations

from backend.app.workers.celery_app import celery


@celery.task(name="backend.app.workers.tasks.cleanup.purge_expired_authorizations")
def purge_expired_authorizations() -> dict:
    """Drop pending backward moves whose TTL has passed.

    Requests are also discarded lazily on the next access to their order;
    this sweep keeps the board from showing stale requests in between.
    """
    from backend.app.core.database import SessionLocal
    from backend.app.services.authorization import purge_expired

    db = SessionLocal()
    try:
        removed = purge_expired(db)
    finally:
        db.close()
    return {"removed": removed}
