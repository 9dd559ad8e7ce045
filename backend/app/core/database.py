from __future__ import annotations

import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.core.config import settings
from backend.app.core.exceptions import LedgerError, PersistenceFailure

logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> dict:
    # In-memory SQLite must share one connection across the whole process
    if url.startswith("sqlite") and ":memory:" in url:
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {}


engine = create_engine(settings.DATABASE_URL, echo=False, **_engine_kwargs(settings.DATABASE_URL))

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


class Base(DeclarativeBase):
    pass


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Run a multi-record mutation as one atomic unit.

    Commits when the block exits cleanly. Any exception rolls back every
    write issued inside the block; store errors are re-raised as
    ``PersistenceFailure`` so callers see a single error type for them.
    """
    try:
        yield db
        db.commit()
    except LedgerError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Transaction rolled back after store error")
        raise PersistenceFailure(str(exc)) from exc
    except Exception:
        db.rollback()
        raise
