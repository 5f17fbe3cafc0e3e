from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import TypeVar

from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

engine = create_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def is_retryable(exc: DBAPIError) -> bool:
    orig = exc.orig
    if getattr(orig, "pgcode", None) in _RETRYABLE_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()


def run_in_transaction(db: Session, operation: Callable[[], T], *, attempts: int | None = None) -> T:
    """
    Run `operation` and commit, retrying on serialization conflicts.

    Any other failure rolls the session back and propagates unchanged. The
    operation must be safe to re-run from scratch since every attempt starts
    from a clean transaction.
    """
    max_attempts = max(1, attempts or settings.transaction_retries)
    for attempt in range(1, max_attempts + 1):
        try:
            result = operation()
            db.commit()
            return result
        except DBAPIError as exc:
            db.rollback()
            if not is_retryable(exc) or attempt == max_attempts:
                raise
            logger.warning("transaction conflict (attempt %s/%s), retrying: %s", attempt, max_attempts, exc.orig)
        except Exception:
            db.rollback()
            raise
    raise RuntimeError("unreachable")
