# Overview: Transaction scope, row locking and retry for ledger writes.

from __future__ import annotations

import time
from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransactionAbortError
from ..extensions import db
from ..models import Product

T = TypeVar("T")

"""
Ledger Transaction Invariants (authoritative)

- A sale/purchase row and its Product stock delta commit together or not at all.
- The Product row is locked from the sufficiency check until commit:
    SQLite      -> BEGIN IMMEDIATE (database write lock, waits up to the busy timeout)
    PostgreSQL  -> SELECT ... FOR UPDATE with SET LOCAL lock_timeout
    others      -> SELECT ... FOR UPDATE
- Product.version_id is checked on flush as a second line of defence.
- Lock timeouts and version conflicts are retried with backoff; once retries
  are exhausted the caller gets TransactionAbortError and nothing persisted.
- Audit and notification writes run after commit via best_effort() and can
  never roll back or block the ledger change.
"""

# SQLSTATEs for serialization failure, deadlock, lock_not_available
_CONTENTION_PGCODES = {"40001", "40P01", "55P03"}
_CONTENTION_MARKERS = ("database is locked", "deadlock", "lock timeout", "could not serialize", "locknotavailable")


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def lock_product(product_id: int | None) -> Product | None:
    """Load and lock one Product row inside the current scope; None if it is gone."""
    if product_id is None:
        return None
    return lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()


def _is_contention(exc: Exception) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) in _CONTENTION_PGCODES:
        return True
    message = str(orig or exc).lower()
    return any(marker in message for marker in _CONTENTION_MARKERS)


def begin_write_scope() -> None:
    """Open the write transaction for the current session."""
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql":
        timeout_ms = int(current_app.config.get("ATOMIC_SCOPE_TIMEOUT_SECONDS", 5) * 1000)
        db.session.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))


def atomic_scope(op: Callable[[], T], *, attempts: int | None = None, backoff_base: float = 0.05) -> T:
    """
    Run `op` as one all-or-nothing transaction and commit it.

    Each attempt starts from a clean session. Business errors raised by `op`
    roll back and propagate unchanged. Lock timeouts and optimistic version
    conflicts roll back and retry; after the last attempt they surface as
    TransactionAbortError.
    """
    if attempts is None:
        attempts = int(current_app.config.get("ATOMIC_SCOPE_RETRIES", 3))
    attempts = max(attempts, 1)

    for attempt in range(attempts):
        db.session.rollback()
        try:
            begin_write_scope()
            result = op()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if not _is_contention(exc):
                raise
            current_app.logger.warning(
                "Ledger transaction conflict (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            if attempt >= attempts - 1:
                raise TransactionAbortError(
                    "Transaction aborted under contention; nothing was saved. Retry the operation.",
                    details={"attempts": attempts},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise

    raise TransactionAbortError("Transaction aborted", details={"attempts": attempts})


def best_effort(label: str, func: Callable[..., object], *args, **kwargs) -> None:
    """
    Run a post-commit side effect; log and swallow any failure.

    The session is rolled back on failure so the failed side effect leaves
    nothing pending for the caller.
    """
    try:
        func(*args, **kwargs)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Post-commit side effect failed: %s", label)
