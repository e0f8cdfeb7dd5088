# Overview: Transaction boundary, row locking, and retry helpers shared by the POS services.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import PersistenceError


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the rows a unit of work is about to change.

    SQLite has no row locks and silently drops the clause; there the unique
    indexes and version_id columns carry the guarantee alone.
    """
    return query.with_for_update()


@contextmanager
def atomic():
    """
    Commit everything written inside the block as one unit.

    Any exception rolls the whole session back before propagating, so no
    partial write of the unit stays visible.
    """
    try:
        yield db.session
        db.session.commit()
    except BaseException:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a unit of work, retrying lock contention and lost updates.

    OperationalError (database locked, deadlock) and StaleDataError
    (version_id mismatch) roll back and retry with exponential backoff.
    Anything else propagates untouched. Once attempts are exhausted the
    last failure is raised as PersistenceError.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt == attempts:
                raise PersistenceError(f"Storage operation failed after {attempts} attempts: {exc}") from exc
            current_app.logger.warning(
                "Retrying after %s (attempt %d of %d)", type(exc).__name__, attempt, attempts
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))
