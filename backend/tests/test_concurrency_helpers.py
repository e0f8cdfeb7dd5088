import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from buspos.errors import PersistenceError
from buspos.extensions import db
from buspos.models import POSTerminal
from buspos.services.concurrency import atomic, run_with_retry


def test_retry_recovers_from_transient_lock(db_session):
    calls = []

    def _flaky():
        calls.append(1)
        if len(calls) < 3:
            raise OperationalError("UPDATE", {}, Exception("database is locked"))
        return "ok"

    assert run_with_retry(_flaky, attempts=3, backoff_base=0) == "ok"
    assert len(calls) == 3


def test_retry_gives_up_with_persistence_error(db_session):
    def _stale():
        raise StaleDataError("version mismatch")

    with pytest.raises(PersistenceError):
        run_with_retry(_stale, attempts=2, backoff_base=0)


def test_other_errors_are_not_retried(db_session):
    calls = []

    def _bad():
        calls.append(1)
        raise KeyError("boom")

    with pytest.raises(KeyError):
        run_with_retry(_bad, backoff_base=0)
    assert len(calls) == 1


def test_atomic_rolls_back_on_error(db_session):
    with pytest.raises(RuntimeError):
        with atomic():
            db.session.add(POSTerminal(terminal_identifier="TMP-1", physical_location="Nowhere"))
            db.session.flush()
            raise RuntimeError("abort")

    assert db.session.query(POSTerminal).count() == 0

    with atomic():
        db.session.add(POSTerminal(terminal_identifier="TMP-2", physical_location="Somewhere"))

    assert db.session.query(POSTerminal).filter_by(terminal_identifier="TMP-2").count() == 1
