from datetime import timedelta

import pytest

from buspos.errors import NotFoundError, SeatUnavailableError, ValidationError
from buspos.extensions import db
from buspos.models import SeatLock
from buspos.services import seat_lock_service, sale_service
from buspos.time_utils import utcnow

from conftest import TRIP_ID, AGENT_ID


def test_second_holder_is_rejected_until_expiry(seats):
    seat = seats[0]
    now = utcnow()

    lock = seat_lock_service.lock_seat(TRIP_ID, seat.id, "agentA", 300_000, now=now)
    assert lock.holder_id == "agentA"

    with pytest.raises(SeatUnavailableError):
        seat_lock_service.lock_seat(TRIP_ID, seat.id, "agentB", 300_000, now=now + timedelta(seconds=10))

    later = now + timedelta(milliseconds=300_001)
    taken = seat_lock_service.lock_seat(TRIP_ID, seat.id, "agentB", 300_000, now=later)

    assert taken.holder_id == "agentB"
    assert taken.locked_at == later
    assert db.session.query(SeatLock).filter_by(trip_id=TRIP_ID, seat_id=seat.id).count() == 1


def test_same_holder_refreshes_lease(seats):
    seat = seats[0]
    now = utcnow()

    first = seat_lock_service.lock_seat(TRIP_ID, seat.id, "agentA", 60_000, now=now)
    refreshed = seat_lock_service.lock_seat(TRIP_ID, seat.id, "agentA", 60_000, now=now + timedelta(seconds=30))

    assert refreshed.id == first.id
    assert refreshed.locked_at == now
    assert refreshed.expires_at == now + timedelta(seconds=90)


def test_unlock_is_idempotent_and_holder_scoped(seats):
    seat = seats[0]
    seat_lock_service.lock_seat(TRIP_ID, seat.id, "agentA")

    assert seat_lock_service.unlock_seat(TRIP_ID, seat.id, "agentB") is False
    assert seat_lock_service.get_active_lock(TRIP_ID, seat.id) is not None

    assert seat_lock_service.unlock_seat(TRIP_ID, seat.id, "agentA") is True
    assert seat_lock_service.unlock_seat(TRIP_ID, seat.id, "agentA") is False
    assert seat_lock_service.get_active_lock(TRIP_ID, seat.id) is None


def test_lock_rejects_bad_input(seats):
    with pytest.raises(ValidationError):
        seat_lock_service.lock_seat(TRIP_ID, seats[0].id, "")
    with pytest.raises(ValidationError):
        seat_lock_service.lock_seat(TRIP_ID, seats[0].id, "agentA", 0)
    with pytest.raises(NotFoundError):
        seat_lock_service.lock_seat(TRIP_ID + 1, seats[0].id, "agentA")


def test_disabled_seat_cannot_be_locked(seats):
    seat = seats[1]
    seat.is_disabled = True
    db.session.commit()

    with pytest.raises(SeatUnavailableError):
        seat_lock_service.lock_seat(TRIP_ID, seat.id, "agentA")


def test_sold_seat_cannot_be_locked(seats, open_session):
    seat = seats[2]
    sale_service.process_sale(
        trip_id=TRIP_ID,
        seat_id=seat.id,
        passenger_name="Ana Pérez",
        destination_stop_id=3,
        payment_method="card",
        amount_cents=1500,
        terminal_id=open_session.terminal_id,
        session_id=open_session.id,
        processed_by_user_id=AGENT_ID,
    )

    with pytest.raises(SeatUnavailableError):
        seat_lock_service.lock_seat(TRIP_ID, seat.id, "agentA")


def test_availability_is_derived(seats, open_session):
    now = utcnow()
    seats[1].is_disabled = True
    db.session.commit()

    seat_lock_service.lock_seat(TRIP_ID, seats[0].id, "agentA", now=now)
    seat_lock_service.lock_seat(TRIP_ID, seats[3].id, "agentB", 1_000, now=now - timedelta(seconds=5))
    sale_service.process_sale(
        trip_id=TRIP_ID,
        seat_id=seats[2].id,
        passenger_name="Luis Gómez",
        destination_stop_id=3,
        payment_method="cash",
        amount_cents=1500,
        received_amount_cents=2000,
        terminal_id=open_session.terminal_id,
        session_id=open_session.id,
        processed_by_user_id=AGENT_ID,
    )

    by_id = {row["seat"]["id"]: row for row in seat_lock_service.get_seat_availability(TRIP_ID)}

    assert by_id[seats[0].id]["status"] == seat_lock_service.SEAT_LOCKED
    assert by_id[seats[0].id]["locked_by"] == "agentA"
    assert by_id[seats[1].id]["status"] == seat_lock_service.SEAT_DISABLED
    assert by_id[seats[2].id]["status"] == seat_lock_service.SEAT_SOLD
    # Expired lease counts as absent even before the sweep
    assert by_id[seats[3].id]["status"] == seat_lock_service.SEAT_AVAILABLE
    assert len(by_id) == len(seats)


def test_sweep_removes_only_expired_rows(seats):
    now = utcnow()
    seat_lock_service.lock_seat(TRIP_ID, seats[0].id, "agentA", 1_000, now=now - timedelta(seconds=10))
    seat_lock_service.lock_seat(TRIP_ID, seats[1].id, "agentA", 60_000, now=now)

    assert seat_lock_service.sweep_expired_locks(now) == 1
    remaining = db.session.query(SeatLock).all()
    assert [lock.seat_id for lock in remaining] == [seats[1].id]


def test_create_trip_seats_numbers_sequentially(db_session):
    first = seat_lock_service.create_trip_seats(900, rows=1, columns=2)
    more = seat_lock_service.create_trip_seats(900, rows=1, columns=2, floor=2)

    assert [s.seat_number for s in first + more] == ["1", "2", "3", "4"]
    assert more[0].floor == 2

    with pytest.raises(ValidationError):
        seat_lock_service.create_trip_seats(900, rows=0, columns=4)
