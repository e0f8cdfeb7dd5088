# Overview: Service-layer operations for seat leases; encapsulates business logic and database work.

"""
Seat Lock Management

WHY: While an agent (or an online buyer) is choosing a seat, nobody else
may take it. A lock is a short lease, not a sale.

DESIGN PRINCIPLES:
- One seat_locks row per (trip, seat), enforced by a unique constraint
- Expiry is passive: a row with expires_at <= now counts as absent
- Same holder re-locking refreshes the lease
- unlock() is idempotent and never errors
- The sweep only reclaims storage; no query depends on it
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Seat, SeatLock, Ticket
from ..models.tickets import SEAT_HOLDING_STATUSES
from ..errors import NotFoundError, SeatUnavailableError, ValidationError
from .. import notifications
from ..time_utils import utcnow, add_ms, to_utc_z
from .concurrency import lock_for_update, run_with_retry

DEFAULT_LOCK_DURATION_MS = 300_000

SEAT_AVAILABLE = "available"
SEAT_LOCKED = "locked"
SEAT_SOLD = "sold"
SEAT_DISABLED = "disabled"


def _default_duration_ms() -> int:
    return current_app.config.get("SEAT_LOCK_DURATION_MS", DEFAULT_LOCK_DURATION_MS)


def is_seat_sold(trip_id: int, seat_id: int) -> bool:
    """True if a paid or boarded ticket occupies the seat."""
    return db.session.query(Ticket.id).filter(
        Ticket.trip_id == trip_id,
        Ticket.seat_id == seat_id,
        Ticket.status.in_(SEAT_HOLDING_STATUSES),
    ).first() is not None


def get_active_lock(trip_id: int, seat_id: int, now: datetime | None = None) -> SeatLock | None:
    """Return the unexpired lock on a seat, if any."""
    now = now or utcnow()
    return db.session.query(SeatLock).filter(
        SeatLock.trip_id == trip_id,
        SeatLock.seat_id == seat_id,
        SeatLock.expires_at > now,
    ).first()


def lock_seat(
    trip_id: int,
    seat_id: int,
    holder_id: str,
    duration_ms: int | None = None,
    *,
    now: datetime | None = None,
) -> SeatLock:
    """
    Acquire or refresh a lease on a seat.

    Raises:
        NotFoundError: Seat does not exist on this trip
        SeatUnavailableError: Seat is disabled, sold, or held by another holder
        ValidationError: Missing holder or non-positive duration
    """
    if not holder_id:
        raise ValidationError("holder_id is required")

    if duration_ms is None:
        duration_ms = _default_duration_ms()
    if duration_ms <= 0:
        raise ValidationError("Lock duration must be positive")

    holder_id = str(holder_id)

    def _op():
        current = now or utcnow()

        seat = db.session.query(Seat).filter_by(id=seat_id, trip_id=trip_id).first()
        if not seat:
            raise NotFoundError(f"Seat {seat_id} not found on trip {trip_id}")

        if seat.is_disabled:
            raise SeatUnavailableError(f"Seat {seat.seat_number} is disabled")

        if is_seat_sold(trip_id, seat_id):
            raise SeatUnavailableError(f"Seat {seat.seat_number} is already sold")

        lock = lock_for_update(
            db.session.query(SeatLock).filter_by(trip_id=trip_id, seat_id=seat_id)
        ).first()

        if lock and lock.is_active(current) and lock.holder_id != holder_id:
            raise SeatUnavailableError(
                f"Seat {seat.seat_number} is locked by another holder",
                details={"expires_at": to_utc_z(lock.expires_at)},
            )

        if lock is None:
            lock = SeatLock(trip_id=trip_id, seat_id=seat_id)
            db.session.add(lock)

        # Expired rows are taken over in place; a concurrent writer bumps
        # version_id and this commit then fails with StaleDataError
        if lock.holder_id != holder_id or not lock.is_active(current):
            lock.locked_at = current
        lock.holder_id = holder_id
        lock.expires_at = add_ms(current, duration_ms)

        try:
            db.session.commit()
        except IntegrityError:
            # Another holder inserted the row first
            db.session.rollback()
            raise SeatUnavailableError(f"Seat {seat.seat_number} is locked by another holder")

        return lock

    lock = run_with_retry(_op)

    notifications.publish(notifications.SEAT_LOCKED, {
        "trip_id": trip_id,
        "seat_id": seat_id,
        "holder_id": holder_id,
        "expires_at": to_utc_z(lock.expires_at),
    })
    return lock


def unlock_seat(trip_id: int, seat_id: int, holder_id: str) -> bool:
    """
    Release a lease held by holder_id.

    Returns True if a lock was removed. Absent locks or locks held by
    someone else are left alone (no error).
    """
    deleted = db.session.query(SeatLock).filter_by(
        trip_id=trip_id,
        seat_id=seat_id,
        holder_id=str(holder_id),
    ).delete(synchronize_session=False)
    db.session.commit()

    if deleted:
        notifications.publish(notifications.SEAT_UNLOCKED, {
            "trip_id": trip_id,
            "seat_id": seat_id,
            "holder_id": str(holder_id),
        })
    return bool(deleted)


def release_seat_locks(trip_id: int, seat_id: int) -> int:
    """
    Remove any lock on a seat regardless of holder.

    Does not commit: used inside the sale transaction.
    """
    return db.session.query(SeatLock).filter_by(
        trip_id=trip_id,
        seat_id=seat_id,
    ).delete(synchronize_session=False)


def sweep_expired_locks(now: datetime | None = None) -> int:
    """Delete lock rows that have already expired. Housekeeping only."""
    now = now or utcnow()
    deleted = db.session.query(SeatLock).filter(
        SeatLock.expires_at <= now
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def get_seat_availability(trip_id: int, now: datetime | None = None) -> list[dict]:
    """Derived availability for every seat on a trip."""
    now = now or utcnow()

    seats = db.session.query(Seat).filter_by(trip_id=trip_id).order_by(
        Seat.floor, Seat.row, Seat.column, Seat.id
    ).all()

    sold_ids = {
        row.seat_id
        for row in db.session.query(Ticket.seat_id).filter(
            Ticket.trip_id == trip_id,
            Ticket.status.in_(SEAT_HOLDING_STATUSES),
        )
    }

    locks = {
        lock.seat_id: lock
        for lock in db.session.query(SeatLock).filter(
            SeatLock.trip_id == trip_id,
            SeatLock.expires_at > now,
        )
    }

    result = []
    for seat in seats:
        lock = None
        if seat.is_disabled:
            status = SEAT_DISABLED
        elif seat.id in sold_ids:
            status = SEAT_SOLD
        elif seat.id in locks:
            status = SEAT_LOCKED
            lock = locks[seat.id]
        else:
            status = SEAT_AVAILABLE

        result.append({
            "seat": seat.to_dict(),
            "status": status,
            "locked_by": lock.holder_id if lock else None,
            "expires_at": to_utc_z(lock.expires_at) if lock else None,
        })
    return result


def create_trip_seats(trip_id: int, rows: int, columns: int, *, floor: int = 1) -> list[Seat]:
    """Create a rectangular seat map for a trip, numbered 1..rows*columns."""
    if rows <= 0 or columns <= 0:
        raise ValidationError("rows and columns must be positive")

    existing = db.session.query(Seat).filter_by(trip_id=trip_id).count()

    seats = []
    number = existing
    for r in range(1, rows + 1):
        for c in range(1, columns + 1):
            number += 1
            seat = Seat(
                trip_id=trip_id,
                seat_number=str(number),
                row=r,
                column=c,
                floor=floor,
                is_disabled=False,
            )
            db.session.add(seat)
            seats.append(seat)

    db.session.commit()
    return seats
