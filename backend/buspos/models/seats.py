from __future__ import annotations

from ..extensions import db
from buspos.time_utils import to_utc_z


class Seat(db.Model):
    """
    A sellable seat on one trip.

    Availability is never stored: it is derived from the seat's disabled
    flag, active leases in seat_locks, and paid/boarded tickets.
    """
    __tablename__ = "seats"
    __table_args__ = (
        db.UniqueConstraint("trip_id", "seat_number", name="uq_seats_trip_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    trip_id = db.Column(db.Integer, nullable=False, index=True)

    # Label printed on the ticket (e.g., "12", "1A")
    seat_number = db.Column(db.String(16), nullable=False)

    # Seat map geometry
    row = db.Column(db.Integer, nullable=True)
    column = db.Column(db.Integer, nullable=True)
    floor = db.Column(db.Integer, nullable=False, default=1)

    is_disabled = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "trip_id": self.trip_id,
            "seat_number": self.seat_number,
            "row": self.row,
            "column": self.column,
            "floor": self.floor,
            "is_disabled": self.is_disabled,
        }


class SeatLock(db.Model):
    """
    Time-bounded hold on a seat during interactive selection.

    One row per (trip, seat). A row whose expires_at has passed is treated
    as absent; it is overwritten by the next holder or removed by the sweep.
    Never a sale: a sale deletes the row in the same transaction that
    inserts the ticket.
    """
    __tablename__ = "seat_locks"
    __table_args__ = (
        db.UniqueConstraint("trip_id", "seat_id", name="uq_seat_locks_trip_seat"),
        db.Index("ix_seat_locks_expires_at", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    trip_id = db.Column(db.Integer, nullable=False, index=True)
    seat_id = db.Column(db.Integer, db.ForeignKey("seats.id"), nullable=False)

    # Agent, terminal or browser session holding the seat
    holder_id = db.Column(db.String(128), nullable=False)

    locked_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    # Optimistic locking: an expired-row takeover loses if another holder wrote first
    version_id = db.Column(db.Integer, nullable=False, default=1)

    seat = db.relationship("Seat")

    __mapper_args__ = {"version_id_col": version_id}

    def is_active(self, now) -> bool:
        return self.expires_at > now

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "trip_id": self.trip_id,
            "seat_id": self.seat_id,
            "holder_id": self.holder_id,
            "locked_at": to_utc_z(self.locked_at),
            "expires_at": to_utc_z(self.expires_at),
            "version_id": self.version_id,
        }
