from __future__ import annotations

from ..extensions import db
from buspos.time_utils import to_utc_z

TICKET_STATUS_PENDING = "pending"
TICKET_STATUS_PAID = "paid"
TICKET_STATUS_BOARDED = "boarded"
TICKET_STATUS_COMPLETED = "completed"
TICKET_STATUS_CANCELLED = "cancelled"
TICKET_STATUS_REFUNDED = "refunded"

# Statuses that occupy the seat for the trip
SEAT_HOLDING_STATUSES = (TICKET_STATUS_PAID, TICKET_STATUS_BOARDED)

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PROCESSING = "processing"
PAYMENT_STATUS_COMPLETED = "completed"
PAYMENT_STATUS_FAILED = "failed"

_ACTIVE_SEAT_PREDICATE = db.text("status IN ('paid', 'boarded')")


class Ticket(db.Model):
    """
    Passenger ticket for one seat on one trip.

    The partial unique index is the write-time guarantee that a seat is
    sold at most once per trip: two concurrent sales can both pass the
    availability check, only one can insert.
    """
    __tablename__ = "tickets"
    __table_args__ = (
        db.Index(
            "uq_tickets_active_seat",
            "trip_id",
            "seat_id",
            unique=True,
            sqlite_where=_ACTIVE_SEAT_PREDICATE,
            postgresql_where=_ACTIVE_SEAT_PREDICATE,
        ),
        db.Index("ix_tickets_trip_status", "trip_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    trip_id = db.Column(db.Integer, nullable=False, index=True)
    seat_id = db.Column(db.Integer, db.ForeignKey("seats.id"), nullable=False, index=True)

    # Passenger
    passenger_name = db.Column(db.String(255), nullable=False)
    passenger_phone = db.Column(db.String(32), nullable=True)
    passenger_email = db.Column(db.String(255), nullable=True)
    passenger_document_id = db.Column(db.String(64), nullable=True)
    passenger_document_type = db.Column(db.String(16), nullable=True)  # cedula, pasaporte

    # Route stops
    destination_stop_id = db.Column(db.Integer, nullable=False)
    boarding_stop_id = db.Column(db.Integer, nullable=True)

    # Pricing (all amounts in cents, total = price + itbms)
    price_cents = db.Column(db.Integer, nullable=False)
    itbms_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=TICKET_STATUS_PENDING, index=True)
    qr_code = db.Column(db.String(64), nullable=False, unique=True)

    # Point-of-sale attribution (null for online sales)
    terminal_id = db.Column(db.Integer, db.ForeignKey("pos_terminals.id"), nullable=True, index=True)
    sold_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    seat = db.relationship("Seat")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "trip_id": self.trip_id,
            "seat_id": self.seat_id,
            "passenger_name": self.passenger_name,
            "passenger_phone": self.passenger_phone,
            "passenger_email": self.passenger_email,
            "passenger_document_id": self.passenger_document_id,
            "passenger_document_type": self.passenger_document_type,
            "destination_stop_id": self.destination_stop_id,
            "boarding_stop_id": self.boarding_stop_id,
            "price_cents": self.price_cents,
            "itbms_cents": self.itbms_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "qr_code": self.qr_code,
            "terminal_id": self.terminal_id,
            "sold_by_user_id": self.sold_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Payment(db.Model):
    """Payment collected for a ticket."""
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=False, index=True)

    # cash, card, yappy, paguelofacil, tilopay, payu, banesco
    payment_method = db.Column(db.String(32), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    itbms_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING, index=True)
    provider_transaction_id = db.Column(db.String(128), nullable=True)

    # Cash handling
    received_amount_cents = db.Column(db.Integer, nullable=True)
    change_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    ticket = db.relationship("Ticket", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "payment_method": self.payment_method,
            "amount_cents": self.amount_cents,
            "itbms_cents": self.itbms_cents,
            "total_amount_cents": self.total_amount_cents,
            "status": self.status,
            "provider_transaction_id": self.provider_transaction_id,
            "received_amount_cents": self.received_amount_cents,
            "change_amount_cents": self.change_amount_cents,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "created_at": to_utc_z(self.created_at),
        }
