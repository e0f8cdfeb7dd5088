# Overview: Service-layer operations for point-of-sale ticket sales; encapsulates business logic and database work.

"""
POS Sale Processing

WHY: A counter sale produces four records (ticket, payment, POS transaction,
session totals). A half-written sale is worse than a rejected one: a ticket
without a payment is unaccounted cash, a payment without the seat marked
sold is a double sale. All four are written in one database transaction.

DESIGN PRINCIPLES:
- All validation happens before the first write
- Tickets are created directly as paid (counter sales are synchronous)
- The tickets partial unique index decides which of two concurrent sales
  on a seat wins; the loser rolls back completely
- Session totals are updated incrementally under a row lock plus
  optimistic version check, never recomputed lazily
- Events are published only after commit
"""

from __future__ import annotations

import time
import uuid
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Seat, Ticket, Payment, POSCashSession, POSTransaction
from ..models.tickets import TICKET_STATUS_PAID, PAYMENT_STATUS_COMPLETED
from ..errors import (
    InsufficientPaymentError,
    NotFoundError,
    POSError,
    SeatUnavailableError,
    SessionClosedError,
    ValidationError,
)
from .. import notifications
from ..time_utils import utcnow
from .concurrency import atomic, lock_for_update, run_with_retry
from .seat_lock_service import get_active_lock, is_seat_sold, release_seat_locks


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_CARD = "card"

VALID_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_CARD,
    "yappy",
    "paguelofacil",
    "tilopay",
    "payu",
    "banesco",
]

VALID_DOCUMENT_TYPES = ["cedula", "pasaporte"]

TRANSACTION_TYPE_SALE = "sale"


def calculate_itbms(amount_cents: int, rate_bps: int) -> int:
    """
    ITBMS charged on top of a fare, in cents.

    itbms = amount * rate, rounded half up.
    """
    itbms = (Decimal(amount_cents) * Decimal(rate_bps) / Decimal(10000)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(itbms)


def generate_qr_code() -> str:
    return f"TDP-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


# =============================================================================
# SALE STEPS (run inside the sale transaction)
# =============================================================================

def _create_ticket(*, trip_id, seat_id, passenger, destination_stop_id, boarding_stop_id,
                   amount_cents, terminal_id, user_id, now) -> Ticket:
    itbms_cents = calculate_itbms(amount_cents, current_app.config.get("ITBMS_RATE_BPS", 700))
    ticket = Ticket(
        trip_id=trip_id,
        seat_id=seat_id,
        passenger_name=passenger["name"],
        passenger_phone=passenger.get("phone"),
        passenger_email=passenger.get("email"),
        passenger_document_id=passenger.get("document_id"),
        passenger_document_type=passenger.get("document_type"),
        destination_stop_id=destination_stop_id,
        boarding_stop_id=boarding_stop_id,
        price_cents=amount_cents,
        itbms_cents=itbms_cents,
        total_cents=amount_cents + itbms_cents,
        status=TICKET_STATUS_PAID,
        qr_code=generate_qr_code(),
        terminal_id=terminal_id,
        sold_by_user_id=user_id,
        created_at=now,
        updated_at=now,
    )
    db.session.add(ticket)
    db.session.flush()
    return ticket


def _create_payment(*, ticket, payment_method, amount_cents, received_cents, change_cents,
                    provider_transaction_id, now) -> Payment:
    payment = Payment(
        ticket_id=ticket.id,
        payment_method=payment_method,
        amount_cents=amount_cents,
        itbms_cents=ticket.itbms_cents,
        total_amount_cents=ticket.total_cents,
        status=PAYMENT_STATUS_COMPLETED,
        provider_transaction_id=provider_transaction_id or f"pos-{payment_method}",
        received_amount_cents=received_cents,
        change_amount_cents=change_cents,
        completed_at=now,
        created_at=now,
    )
    db.session.add(payment)
    db.session.flush()
    return payment


def _record_transaction(*, session, ticket, payment, user_id, now) -> POSTransaction:
    transaction = POSTransaction(
        session_id=session.id,
        terminal_id=session.terminal_id,
        ticket_id=ticket.id,
        payment_id=payment.id,
        transaction_type=TRANSACTION_TYPE_SALE,
        payment_method=payment.payment_method,
        amount_cents=payment.amount_cents,
        received_amount_cents=payment.received_amount_cents,
        change_amount_cents=payment.change_amount_cents,
        processed_by_user_id=user_id,
        created_at=now,
    )
    db.session.add(transaction)
    db.session.flush()
    return transaction


def _apply_session_totals(session: POSCashSession, payment_method: str, amount_cents: int) -> None:
    session.total_sales_cents += amount_cents
    session.total_tickets += 1

    if payment_method == METHOD_CASH:
        session.total_cash_sales_cents += amount_cents
    elif payment_method == METHOD_CARD:
        session.total_card_sales_cents += amount_cents
    else:
        session.total_other_sales_cents += amount_cents

    session.expected_cash_cents = session.calculate_expected_cash()


# =============================================================================
# PROCESS SALE
# =============================================================================

def _validate_inputs(*, passenger, destination_stop_id, payment_method, amount_cents, received_amount_cents):
    if not passenger.get("name") or not str(passenger["name"]).strip():
        raise ValidationError("passenger_name is required")

    document_type = passenger.get("document_type")
    if document_type is not None and document_type not in VALID_DOCUMENT_TYPES:
        raise ValidationError(f"passenger_document_type must be one of {VALID_DOCUMENT_TYPES}")

    if destination_stop_id is None:
        raise ValidationError("destination_stop_id is required")

    if payment_method not in VALID_PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {payment_method}. Must be one of {VALID_PAYMENT_METHODS}")

    if amount_cents is None or amount_cents <= 0:
        raise ValidationError("Sale amount must be positive")

    if payment_method == METHOD_CASH:
        if received_amount_cents is None:
            raise InsufficientPaymentError("received_amount_cents is required for cash payments")
        if received_amount_cents < amount_cents:
            raise InsufficientPaymentError(
                "Received amount is less than the sale amount",
                details={"amount_cents": amount_cents, "received_amount_cents": received_amount_cents},
            )


def process_sale(
    *,
    trip_id: int,
    seat_id: int,
    passenger_name: str,
    destination_stop_id: int,
    payment_method: str,
    amount_cents: int,
    terminal_id: int,
    session_id: int,
    processed_by_user_id: int,
    boarding_stop_id: int | None = None,
    passenger_phone: str | None = None,
    passenger_email: str | None = None,
    passenger_document_id: str | None = None,
    passenger_document_type: str | None = None,
    received_amount_cents: int | None = None,
    holder_id: str | None = None,
    provider_transaction_id: str | None = None,
) -> tuple[Ticket, Payment, POSTransaction]:
    """
    Sell one seat at a terminal as a single atomic unit.

    Args:
        amount_cents: Fare before tax; ITBMS is added on top on the ticket
            and payment, while session totals count the fare
        received_amount_cents: Cash tendered (required for cash)
        holder_id: Lock holder selling the seat; defaults to the user id.
            A seat locked by a different holder cannot be sold.

    Returns:
        (ticket, payment, transaction)

    Raises:
        ValidationError / InsufficientPaymentError: Bad input, before any write
        NotFoundError: Session or seat absent
        SessionClosedError: Session closed or belongs to another terminal
        SeatUnavailableError: Seat sold, disabled, locked by someone else,
            or sold concurrently while this sale was in flight
    """
    passenger = {
        "name": passenger_name.strip() if passenger_name else passenger_name,
        "phone": passenger_phone,
        "email": passenger_email,
        "document_id": passenger_document_id,
        "document_type": passenger_document_type,
    }
    _validate_inputs(
        passenger=passenger,
        destination_stop_id=destination_stop_id,
        payment_method=payment_method,
        amount_cents=amount_cents,
        received_amount_cents=received_amount_cents,
    )

    if payment_method == METHOD_CASH:
        received_cents = received_amount_cents
        change_cents = received_amount_cents - amount_cents
    else:
        received_cents = amount_cents
        change_cents = 0

    holder = str(holder_id) if holder_id else str(processed_by_user_id)

    def _op():
        try:
            with atomic():
                session = lock_for_update(db.session.query(POSCashSession).filter_by(id=session_id)).first()
                if not session:
                    raise NotFoundError(f"Session {session_id} not found")
                if session.terminal_id != terminal_id:
                    raise SessionClosedError(f"Session {session_id} does not belong to terminal {terminal_id}")
                if not session.is_open:
                    raise SessionClosedError(f"Session {session_id} is closed")

                seat = db.session.query(Seat).filter_by(id=seat_id, trip_id=trip_id).first()
                if not seat:
                    raise NotFoundError(f"Seat {seat_id} not found on trip {trip_id}")
                if seat.is_disabled:
                    raise SeatUnavailableError(f"Seat {seat.seat_number} is disabled")
                if is_seat_sold(trip_id, seat_id):
                    raise SeatUnavailableError(f"Seat {seat.seat_number} is already sold")

                now = utcnow()
                lock = get_active_lock(trip_id, seat_id, now)
                if lock and lock.holder_id != holder:
                    raise SeatUnavailableError(f"Seat {seat.seat_number} is locked by another holder")

                # Writes start here; everything below commits or rolls back together
                ticket = _create_ticket(
                    trip_id=trip_id,
                    seat_id=seat_id,
                    passenger=passenger,
                    destination_stop_id=destination_stop_id,
                    boarding_stop_id=boarding_stop_id,
                    amount_cents=amount_cents,
                    terminal_id=terminal_id,
                    user_id=processed_by_user_id,
                    now=now,
                )
                payment = _create_payment(
                    ticket=ticket,
                    payment_method=payment_method,
                    amount_cents=amount_cents,
                    received_cents=received_cents,
                    change_cents=change_cents,
                    provider_transaction_id=provider_transaction_id,
                    now=now,
                )
                transaction = _record_transaction(
                    session=session,
                    ticket=ticket,
                    payment=payment,
                    user_id=processed_by_user_id,
                    now=now,
                )
                _apply_session_totals(session, payment_method, amount_cents)
                release_seat_locks(trip_id, seat_id)
        except IntegrityError:
            raise SeatUnavailableError(f"Seat {seat_id} was sold by another terminal")

        return ticket, payment, transaction

    ticket, payment, transaction = run_with_retry(
        _op, attempts=current_app.config.get("SALE_RETRY_ATTEMPTS", 3)
    )

    notifications.publish(notifications.SEAT_SOLD, {
        "trip_id": trip_id,
        "seat_id": seat_id,
        "ticket_id": ticket.id,
    })
    notifications.publish(notifications.SESSION_TOTALS_CHANGED, {
        "session_id": session_id,
        "terminal_id": terminal_id,
        "total_sales_cents": transaction.session.total_sales_cents,
        "total_tickets": transaction.session.total_tickets,
    })
    return ticket, payment, transaction


def get_session_transactions(session_id: int) -> list[POSTransaction]:
    """All POS transactions of a session in processing order."""
    return db.session.query(POSTransaction).filter_by(
        session_id=session_id
    ).order_by(POSTransaction.created_at, POSTransaction.id).all()


# =============================================================================
# BULK SALE
# =============================================================================

BULK_SEAT_FIELDS = (
    "trip_id",
    "seat_id",
    "passenger_name",
    "destination_stop_id",
    "amount_cents",
    "boarding_stop_id",
    "passenger_phone",
    "passenger_email",
    "passenger_document_id",
    "passenger_document_type",
)


def process_bulk_sale(
    *,
    tickets: list[dict],
    payment_method: str,
    terminal_id: int,
    session_id: int,
    processed_by_user_id: int,
    received_amount_cents: int | None = None,
    holder_id: str | None = None,
    provider_transaction_id: str | None = None,
) -> dict:
    """
    Sell several seats to a group in one counter operation.

    Every seat is its own atomic sale. A seat that cannot be sold (taken by
    another terminal, locked by another holder) is reported in "failed" and
    does not undo the seats already sold. Every entry, and the cash tendered
    for the whole group, is validated before the first sale.

    Each cash payment records its own fare as received with no change; the
    group's change is returned once, for the seats actually sold.

    Args:
        tickets: One dict per seat with trip_id, seat_id, passenger_name,
            destination_stop_id, amount_cents and the optional passenger fields

    Returns:
        {"sold": [(ticket, payment, transaction), ...],
         "failed": [{"seat_id", "trip_id", "error", "status_code"}, ...],
         "received_amount_cents": int | None,
         "change_amount_cents": int}

    Raises:
        ValidationError / InsufficientPaymentError: Bad input, before any sale
    """
    if not tickets:
        raise ValidationError("tickets must be a non-empty list")

    max_seats = current_app.config.get("BULK_SALE_MAX_TICKETS", 60)
    if len(tickets) > max_seats:
        raise ValidationError(f"A bulk sale is limited to {max_seats} seats")

    seen = set()
    for entry in tickets:
        unknown = set(entry) - set(BULK_SEAT_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown ticket fields: {sorted(unknown)}")
        key = (entry.get("trip_id"), entry.get("seat_id"))
        if None in key:
            raise ValidationError("Each ticket needs trip_id and seat_id")
        if key in seen:
            raise ValidationError(f"Seat {key[1]} appears more than once")
        seen.add(key)

        _validate_inputs(
            passenger={
                "name": entry.get("passenger_name"),
                "document_type": entry.get("passenger_document_type"),
            },
            destination_stop_id=entry.get("destination_stop_id"),
            payment_method=payment_method,
            amount_cents=entry.get("amount_cents"),
            received_amount_cents=entry.get("amount_cents"),
        )

    total_cents = sum(entry["amount_cents"] for entry in tickets)
    if payment_method == METHOD_CASH:
        if received_amount_cents is None:
            raise InsufficientPaymentError("received_amount_cents is required for cash payments")
        if received_amount_cents < total_cents:
            raise InsufficientPaymentError(
                "Received amount is less than the sale amount",
                details={"amount_cents": total_cents, "received_amount_cents": received_amount_cents},
            )

    sold = []
    failed = []
    for entry in tickets:
        try:
            sold.append(process_sale(
                **entry,
                payment_method=payment_method,
                terminal_id=terminal_id,
                session_id=session_id,
                processed_by_user_id=processed_by_user_id,
                received_amount_cents=entry["amount_cents"] if payment_method == METHOD_CASH else None,
                holder_id=holder_id,
                provider_transaction_id=provider_transaction_id,
            ))
        except POSError as exc:
            failed.append({
                "trip_id": entry["trip_id"],
                "seat_id": entry["seat_id"],
                "error": str(exc),
                "status_code": exc.status_code,
            })

    change_cents = 0
    if payment_method == METHOD_CASH:
        change_cents = received_amount_cents - sum(payment.amount_cents for _, payment, _ in sold)

    return {
        "sold": sold,
        "failed": failed,
        "received_amount_cents": received_amount_cents if payment_method == METHOD_CASH else None,
        "change_amount_cents": change_cents,
    }
