# Overview: Service-layer operations for tickets; lookups and forward-only status changes.

from __future__ import annotations

from ..extensions import db
from ..models import Ticket
from ..models.tickets import (
    TICKET_STATUS_PENDING,
    TICKET_STATUS_PAID,
    TICKET_STATUS_BOARDED,
    TICKET_STATUS_COMPLETED,
    TICKET_STATUS_CANCELLED,
    TICKET_STATUS_REFUNDED,
)
from ..errors import NotFoundError, OperationInvalidError, ValidationError
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry

# Allowed moves; cancelled and refunded are terminal
TICKET_TRANSITIONS = {
    TICKET_STATUS_PENDING: {TICKET_STATUS_PAID, TICKET_STATUS_CANCELLED},
    TICKET_STATUS_PAID: {TICKET_STATUS_BOARDED, TICKET_STATUS_CANCELLED, TICKET_STATUS_REFUNDED},
    TICKET_STATUS_BOARDED: {TICKET_STATUS_COMPLETED},
    TICKET_STATUS_COMPLETED: set(),
    TICKET_STATUS_CANCELLED: set(),
    TICKET_STATUS_REFUNDED: set(),
}


def get_ticket(ticket_id: int) -> Ticket:
    ticket = db.session.get(Ticket, ticket_id)
    if not ticket:
        raise NotFoundError(f"Ticket {ticket_id} not found")
    return ticket


def get_ticket_by_qr(qr_code: str) -> Ticket:
    ticket = db.session.query(Ticket).filter_by(qr_code=qr_code).first()
    if not ticket:
        raise NotFoundError("Ticket not found")
    return ticket


def can_transition(current: str, new_status: str) -> bool:
    return new_status in TICKET_TRANSITIONS.get(current, set())


def transition_ticket(ticket_id: int, new_status: str) -> Ticket:
    """
    Move a ticket forward (e.g. paid -> boarded when scanned at the door).

    Raises:
        ValidationError: Unknown status
        NotFoundError: Ticket absent
        OperationInvalidError: Backward or otherwise disallowed move
    """
    if new_status not in TICKET_TRANSITIONS:
        raise ValidationError(f"Unknown ticket status: {new_status}")

    def _op():
        ticket = lock_for_update(db.session.query(Ticket).filter_by(id=ticket_id)).first()
        if not ticket:
            raise NotFoundError(f"Ticket {ticket_id} not found")

        if not can_transition(ticket.status, new_status):
            raise OperationInvalidError(f"Cannot move ticket from {ticket.status} to {new_status}")

        ticket.status = new_status
        ticket.updated_at = utcnow()
        db.session.commit()
        return ticket

    return run_with_retry(_op)
