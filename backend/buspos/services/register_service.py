"""
Cash Register Service: terminal open/close lifecycle and reconciliation.

WHY: Each terminal's drawer is accountable per session. Opening records the
starting float; closing compares the counted drawer with what the sales
say should be there.

DESIGN PRINCIPLES:
- One open session per terminal (partial unique index, not just a check)
- Preconditions fail fast with typed errors, before any write
- Cash discrepancies are recorded, never raised: a field agent must not be
  blocked mid-shift by a counting error
- Sessions are frozen once closed; X and Z closures both require a fresh
  open before further sales
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import POSTerminal, POSCashSession, CashCountBreakdown
from ..models.registers import CLOSURE_TYPES, CLOSURE_Z, COUNT_TYPE_INITIAL, COUNT_TYPE_CLOSING
from ..errors import NotFoundError, OperationInvalidError, TerminalNotOpenError, ValidationError
from .. import notifications
from ..time_utils import utcnow
from . import cash_count_service
from .concurrency import lock_for_update, run_with_retry


# =============================================================================
# TERMINAL MANAGEMENT
# =============================================================================

def create_terminal(
    terminal_identifier: str,
    physical_location: str,
    location_code: str | None = None,
    assigned_user_id: int | None = None,
) -> POSTerminal:
    """Create a new POS terminal (closed, active, empty drawer)."""
    if not terminal_identifier or not physical_location:
        raise ValidationError("terminal_identifier and physical_location required")

    existing = db.session.query(POSTerminal).filter_by(
        terminal_identifier=terminal_identifier
    ).first()
    if existing:
        raise OperationInvalidError(f"Terminal '{terminal_identifier}' already exists")

    terminal = POSTerminal(
        terminal_identifier=terminal_identifier,
        physical_location=physical_location,
        location_code=location_code,
        assigned_user_id=assigned_user_id,
        initial_cash_cents=0,
        current_cash_cents=0,
        is_open=False,
        is_active=True,
    )

    db.session.add(terminal)
    db.session.commit()

    return terminal


def get_terminal(terminal_id: int) -> POSTerminal:
    terminal = db.session.get(POSTerminal, terminal_id)
    if not terminal:
        raise NotFoundError(f"Terminal {terminal_id} not found")
    return terminal


def get_active_session(terminal_id: int) -> POSCashSession | None:
    """Get the currently open session for a terminal, if any."""
    return db.session.query(POSCashSession).filter(
        POSCashSession.terminal_id == terminal_id,
        POSCashSession.closed_at.is_(None),
    ).first()


def get_session(session_id: int) -> POSCashSession:
    session = db.session.get(POSCashSession, session_id)
    if not session:
        raise NotFoundError(f"Session {session_id} not found")
    return session


SESSION_STATUSES = ("open", "closed")


def list_sessions(
    terminal_id: int | None = None,
    *,
    status: str | None = None,
    limit: int = 50,
) -> list[POSCashSession]:
    """Cash sessions newest first, optionally filtered by terminal and open/closed status."""
    if status is not None and status not in SESSION_STATUSES:
        raise ValidationError(f"status must be one of {list(SESSION_STATUSES)}")

    query = db.session.query(POSCashSession)
    if terminal_id is not None:
        query = query.filter_by(terminal_id=terminal_id)
    if status == "open":
        query = query.filter(POSCashSession.closed_at.is_(None))
    elif status == "closed":
        query = query.filter(POSCashSession.closed_at.isnot(None))
    return query.order_by(POSCashSession.opened_at.desc()).limit(limit).all()


# =============================================================================
# INTERNAL HELPERS
# =============================================================================

def _tolerance():
    return cash_count_service.from_cents(current_app.config.get("CASH_COUNT_TOLERANCE_CENTS", 1))


def _append_note(existing: str | None, addition: str) -> str:
    if not existing:
        return addition
    return f"{existing}\n{addition}"


def _save_breakdown(session_id: int, rows: list[dict], count_type: str) -> list[CashCountBreakdown]:
    entries = []
    for row in rows:
        entry = CashCountBreakdown(
            session_id=session_id,
            denomination_cents=row["denomination_cents"],
            count=row["count"],
            kind=row.get("kind"),
            count_type=count_type,
        )
        db.session.add(entry)
        entries.append(entry)
    return entries


# =============================================================================
# OPEN / CLOSE
# =============================================================================

def open_cash_register(
    terminal_id: int,
    user_id: int,
    initial_cash_cents: int,
    cash_breakdown: list | None = None,
    manual_total_cents: int | None = None,
    discrepancy_notes: str | None = None,
) -> tuple[POSTerminal, POSCashSession]:
    """
    Open a terminal's cash register and start a new cash session.

    A counted-vs-declared mismatch in the opening float is recorded on the
    session (count_discrepancy_cents, discrepancy_notes), never blocking.

    Raises:
        ValidationError: Negative cash or malformed breakdown
        NotFoundError: Terminal does not exist
        OperationInvalidError: Terminal inactive or already open
    """
    if initial_cash_cents is None or initial_cash_cents < 0:
        raise ValidationError("initial_cash_cents cannot be negative")
    if manual_total_cents is not None and manual_total_cents < 0:
        raise ValidationError("manual_total_cents cannot be negative")

    rows = cash_count_service.normalize_breakdown(cash_breakdown) if cash_breakdown else []

    def _op():
        terminal = lock_for_update(db.session.query(POSTerminal).filter_by(id=terminal_id)).first()
        if not terminal:
            raise NotFoundError(f"Terminal {terminal_id} not found")

        if not terminal.is_active:
            raise OperationInvalidError("Cannot open an inactive terminal")

        if terminal.is_open:
            raise OperationInvalidError("Cash register is already open")

        existing = get_active_session(terminal_id)
        if existing:
            raise OperationInvalidError(f"Terminal already has an active session (session {existing.id})")

        now = utcnow()
        notes = discrepancy_notes or None
        counted_cents = None
        count_discrepancy = 0

        if rows:
            counted_cents = cash_count_service.calculate_total_cents(rows)
            if manual_total_cents is not None:
                result = cash_count_service.validate(
                    cash_count_service.from_cents(counted_cents),
                    cash_count_service.from_cents(manual_total_cents),
                    _tolerance(),
                )
                count_discrepancy = abs(counted_cents - manual_total_cents)
                if not result.is_valid:
                    notes = _append_note(notes, f"Opening count: {result.message}")

        session = POSCashSession(
            terminal_id=terminal_id,
            opened_by_user_id=user_id,
            opened_at=now,
            initial_cash_cents=initial_cash_cents,
            expected_cash_cents=initial_cash_cents,
            total_sales_cents=0,
            total_cash_sales_cents=0,
            total_card_sales_cents=0,
            total_other_sales_cents=0,
            total_tickets=0,
            counted_total_cents=counted_cents,
            manual_total_cents=manual_total_cents,
            count_discrepancy_cents=count_discrepancy,
            discrepancy_notes=notes,
        )
        db.session.add(session)
        db.session.flush()

        _save_breakdown(session.id, rows, COUNT_TYPE_INITIAL)

        terminal.is_open = True
        terminal.initial_cash_cents = initial_cash_cents
        terminal.current_cash_cents = initial_cash_cents
        terminal.last_opened_at = now
        terminal.opened_by_user_id = user_id

        try:
            db.session.commit()
        except IntegrityError:
            # Lost the race against a concurrent open
            db.session.rollback()
            raise OperationInvalidError("Terminal already has an active session")

        return terminal, session

    terminal, session = run_with_retry(_op)

    notifications.publish(notifications.SESSION_OPENED, {
        "terminal_id": terminal.id,
        "session_id": session.id,
        "opened_by_user_id": user_id,
        "initial_cash_cents": session.initial_cash_cents,
    })
    return terminal, session


def close_cash_register(
    terminal_id: int,
    user_id: int,
    closure_type: str,
    actual_cash_cents: int,
    cash_breakdown: list | None = None,
    manual_total_cents: int | None = None,
    notes: str | None = None,
    discrepancy_notes: str | None = None,
) -> tuple[POSTerminal, POSCashSession]:
    """
    Close a terminal's active session with an X or Z closure.

    difference_cents = actual - (initial + cash sales) is always recorded;
    any magnitude is accepted. Breakdown mismatches are appended to
    discrepancy_notes for the caller to act on.

    X: interim close, totals frozen, terminal closed until a fresh open.
    Z: end-of-period close; the counted cash is carried forward as the
    terminal's current_cash_cents.

    Raises:
        ValidationError: Negative cash, bad closure type, malformed breakdown
        NotFoundError: Terminal does not exist
        TerminalNotOpenError: Terminal has no open session
    """
    if closure_type not in CLOSURE_TYPES:
        raise ValidationError(f"closure_type must be one of {list(CLOSURE_TYPES)}")
    if actual_cash_cents is None or actual_cash_cents < 0:
        raise ValidationError("actual_cash_cents cannot be negative")
    if manual_total_cents is not None and manual_total_cents < 0:
        raise ValidationError("manual_total_cents cannot be negative")

    rows = cash_count_service.normalize_breakdown(cash_breakdown) if cash_breakdown else []

    def _op():
        terminal = lock_for_update(db.session.query(POSTerminal).filter_by(id=terminal_id)).first()
        if not terminal:
            raise NotFoundError(f"Terminal {terminal_id} not found")

        if not terminal.is_open:
            raise TerminalNotOpenError("Cash register is not open")

        session = lock_for_update(db.session.query(POSCashSession).filter(
            POSCashSession.terminal_id == terminal_id,
            POSCashSession.closed_at.is_(None),
        )).first()
        if not session:
            raise TerminalNotOpenError("No active session found")

        now = utcnow()
        expected_cash = session.calculate_expected_cash()
        difference = actual_cash_cents - expected_cash
        merged_notes = session.discrepancy_notes
        if discrepancy_notes:
            merged_notes = _append_note(merged_notes, discrepancy_notes)

        if rows:
            counted_cents = cash_count_service.calculate_total_cents(rows)
            counted = cash_count_service.from_cents(counted_cents)
            expected = cash_count_service.from_cents(expected_cash)
            session.counted_total_cents = counted_cents

            if manual_total_cents is not None:
                result = cash_count_service.validate_for_closing(
                    counted,
                    cash_count_service.from_cents(manual_total_cents),
                    expected,
                    _tolerance(),
                )
                session.count_discrepancy_cents = abs(counted_cents - manual_total_cents)
                for label, mismatch in result.mismatches():
                    merged_notes = _append_note(merged_notes, f"Closing count ({label}): {mismatch.message}")
            else:
                result = cash_count_service.validate(
                    counted,
                    cash_count_service.from_cents(actual_cash_cents),
                    _tolerance(),
                )
                session.count_discrepancy_cents = abs(counted_cents - actual_cash_cents)
                if not result.is_valid:
                    merged_notes = _append_note(merged_notes, f"Closing count (counted vs actual): {result.message}")

            _save_breakdown(session.id, rows, COUNT_TYPE_CLOSING)

        if manual_total_cents is not None:
            session.manual_total_cents = manual_total_cents

        session.closed_at = now
        session.closed_by_user_id = user_id
        session.closure_type = closure_type
        session.actual_cash_cents = actual_cash_cents
        session.expected_cash_cents = expected_cash
        session.difference_cents = difference
        session.notes = notes
        session.discrepancy_notes = merged_notes

        terminal.is_open = False
        terminal.last_closed_at = now
        if closure_type == CLOSURE_Z:
            terminal.current_cash_cents = actual_cash_cents

        db.session.commit()
        return terminal, session

    terminal, session = run_with_retry(_op)

    notifications.publish(notifications.SESSION_CLOSED, {
        "terminal_id": terminal.id,
        "session_id": session.id,
        "closure_type": session.closure_type,
        "difference_cents": session.difference_cents,
    })
    return terminal, session


def get_session_report(session_id: int) -> dict:
    """Closure report for a session (delegates to the reporting service)."""
    from .reporting_service import get_session_report as _build
    return _build(session_id)
