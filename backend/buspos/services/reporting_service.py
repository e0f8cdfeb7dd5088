# Overview: Service-layer operations for reporting; read-only aggregation over cash sessions and POS transactions.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from buspos.extensions import db
from buspos.models import POSCashSession, POSTerminal, POSTransaction
from buspos.models.registers import CLOSURE_TYPES
from buspos.errors import NotFoundError, OperationInvalidError, ValidationError
from buspos.time_utils import parse_iso_datetime, utcnow, to_utc_z


def _is_date_only(value) -> bool:
    return isinstance(value, str) and len(value.strip()) == 10 and "T" not in value


def _parse_range(start: str | datetime | None, end: str | datetime | None) -> tuple[datetime | None, datetime | None]:
    start_dt = parse_iso_datetime(start)
    end_dt = parse_iso_datetime(end)
    # A bare date as the upper bound covers that whole day.
    if end_dt and _is_date_only(end):
        end_dt = end_dt + timedelta(days=1) - timedelta(microseconds=1)
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError("start must be before end")
    return start_dt, end_dt


def _session_transactions(session_id: int) -> list[POSTransaction]:
    return db.session.query(POSTransaction).filter_by(
        session_id=session_id
    ).order_by(POSTransaction.created_at, POSTransaction.id).all()


def _by_payment_method(transactions) -> dict[str, int]:
    totals: dict[str, int] = {}
    for tx in transactions:
        totals[tx.payment_method] = totals.get(tx.payment_method, 0) + tx.amount_cents
    return totals


def _build_report(session: POSCashSession) -> dict:
    transactions = _session_transactions(session.id)

    return {
        "session": session.to_dict(),
        "transactions": [tx.to_dict() for tx in transactions],
        "summary": {
            "total_sales_cents": session.total_sales_cents,
            "total_cash_sales_cents": session.total_cash_sales_cents,
            "total_card_sales_cents": session.total_card_sales_cents,
            "total_other_sales_cents": session.total_other_sales_cents,
            "total_tickets": session.total_tickets,
            "by_payment_method": _by_payment_method(transactions),
            "initial_cash_cents": session.initial_cash_cents,
            "expected_cash_cents": session.calculate_expected_cash(),
            "actual_cash_cents": session.actual_cash_cents,
            "difference_cents": session.difference_cents,
        },
        "closure_type": session.closure_type,
        "generated_at": to_utc_z(utcnow()),
    }


def get_session_report(session_id: int) -> dict:
    """Closure/summary report for one session, open or closed."""
    session = db.session.get(POSCashSession, session_id)
    if not session:
        raise NotFoundError(f"Session {session_id} not found")
    return _build_report(session)


def generate_closure_report(session_id: int, closure_type: str) -> dict:
    """
    X or Z closure printout.

    The session must already be closed with the requested closure type.
    """
    if closure_type not in CLOSURE_TYPES:
        raise ValidationError(f"closure_type must be one of {list(CLOSURE_TYPES)}")

    session = db.session.get(POSCashSession, session_id)
    if not session:
        raise NotFoundError(f"Session {session_id} not found")

    if session.is_open or session.closure_type != closure_type:
        raise OperationInvalidError(f"Session must be closed with type {closure_type}")

    return _build_report(session)


def get_terminal_report(
    terminal_id: int,
    start: str | datetime | None = None,
    end: str | datetime | None = None,
) -> dict:
    """
    Totals across the sessions a terminal opened within [start, end].
    """
    start_dt, end_dt = _parse_range(start, end)

    terminal = db.session.get(POSTerminal, terminal_id)
    if not terminal:
        raise NotFoundError(f"Terminal {terminal_id} not found")

    query = db.session.query(POSCashSession).filter(POSCashSession.terminal_id == terminal_id)
    if start_dt:
        query = query.filter(POSCashSession.opened_at >= start_dt)
    if end_dt:
        query = query.filter(POSCashSession.opened_at <= end_dt)
    sessions = query.order_by(POSCashSession.opened_at).all()

    session_ids = [s.id for s in sessions]
    by_method: dict[str, int] = {}
    if session_ids:
        rows = db.session.query(
            POSTransaction.payment_method,
            func.coalesce(func.sum(POSTransaction.amount_cents), 0),
        ).filter(
            POSTransaction.session_id.in_(session_ids)
        ).group_by(POSTransaction.payment_method).all()
        by_method = {method: int(total) for method, total in rows}

    closed = [s for s in sessions if s.difference_cents is not None]

    return {
        "terminal": terminal.to_dict(),
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "sessions": [s.to_dict() for s in sessions],
        "total_sessions": len(sessions),
        "total_sales_cents": sum(s.total_sales_cents for s in sessions),
        "total_cash_sales_cents": sum(s.total_cash_sales_cents for s in sessions),
        "total_card_sales_cents": sum(s.total_card_sales_cents for s in sessions),
        "total_other_sales_cents": sum(s.total_other_sales_cents for s in sessions),
        "total_tickets": sum(s.total_tickets for s in sessions),
        "by_payment_method": by_method,
        "total_difference_cents": sum(s.difference_cents for s in closed),
    }
