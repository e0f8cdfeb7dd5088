from datetime import timedelta

import pytest

from buspos.errors import NotFoundError, OperationInvalidError, ValidationError
from buspos.services import register_service, reporting_service, sale_service
from buspos.time_utils import utcnow, to_utc_z

from conftest import TRIP_ID, AGENT_ID


def _sell(session, seat, method, amount_cents):
    return sale_service.process_sale(
        trip_id=TRIP_ID,
        seat_id=seat.id,
        passenger_name="Pasajero",
        destination_stop_id=2,
        payment_method=method,
        amount_cents=amount_cents,
        received_amount_cents=amount_cents if method == "cash" else None,
        terminal_id=session.terminal_id,
        session_id=session.id,
        processed_by_user_id=AGENT_ID,
    )


def test_session_report_summarizes_sales(open_session, seats):
    _sell(open_session, seats[0], "cash", 1500)
    _sell(open_session, seats[1], "cash", 1000)
    _sell(open_session, seats[2], "card", 2000)
    _sell(open_session, seats[3], "yappy", 500)

    report = reporting_service.get_session_report(open_session.id)
    summary = report["summary"]

    assert len(report["transactions"]) == 4
    assert report["closure_type"] is None
    assert summary["total_sales_cents"] == 5000
    assert summary["total_cash_sales_cents"] == 2500
    assert summary["total_card_sales_cents"] == 2000
    assert summary["total_other_sales_cents"] == 500
    assert summary["total_tickets"] == 4
    assert summary["by_payment_method"] == {"cash": 2500, "card": 2000, "yappy": 500}
    assert summary["expected_cash_cents"] == 12500
    assert summary["actual_cash_cents"] is None


def test_closure_report_requires_matching_closed_session(open_session, seats):
    _sell(open_session, seats[0], "cash", 1500)

    with pytest.raises(OperationInvalidError):
        reporting_service.generate_closure_report(open_session.id, "Z")

    register_service.close_cash_register(open_session.terminal_id, AGENT_ID, "Z", 11400)

    with pytest.raises(OperationInvalidError):
        reporting_service.generate_closure_report(open_session.id, "X")
    with pytest.raises(ValidationError):
        reporting_service.generate_closure_report(open_session.id, "Q")
    with pytest.raises(NotFoundError):
        reporting_service.generate_closure_report(9999, "Z")

    report = reporting_service.generate_closure_report(open_session.id, "Z")
    assert report["closure_type"] == "Z"
    assert report["summary"]["actual_cash_cents"] == 11400
    assert report["summary"]["difference_cents"] == -100


def test_terminal_report_aggregates_sessions_in_range(open_session, seats):
    terminal_id = open_session.terminal_id
    _sell(open_session, seats[0], "cash", 1500)
    register_service.close_cash_register(terminal_id, AGENT_ID, "X", 11600)

    _, second = register_service.open_cash_register(terminal_id, AGENT_ID, 11600)
    _sell(second, seats[1], "card", 2000)

    report = reporting_service.get_terminal_report(terminal_id)

    assert report["total_sessions"] == 2
    assert report["total_sales_cents"] == 3500
    assert report["total_tickets"] == 2
    assert report["by_payment_method"] == {"cash": 1500, "card": 2000}
    # Open sessions have no difference yet
    assert report["total_difference_cents"] == 100

    future = utcnow() + timedelta(days=1)
    empty = reporting_service.get_terminal_report(terminal_id, start=to_utc_z(future))
    assert empty["total_sessions"] == 0
    assert empty["by_payment_method"] == {}


def test_terminal_report_rejects_inverted_range(terminal):
    now = utcnow()
    with pytest.raises(ValidationError):
        reporting_service.get_terminal_report(terminal.id, start=now, end=now - timedelta(hours=1))
    with pytest.raises(NotFoundError):
        reporting_service.get_terminal_report(9999)


def test_terminal_report_date_only_end_covers_whole_day(open_session, seats):
    _sell(open_session, seats[0], "cash", 1500)
    today = open_session.opened_at.date().isoformat()

    report = reporting_service.get_terminal_report(open_session.terminal_id, start=today, end=today)

    assert report["total_sessions"] == 1
    assert report["total_sales_cents"] == 1500
    assert report["end"] == f"{today}T23:59:59Z"
