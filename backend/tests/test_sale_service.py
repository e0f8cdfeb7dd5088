import pytest

from buspos.errors import (
    InsufficientPaymentError,
    NotFoundError,
    SeatUnavailableError,
    SessionClosedError,
    ValidationError,
)
from buspos.extensions import db
from buspos.models import Ticket, Payment, POSTransaction, SeatLock
from buspos.services import register_service, sale_service, seat_lock_service, ticket_service

from conftest import TRIP_ID, AGENT_ID


def _sale_kwargs(session, seat, **overrides):
    kwargs = dict(
        trip_id=TRIP_ID,
        seat_id=seat.id,
        passenger_name="Ana Pérez",
        destination_stop_id=3,
        payment_method="cash",
        amount_cents=1500,
        received_amount_cents=2000,
        terminal_id=session.terminal_id,
        session_id=session.id,
        processed_by_user_id=AGENT_ID,
    )
    kwargs.update(overrides)
    return kwargs


def test_cash_sale_creates_paid_ticket_and_updates_totals(open_session, seats):
    ticket, payment, transaction = sale_service.process_sale(**_sale_kwargs(open_session, seats[0]))

    assert ticket.status == "paid"
    assert ticket.price_cents == 1500
    assert ticket.itbms_cents == 105
    assert ticket.total_cents == 1605
    assert ticket.qr_code.startswith("TDP-")
    assert ticket.terminal_id == open_session.terminal_id

    assert payment.status == "completed"
    assert payment.amount_cents == 1500
    assert payment.itbms_cents == 105
    assert payment.total_amount_cents == 1605
    assert payment.received_amount_cents == 2000
    assert payment.change_amount_cents == 500

    assert transaction.session_id == open_session.id
    assert transaction.amount_cents == 1500

    session = register_service.get_session(open_session.id)
    assert session.total_tickets == 1
    assert session.total_sales_cents == 1500
    assert session.total_cash_sales_cents == 1500
    assert session.expected_cash_cents == 11500

    fetched = ticket_service.get_ticket(ticket.id)
    assert fetched.passenger_name == "Ana Pérez"
    assert ticket_service.get_ticket_by_qr(ticket.qr_code).id == ticket.id


def test_payment_methods_land_in_their_buckets(open_session, seats):
    sale_service.process_sale(**_sale_kwargs(open_session, seats[0], payment_method="card", amount_cents=2000))
    sale_service.process_sale(**_sale_kwargs(open_session, seats[1], payment_method="yappy", amount_cents=3000))

    session = register_service.get_session(open_session.id)
    assert session.total_card_sales_cents == 2000
    assert session.total_other_sales_cents == 3000
    assert session.total_cash_sales_cents == 0
    assert session.total_sales_cents == 5000
    assert session.expected_cash_cents == 10000

    payment = db.session.query(Payment).filter_by(payment_method="yappy").one()
    assert payment.received_amount_cents == 3000
    assert payment.change_amount_cents == 0


def test_insufficient_cash_writes_nothing(open_session, seats):
    with pytest.raises(InsufficientPaymentError):
        sale_service.process_sale(**_sale_kwargs(open_session, seats[0], received_amount_cents=1000))

    assert db.session.query(Ticket).count() == 0
    assert register_service.get_session(open_session.id).total_tickets == 0


@pytest.mark.parametrize("overrides", [
    {"passenger_name": "  "},
    {"payment_method": "cheque"},
    {"amount_cents": 0},
    {"destination_stop_id": None},
    {"passenger_document_type": "licencia"},
])
def test_invalid_input_is_rejected(open_session, seats, overrides):
    with pytest.raises(ValidationError):
        sale_service.process_sale(**_sale_kwargs(open_session, seats[0], **overrides))


def test_sold_seat_cannot_be_sold_again(open_session, seats):
    sale_service.process_sale(**_sale_kwargs(open_session, seats[0]))

    with pytest.raises(SeatUnavailableError):
        sale_service.process_sale(**_sale_kwargs(open_session, seats[0], passenger_name="Otro"))

    assert db.session.query(Ticket).filter_by(seat_id=seats[0].id).count() == 1
    assert register_service.get_session(open_session.id).total_tickets == 1


def test_seat_locked_by_other_holder_is_unavailable(open_session, seats):
    seat_lock_service.lock_seat(TRIP_ID, seats[0].id, "web-checkout-1")

    with pytest.raises(SeatUnavailableError):
        sale_service.process_sale(**_sale_kwargs(open_session, seats[0]))


def test_sale_releases_own_lock(open_session, seats):
    seat_lock_service.lock_seat(TRIP_ID, seats[0].id, "agent-7")

    sale_service.process_sale(**_sale_kwargs(open_session, seats[0], holder_id="agent-7"))

    assert db.session.query(SeatLock).count() == 0
    assert seat_lock_service.get_seat_availability(TRIP_ID)[0]["status"] == seat_lock_service.SEAT_SOLD


def test_closed_or_foreign_session_is_rejected(open_session, seats):
    other = register_service.create_terminal("DAVID-02", "Terminal David, Ventanilla 2")
    with pytest.raises(SessionClosedError):
        sale_service.process_sale(**_sale_kwargs(open_session, seats[0], terminal_id=other.id))

    register_service.close_cash_register(open_session.terminal_id, AGENT_ID, "Z", 10000)
    with pytest.raises(SessionClosedError):
        sale_service.process_sale(**_sale_kwargs(open_session, seats[0]))

    with pytest.raises(NotFoundError):
        sale_service.process_sale(**_sale_kwargs(open_session, seats[0], session_id=9999))


def test_failure_mid_sale_rolls_back_everything(open_session, seats, monkeypatch):
    def _boom(**kwargs):
        raise RuntimeError("printer spooler crashed")

    monkeypatch.setattr(sale_service, "_record_transaction", _boom)

    with pytest.raises(RuntimeError):
        sale_service.process_sale(**_sale_kwargs(open_session, seats[0]))

    assert db.session.query(Ticket).count() == 0
    assert db.session.query(Payment).count() == 0
    assert db.session.query(POSTransaction).count() == 0

    session = register_service.get_session(open_session.id)
    assert session.total_tickets == 0
    assert session.total_sales_cents == 0
    assert seat_lock_service.get_seat_availability(TRIP_ID)[0]["status"] == seat_lock_service.SEAT_AVAILABLE


def test_events_published_after_commit(open_session, seats):
    from buspos.extensions import notifier
    from buspos import notifications

    received = []
    notifier.subscribe(notifications.WILDCARD, lambda topic, payload: received.append((topic, payload)))

    ticket, _, _ = sale_service.process_sale(**_sale_kwargs(open_session, seats[0]))

    topics = [topic for topic, _ in received]
    assert topics == [notifications.SEAT_SOLD, notifications.SESSION_TOTALS_CHANGED]
    assert received[0][1]["ticket_id"] == ticket.id
    assert received[1][1]["total_tickets"] == 1


def test_calculate_itbms_adds_tax_on_top():
    assert sale_service.calculate_itbms(1000, 700) == 70
    assert sale_service.calculate_itbms(1500, 700) == 105
    # 74.9 -> 75 and 0.5 -> 1
    assert sale_service.calculate_itbms(1070, 700) == 75
    assert sale_service.calculate_itbms(50, 100) == 1
    assert sale_service.calculate_itbms(1500, 0) == 0


def test_ticket_status_moves_forward_only(open_session, seats):
    from buspos.errors import OperationInvalidError

    ticket, _, _ = sale_service.process_sale(**_sale_kwargs(open_session, seats[0]))

    boarded = ticket_service.transition_ticket(ticket.id, "boarded")
    assert boarded.status == "boarded"

    with pytest.raises(OperationInvalidError):
        ticket_service.transition_ticket(ticket.id, "paid")
    with pytest.raises(ValidationError):
        ticket_service.transition_ticket(ticket.id, "lost")


def _group(seats_to_sell, amount_cents=1500):
    return [
        {
            "trip_id": TRIP_ID,
            "seat_id": seat.id,
            "passenger_name": f"Pasajero {n}",
            "destination_stop_id": 3,
            "amount_cents": amount_cents,
            "passenger_document_id": f"8-100-{n}",
            "passenger_document_type": "cedula",
        }
        for n, seat in enumerate(seats_to_sell, start=1)
    ]


def test_bulk_sale_sells_each_seat_and_returns_group_change(open_session, seats):
    result = sale_service.process_bulk_sale(
        tickets=_group(seats[:3]),
        payment_method="cash",
        received_amount_cents=5000,
        terminal_id=open_session.terminal_id,
        session_id=open_session.id,
        processed_by_user_id=AGENT_ID,
    )

    assert result["failed"] == []
    assert len(result["sold"]) == 3
    assert result["change_amount_cents"] == 500
    for ticket, payment, _ in result["sold"]:
        assert ticket.status == "paid"
        assert ticket.total_cents == 1605
        assert payment.received_amount_cents == 1500
        assert payment.change_amount_cents == 0

    session = register_service.get_session(open_session.id)
    assert session.total_tickets == 3
    assert session.total_cash_sales_cents == 4500
    assert session.expected_cash_cents == 14500


def test_bulk_sale_keeps_sold_seats_when_one_fails(open_session, seats):
    seat_lock_service.lock_seat(TRIP_ID, seats[1].id, "agent-99")

    result = sale_service.process_bulk_sale(
        tickets=_group(seats[:3]),
        payment_method="cash",
        received_amount_cents=5000,
        terminal_id=open_session.terminal_id,
        session_id=open_session.id,
        processed_by_user_id=AGENT_ID,
    )

    assert [t.seat_id for t, _, _ in result["sold"]] == [seats[0].id, seats[2].id]
    assert len(result["failed"]) == 1
    assert result["failed"][0]["seat_id"] == seats[1].id
    assert result["failed"][0]["status_code"] == 409
    # Cash for the unsold seat goes back with the change
    assert result["change_amount_cents"] == 2000

    assert db.session.query(Ticket).filter_by(seat_id=seats[1].id).count() == 0
    session = register_service.get_session(open_session.id)
    assert session.total_tickets == 2
    assert session.total_sales_cents == 3000


def test_bulk_sale_validates_whole_group_before_selling(open_session, seats):
    common = dict(
        payment_method="cash",
        terminal_id=open_session.terminal_id,
        session_id=open_session.id,
        processed_by_user_id=AGENT_ID,
    )

    with pytest.raises(InsufficientPaymentError):
        sale_service.process_bulk_sale(tickets=_group(seats[:3]), received_amount_cents=4000, **common)

    with pytest.raises(ValidationError):
        sale_service.process_bulk_sale(tickets=_group([seats[0], seats[0]]), received_amount_cents=5000, **common)

    bad_last = _group(seats[:2])
    bad_last[1]["passenger_name"] = "  "
    with pytest.raises(ValidationError):
        sale_service.process_bulk_sale(tickets=bad_last, received_amount_cents=5000, **common)

    with pytest.raises(ValidationError):
        sale_service.process_bulk_sale(tickets=[], received_amount_cents=5000, **common)

    assert db.session.query(Ticket).count() == 0
    assert register_service.get_session(open_session.id).total_tickets == 0
