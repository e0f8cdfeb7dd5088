from buspos import notifications
from buspos.extensions import notifier
from buspos.services import register_service, seat_lock_service

from conftest import TRIP_ID, AGENT_ID


def test_subscribe_and_unsubscribe(db_session):
    received = []
    unsubscribe = notifier.subscribe(notifications.SEAT_LOCKED, lambda topic, payload: received.append(payload))

    assert notifications.publish(notifications.SEAT_LOCKED, {"seat_id": 1}) == 1
    unsubscribe()
    assert notifications.publish(notifications.SEAT_LOCKED, {"seat_id": 2}) == 0

    assert received == [{"seat_id": 1}]


def test_failing_handler_is_logged_and_skipped(db_session, caplog):
    received = []

    def _broken(topic, payload):
        raise RuntimeError("socket closed")

    notifier.subscribe(notifications.SESSION_OPENED, _broken)
    notifier.subscribe(notifications.SESSION_OPENED, lambda topic, payload: received.append(topic))

    assert notifications.publish(notifications.SESSION_OPENED, {}) == 1
    assert received == [notifications.SESSION_OPENED]
    assert "Change handler failed" in caplog.text


def test_lock_events_reach_subscribers(seats):
    events = []
    notifier.subscribe(notifications.WILDCARD, lambda topic, payload: events.append((topic, payload)))

    seat_lock_service.lock_seat(TRIP_ID, seats[0].id, "agentA")
    seat_lock_service.unlock_seat(TRIP_ID, seats[0].id, "agentA")
    # Nothing to release: no event
    seat_lock_service.unlock_seat(TRIP_ID, seats[0].id, "agentA")

    assert [topic for topic, _ in events] == [notifications.SEAT_LOCKED, notifications.SEAT_UNLOCKED]
    assert events[0][1]["holder_id"] == "agentA"
    assert events[0][1]["expires_at"].endswith("Z")


def test_session_events(terminal):
    events = []
    notifier.subscribe(notifications.WILDCARD, lambda topic, payload: events.append((topic, payload)))

    register_service.open_cash_register(terminal.id, AGENT_ID, 5000)
    register_service.close_cash_register(terminal.id, AGENT_ID, "Z", 5100)

    assert [topic for topic, _ in events] == [notifications.SESSION_OPENED, notifications.SESSION_CLOSED]
    assert events[1][1]["difference_cents"] == 100
    assert events[1][1]["closure_type"] == "Z"
