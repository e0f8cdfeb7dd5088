"""
Pytest fixtures for buspos backend tests.

Provides test database setup, terminal/seat fixtures, and test client.
"""

import pytest

from buspos import create_app
from buspos.extensions import db, notifier
from buspos.services import register_service, seat_lock_service

TRIP_ID = 501
AGENT_ID = 7


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        notifier.clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        notifier.clear()


@pytest.fixture(scope='function')
def terminal(db_session):
    """A closed, active terminal with an empty drawer."""
    return register_service.create_terminal("DAVID-01", "Terminal David, Ventanilla 1")


@pytest.fixture(scope='function')
def open_session(terminal):
    """Terminal opened with a $100.00 float."""
    _, session = register_service.open_cash_register(terminal.id, AGENT_ID, 10000)
    return session


@pytest.fixture(scope='function')
def seats(db_session):
    """Two rows of four seats on TRIP_ID."""
    return seat_lock_service.create_trip_seats(TRIP_ID, rows=2, columns=4)


def actor_headers(actor_id: int = AGENT_ID) -> dict:
    """Helper to create the acting-user header."""
    return {'X-Actor-Id': str(actor_id)}
