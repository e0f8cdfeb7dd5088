from __future__ import annotations

from ..extensions import db
from buspos.time_utils import to_utc_z

CLOSURE_X = "X"
CLOSURE_Z = "Z"
CLOSURE_TYPES = (CLOSURE_X, CLOSURE_Z)

COUNT_TYPE_INITIAL = "initial"
COUNT_TYPE_CLOSING = "closing"


class POSTerminal(db.Model):
    """
    Physical point-of-sale terminal at a bus station.

    WHY: Every sale and every cash session is attributed to the device and
    drawer it happened on. Terminals are never deleted; inactive terminals
    cannot be opened.
    """
    __tablename__ = "pos_terminals"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable identifier (e.g., "DAVID-01")
    terminal_identifier = db.Column(db.String(64), nullable=False, unique=True)
    physical_location = db.Column(db.String(128), nullable=False)
    location_code = db.Column(db.String(32), nullable=True)
    assigned_user_id = db.Column(db.Integer, nullable=True)

    # Drawer (all amounts in cents)
    initial_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    current_cash_cents = db.Column(db.Integer, nullable=False, default=0)

    is_open = db.Column(db.Boolean, nullable=False, default=False, index=True)
    last_opened_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    opened_by_user_id = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "terminal_identifier": self.terminal_identifier,
            "physical_location": self.physical_location,
            "location_code": self.location_code,
            "assigned_user_id": self.assigned_user_id,
            "initial_cash_cents": self.initial_cash_cents,
            "current_cash_cents": self.current_cash_cents,
            "is_open": self.is_open,
            "last_opened_at": to_utc_z(self.last_opened_at) if self.last_opened_at else None,
            "last_closed_at": to_utc_z(self.last_closed_at) if self.last_closed_at else None,
            "opened_by_user_id": self.opened_by_user_id,
            "is_active": self.is_active,
            "version_id": self.version_id,
        }


class POSCashSession(db.Model):
    """
    Cash session: the accounting period between a terminal's open and close.

    LIFECYCLE:
    - OPEN (closed_at is NULL): accumulates sale totals
    - CLOSED: X or Z closure, totals frozen, difference recorded

    Totals are maintained incrementally by each sale inside the sale's
    transaction; they are the source of truth, not a cache of the
    transactions table.
    """
    __tablename__ = "pos_cash_sessions"
    __table_args__ = (
        # At most one open session per terminal
        db.Index(
            "uq_pos_cash_sessions_open_terminal",
            "terminal_id",
            unique=True,
            sqlite_where=db.text("closed_at IS NULL"),
            postgresql_where=db.text("closed_at IS NULL"),
        ),
        db.Index("ix_pos_cash_sessions_terminal_opened", "terminal_id", "opened_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    terminal_id = db.Column(db.Integer, db.ForeignKey("pos_terminals.id"), nullable=False, index=True)
    opened_by_user_id = db.Column(db.Integer, nullable=False)
    closed_by_user_id = db.Column(db.Integer, nullable=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closure_type = db.Column(db.String(1), nullable=True)  # X, Z

    # Cash reconciliation (all amounts in cents)
    initial_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_cash_cents = db.Column(db.Integer, nullable=False, default=0)  # initial + cash sales
    actual_cash_cents = db.Column(db.Integer, nullable=True)  # Set when closing
    difference_cents = db.Column(db.Integer, nullable=True)  # actual - expected

    # Running totals
    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cash_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_card_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_other_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_tickets = db.Column(db.Integer, nullable=False, default=0)

    # Denomination count vs declared total
    counted_total_cents = db.Column(db.Integer, nullable=True)
    manual_total_cents = db.Column(db.Integer, nullable=True)
    count_discrepancy_cents = db.Column(db.Integer, nullable=False, default=0)
    discrepancy_notes = db.Column(db.Text, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    terminal = db.relationship("POSTerminal", backref=db.backref("sessions", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.closed_at is None

    def calculate_expected_cash(self) -> int:
        # Card and digital sales never touch the physical drawer
        return (self.initial_cash_cents or 0) + (self.total_cash_sales_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "terminal_id": self.terminal_id,
            "opened_by_user_id": self.opened_by_user_id,
            "closed_by_user_id": self.closed_by_user_id,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "closure_type": self.closure_type,
            "is_open": self.is_open,
            "initial_cash_cents": self.initial_cash_cents,
            "expected_cash_cents": self.expected_cash_cents,
            "actual_cash_cents": self.actual_cash_cents,
            "difference_cents": self.difference_cents,
            "total_sales_cents": self.total_sales_cents,
            "total_cash_sales_cents": self.total_cash_sales_cents,
            "total_card_sales_cents": self.total_card_sales_cents,
            "total_other_sales_cents": self.total_other_sales_cents,
            "total_tickets": self.total_tickets,
            "counted_total_cents": self.counted_total_cents,
            "manual_total_cents": self.manual_total_cents,
            "count_discrepancy_cents": self.count_discrepancy_cents,
            "discrepancy_notes": self.discrepancy_notes,
            "notes": self.notes,
            "version_id": self.version_id,
        }


class CashCountBreakdown(db.Model):
    """Itemized bill/coin count recorded when a session is opened or closed."""
    __tablename__ = "cash_count_breakdowns"
    __table_args__ = (
        db.Index("ix_cash_count_breakdowns_session_type", "session_id", "count_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("pos_cash_sessions.id"), nullable=False, index=True)

    denomination_cents = db.Column(db.Integer, nullable=False)
    count = db.Column(db.Integer, nullable=False)
    count_type = db.Column(db.String(16), nullable=False)  # initial, closing
    kind = db.Column(db.String(8), nullable=True)  # bill, coin

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    session = db.relationship("POSCashSession", backref=db.backref("cash_counts", lazy=True))

    @property
    def subtotal_cents(self) -> int:
        return self.denomination_cents * self.count

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "denomination_cents": self.denomination_cents,
            "count": self.count,
            "count_type": self.count_type,
            "kind": self.kind,
            "subtotal_cents": self.subtotal_cents,
        }


class POSTransaction(db.Model):
    """
    Immutable record of one sale processed at a terminal.

    WHY: Links the accounting period (session) to the ticket and payment it
    produced. The sum of amounts per session equals the session's
    total_sales_cents.
    """
    __tablename__ = "pos_transactions"
    __table_args__ = (
        db.Index("ix_pos_transactions_session_created", "session_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("pos_cash_sessions.id"), nullable=False, index=True)
    terminal_id = db.Column(db.Integer, db.ForeignKey("pos_terminals.id"), nullable=False, index=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=False, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=False)

    transaction_type = db.Column(db.String(16), nullable=False, default="sale")
    payment_method = db.Column(db.String(32), nullable=False)

    amount_cents = db.Column(db.Integer, nullable=False)
    received_amount_cents = db.Column(db.Integer, nullable=True)
    change_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    processed_by_user_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    session = db.relationship("POSCashSession", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "terminal_id": self.terminal_id,
            "ticket_id": self.ticket_id,
            "payment_id": self.payment_id,
            "transaction_type": self.transaction_type,
            "payment_method": self.payment_method,
            "amount_cents": self.amount_cents,
            "received_amount_cents": self.received_amount_cents,
            "change_amount_cents": self.change_amount_cents,
            "processed_by_user_id": self.processed_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
