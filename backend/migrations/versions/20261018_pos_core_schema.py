"""POS core schema: seats, seat locks, tickets, payments, terminals, cash sessions

Revision ID: 20261018_pos_core
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_pos_core"
down_revision = None
branch_labels = None
depends_on = None


ACTIVE_SEAT_PREDICATE = sa.text("status IN ('paid', 'boarded')")
OPEN_SESSION_PREDICATE = sa.text("closed_at IS NULL")


def upgrade():
    op.create_table(
        "pos_terminals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("terminal_identifier", sa.String(length=64), nullable=False),
        sa.Column("physical_location", sa.String(length=128), nullable=False),
        sa.Column("location_code", sa.String(length=32), nullable=True),
        sa.Column("assigned_user_id", sa.Integer(), nullable=True),
        sa.Column("initial_cash_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_cash_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_open", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("opened_by_user_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("terminal_identifier", name="uq_pos_terminals_identifier"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pos_terminals_is_open", "pos_terminals", ["is_open"])
    op.create_index("ix_pos_terminals_is_active", "pos_terminals", ["is_active"])

    op.create_table(
        "seats",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("trip_id", sa.Integer(), nullable=False),
        sa.Column("seat_number", sa.String(length=16), nullable=False),
        sa.Column("row", sa.Integer(), nullable=True),
        sa.Column("column", sa.Integer(), nullable=True),
        sa.Column("floor", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_disabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("trip_id", "seat_number", name="uq_seats_trip_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_seats_trip_id", "seats", ["trip_id"])

    op.create_table(
        "seat_locks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("trip_id", sa.Integer(), nullable=False),
        sa.Column("seat_id", sa.Integer(), sa.ForeignKey("seats.id"), nullable=False),
        sa.Column("holder_id", sa.String(length=128), nullable=False),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.UniqueConstraint("trip_id", "seat_id", name="uq_seat_locks_trip_seat"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_seat_locks_trip_id", "seat_locks", ["trip_id"])
    op.create_index("ix_seat_locks_expires_at", "seat_locks", ["expires_at"])

    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("trip_id", sa.Integer(), nullable=False),
        sa.Column("seat_id", sa.Integer(), sa.ForeignKey("seats.id"), nullable=False),
        sa.Column("passenger_name", sa.String(length=255), nullable=False),
        sa.Column("passenger_phone", sa.String(length=32), nullable=True),
        sa.Column("passenger_email", sa.String(length=255), nullable=True),
        sa.Column("passenger_document_id", sa.String(length=64), nullable=True),
        sa.Column("passenger_document_type", sa.String(length=16), nullable=True),
        sa.Column("destination_stop_id", sa.Integer(), nullable=False),
        sa.Column("boarding_stop_id", sa.Integer(), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("itbms_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("qr_code", sa.String(length=64), nullable=False),
        sa.Column("terminal_id", sa.Integer(), sa.ForeignKey("pos_terminals.id"), nullable=True),
        sa.Column("sold_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("qr_code", name="uq_tickets_qr_code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_tickets_trip_id", "tickets", ["trip_id"])
    op.create_index("ix_tickets_seat_id", "tickets", ["seat_id"])
    op.create_index("ix_tickets_status", "tickets", ["status"])
    op.create_index("ix_tickets_terminal_id", "tickets", ["terminal_id"])
    op.create_index("ix_tickets_trip_status", "tickets", ["trip_id", "status"])
    # A seat is sold at most once per trip
    op.create_index(
        "uq_tickets_active_seat",
        "tickets",
        ["trip_id", "seat_id"],
        unique=True,
        sqlite_where=ACTIVE_SEAT_PREDICATE,
        postgresql_where=ACTIVE_SEAT_PREDICATE,
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ticket_id", sa.Integer(), sa.ForeignKey("tickets.id"), nullable=False),
        sa.Column("payment_method", sa.String(length=32), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("itbms_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("provider_transaction_id", sa.String(length=128), nullable=True),
        sa.Column("received_amount_cents", sa.Integer(), nullable=True),
        sa.Column("change_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_payments_ticket_id", "payments", ["ticket_id"])
    op.create_index("ix_payments_payment_method", "payments", ["payment_method"])
    op.create_index("ix_payments_status", "payments", ["status"])

    op.create_table(
        "pos_cash_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("terminal_id", sa.Integer(), sa.ForeignKey("pos_terminals.id"), nullable=False),
        sa.Column("opened_by_user_id", sa.Integer(), nullable=False),
        sa.Column("closed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closure_type", sa.String(length=1), nullable=True),
        sa.Column("initial_cash_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expected_cash_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("actual_cash_cents", sa.Integer(), nullable=True),
        sa.Column("difference_cents", sa.Integer(), nullable=True),
        sa.Column("total_sales_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_cash_sales_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_card_sales_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_other_sales_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_tickets", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("counted_total_cents", sa.Integer(), nullable=True),
        sa.Column("manual_total_cents", sa.Integer(), nullable=True),
        sa.Column("count_discrepancy_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("discrepancy_notes", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pos_cash_sessions_terminal_id", "pos_cash_sessions", ["terminal_id"])
    op.create_index("ix_pos_cash_sessions_opened_at", "pos_cash_sessions", ["opened_at"])
    op.create_index("ix_pos_cash_sessions_terminal_opened", "pos_cash_sessions", ["terminal_id", "opened_at"])
    # At most one open session per terminal
    op.create_index(
        "uq_pos_cash_sessions_open_terminal",
        "pos_cash_sessions",
        ["terminal_id"],
        unique=True,
        sqlite_where=OPEN_SESSION_PREDICATE,
        postgresql_where=OPEN_SESSION_PREDICATE,
    )

    op.create_table(
        "cash_count_breakdowns",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("pos_cash_sessions.id"), nullable=False),
        sa.Column("denomination_cents", sa.Integer(), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False),
        sa.Column("count_type", sa.String(length=16), nullable=False),
        sa.Column("kind", sa.String(length=8), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_cash_count_breakdowns_session_id", "cash_count_breakdowns", ["session_id"])
    op.create_index("ix_cash_count_breakdowns_session_type", "cash_count_breakdowns", ["session_id", "count_type"])

    op.create_table(
        "pos_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("pos_cash_sessions.id"), nullable=False),
        sa.Column("terminal_id", sa.Integer(), sa.ForeignKey("pos_terminals.id"), nullable=False),
        sa.Column("ticket_id", sa.Integer(), sa.ForeignKey("tickets.id"), nullable=False),
        sa.Column("payment_id", sa.Integer(), sa.ForeignKey("payments.id"), nullable=False),
        sa.Column("transaction_type", sa.String(length=16), nullable=False, server_default="sale"),
        sa.Column("payment_method", sa.String(length=32), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("received_amount_cents", sa.Integer(), nullable=True),
        sa.Column("change_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("processed_by_user_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pos_transactions_session_id", "pos_transactions", ["session_id"])
    op.create_index("ix_pos_transactions_terminal_id", "pos_transactions", ["terminal_id"])
    op.create_index("ix_pos_transactions_ticket_id", "pos_transactions", ["ticket_id"])
    op.create_index("ix_pos_transactions_session_created", "pos_transactions", ["session_id", "created_at"])


def downgrade():
    op.drop_table("pos_transactions")
    op.drop_table("cash_count_breakdowns")
    op.drop_index("uq_pos_cash_sessions_open_terminal", table_name="pos_cash_sessions")
    op.drop_table("pos_cash_sessions")
    op.drop_table("payments")
    op.drop_index("uq_tickets_active_seat", table_name="tickets")
    op.drop_table("tickets")
    op.drop_table("seat_locks")
    op.drop_table("seats")
    op.drop_table("pos_terminals")
