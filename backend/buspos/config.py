# backend/buspos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/buspos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///buspos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Seat leases during interactive selection (5 minutes)
    SEAT_LOCK_DURATION_MS = int(os.environ.get("SEAT_LOCK_DURATION_MS", "300000"))

    # ITBMS (Panama VAT) in basis points: 700 = 7%
    ITBMS_RATE_BPS = int(os.environ.get("ITBMS_RATE_BPS", "700"))

    # Allowed difference between counted and declared cash totals
    CASH_COUNT_TOLERANCE_CENTS = int(os.environ.get("CASH_COUNT_TOLERANCE_CENTS", "1"))

    SALE_RETRY_ATTEMPTS = int(os.environ.get("SALE_RETRY_ATTEMPTS", "3"))

    # Seats per group sale at the counter
    BULK_SALE_MAX_TICKETS = int(os.environ.get("BULK_SALE_MAX_TICKETS", "60"))

    # Dotted path to an authorizer factory; None uses the header authorizer
    POS_AUTHORIZER = os.environ.get("POS_AUTHORIZER")
