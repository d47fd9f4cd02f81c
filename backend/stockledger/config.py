# backend/stockledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Calendar day used for "today" in audit sessions
    AUDIT_TIMEZONE = os.environ.get("AUDIT_TIMEZONE", "Asia/Jakarta")

    # Re-opening a completed audit item: "reset" clears scanned units, "append" keeps them
    AUDIT_RESCAN_POLICY = os.environ.get("AUDIT_RESCAN_POLICY", "reset")

    # Unit compare-and-swap rounds per sale line before giving up
    SALE_CONSUME_ATTEMPTS = int(os.environ.get("SALE_CONSUME_ATTEMPTS", "3"))

    # Optimistic-lock retries (StaleDataError) per service call
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
