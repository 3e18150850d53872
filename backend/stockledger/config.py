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

    # One active opname session per device; requests without X-Device-Id use this.
    DEFAULT_DEVICE_ID = os.environ.get("STOCKLEDGER_DEVICE_ID", "default")

    # Product code allocation: <category code><2-digit sequence>
    CODE_SEQUENCE_MAX = 99

    # Stock opname display/report grouping for items without a category
    SO_UNCATEGORIZED_LABEL = "Uncategorized"

    # Monitoring escalation policy
    SO_WARNING_CONSECUTIVE = int(os.environ.get("SO_WARNING_CONSECUTIVE", "2"))
    SO_CRITICAL_CONSECUTIVE = int(os.environ.get("SO_CRITICAL_CONSECUTIVE", "3"))
    SO_WARNING_VALUE_CENTS = int(os.environ.get("SO_WARNING_VALUE_CENTS", "50000"))
    SO_CRITICAL_VALUE_MULTIPLIER = int(os.environ.get("SO_CRITICAL_VALUE_MULTIPLIER", "3"))

    # Number of most recent opname sessions considered "recent" by trend analysis
    SO_TREND_WINDOW = 5
