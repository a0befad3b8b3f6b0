# backend/retailpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/retailpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///retailpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Loyalty: 1 point per 100 currency units spent, 1 point = 1 currency unit
    LOYALTY_EARN_UNIT_CENTS = int(os.environ.get("LOYALTY_EARN_UNIT_CENTS", "10000"))
    LOYALTY_POINT_VALUE_CENTS = int(os.environ.get("LOYALTY_POINT_VALUE_CENTS", "100"))

    # Retries on lock/optimistic-version conflicts
    TX_RETRY_ATTEMPTS = int(os.environ.get("TX_RETRY_ATTEMPTS", "3"))
