# backend/boardcafe/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/boardcafe.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///boardcafe.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Seat time quoted to non-members, minor units per hour (¥500/h)
    REGULAR_HOURLY_RATE_MINOR = int(os.environ.get("REGULAR_HOURLY_RATE_MINOR", "50000"))

    # Flat plan price used by the membership revenue estimate (¥8000)
    MEMBERSHIP_STATS_FLAT_PRICE_MINOR = int(os.environ.get("MEMBERSHIP_STATS_FLAT_PRICE_MINOR", "800000"))
