# backend/maslow/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///maslow.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Credits debited per booking paid with credits. Refunds always return
    # the amount snapshotted on the booking, never this value.
    BOOKING_CREDIT_COST = int(os.environ.get("BOOKING_CREDIT_COST", "1"))

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))
