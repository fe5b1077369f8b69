# backend/spbu/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/spbu.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///spbu.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shared secret for the monthly closing cron trigger (Authorization: Bearer <secret>)
    CRON_SECRET = os.environ.get("CRON_SECRET")

    # Equity account that receives the net P&L on monthly closing
    RETAINED_EARNINGS_COA_NAME = os.environ.get("RETAINED_EARNINGS_COA_NAME", "Retained Earnings")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
