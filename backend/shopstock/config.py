# backend/shopstock/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/shopstock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///shopstock.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Threshold applied when a product is created without min_stock
    DEFAULT_MIN_STOCK = int(os.environ.get("DEFAULT_MIN_STOCK", "10"))

    # Retry policy for lock/deadlock/stale-version failures on stock writes
    STOCK_RETRY_ATTEMPTS = int(os.environ.get("STOCK_RETRY_ATTEMPTS", "3"))
    STOCK_RETRY_BACKOFF = float(os.environ.get("STOCK_RETRY_BACKOFF", "0.1"))

    MOVEMENT_LIST_LIMIT = int(os.environ.get("MOVEMENT_LIST_LIMIT", "100"))
