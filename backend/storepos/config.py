# backend/storepos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storepos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storepos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Unset -> in-process pub/sub and in-memory read cache
    REDIS_URL = os.environ.get("REDIS_URL")

    SALES_CACHE_TTL_SECONDS = int(os.environ.get("SALES_CACHE_TTL_SECONDS", "120"))

    # Bounded retry for lock-wait / busy errors around the commit transaction
    COMMIT_RETRY_ATTEMPTS = int(os.environ.get("COMMIT_RETRY_ATTEMPTS", "3"))
    COMMIT_RETRY_BACKOFF = float(os.environ.get("COMMIT_RETRY_BACKOFF", "0.1"))
    INVOICE_RETRY_ATTEMPTS = int(os.environ.get("INVOICE_RETRY_ATTEMPTS", "5"))

    SALE_UNDO_WINDOW_MINUTES = int(os.environ.get("SALE_UNDO_WINDOW_MINUTES", "5"))

    STOCK_STREAM_HEARTBEAT_SECONDS = float(os.environ.get("STOCK_STREAM_HEARTBEAT_SECONDS", "15"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    REDIS_URL = None
    COMMIT_RETRY_BACKOFF = 0.01
    STOCK_STREAM_HEARTBEAT_SECONDS = 0.05
