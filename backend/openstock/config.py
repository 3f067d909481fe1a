# backend/openstock/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/openstock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///openstock.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Lost-update retries of the stock mutation engine
    STOCK_RETRY_ATTEMPTS = int(os.environ.get("STOCK_RETRY_ATTEMPTS", "3"))
    STOCK_RETRY_BACKOFF = float(os.environ.get("STOCK_RETRY_BACKOFF", "0.05"))

    MOVEMENT_CHART_DAYS = int(os.environ.get("MOVEMENT_CHART_DAYS", "14"))

    # Seed values for the settings row
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "EUR")
    DEFAULT_MARGIN_PERCENT = float(os.environ.get("DEFAULT_MARGIN_PERCENT", "30"))
