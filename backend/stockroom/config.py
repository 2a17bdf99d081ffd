# backend/stockroom/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockroom.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockroom.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Forecasting policy. A business may override these through its
    # ForecastingConfig row; these are the fallbacks when it has none.
    DEFAULT_LEAD_TIME_DAYS = int(os.environ.get("DEFAULT_LEAD_TIME_DAYS", "7"))
    DEFAULT_SALES_PERIOD_DAYS = 30
    DEFAULT_REORDER_CYCLE_DAYS = 14
    REORDER_SOON_MULTIPLIER = 1.5
    SLOW_MOVING_MAX_DAILY_SALES = 0.5
    SLOW_MOVING_MIN_STOCK = 10
    FORECAST_WINDOWS = (7, 14, 30, 60)
    FORECAST_TOP_N = 10
