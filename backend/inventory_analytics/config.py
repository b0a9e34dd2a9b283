# backend/inventory_analytics/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


_LOCAL_DATABASE_URL = "sqlite:///inventory_analytics.sqlite3"


class Config:
    # SQLite by default so the service boots without an Oracle instance
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", _LOCAL_DATABASE_URL)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Which native-SQL flavour the analytics queries are built for.
    # "sqlite" is the test dialect, "oracle" the production one. Left unset
    # with a DATABASE_URL it resolves to oracle; the local SQLite file pairs
    # with the sqlite dialect. create_app() rejects a pairing that disagrees.
    ANALYTICS_SQL_DIALECT = os.environ.get(
        "ANALYTICS_SQL_DIALECT",
        None if "DATABASE_URL" in os.environ else "sqlite",
    )

    # Trend endpoints fall back to the trailing window when start/end are omitted
    ANALYTICS_DEFAULT_WINDOW_DAYS = int(os.environ.get("ANALYTICS_DEFAULT_WINDOW_DAYS", "30"))
    ANALYTICS_LOW_STOCK_THRESHOLD = int(os.environ.get("ANALYTICS_LOW_STOCK_THRESHOLD", "5"))
    ANALYTICS_MAX_WORKERS = int(os.environ.get("ANALYTICS_MAX_WORKERS", "4"))

    # When True, an outflow against an item without a cost basis aborts the
    # summary instead of being costed at zero.
    WAC_STRICT_COST_BASIS = _env_bool("WAC_STRICT_COST_BASIS", False)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
