# Overview: Health and version endpoints for the analytics service.

"""
Health and version endpoints.

/health probes the event store and reports the SQL dialect the analytics
plans were built for; a store that cannot be queried turns the response 503.
"""

import sys
import time
from typing import Callable

from flask import Blueprint, current_app
from sqlalchemy import func

from ..extensions import db
from ..models import InventoryItem, StockHistory
from ..services.dialect_service import get_dialect_detector
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def _timed_check(name: str, probe: Callable[[], dict]) -> dict:
    started = time.perf_counter()
    try:
        details = probe()
        status = "healthy"
    except Exception:
        current_app.logger.exception("%s health check failed", name)
        db.session.rollback()
        details, status = None, "unhealthy"

    result = {"status": status, "latency_ms": round((time.perf_counter() - started) * 1000, 2)}
    if details is None:
        result["error"] = f"{name} unavailable"
    else:
        result["details"] = details
    return result


def _probe_event_store() -> dict:
    first_event, last_event = db.session.query(
        func.min(StockHistory.created_at), func.max(StockHistory.created_at)
    ).one()
    return {
        "inventory_items": db.session.query(InventoryItem).count(),
        "stock_history": db.session.query(StockHistory).count(),
        "history_from": to_utc_z(first_event),
        "history_to": to_utc_z(last_event),
    }


@system_bp.get("/health")
def health():
    database = _timed_check("Database", _probe_event_store)
    return {
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "analytics_dialect": get_dialect_detector().dialect.value,
        "checks": {"database": database},
    }, (503 if database["status"] == "unhealthy" else 200)


@system_bp.get("/version")
def version():
    """Deployment info only; no config values or credentials."""
    return {
        "api_version": "0.1.0",
        "environment": "development" if current_app.debug else "production",
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
