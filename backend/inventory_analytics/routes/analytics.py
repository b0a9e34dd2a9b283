# Overview: Flask API routes for analytics; parses input and returns JSON responses.

"""
Analytics Routes

Stock valuation time series, price trend, WAC financial summary and the
dashboard read models. All endpoints are read-only.
"""

from flask import Blueprint, current_app, jsonify, request

from ..services import dashboard_service, stock_analytics_service, wac_service
from ..services.stock_analytics_service import StockUpdateFilter
from ..services.wac_service import LedgerComputationError, ReplayCancelledError
from ..validation import (
    ValidationError,
    parse_date_arg,
    parse_datetime_arg,
    parse_int_arg,
    require_non_null,
)


analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


def _window_args() -> tuple:
    start = parse_date_arg(request.args.get("start"), "start")
    end = parse_date_arg(request.args.get("end"), "end")
    return stock_analytics_service.default_window(start, end)


def _ledger_error(exc: LedgerComputationError):
    current_app.logger.exception("Financial summary failed")
    status = 503 if isinstance(exc, ReplayCancelledError) else 422
    return jsonify({"error": str(exc)}), status


@analytics_bp.get("/stock-value")
def stock_value_route():
    try:
        start, end = _window_args()
        points = stock_analytics_service.daily_valuation(start, end, request.args.get("supplier_id"))
        return jsonify([p.to_dict() for p in points])
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to compute daily stock value")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/monthly-stock-movement")
def monthly_stock_movement_route():
    try:
        start, end = _window_args()
        rows = stock_analytics_service.monthly_movement(start, end, request.args.get("supplier_id"))
        return jsonify([r.to_dict() for r in rows])
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to compute monthly stock movement")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/price-trend")
def price_trend_route():
    try:
        start, end = _window_args()
        points = stock_analytics_service.price_trend(
            request.args.get("item_id"),
            request.args.get("supplier_id"),
            start,
            end,
        )
        return jsonify([p.to_dict() for p in points])
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to compute price trend")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/financial/summary")
def financial_summary_route():
    try:
        from_date = require_non_null(parse_date_arg(request.args.get("from"), "from"), "from")
        to_date = require_non_null(parse_date_arg(request.args.get("to"), "to"), "to")
        summary = wac_service.financial_summary(from_date, to_date, request.args.get("supplier_id"))
        return jsonify(summary.to_dict())
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LedgerComputationError as e:
        return _ledger_error(e)
    except Exception:
        current_app.logger.exception("Failed to compute financial summary")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/stock-per-supplier")
def stock_per_supplier_route():
    try:
        rows = stock_analytics_service.total_stock_per_supplier()
        return jsonify([r.to_dict() for r in rows])
    except Exception:
        current_app.logger.exception("Failed to compute stock per supplier")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/item-update-frequency")
def item_update_frequency_route():
    try:
        rows = stock_analytics_service.item_update_frequency(request.args.get("supplier_id"))
        return jsonify([r.to_dict() for r in rows])
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to compute item update frequency")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/low-stock-items")
def low_stock_items_route():
    try:
        rows = stock_analytics_service.items_below_minimum_stock(request.args.get("supplier_id"))
        return jsonify([r.to_dict() for r in rows])
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list low stock items")
        return jsonify({"error": "Internal server error"}), 500


def _filter_from(source) -> StockUpdateFilter:
    return StockUpdateFilter(
        start=parse_datetime_arg(source.get("start"), "start"),
        end=parse_datetime_arg(source.get("end"), "end"),
        item_name=source.get("item_name"),
        supplier_id=source.get("supplier_id"),
        created_by=source.get("created_by"),
        min_change=parse_int_arg(source.get("min_change"), "min_change"),
        max_change=parse_int_arg(source.get("max_change"), "max_change"),
    )


@analytics_bp.route("/stock-updates", methods=["GET", "POST"])
def stock_updates_route():
    """GET reads the filter from the query string, POST from a JSON body."""
    try:
        if request.method == "POST":
            body = request.get_json(silent=True) or {}
            # JSON numbers arrive as ints; parse_int_arg expects text
            source = {k: (str(v) if v is not None else None) for k, v in body.items()}
        else:
            source = request.args
        rows = stock_analytics_service.filtered_stock_updates(_filter_from(source))
        return jsonify([r.to_dict() for r in rows])
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list stock updates")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/summary")
def summary_route():
    try:
        today = parse_date_arg(request.args.get("today"), "today")
        return jsonify(dashboard_service.dashboard_summary(request.args.get("supplier_id"), today))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LedgerComputationError as e:
        return _ledger_error(e)
    except Exception:
        current_app.logger.exception("Failed to build analytics summary")
        return jsonify({"error": "Internal server error"}), 500
