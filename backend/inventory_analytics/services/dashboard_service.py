# Overview: Composes the analytics read models into a single dashboard payload.

from __future__ import annotations

from datetime import date

from flask import current_app

from ..time_utils import today as utc_today
from ..validation import blank_to_null, default_and_validate_window
from . import stock_analytics_service, wac_service


def dashboard_summary(supplier_id: str | None = None, today: date | None = None) -> dict:
    """
    One-shot dashboard payload.

    - stock_per_supplier: current quantity per supplier (all suppliers)
    - low_stock_count: items under ANALYTICS_LOW_STOCK_THRESHOLD
    - low_stock_items: below their own minimum (only when supplier_id is given)
    - monthly_movement: trailing default window ending today
    - financial_summary: month to date
    """
    supplier_id = blank_to_null(supplier_id)
    ref = today or utc_today()
    window = int(current_app.config.get("ANALYTICS_DEFAULT_WINDOW_DAYS", 30))

    start, end = default_and_validate_window(None, None, window_days=window, reference=ref)
    movement = stock_analytics_service.monthly_movement(start, end, supplier_id)
    summary = wac_service.financial_summary(ref.replace(day=1), ref, supplier_id)

    low_stock_items = (
        [row.to_dict() for row in stock_analytics_service.items_below_minimum_stock(supplier_id)]
        if supplier_id
        else []
    )

    return {
        "as_of": ref.isoformat(),
        "supplier_id": supplier_id,
        "stock_per_supplier": [row.to_dict() for row in stock_analytics_service.total_stock_per_supplier()],
        "low_stock_count": stock_analytics_service.low_stock_count(),
        "low_stock_items": low_stock_items,
        "monthly_movement": [row.to_dict() for row in movement],
        "financial_summary": summary.to_dict(),
    }
