# Overview: Service-layer operations for stock time series and dashboard read models.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from flask import current_app

from ..extensions import db
from ..models import InventoryItem
from ..time_utils import as_date, end_of_day, start_of_day, to_utc_z
from ..validation import (
    ValidationError,
    blank_to_null,
    default_and_validate_window,
    require_non_blank,
    require_non_null,
    validate_range,
)
from .analytics_sql import get_queries

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
PRICE_SCALE = Decimal("0.0001")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MonthlyMovement:
    month: str
    stock_in: int
    stock_out: int

    def to_dict(self) -> dict:
        return {"month": self.month, "stock_in": self.stock_in, "stock_out": self.stock_out}


@dataclass(frozen=True)
class DailyValuationPoint:
    day: date
    total_value: Decimal

    def to_dict(self) -> dict:
        return {"day": self.day.isoformat(), "total_value": str(self.total_value)}


@dataclass(frozen=True)
class PriceTrendPoint:
    day: date
    average_price: Decimal

    def to_dict(self) -> dict:
        return {"day": self.day.isoformat(), "average_price": str(self.average_price)}


@dataclass(frozen=True)
class StockPerSupplier:
    supplier_name: str
    total_quantity: int

    def to_dict(self) -> dict:
        return {"supplier_name": self.supplier_name, "total_quantity": self.total_quantity}


@dataclass(frozen=True)
class ItemUpdateFrequency:
    item_name: str
    update_count: int

    def to_dict(self) -> dict:
        return {"item_name": self.item_name, "update_count": self.update_count}


@dataclass(frozen=True)
class LowStockItem:
    item_name: str
    quantity: int
    minimum_quantity: int

    def to_dict(self) -> dict:
        return {
            "item_name": self.item_name,
            "quantity": self.quantity,
            "minimum_quantity": self.minimum_quantity,
        }


@dataclass(frozen=True)
class StockUpdateRow:
    item_name: str
    supplier_name: str | None
    change: int
    reason: str
    created_by: str | None
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "item_name": self.item_name,
            "supplier_name": self.supplier_name,
            "change": self.change,
            "reason": self.reason,
            "created_by": self.created_by,
            "timestamp": to_utc_z(self.timestamp),
        }


@dataclass(frozen=True)
class StockUpdateFilter:
    start: datetime | None = None
    end: datetime | None = None
    item_name: str | None = None
    supplier_id: str | None = None
    created_by: str | None = None
    min_change: int | None = None
    max_change: int | None = None


# ---------------------------------------------------------------------------
# Time series
# ---------------------------------------------------------------------------

def monthly_movement(start: date | None, end: date | None, supplier_id: str | None = None) -> list[MonthlyMovement]:
    """Stock in/out per "YYYY-MM" month, ascending. Both bounds inclusive."""
    start = require_non_null(start, "start")
    end = require_non_null(end, "end")
    validate_range(start, end)

    supplier_id = blank_to_null(supplier_id)
    plan = get_queries().monthly_movement(with_supplier_filter=supplier_id is not None)
    params = {"start_ts": start_of_day(start), "end_ts": end_of_day(end)}
    if supplier_id is not None:
        params["supplier_id"] = supplier_id

    rows = plan.execute(db.session, **params)
    return [
        MonthlyMovement(month=row.month_str, stock_in=int(row.stock_in or 0), stock_out=int(row.stock_out or 0))
        for row in rows
    ]


def fold_daily_valuation(rows, start: date, end: date) -> list[DailyValuationPoint]:
    """
    Turn per-(day, item) closing rows into one total per calendar day.

    rows: (day_date, item_id, qty_after, unit_price) ascending by day.
    Rows before start only seed the carried balances. Each item keeps its
    last known balance and price until its next row. Days before any item
    has history produce no point.
    """
    carried: dict[str, tuple[int, Decimal]] = {}
    by_day: dict[date, list] = {}
    for row in rows:
        day = as_date(row.day_date)
        if day < start:
            carried[row.item_id] = (int(row.qty_after), Decimal(row.unit_price))
        elif day <= end:
            by_day.setdefault(day, []).append(row)

    points: list[DailyValuationPoint] = []
    day = start
    while day <= end:
        for row in by_day.get(day, ()):
            carried[row.item_id] = (int(row.qty_after), Decimal(row.unit_price))
        if carried:
            total = sum((Decimal(qty) * price for qty, price in carried.values()), ZERO)
            points.append(DailyValuationPoint(day=day, total_value=total))
        day += timedelta(days=1)
    return points


def daily_valuation(start: date | None, end: date | None, supplier_id: str | None = None) -> list[DailyValuationPoint]:
    start = require_non_null(start, "start")
    end = require_non_null(end, "end")
    validate_range(start, end)

    plan = get_queries().daily_valuation()
    rows = plan.execute(db.session, end_ts=end_of_day(end), supplier_id=blank_to_null(supplier_id))
    return fold_daily_valuation(rows, start, end)


def price_trend(
    item_id: str | None,
    supplier_id: str | None,
    start: date | None,
    end: date | None,
) -> list[PriceTrendPoint]:
    """Average recorded price per day for one item. Days without a recorded price are omitted."""
    item_id = require_non_blank(item_id, "item_id")
    start = require_non_null(start, "start")
    end = require_non_null(end, "end")
    validate_range(start, end)

    rows = get_queries().price_trend().execute(
        db.session,
        start_ts=start_of_day(start),
        end_ts=end_of_day(end),
        item_id=item_id,
        supplier_id=blank_to_null(supplier_id),
    )
    return [
        PriceTrendPoint(day=as_date(row.day_str), average_price=Decimal(row.price).quantize(PRICE_SCALE, rounding=ROUND_HALF_UP))
        for row in rows
    ]


def default_window(start: date | None, end: date | None) -> tuple[date, date]:
    """Trailing ANALYTICS_DEFAULT_WINDOW_DAYS window for whichever bound is missing."""
    window = int(current_app.config.get("ANALYTICS_DEFAULT_WINDOW_DAYS", 30))
    return default_and_validate_window(start, end, window_days=window)


# ---------------------------------------------------------------------------
# Dashboard read models
# ---------------------------------------------------------------------------

def total_stock_per_supplier() -> list[StockPerSupplier]:
    rows = get_queries().stock_per_supplier().execute(db.session)
    return [StockPerSupplier(supplier_name=r.supplier_name, total_quantity=int(r.total_quantity or 0)) for r in rows]


def item_update_frequency(supplier_id: str | None) -> list[ItemUpdateFrequency]:
    supplier_id = require_non_blank(supplier_id, "supplier_id")
    rows = get_queries().update_count_by_item().execute(db.session, supplier_id=supplier_id)
    return [ItemUpdateFrequency(item_name=r.item_name, update_count=int(r.update_count)) for r in rows]


def items_below_minimum_stock(supplier_id: str | None) -> list[LowStockItem]:
    supplier_id = require_non_blank(supplier_id, "supplier_id")
    rows = get_queries().items_below_minimum().execute(db.session, supplier_id=supplier_id)
    return [
        LowStockItem(item_name=r.item_name, quantity=int(r.quantity), minimum_quantity=int(r.minimum_quantity))
        for r in rows
    ]


def low_stock_count(threshold: int | None = None) -> int:
    """Number of items whose quantity is strictly below threshold."""
    if threshold is None:
        threshold = int(current_app.config.get("ANALYTICS_LOW_STOCK_THRESHOLD", 5))
    if threshold < 0:
        raise ValidationError("threshold must be >= 0")
    return db.session.query(InventoryItem).filter(InventoryItem.quantity < threshold).count()


def filtered_stock_updates(criteria: StockUpdateFilter) -> list[StockUpdateRow]:
    """
    Stock history rows matching the filter, newest first.

    - start/end default to the trailing window when omitted
    - item_name is a case-insensitive substring match
    - supplier_id and created_by are case-insensitive exact matches
    """
    start_day, end_day = default_window(
        criteria.start.date() if criteria.start else None,
        criteria.end.date() if criteria.end else None,
    )
    start_ts = criteria.start or start_of_day(start_day)
    end_ts = criteria.end or end_of_day(end_day)
    validate_range(start_ts, end_ts)

    if criteria.min_change is not None and criteria.max_change is not None and criteria.min_change > criteria.max_change:
        raise ValidationError("min_change must be <= max_change")

    item_name = blank_to_null(criteria.item_name)
    created_by = blank_to_null(criteria.created_by)

    rows = get_queries().filtered_stock_updates().execute(
        db.session,
        start_ts=start_ts,
        end_ts=end_ts,
        item_pattern=f"%{item_name.lower()}%" if item_name else None,
        supplier_id=blank_to_null(criteria.supplier_id),
        created_by=created_by.lower() if created_by else None,
        min_change=criteria.min_change,
        max_change=criteria.max_change,
    )
    logger.debug("filtered_stock_updates matched %d rows", len(rows))
    return [
        StockUpdateRow(
            item_name=r.item_name,
            supplier_name=r.supplier_name,
            change=int(r.quantity_change),
            reason=r.reason,
            created_by=r.created_by,
            timestamp=r.created_at,
        )
        for r in rows
    ]
