# Overview: Dialect-specific native SQL for the analytics aggregations.

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import DateTime, Integer, Numeric, String, bindparam, text
from sqlalchemy.sql.elements import TextClause
from sqlalchemy.types import TypeEngine

from .dialect_service import DialectDetector, SqlDialect, UnknownDialectError

"""
Analytics query plans (authoritative)

- One AnalyticsQueries implementation per dialect; both encode the SAME
  algorithm and must return identical rows for identical data.
- The implementation is picked once per app from the injected dialect
  (see queries_for()); nothing here re-detects the dialect.
- Bounds are inclusive: created_at BETWEEN :start_ts AND :end_ts.
- Supplier filters compare the item's CURRENT supplier, case-insensitive.
  A NULL :supplier_id disables the filter.
- Ties on created_at are broken by stock_history.id (insertion order).
"""

logger = logging.getLogger(__name__)

QUERIES_KEY = "analytics_queries"

SUPPLIER_PREDICATE = "(:supplier_id IS NULL OR UPPER(i.supplier_id) = UPPER(:supplier_id))"


@dataclass(frozen=True)
class QueryPlan:
    """A named native query with typed binds and typed result columns."""

    name: str
    dialect: SqlDialect
    sql: str
    bind_types: dict[str, TypeEngine] = field(default_factory=dict)
    result_types: dict[str, TypeEngine] = field(default_factory=dict)

    def statement(self) -> TextClause:
        stmt = text(self.sql)
        if self.bind_types:
            stmt = stmt.bindparams(
                *(bindparam(name, type_=type_) for name, type_ in self.bind_types.items())
            )
        if self.result_types:
            stmt = stmt.columns(**self.result_types)
        return stmt

    def execute(self, session, **params):
        logger.debug("Executing %s plan %s: %s", self.dialect.value, self.name, self.sql)
        return session.execute(self.statement(), params).all()


_RANGE_BINDS = {"start_ts": DateTime(), "end_ts": DateTime()}
_SUPPLIER_BIND = {"supplier_id": String()}


class AnalyticsQueries(ABC):
    """Builds the analytics query plans for one SQL dialect."""

    dialect: SqlDialect

    # ------------------------------------------------------------------
    # Dialect hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def month_label(self, column: str) -> str:
        """Expression yielding 'YYYY-MM' for a timestamp column."""

    @abstractmethod
    def day_label(self, column: str) -> str:
        """Expression yielding 'YYYY-MM-DD' for a timestamp column."""

    @abstractmethod
    def day_bucket(self, column: str) -> str:
        """Expression truncating a timestamp to its calendar day."""

    # ------------------------------------------------------------------
    # Time-series plans
    # ------------------------------------------------------------------

    def monthly_movement(self, *, with_supplier_filter: bool) -> QueryPlan:
        month = self.month_label("sh.created_at")
        join = "JOIN inventory_items i ON sh.item_id = i.id" if with_supplier_filter else ""
        supplier_filter = f"AND {SUPPLIER_PREDICATE}" if with_supplier_filter else ""
        sql = f"""
            SELECT {month} AS month_str,
                   SUM(CASE WHEN sh.quantity_change > 0 THEN sh.quantity_change ELSE 0 END) AS stock_in,
                   SUM(CASE WHEN sh.quantity_change < 0 THEN ABS(sh.quantity_change) ELSE 0 END) AS stock_out
            FROM stock_history sh
            {join}
            WHERE sh.created_at BETWEEN :start_ts AND :end_ts
            {supplier_filter}
            GROUP BY {month}
            ORDER BY 1
        """
        binds = dict(_RANGE_BINDS)
        if with_supplier_filter:
            binds.update(_SUPPLIER_BIND)
        return QueryPlan(
            name="monthly_movement" + ("_by_supplier" if with_supplier_filter else ""),
            dialect=self.dialect,
            sql=sql,
            bind_types=binds,
            result_types={"stock_in": Integer(), "stock_out": Integer()},
        )

    def daily_valuation(self) -> QueryPlan:
        """
        Last balance of each (day, item), with the unit price that applies to it.

        Two windows over the same partition:
        1. qty_after: running SUM per item ordered by (created_at, id),
           unbounded preceding to current row.
        2. rn: ROW_NUMBER per (day, item) newest first; rn = 1 is the
           balance the item closed the day with.

        There is deliberately no lower bound: quantity carried in from
        before the requested range must be part of the running balance.
        The caller discards days before its start.
        """
        day = self.day_bucket("sh.created_at")
        sql = f"""
            WITH events AS (
                SELECT
                    {day} AS day_date,
                    sh.item_id,
                    sh.price_at_change,
                    SUM(sh.quantity_change) OVER (
                        PARTITION BY sh.item_id
                        ORDER BY sh.created_at, sh.id
                        ROWS BETWEEN UNBOUNDED PRECEDING AND CURRENT ROW
                    ) AS qty_after,
                    ROW_NUMBER() OVER (
                        PARTITION BY {day}, sh.item_id
                        ORDER BY sh.created_at DESC, sh.id DESC
                    ) AS rn
                FROM stock_history sh
                JOIN inventory_items i ON i.id = sh.item_id
                WHERE sh.created_at <= :end_ts
                  AND {SUPPLIER_PREDICATE}
            )
            SELECT
                e.day_date,
                e.item_id,
                COALESCE(e.qty_after, 0) AS qty_after,
                COALESCE(e.price_at_change, i.price, 0) AS unit_price
            FROM events e
            JOIN inventory_items i ON i.id = e.item_id
            WHERE e.rn = 1
            ORDER BY e.day_date, e.item_id
        """
        return QueryPlan(
            name="daily_valuation",
            dialect=self.dialect,
            sql=sql,
            bind_types={"end_ts": DateTime(), **_SUPPLIER_BIND},
            result_types={"qty_after": Integer(), "unit_price": Numeric(12, 2, asdecimal=True)},
        )

    def price_trend(self) -> QueryPlan:
        day = self.day_label("sh.created_at")
        sql = f"""
            SELECT {day} AS day_str,
                   AVG(sh.price_at_change) AS price
            FROM stock_history sh
            JOIN inventory_items i ON sh.item_id = i.id
            WHERE sh.created_at BETWEEN :start_ts AND :end_ts
              AND sh.item_id = :item_id
              AND sh.price_at_change IS NOT NULL
              AND {SUPPLIER_PREDICATE}
            GROUP BY {day}
            ORDER BY 1
        """
        return QueryPlan(
            name="price_trend",
            dialect=self.dialect,
            sql=sql,
            bind_types={**_RANGE_BINDS, "item_id": String(), **_SUPPLIER_BIND},
            result_types={"price": Numeric(14, 4, asdecimal=True)},
        )

    # ------------------------------------------------------------------
    # Dashboard plans (portable SQL, same text for both dialects)
    # ------------------------------------------------------------------

    def stock_per_supplier(self) -> QueryPlan:
        sql = """
            SELECT s.name AS supplier_name, SUM(i.quantity) AS total_quantity
            FROM suppliers s
            JOIN inventory_items i ON s.id = i.supplier_id
            GROUP BY s.name
            ORDER BY total_quantity DESC, s.name
        """
        return QueryPlan(
            name="stock_per_supplier",
            dialect=self.dialect,
            sql=sql,
            result_types={"total_quantity": Integer()},
        )

    def update_count_by_item(self) -> QueryPlan:
        sql = f"""
            SELECT i.name AS item_name, COUNT(sh.id) AS update_count
            FROM stock_history sh
            JOIN inventory_items i ON sh.item_id = i.id
            WHERE {SUPPLIER_PREDICATE}
            GROUP BY i.name
            ORDER BY update_count DESC, i.name
        """
        return QueryPlan(
            name="update_count_by_item",
            dialect=self.dialect,
            sql=sql,
            bind_types=dict(_SUPPLIER_BIND),
            result_types={"update_count": Integer()},
        )

    def items_below_minimum(self) -> QueryPlan:
        sql = f"""
            SELECT i.name AS item_name, i.quantity, i.minimum_quantity
            FROM inventory_items i
            WHERE i.quantity < i.minimum_quantity
              AND {SUPPLIER_PREDICATE}
            ORDER BY i.quantity ASC, i.name
        """
        return QueryPlan(
            name="items_below_minimum",
            dialect=self.dialect,
            sql=sql,
            bind_types=dict(_SUPPLIER_BIND),
            result_types={"quantity": Integer(), "minimum_quantity": Integer()},
        )

    def filtered_stock_updates(self) -> QueryPlan:
        sql = f"""
            SELECT i.name AS item_name,
                   s.name AS supplier_name,
                   sh.quantity_change,
                   sh.reason,
                   sh.created_by,
                   sh.created_at
            FROM stock_history sh
            JOIN inventory_items i ON sh.item_id = i.id
            LEFT JOIN suppliers s ON i.supplier_id = s.id
            WHERE (:start_ts IS NULL OR sh.created_at >= :start_ts)
              AND (:end_ts IS NULL OR sh.created_at <= :end_ts)
              AND (:item_pattern IS NULL OR LOWER(i.name) LIKE :item_pattern)
              AND {SUPPLIER_PREDICATE}
              AND (:created_by IS NULL OR LOWER(sh.created_by) = :created_by)
              AND (:min_change IS NULL OR sh.quantity_change >= :min_change)
              AND (:max_change IS NULL OR sh.quantity_change <= :max_change)
            ORDER BY sh.created_at DESC, sh.id DESC
        """
        return QueryPlan(
            name="filtered_stock_updates",
            dialect=self.dialect,
            sql=sql,
            bind_types={
                **_RANGE_BINDS,
                "item_pattern": String(),
                **_SUPPLIER_BIND,
                "created_by": String(),
                "min_change": Integer(),
                "max_change": Integer(),
            },
            result_types={"quantity_change": Integer(), "created_at": DateTime()},
        )


class SqliteAnalyticsQueries(AnalyticsQueries):
    """Test dialect. SQLite stores DateTime as 'YYYY-MM-DD HH:MM:SS.ffffff' text."""

    dialect = SqlDialect.SQLITE

    def month_label(self, column: str) -> str:
        return f"strftime('%Y-%m', {column})"

    def day_label(self, column: str) -> str:
        return f"strftime('%Y-%m-%d', {column})"

    def day_bucket(self, column: str) -> str:
        return f"date({column})"


class OracleAnalyticsQueries(AnalyticsQueries):
    """Production dialect."""

    dialect = SqlDialect.ORACLE

    def month_label(self, column: str) -> str:
        return f"TO_CHAR({column}, 'YYYY-MM')"

    def day_label(self, column: str) -> str:
        return f"TO_CHAR({column}, 'YYYY-MM-DD')"

    def day_bucket(self, column: str) -> str:
        return f"TRUNC({column})"


_IMPLEMENTATIONS: dict[SqlDialect, type[AnalyticsQueries]] = {
    SqlDialect.SQLITE: SqliteAnalyticsQueries,
    SqlDialect.ORACLE: OracleAnalyticsQueries,
}


def queries_for(detector: DialectDetector) -> AnalyticsQueries:
    return _IMPLEMENTATIONS[detector.dialect]()


def get_queries() -> AnalyticsQueries:
    """Query strategy bound to the current app (set up by create_app)."""
    queries = current_app.extensions.get(QUERIES_KEY)
    if queries is None:
        raise UnknownDialectError("analytics queries were not initialised; use create_app()")
    return queries
