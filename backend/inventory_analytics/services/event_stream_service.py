# Overview: Reads the ordered stock-change event stream that every replay consumes.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterator

from sqlalchemy import func, select

from ..extensions import db
from ..models import InventoryItem, StockHistory
from ..validation import blank_to_null

"""
Event stream invariants (authoritative)

Ordering:
- Events are returned ascending by item_id, then created_at, then id.
- Consumers (WAC ledger, balance reconstruction) rely on this order and
  must not re-sort.

Cutoff:
- Inclusive: created_at <= cutoff.

Supplier attribution:
- An event's supplier is COALESCE(event.supplier_id, item.supplier_id).
- KNOWN PRECISION GAP: the fallback is the item's CURRENT supplier, even for
  historical rows. If an item changed supplier, its old unattributed events
  are reported under the new supplier.
- The filter is case-insensitive exact; blank means all suppliers.
"""

STREAM_BATCH_SIZE = 500


@dataclass(frozen=True)
class StockEvent:
    """One immutable inventory change as seen by the valuation engine."""

    item_id: str
    supplier_id: str | None
    timestamp: datetime
    quantity_change: int
    price_at_change: Decimal | None
    reason: str
    sequence: int | None = None

    @property
    def is_inbound(self) -> bool:
        return self.quantity_change > 0

    @property
    def is_outbound(self) -> bool:
        return self.quantity_change < 0


def _event_statement(cutoff: datetime, supplier_id: str | None):
    resolved_supplier = func.coalesce(StockHistory.supplier_id, InventoryItem.supplier_id)

    stmt = (
        select(
            StockHistory.id,
            StockHistory.item_id,
            resolved_supplier.label("supplier_id"),
            StockHistory.created_at,
            StockHistory.quantity_change,
            StockHistory.price_at_change,
            StockHistory.reason,
        )
        .join(InventoryItem, InventoryItem.id == StockHistory.item_id)
        .where(StockHistory.created_at <= cutoff)
    )
    if supplier_id is not None:
        stmt = stmt.where(func.lower(resolved_supplier) == supplier_id.lower())

    return stmt.order_by(
        StockHistory.item_id.asc(),
        StockHistory.created_at.asc(),
        StockHistory.id.asc(),
    )


def stream_events(cutoff: datetime, supplier_id: str | None = None) -> Iterator[StockEvent]:
    """
    Yield StockEvents with created_at <= cutoff, optionally for one supplier.

    Rows are fetched in batches; the iterator must be consumed inside the
    app context (and session) it was created in.
    """
    stmt = _event_statement(cutoff, blank_to_null(supplier_id))
    result = db.session.execute(stmt.execution_options(yield_per=STREAM_BATCH_SIZE))
    for row in result:
        yield StockEvent(
            item_id=row.item_id,
            supplier_id=row.supplier_id,
            timestamp=row.created_at,
            quantity_change=row.quantity_change,
            price_at_change=row.price_at_change,
            reason=row.reason,
            sequence=row.id,
        )
