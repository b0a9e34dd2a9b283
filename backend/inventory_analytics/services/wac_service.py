# Overview: Weighted Average Cost (WAC) replay producing the period financial summary.

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, fields
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Iterator

from flask import current_app

from .event_stream_service import StockEvent, stream_events
from ..models import StockChangeReason
from ..time_utils import end_of_day, start_of_day
from ..validation import blank_to_null, require_non_null, validate_range

"""
WAC ledger invariants (authoritative)

Replay discipline:
- The average is recomputed after EVERY event, per item, in (timestamp, id)
  order. Batching same-day events or replaying out of order gives a
  different (wrong) average.
- Each item carries its exact total value; the average is derived from it.
- Inbound:  value += q_in * unit; new_avg = value / (q0 + q_in), 4 dp, half-up.
            unit = price_at_change, else the current average (else 0).
- Outbound: costed at the CURRENT average, never at the event's price.
            The average itself does not move. An outbound that empties the
            item is costed at its whole carried value.
- Opening and ending values are the carried values, never avg * qty.

Period buckets (from <= ts <= to):
- inbound RETURNED_BY_CUSTOMER  -> returns-in
- any other inbound             -> purchases
- outbound RETURNED_TO_SUPPLIER -> negative purchases
- outbound write-off reasons    -> write-offs
- any other outbound            -> COGS
- quantity_change == 0          -> no ledger effect (e.g. PRICE_CHANGE)

Edge cases:
- Negative stock is NOT rejected here; the quantity simply goes below zero.
- An inbound that brings a negative balance back to exactly zero books the
  leftover value (difference between the issue cost and the refill cost)
  to COGS as a variance, since a zero quantity cannot carry value.
- An outbound against an item with no cost basis is costed at zero,
  logged, and counted in uncosted_outflow_qty (or raises when strict).
- A malformed event aborts the whole summary. Partial summaries are never
  returned.
"""

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
WAC_SCALE = Decimal("0.0001")
CENT = Decimal("0.01")

RETURNS_IN = frozenset({StockChangeReason.RETURNED_BY_CUSTOMER.value})
RETURNS_TO_SUPPLIER = frozenset({StockChangeReason.RETURNED_TO_SUPPLIER.value})
WRITE_OFFS = frozenset({
    StockChangeReason.DAMAGED.value,
    StockChangeReason.DESTROYED.value,
    StockChangeReason.SCRAPPED.value,
    StockChangeReason.EXPIRED.value,
    StockChangeReason.LOST.value,
})


class LedgerComputationError(Exception):
    """Replay could not produce a trustworthy summary."""


class MalformedEventError(LedgerComputationError):
    """An event cannot be replayed (missing key, bad quantity, out of order)."""


class MissingCostBasisError(LedgerComputationError):
    """Strict mode: outflow against an item that never had a priced inbound."""


class ReplayCancelledError(LedgerComputationError):
    """The caller cancelled the replay before it finished."""


# ---------------------------------------------------------------------------
# Per-item state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WacState:
    """
    Running position of one item.

    value is the exact carried cost of the units on hand; avg_cost is the
    rounded unit cost used to price outflows.
    """

    qty: int = 0
    avg_cost: Decimal = ZERO
    has_cost_basis: bool = False
    value: Decimal = ZERO


@dataclass(frozen=True)
class WacIssue:
    state: WacState
    cost: Decimal
    uncosted: bool


EMPTY_STATE = WacState()


def apply_inbound(state: WacState, qty_in: int, unit_cost: Decimal, *, priced: bool) -> WacState:
    q1 = state.qty + qty_in
    has_basis = state.has_cost_basis or priced
    if q1 == 0:
        # Refilled a negative balance to exactly zero; keep the latest cost as basis
        avg1 = unit_cost.quantize(WAC_SCALE, rounding=ROUND_HALF_UP)
        return WacState(qty=0, avg_cost=avg1, has_cost_basis=has_basis, value=ZERO)

    value1 = state.value + unit_cost * qty_in
    avg1 = (value1 / q1).quantize(WAC_SCALE, rounding=ROUND_HALF_UP)
    return WacState(qty=q1, avg_cost=avg1, has_cost_basis=has_basis, value=value1)


def issue_at(state: WacState, qty_out: int) -> WacIssue:
    """Issue qty_out units at the current average. Quantity may go negative."""
    q1 = state.qty - qty_out
    if not state.has_cost_basis:
        cost = ZERO
    elif q1 == 0:
        # Emptying the item releases exactly what it carried
        cost = state.value
    else:
        cost = state.avg_cost * qty_out
    return WacIssue(
        state=WacState(
            qty=q1,
            avg_cost=state.avg_cost,
            has_cost_basis=state.has_cost_basis,
            value=state.value - cost,
        ),
        cost=cost,
        uncosted=not state.has_cost_basis,
    )


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FinancialSummary:
    from_date: date
    to_date: date
    opening_qty: int = 0
    opening_value: Decimal = ZERO
    purchases_qty: int = 0
    purchases_cost: Decimal = ZERO
    returns_in_qty: int = 0
    returns_in_cost: Decimal = ZERO
    cogs_qty: int = 0
    cogs_cost: Decimal = ZERO
    write_off_qty: int = 0
    write_off_cost: Decimal = ZERO
    ending_qty: int = 0
    ending_value: Decimal = ZERO
    uncosted_outflow_qty: int = 0
    method: str = "WAC"

    def to_dict(self) -> dict:
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Decimal):
                out[f.name] = str(value.quantize(CENT, rounding=ROUND_HALF_UP))
            elif isinstance(value, date):
                out[f.name] = value.isoformat()
            else:
                out[f.name] = value
        return out


def _normalize_price(event: StockEvent) -> Decimal | None:
    price = event.price_at_change
    if price is None:
        return None
    if isinstance(price, bool):
        raise MalformedEventError(f"non-numeric price_at_change on item {event.item_id!r}")
    try:
        normalized = price if isinstance(price, Decimal) else Decimal(str(price))
    except (InvalidOperation, ValueError):
        raise MalformedEventError(f"non-numeric price_at_change {price!r} on item {event.item_id!r}")
    if not normalized.is_finite():
        raise MalformedEventError(f"non-finite price_at_change on item {event.item_id!r}")
    return normalized


def validate_event(event: StockEvent) -> None:
    if not event.item_id:
        raise MalformedEventError("event without item_id")
    if not isinstance(event.timestamp, datetime):
        raise MalformedEventError(f"event for item {event.item_id!r} has no timestamp")
    qty = event.quantity_change
    if isinstance(qty, bool) or not isinstance(qty, int):
        raise MalformedEventError(
            f"event for item {event.item_id!r} at {event.timestamp.isoformat()} "
            f"has non-integer quantity_change {qty!r}"
        )


class WacLedger:
    """
    Sequential WAC fold for one summary request.

    Feed events with apply() in stream order, then read summary().
    The ledger trusts the order it is given; ordered_events() is the guard
    that rejects a stream which goes backwards in time.
    """

    def __init__(
        self,
        period_start: datetime,
        period_end: datetime,
        *,
        strict_cost_basis: bool = False,
        cancel_event: threading.Event | None = None,
    ):
        self.period_start = period_start
        self.period_end = period_end
        self.strict_cost_basis = strict_cost_basis
        self.cancel_event = cancel_event

        self._states: dict[str, WacState] = {}
        self._opening: dict[str, WacState] = {}
        self.events_applied = 0

        self.purchases_qty = 0
        self.purchases_cost = ZERO
        self.returns_in_qty = 0
        self.returns_in_cost = ZERO
        self.cogs_qty = 0
        self.cogs_cost = ZERO
        self.write_off_qty = 0
        self.write_off_cost = ZERO
        self.uncosted_outflow_qty = 0

    def state_of(self, item_id: str) -> WacState:
        return self._states.get(item_id, EMPTY_STATE)

    def apply(self, event: StockEvent) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ReplayCancelledError(f"replay cancelled after {self.events_applied} events")

        validate_event(event)
        price = _normalize_price(event)

        if event.timestamp > self.period_end:
            return

        in_period = event.timestamp >= self.period_start
        if in_period and event.item_id not in self._opening:
            self._opening[event.item_id] = self.state_of(event.item_id)

        if event.is_inbound:
            self._inbound(event, price, in_period)
        elif event.is_outbound:
            self._outbound(event, in_period)

        self.events_applied += 1

    def _inbound(self, event: StockEvent, price: Decimal | None, in_period: bool) -> None:
        state = self.state_of(event.item_id)
        qty_in = event.quantity_change
        if price is not None:
            unit = price
        else:
            unit = state.avg_cost if state.has_cost_basis else ZERO

        cost = unit * qty_in
        # Closing a negative balance to exactly zero leaves value with no units to carry it
        variance = state.value + cost if state.qty + qty_in == 0 else ZERO

        self._states[event.item_id] = apply_inbound(state, qty_in, unit, priced=price is not None)

        if not in_period:
            return

        if event.reason in RETURNS_IN:
            self.returns_in_qty += qty_in
            self.returns_in_cost += cost
        else:
            self.purchases_qty += qty_in
            self.purchases_cost += cost

        if variance:
            logger.warning(
                "WAC negative-stock variance: item=%s at=%s amount=%s booked to COGS",
                event.item_id, event.timestamp.isoformat(), variance,
            )
            self.cogs_cost += variance

    def _outbound(self, event: StockEvent, in_period: bool) -> None:
        state = self.state_of(event.item_id)
        qty_out = -event.quantity_change

        if not state.has_cost_basis:
            if self.strict_cost_basis:
                raise MissingCostBasisError(
                    f"item {event.item_id!r} issued {qty_out} units at "
                    f"{event.timestamp.isoformat()} without a cost basis"
                )
            logger.warning(
                "WAC outflow without cost basis: item=%s qty=%d at=%s reason=%s; costed at zero",
                event.item_id, qty_out, event.timestamp.isoformat(), event.reason,
            )

        issue = issue_at(state, qty_out)
        self._states[event.item_id] = issue.state

        if not in_period:
            return

        if issue.uncosted:
            self.uncosted_outflow_qty += qty_out

        if event.reason in RETURNS_TO_SUPPLIER:
            self.purchases_qty -= qty_out
            self.purchases_cost -= issue.cost
        elif event.reason in WRITE_OFFS:
            self.write_off_qty += qty_out
            self.write_off_cost += issue.cost
        else:
            self.cogs_qty += qty_out
            self.cogs_cost += issue.cost

    def opening_states(self) -> dict[str, WacState]:
        # Items with no in-period events open with their final replayed state
        return {item_id: self._opening.get(item_id, state) for item_id, state in self._states.items()}

    def summary(self, from_date: date, to_date: date) -> FinancialSummary:
        opening = self.opening_states()
        return FinancialSummary(
            from_date=from_date,
            to_date=to_date,
            opening_qty=sum(s.qty for s in opening.values()),
            opening_value=sum((s.value for s in opening.values()), ZERO),
            purchases_qty=self.purchases_qty,
            purchases_cost=self.purchases_cost,
            returns_in_qty=self.returns_in_qty,
            returns_in_cost=self.returns_in_cost,
            cogs_qty=self.cogs_qty,
            cogs_cost=self.cogs_cost,
            write_off_qty=self.write_off_qty,
            write_off_cost=self.write_off_cost,
            ending_qty=sum(s.qty for s in self._states.values()),
            ending_value=sum((s.value for s in self._states.values()), ZERO),
            uncosted_outflow_qty=self.uncosted_outflow_qty,
        )


def ordered_events(events: Iterable[StockEvent]) -> Iterator[StockEvent]:
    """Pass events through, failing on an item whose stream goes backwards in time."""
    last_seen: dict[str, tuple[datetime, int]] = {}
    for event in events:
        validate_event(event)
        key = (event.timestamp, event.sequence if event.sequence is not None else -1)
        previous = last_seen.get(event.item_id)
        if previous is not None and key < previous:
            raise MalformedEventError(
                f"events for item {event.item_id!r} are out of order: "
                f"{event.timestamp.isoformat()} after {previous[0].isoformat()}"
            )
        last_seen[event.item_id] = key
        yield event


def compute_financial_summary(
    events: Iterable[StockEvent],
    from_date: date,
    to_date: date,
    *,
    strict_cost_basis: bool = False,
    cancel_event: threading.Event | None = None,
) -> FinancialSummary:
    """Pure WAC replay over an ordered event iterable. No database access."""
    validate_range(from_date, to_date, start_name="from", end_name="to")
    ledger = WacLedger(
        start_of_day(from_date),
        end_of_day(to_date),
        strict_cost_basis=strict_cost_basis,
        cancel_event=cancel_event,
    )
    for event in ordered_events(events):
        ledger.apply(event)

    logger.debug(
        "WAC replay %s..%s applied %d events across %d items",
        from_date.isoformat(), to_date.isoformat(), ledger.events_applied, len(ledger.opening_states()),
    )
    return ledger.summary(from_date, to_date)


def financial_summary(
    from_date: date | None,
    to_date: date | None,
    supplier_id: str | None = None,
    *,
    cancel_event: threading.Event | None = None,
) -> FinancialSummary:
    """
    WAC financial summary for [from_date, to_date], both inclusive.

    Validation runs before the event store is touched.
    """
    from_date = require_non_null(from_date, "from")
    to_date = require_non_null(to_date, "to")
    validate_range(from_date, to_date, start_name="from", end_name="to")

    events = stream_events(end_of_day(to_date), blank_to_null(supplier_id))
    return compute_financial_summary(
        events,
        from_date,
        to_date,
        strict_cost_basis=bool(current_app.config.get("WAC_STRICT_COST_BASIS", False)),
        cancel_event=cancel_event,
    )
