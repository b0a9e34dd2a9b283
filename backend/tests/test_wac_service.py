import threading
from datetime import date, datetime
from decimal import Decimal

import pytest

from inventory_analytics import create_app
from inventory_analytics.extensions import db
from inventory_analytics.models import StockChangeReason
from inventory_analytics.services import concurrency, dashboard_service, wac_service
from inventory_analytics.services.concurrency import SummaryRequest, summarize_many
from inventory_analytics.services.wac_service import (
    MalformedEventError,
    MissingCostBasisError,
    ReplayCancelledError,
)
from inventory_analytics.validation import InvalidRangeError, ValidationError

from conftest import TEST_CONFIG, StockBuilder


def seed_two_suppliers(stock):
    stock.supplier("SUP-A", "Acme")
    stock.supplier("SUP-B", "Beta")
    stock.item("A", supplier_id="SUP-A", price="5.00")
    stock.item("B", supplier_id="SUP-B", price="1.00")

    stock.event("A", datetime(2023, 12, 15), 10, price="5.00", reason=StockChangeReason.INITIAL_STOCK)
    stock.event("A", datetime(2024, 1, 5), 10, price="7.00")
    stock.event("A", datetime(2024, 1, 10), -4, reason=StockChangeReason.SOLD)
    stock.event("A", datetime(2024, 1, 31, 23, 59), -1, reason=StockChangeReason.LOST)
    stock.event("A", datetime(2024, 2, 1), -5, reason=StockChangeReason.SOLD)
    stock.event("B", datetime(2024, 1, 2), 20, price="1.00")
    stock.event("B", datetime(2024, 1, 3), 5, price="1.60", reason=StockChangeReason.RETURNED_BY_CUSTOMER)


def test_financial_summary_from_history(stock):
    seed_two_suppliers(stock)

    summary = wac_service.financial_summary(date(2024, 1, 1), date(2024, 1, 31))

    assert (summary.opening_qty, summary.opening_value) == (10, Decimal("50.00"))
    assert (summary.purchases_qty, summary.purchases_cost) == (30, Decimal("90.00"))
    assert (summary.returns_in_qty, summary.returns_in_cost) == (5, Decimal("8.00"))
    assert (summary.cogs_qty, summary.cogs_cost) == (4, Decimal("24.00"))
    assert (summary.write_off_qty, summary.write_off_cost) == (1, Decimal("6.00"))
    assert summary.ending_qty == 40
    assert summary.ending_value == Decimal("118.00")


def test_financial_summary_supplier_filter(stock):
    seed_two_suppliers(stock)

    summary = wac_service.financial_summary(date(2024, 1, 1), date(2024, 1, 31), " sup-b ")

    assert summary.opening_qty == 0
    assert summary.purchases_qty == 20
    assert summary.returns_in_qty == 5
    assert summary.ending_qty == 25


def test_financial_summary_is_idempotent(stock):
    seed_two_suppliers(stock)
    first = wac_service.financial_summary(date(2024, 1, 1), date(2024, 1, 31)).to_dict()
    second = wac_service.financial_summary(date(2024, 1, 1), date(2024, 1, 31)).to_dict()
    assert first == second


def test_financial_summary_empty_range(stock):
    seed_two_suppliers(stock)

    summary = wac_service.financial_summary(date(2024, 3, 1), date(2024, 3, 31))

    assert summary.opening_qty == summary.ending_qty == 35
    assert summary.opening_value == summary.ending_value
    assert summary.purchases_qty == summary.cogs_qty == summary.write_off_qty == 0


def test_financial_summary_empty_store(db_session):
    data = wac_service.financial_summary(date(2024, 1, 1), date(2024, 1, 31)).to_dict()
    assert data["ending_qty"] == 0
    assert data["purchases_cost"] == "0.00"


def test_financial_summary_validates_before_querying(db_session):
    with pytest.raises(InvalidRangeError):
        wac_service.financial_summary(date(2024, 2, 1), date(2024, 1, 1))
    with pytest.raises(ValidationError):
        wac_service.financial_summary(None, date(2024, 1, 1))


def test_strict_cost_basis_from_config(app, stock, acme_item, monkeypatch):
    stock.event("ITEM-1", datetime(2024, 1, 2), -1, reason=StockChangeReason.SOLD)

    lenient = wac_service.financial_summary(date(2024, 1, 1), date(2024, 1, 31))
    assert lenient.uncosted_outflow_qty == 1

    monkeypatch.setitem(app.config, "WAC_STRICT_COST_BASIS", True)
    with pytest.raises(MissingCostBasisError):
        wac_service.financial_summary(date(2024, 1, 1), date(2024, 1, 31))


def test_dashboard_summary(stock):
    seed_two_suppliers(stock)

    payload = dashboard_service.dashboard_summary("SUP-A", today=date(2024, 1, 20))

    assert payload["as_of"] == "2024-01-20"
    assert payload["financial_summary"]["from_date"] == "2024-01-01"
    assert payload["financial_summary"]["to_date"] == "2024-01-20"
    assert payload["financial_summary"]["cogs_qty"] == 4
    # 30-day window (2023-12-21..2024-01-20) leaves out the December opening stock
    assert [m["month"] for m in payload["monthly_movement"]] == ["2024-01"]
    assert {row["supplier_name"] for row in payload["stock_per_supplier"]} == {"Acme", "Beta"}
    assert payload["low_stock_items"] == []
    assert payload["low_stock_count"] == 2


# ---------------------------------------------------------------------------
# Parallel summaries (file-backed SQLite so each worker gets its own connection)
# ---------------------------------------------------------------------------

@pytest.fixture
def file_app(tmp_path):
    app = create_app({**TEST_CONFIG, "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'analytics.db'}"})
    with app.app_context():
        db.create_all()
        seed_two_suppliers(StockBuilder(db.session))
        yield app
        db.session.remove()
        db.drop_all()


def test_summarize_many_matches_sequential_results(file_app):
    requests = [
        SummaryRequest(date(2024, 1, 1), date(2024, 1, 31)),
        SummaryRequest(date(2024, 1, 1), date(2024, 1, 31), "SUP-B"),
        SummaryRequest(date(2024, 2, 1), date(2024, 2, 29), "sup-a"),
    ]

    results = summarize_many(requests, max_workers=3)

    expected = [
        wac_service.financial_summary(r.from_date, r.to_date, r.supplier_id).to_dict() for r in requests
    ]
    assert [r.to_dict() for r in results] == expected
    assert results[2].cogs_qty == 5


def test_summarize_many_honours_cancellation(file_app):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(ReplayCancelledError):
        summarize_many([SummaryRequest(date(2024, 1, 1), date(2024, 1, 31))], cancel_event=cancel)


def test_summarize_many_empty(file_app):
    assert summarize_many([]) == []


def test_summarize_many_raises_the_failure_not_the_cancellation_it_caused(app, monkeypatch):
    slow_started = threading.Event()

    def fake_summary(from_date, to_date, supplier_id=None, *, cancel_event=None):
        if supplier_id == "SLOW":
            # Still replaying when the later request fails
            slow_started.set()
            assert cancel_event.wait(timeout=5)
            raise ReplayCancelledError("replay cancelled after 1 events")
        assert slow_started.wait(timeout=5)
        raise MalformedEventError("event without item_id")

    monkeypatch.setattr(concurrency, "financial_summary", fake_summary)
    cancel = threading.Event()

    with pytest.raises(MalformedEventError):
        summarize_many(
            [
                SummaryRequest(date(2024, 1, 1), date(2024, 1, 31), "SLOW"),
                SummaryRequest(date(2024, 1, 1), date(2024, 1, 31), "BROKEN"),
            ],
            max_workers=2,
            cancel_event=cancel,
        )
    assert cancel.is_set()
