"""
Pytest fixtures for inventory analytics tests.

Provides the test app (SQLite dialect, in-memory database), a clean
session per test, and a small builder for suppliers, items and history.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from inventory_analytics import create_app
from inventory_analytics.extensions import db
from inventory_analytics.models import InventoryItem, StockChangeReason, StockHistory, Supplier


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'ANALYTICS_SQL_DIALECT': 'sqlite',
    'WAC_STRICT_COST_BASIS': False,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


class StockBuilder:
    """Writes suppliers, items and history rows; every call commits."""

    def __init__(self, session):
        self.session = session

    def supplier(self, supplier_id: str, name: str | None = None) -> Supplier:
        supplier = Supplier(id=supplier_id, name=name or f"Supplier {supplier_id}")
        self.session.add(supplier)
        self.session.commit()
        return supplier

    def item(
        self,
        item_id: str,
        *,
        supplier_id: str | None = None,
        name: str | None = None,
        price: str | None = None,
        quantity: int = 0,
        minimum_quantity: int = 0,
    ) -> InventoryItem:
        item = InventoryItem(
            id=item_id,
            name=name or item_id,
            supplier_id=supplier_id,
            price=Decimal(price) if price is not None else None,
            quantity=quantity,
            minimum_quantity=minimum_quantity,
        )
        self.session.add(item)
        self.session.commit()
        return item

    def event(
        self,
        item_id: str,
        at: datetime,
        change: int,
        *,
        price: str | None = None,
        reason: StockChangeReason = StockChangeReason.MANUAL_UPDATE,
        supplier_id: str | None = None,
        created_by: str | None = "tester",
    ) -> StockHistory:
        row = StockHistory(
            item_id=item_id,
            supplier_id=supplier_id,
            quantity_change=change,
            reason=reason.value,
            created_by=created_by,
            created_at=at,
            price_at_change=Decimal(price) if price is not None else None,
        )
        self.session.add(row)
        self.session.commit()
        return row


@pytest.fixture(scope='function')
def stock(db_session):
    """Builder bound to the clean per-test session."""
    return StockBuilder(db_session)


@pytest.fixture(scope='function')
def acme_item(stock):
    """Supplier SUP-A with one item ITEM-1 priced at 9.99."""
    stock.supplier("SUP-A", "Acme")
    return stock.item("ITEM-1", supplier_id="SUP-A", price="9.99")
