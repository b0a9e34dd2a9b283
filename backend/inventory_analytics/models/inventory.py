from __future__ import annotations

import enum

from ..extensions import db
from inventory_analytics.time_utils import to_utc_z


class StockChangeReason(str, enum.Enum):
    INITIAL_STOCK = "INITIAL_STOCK"
    MANUAL_UPDATE = "MANUAL_UPDATE"
    PRICE_CHANGE = "PRICE_CHANGE"
    SOLD = "SOLD"
    SCRAPPED = "SCRAPPED"
    DESTROYED = "DESTROYED"
    DAMAGED = "DAMAGED"
    EXPIRED = "EXPIRED"
    LOST = "LOST"
    RETURNED_TO_SUPPLIER = "RETURNED_TO_SUPPLIER"
    RETURNED_BY_CUSTOMER = "RETURNED_BY_CUSTOMER"


class Supplier(db.Model):
    __tablename__ = "suppliers"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<Supplier id={self.id!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class InventoryItem(db.Model):
    """
    Current item metadata.

    The engine only reads two columns here as fallbacks for history rows:
    - supplier_id: the item's CURRENT supplier (used when an event has none)
    - price: the item's CURRENT price (used when an event has no price_at_change)
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.Index("ix_inventory_items_supplier", "supplier_id"),
    )

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    supplier_id = db.Column(db.String(64), db.ForeignKey("suppliers.id"), nullable=True)

    price = db.Column(db.Numeric(12, 2), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    minimum_quantity = db.Column(db.Integer, nullable=False, default=0)

    supplier = db.relationship("Supplier", backref=db.backref("items", lazy=True))

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id!r} name={self.name!r} supplier_id={self.supplier_id!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "supplier_id": self.supplier_id,
            "price": str(self.price) if self.price is not None else None,
            "quantity": self.quantity,
            "minimum_quantity": self.minimum_quantity,
        }


class StockHistory(db.Model):
    """
    Append-only stock movement log.

    - quantity_change is signed: positive = inbound, negative = outbound
    - id is insertion order and breaks ties between rows sharing created_at
    - supplier_id is the supplier recorded on the event; NULL for rows written
      before the column existed
    """
    __tablename__ = "stock_history"
    __table_args__ = (
        db.Index("ix_sh_item_ts", "item_id", "created_at"),
        db.Index("ix_sh_ts", "created_at"),
        db.Index("ix_sh_supplier_ts", "supplier_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, db.Sequence("stock_history_id_seq"), primary_key=True)

    item_id = db.Column(db.String(64), db.ForeignKey("inventory_items.id"), nullable=False)
    supplier_id = db.Column(db.String(64), db.ForeignKey("suppliers.id"), nullable=True)

    quantity_change = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(32), nullable=False)
    created_by = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False)
    price_at_change = db.Column(db.Numeric(12, 2), nullable=True)

    item = db.relationship("InventoryItem", foreign_keys=[item_id])
    supplier = db.relationship("Supplier", foreign_keys=[supplier_id])

    def __repr__(self) -> str:
        return (
            f"<StockHistory id={self.id} item_id={self.item_id!r} "
            f"change={self.quantity_change} reason={self.reason}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "supplier_id": self.supplier_id,
            "quantity_change": self.quantity_change,
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "price_at_change": str(self.price_at_change) if self.price_at_change is not None else None,
        }
