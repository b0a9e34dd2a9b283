from .inventory import StockChangeReason, Supplier, InventoryItem, StockHistory

__all__ = [
    'StockChangeReason',
    'Supplier', 'InventoryItem', 'StockHistory',
]
