"""
Django Pharmastock: multi-tenant pharmaceutical inventory ledger.

Immutable movements, per-lot balances, FEFO reservation of sales orders
and inter-city movement requests.

Uso:
    from pharmastock import stock, StockError

    stock.post_movement(tenant_id, "IN", product_id, 100, to_location_id=shelf_id)
    stock.available(tenant_id, product_id)  # 100
"""


def __getattr__(name):
    """Lazy import to avoid circular imports during app loading."""
    if name == 'stock':
        from pharmastock.service import Stock
        return Stock
    elif name == 'StockError':
        from pharmastock.exceptions import StockError
        return StockError
    elif name == 'InventoryBalance':
        from pharmastock.models.balance import InventoryBalance
        return InventoryBalance
    elif name == 'StockMovement':
        from pharmastock.models.movement import StockMovement
        return StockMovement
    elif name == 'Batch':
        from pharmastock.models.batch import Batch
        return Batch
    elif name == 'SalesOrder':
        from pharmastock.models.order import SalesOrder
        return SalesOrder
    elif name == 'StockMovementRequest':
        from pharmastock.models.request import StockMovementRequest
        return StockMovementRequest
    elif name == 'MovementType':
        from pharmastock.models.enums import MovementType
        return MovementType
    elif name == 'BatchStatus':
        from pharmastock.models.enums import BatchStatus
        return BatchStatus
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    'stock',
    'StockError',
    'InventoryBalance',
    'StockMovement',
    'Batch',
    'SalesOrder',
    'StockMovementRequest',
    'MovementType',
    'BatchStatus',
]

__version__ = '0.1.0'
