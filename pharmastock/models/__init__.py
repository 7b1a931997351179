"""
Pharmastock Models.

Core models for the inventory ledger:
- Warehouse, Location: Where stock exists
- Product, ProductPresentation: What is stocked and how it is packed
- Batch: Lot traceability, expiry and QC status
- InventoryBalance: On-hand and reserved quantity per stock key
- StockMovement: Immutable ledger of changes
- TenantSequence: Document numbering
- SalesOrder, SalesOrderLine, SalesOrderReservation: Order allocation
- StockMovementRequest, StockMovementRequestItem: Branch requests
"""

from pharmastock.models.balance import InventoryBalance
from pharmastock.models.batch import Batch
from pharmastock.models.enums import (
    BatchStatus,
    ConfirmationStatus,
    MovementRequestStatus,
    MovementType,
    SalesOrderStatus,
)
from pharmastock.models.location import Location, Warehouse
from pharmastock.models.movement import StockMovement
from pharmastock.models.order import SalesOrder, SalesOrderLine
from pharmastock.models.product import Product, ProductPresentation
from pharmastock.models.request import StockMovementRequest, StockMovementRequestItem
from pharmastock.models.reservation import SalesOrderReservation
from pharmastock.models.sequence import TenantSequence

__all__ = [
    'MovementType',
    'BatchStatus',
    'SalesOrderStatus',
    'MovementRequestStatus',
    'ConfirmationStatus',
    'Warehouse',
    'Location',
    'Product',
    'ProductPresentation',
    'Batch',
    'InventoryBalance',
    'StockMovement',
    'TenantSequence',
    'SalesOrder',
    'SalesOrderLine',
    'SalesOrderReservation',
    'StockMovementRequest',
    'StockMovementRequestItem',
]
