"""
Stock services — modular organization of stock operations.

    from pharmastock.services import StockQueries, StockMovements, SalesOrders
"""

from pharmastock.services.batches import Batches
from pharmastock.services.movements import StockMovements
from pharmastock.services.orders import SalesOrders
from pharmastock.services.queries import StockQueries
from pharmastock.services.requests import MovementRequests
from pharmastock.services.reservations import StockReservations
from pharmastock.services.sequences import next_sequence

__all__ = [
    'StockQueries',
    'StockMovements',
    'StockReservations',
    'SalesOrders',
    'MovementRequests',
    'Batches',
    'next_sequence',
]
