"""
Stock Service — the single public interface for all stock operations.

Usage:
    from pharmastock import stock, StockError
    from pharmastock.models import MovementType

    stock.post_movement(tenant_id, MovementType.IN, product.pk, 100, to_location_id=shelf.pk)
    order = stock.create_order(tenant_id, lines=[{"product_id": product.pk, "quantity": 5}])
    stock.confirm_order(tenant_id, order.pk, version=order.version)
    stock.available(tenant_id, product.pk)  # 95

Every method takes tenant_id first. State-changing methods run in
transaction.atomic() and lock the rows they touch; see each docstring.
"""

from pharmastock.services.batches import Batches
from pharmastock.services.movements import StockMovements
from pharmastock.services.orders import SalesOrders
from pharmastock.services.queries import StockQueries
from pharmastock.services.requests import MovementRequests
from pharmastock.services.reservations import StockReservations


class Stock(
    StockQueries,
    StockMovements,
    StockReservations,
    SalesOrders,
    MovementRequests,
    Batches,
):
    """
    Facade over the stock services.

    Queries: available, get_balance, list_balances, fefo_suggestions,
        expiry_summary, reservations_for_balance, list_movement_requests
    Ledger: create_movement, post_movement, bulk_transfer, repack
    Reservations: reserve_for_order, release_for_order
    Sales: create_order, confirm_order, fulfill_order, deliver_order,
        cancel_order, mark_order_paid
    Requests: create_request, plan_request, fulfill_request,
        bulk_fulfill_requests, mark_request_sent, cancel_request,
        confirm_request
    Lots: create_batch, release_batch, reject_batch, open_batch
    """
