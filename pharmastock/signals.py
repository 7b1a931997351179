"""
Pharmastock signals: post-commit events for realtime and audit listeners.

Every signal is sent through transaction.on_commit, so receivers only
ever observe committed state. All signals carry tenant_id.

Usage:
    from django.dispatch import receiver
    from pharmastock.signals import movement_created

    @receiver(movement_created)
    def broadcast(sender, tenant_id, movement, **kwargs):
        socketio.to(f"tenant:{tenant_id}").emit("stock.movement.created", ...)
"""

import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger('pharmastock')

# kwargs: tenant_id, movement
movement_created = Signal()
# kwargs: tenant_id, balance
balance_changed = Signal()
# kwargs: tenant_id, balance (quantity reached zero)
stock_depleted = Signal()
# kwargs: tenant_id, order, allocations
order_confirmed = Signal()
# kwargs: tenant_id, order, movements
order_fulfilled = Signal()
# kwargs: tenant_id, order, due_at, credit_days
payment_due = Signal()
# kwargs: tenant_id, request
movement_request_fulfilled = Signal()
# kwargs: tenant_id, request
movement_request_confirmed = Signal()
# kwargs: tenant_id, operation, meta
expiry_blocked = Signal()


def send_on_commit(signal: Signal, sender, **kwargs) -> None:
    """Dispatch signal after the current transaction commits."""
    transaction.on_commit(lambda: signal.send(sender=sender, **kwargs))


def announce_movement(sender, result) -> None:
    """Schedule movement_created, balance_changed and stock_depleted for a movement result."""
    tenant_id = result.movement.tenant_id
    send_on_commit(movement_created, sender, tenant_id=tenant_id, movement=result.movement)
    for balance in result.balances:
        send_on_commit(balance_changed, sender, tenant_id=tenant_id, balance=balance)
        if balance.quantity == 0:
            send_on_commit(stock_depleted, sender, tenant_id=tenant_id, balance=balance)
