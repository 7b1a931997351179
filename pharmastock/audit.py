"""
Expiry audit hook.

A BATCH_EXPIRED rejection rolls back the transaction that raised it, so
the audit entry has to be written by the caller, outside that
transaction. expiry_guard does this around any workflow call:

    from pharmastock.audit import expiry_guard

    with expiry_guard(tenant_id, request.user, "sales_order.deliver", order_id=order.pk):
        stock.deliver_order(tenant_id, order.pk, version, user=request.user)
"""

import logging
from contextlib import contextmanager

from pharmastock.adapters.audit import get_audit_sink
from pharmastock.exceptions import StockError
from pharmastock.signals import expiry_blocked

logger = logging.getLogger('pharmastock')

EXPIRY_BLOCKED_ACTION = "stock.expiry.blocked"


@contextmanager
def expiry_guard(tenant_id, actor, operation: str, **context):
    """Record BATCH_EXPIRED rejections, then re-raise them."""
    try:
        yield
    except StockError as e:
        if e.code != 'BATCH_EXPIRED':
            raise
        meta = e.as_dict()['data']
        metadata = {"operation": operation, **context, **meta}
        logger.warning(
            EXPIRY_BLOCKED_ACTION,
            extra={"tenant_id": tenant_id, "operation": operation, "batch_id": meta.get("batch_id")},
        )
        get_audit_sink().append(
            tenant_id,
            actor,
            EXPIRY_BLOCKED_ACTION,
            "Batch",
            meta.get("batch_id"),
            metadata=metadata,
        )
        expiry_blocked.send(sender=StockError, tenant_id=tenant_id, operation=operation, meta=metadata)
        raise
