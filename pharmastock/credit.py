"""
Payment terms: credit days encoded in SalesOrder.payment_mode.

    CASH        -> 0 days
    CREDIT_30   -> 30 days
    anything else (CREDIT_, CREDIT_1000, credit_7) -> 0 days
"""

import re
from datetime import datetime, timedelta

from django.utils import timezone

_CREDIT_RE = re.compile(r'^CREDIT_(\d{1,3})$')


def parse_credit_days(payment_mode: str | None) -> int:
    if not payment_mode or payment_mode == 'CASH':
        return 0
    match = _CREDIT_RE.match(payment_mode)
    if not match:
        return 0
    return int(match.group(1))


def payment_due_at(order) -> datetime:
    """delivered_at (or delivery_date, or now) plus the order's credit days."""
    base = order.delivered_at or order.delivery_date or timezone.now()
    return base + timedelta(days=parse_credit_days(order.payment_mode))
