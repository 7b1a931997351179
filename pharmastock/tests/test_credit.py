"""
Tests for payment terms parsing.
"""

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest

from pharmastock.credit import parse_credit_days, payment_due_at
from pharmastock.models import SalesOrder


class TestParseCreditDays:

    @pytest.mark.parametrize('mode,days', [
        ('CASH', 0),
        ('CREDIT_30', 30),
        ('CREDIT_7', 7),
        ('CREDIT_365', 365),
        ('CREDIT_', 0),
        ('CREDIT_1000', 0),
        ('credit_30', 0),
        ('', 0),
        (None, 0),
    ])
    def test_modes(self, mode, days):
        assert parse_credit_days(mode) == days


class TestPaymentDueAt:

    def test_from_delivered_at(self):
        delivered = datetime(2026, 1, 10, 15, 0, tzinfo=dt_timezone.utc)
        order = SalesOrder(payment_mode='CREDIT_15', delivered_at=delivered)

        assert payment_due_at(order) == delivered + timedelta(days=15)

    def test_falls_back_to_delivery_date(self):
        planned = datetime(2026, 2, 1, tzinfo=dt_timezone.utc)
        order = SalesOrder(payment_mode='CASH', delivery_date=planned)

        assert payment_due_at(order) == planned
