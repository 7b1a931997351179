"""
Tests for management commands.
"""

from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import call_command

from pharmastock import stock
from pharmastock.models import InventoryBalance, MovementType

from .conftest import TENANT


pytestmark = pytest.mark.django_db


class TestRecalculateBalances:
    """Tests for recalculate_balances."""

    @pytest.fixture
    def drifted(self, shelf, cold_room, product, lot_soon, receive):
        receive(shelf, 10, lot_soon)
        stock.create_movement(
            TENANT, MovementType.TRANSFER, product.pk, 4,
            from_location_id=shelf.pk, to_location_id=cold_room.pk, batch_id=lot_soon.pk,
        )
        balance = InventoryBalance.objects.get(location=shelf, batch=lot_soon)
        InventoryBalance.objects.filter(pk=balance.pk).update(quantity=Decimal('9'))
        return balance

    def test_dry_run_reports_only(self, drifted):
        out = StringIO()

        call_command('recalculate_balances', '--dry-run', stdout=out)

        assert 'libro=6' in out.getvalue()
        assert '1 de 2 saldo(s) con diferencia' in out.getvalue()
        drifted.refresh_from_db()
        assert drifted.quantity == Decimal('9')

    def test_fixes_drift(self, drifted):
        out = StringIO()
        version = drifted.version

        call_command('recalculate_balances', stdout=out)

        assert '1 de 2 saldo(s) corregido(s)' in out.getvalue()
        drifted.refresh_from_db()
        assert drifted.quantity == Decimal('6')
        assert drifted.version == version + 1

    def test_other_tenant_untouched(self, drifted):
        out = StringIO()

        call_command('recalculate_balances', '--tenant', 'globex', stdout=out)

        assert '0 de 0' in out.getvalue()
        drifted.refresh_from_db()
        assert drifted.quantity == Decimal('9')
