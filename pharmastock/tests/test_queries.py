"""
Tests for read-only stock queries.
"""

from decimal import Decimal

import pytest

from pharmastock import stock, StockError
from pharmastock.models import BatchStatus
from pharmastock.services.queries import BalanceFilter, ExpiryFilter

from .conftest import TENANT


pytestmark = pytest.mark.django_db


class TestAvailable:
    """Tests for stock.available()."""

    def test_empty(self, product):
        assert stock.available(TENANT, product.pk) == Decimal('0')

    def test_sums_sellable_balances_minus_reserved(self, shelf, scz_shelf, product, lot_soon, lot_expired,
                                                   make_batch, receive):
        quarantined = make_batch('L-QC', days=90, status=BatchStatus.QUARANTINE)
        receive(shelf, 10, lot_soon)
        receive(scz_shelf, 5)
        receive(shelf, 7, lot_expired)
        receive(shelf, 3, quarantined)
        order = stock.create_order(TENANT, lines=[{'product_id': product.pk, 'quantity': 4}])
        stock.confirm_order(TENANT, order.pk, version=1)

        assert stock.available(TENANT, product.pk) == Decimal('11')
        assert stock.available(TENANT, product.pk, location_id=scz_shelf.pk) == Decimal('5')
        assert stock.available(TENANT, product.pk, city='la paz') == Decimal('6')

    def test_over_reserved_balance_counts_zero(self, shelf, product, receive):
        from pharmastock.models import InventoryBalance

        received = receive(shelf, 10)
        InventoryBalance.objects.filter(pk=received.to_balance.pk).update(reserved_quantity=15)

        assert stock.available(TENANT, product.pk) == Decimal('0')


class TestBalances:
    """Tests for stock.get_balance() and stock.list_balances()."""

    def test_get_balance_by_key(self, shelf, product, lot_soon, receive):
        receive(shelf, 10, lot_soon)

        assert stock.get_balance(TENANT, shelf.pk, product.pk, lot_soon.pk).quantity == Decimal('10')
        assert stock.get_balance(TENANT, shelf.pk, product.pk) is None

    def test_list_filters(self, shelf, scz_shelf, product, lot_soon, receive, scz):
        receive(shelf, 10, lot_soon)
        receive(scz_shelf, 4)
        receive(scz_shelf, 4, lot_soon)
        stock.create_movement(TENANT, 'OUT', product.pk, 4, from_location_id=scz_shelf.pk)

        in_scz = list(stock.list_balances(TENANT, BalanceFilter(warehouse_id=scz.pk)))
        with_empty = list(stock.list_balances(TENANT, BalanceFilter(warehouse_id=scz.pk, include_empty=True)))
        by_lot = list(stock.list_balances(TENANT, BalanceFilter(batch_id=lot_soon.pk)))

        assert len(in_scz) == 1
        assert len(with_empty) == 2
        assert {b.location_id for b in by_lot} == {shelf.pk, scz_shelf.pk}


class TestFefoSuggestions:
    """Tests for stock.fefo_suggestions()."""

    def test_location_mode(self, shelf, product, lot_soon, lot_late, lot_expired, lot_open_ended, receive):
        receive(shelf, 5, lot_late)
        receive(shelf, 5, lot_open_ended)
        receive(shelf, 5, lot_soon)
        receive(shelf, 5, lot_expired)
        receive(shelf, 5)

        rows = stock.fefo_suggestions(TENANT, product.pk, location_id=shelf.pk)

        assert [r.batch_number for r in rows] == ['L-SOON', 'L-LATE', 'L-NOEXP']

    def test_warehouse_mode_groups_by_lot(self, shelf, cold_room, product, lot_soon, receive, lpz):
        receive(shelf, 5, lot_soon)
        receive(cold_room, 7, lot_soon)

        rows = stock.fefo_suggestions(TENANT, product.pk, warehouse_id=lpz.pk)

        assert len(rows) == 1
        assert rows[0].quantity == Decimal('12')

    def test_requires_scope(self, product):
        with pytest.raises(StockError) as exc:
            stock.fefo_suggestions(TENANT, product.pk)
        assert exc.value.code == 'INVALID_REQUEST'


class TestExpirySummary:
    """Tests for stock.expiry_summary()."""

    @pytest.fixture
    def stocked(self, shelf, make_batch, receive):
        lots = {
            'EXPIRED': make_batch('E', days=-3),
            'RED': make_batch('R', days=10),
            'YELLOW': make_batch('Y', days=60),
            'GREEN': make_batch('G', days=365),
        }
        for lot in lots.values():
            receive(shelf, 5, lot)
        receive(shelf, 5, make_batch('N'))
        return lots

    def test_semaphore_and_order(self, stocked):
        page = stock.expiry_summary(TENANT)

        assert [row.status for row in page.items] == ['EXPIRED', 'RED', 'YELLOW', 'GREEN']
        assert page.items[0].days_to_expire == -3
        assert page.next_cursor is None

    def test_filter_by_status(self, stocked):
        page = stock.expiry_summary(TENANT, ExpiryFilter(status='YELLOW'))

        assert [row.batch_number for row in page.items] == ['Y']

    def test_cursor_pagination(self, stocked):
        first = stock.expiry_summary(TENANT, ExpiryFilter(take=2))
        second = stock.expiry_summary(TENANT, ExpiryFilter(take=2, cursor=first.next_cursor))

        assert [r.batch_number for r in first.items] == ['E', 'R']
        assert [r.batch_number for r in second.items] == ['Y', 'G']
        assert second.next_cursor is None


class TestReservationsForBalance:
    """Tests for stock.reservations_for_balance()."""

    def test_active_only_by_default(self, shelf, product, lot_soon, receive):
        received = receive(shelf, 10, lot_soon)
        order = stock.create_order(TENANT, lines=[{'product_id': product.pk, 'quantity': 4}])
        stock.confirm_order(TENANT, order.pk, version=1)
        balance_id = received.to_balance.pk

        assert stock.reservations_for_balance(TENANT, balance_id).count() == 1

        stock.cancel_order(TENANT, order.pk, version=2)

        assert stock.reservations_for_balance(TENANT, balance_id).count() == 0
        assert stock.reservations_for_balance(TENANT, balance_id, include_released=True).count() == 1
