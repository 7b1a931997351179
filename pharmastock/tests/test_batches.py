"""
Tests for lot registration and QC transitions.
"""

from datetime import timedelta

import pytest

from pharmastock import stock, StockError
from pharmastock.models import BatchStatus

from .conftest import TENANT


pytestmark = pytest.mark.django_db


class TestCreateBatch:
    """Tests for stock.create_batch()."""

    def test_numbered_from_sequence(self, product, today):
        first = stock.create_batch(TENANT, product.pk, expires_at=today + timedelta(days=400))
        second = stock.create_batch(TENANT, product.pk)

        assert first.batch_number == f'LOT-{today.year}001'
        assert second.batch_number == f'LOT-{today.year}002'
        assert first.status == BatchStatus.QUARANTINE

    def test_duplicate_number_rejected(self, product):
        stock.create_batch(TENANT, product.pk, batch_number='L-100')

        with pytest.raises(StockError) as exc:
            stock.create_batch(TENANT, product.pk, batch_number='L-100')
        assert exc.value.code == 'STATE_CONFLICT'

    def test_same_number_other_product_allowed(self, product, other_product):
        stock.create_batch(TENANT, product.pk, batch_number='L-100')
        batch = stock.create_batch(TENANT, other_product.pk, batch_number='L-100')

        assert batch.product_id == other_product.pk


class TestQualityControl:
    """Tests for release, reject and open."""

    def test_release(self, product, user):
        batch = stock.create_batch(TENANT, product.pk, batch_number='L-1')

        released = stock.release_batch(TENANT, batch.pk, user=user)

        assert released.status == BatchStatus.RELEASED
        assert released.released_by == user
        assert released.released_at is not None

    def test_release_is_one_way(self, product):
        batch = stock.create_batch(TENANT, product.pk, batch_number='L-1')
        stock.release_batch(TENANT, batch.pk)

        with pytest.raises(StockError) as exc:
            stock.release_batch(TENANT, batch.pk)
        assert exc.value.code == 'STATE_CONFLICT'
        with pytest.raises(StockError) as exc:
            stock.reject_batch(TENANT, batch.pk)
        assert exc.value.code == 'STATE_CONFLICT'

    def test_reject(self, product):
        batch = stock.create_batch(TENANT, product.pk, batch_number='L-1')

        assert stock.reject_batch(TENANT, batch.pk).status == BatchStatus.REJECTED

    def test_open_is_idempotent(self, lot_soon, user):
        opened = stock.open_batch(TENANT, lot_soon.pk, user=user)
        first_at = opened.opened_at

        again = stock.open_batch(TENANT, lot_soon.pk)

        assert again.opened_at == first_at
        assert again.is_opened

    def test_unknown_batch(self, product):
        with pytest.raises(StockError) as exc:
            stock.release_batch(TENANT, 999999)
        assert exc.value.code == 'NOT_FOUND'
