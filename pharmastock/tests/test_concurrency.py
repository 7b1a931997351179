"""
Concurrency tests. Need row locks, so they only run on PostgreSQL:

    PHARMASTOCK_TEST_DB=postgres pytest pharmastock/tests/test_concurrency.py
"""

import threading
from decimal import Decimal

import pytest
from django.db import connection, connections

from pharmastock import stock, StockError
from pharmastock.models import InventoryBalance, MovementType, StockMovement
from pharmastock.services.sequences import next_sequence

from .conftest import TENANT


pytestmark = [
    pytest.mark.django_db(transaction=True),
    pytest.mark.skipif(connection.vendor != 'postgresql', reason='requires PostgreSQL row locks'),
]


def _run_parallel(target, count):
    barrier = threading.Barrier(count)
    results, errors = [], []

    def worker():
        barrier.wait()
        try:
            results.append(target())
        except StockError as e:
            errors.append(e)
        finally:
            connections.close_all()

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


class TestConcurrentMovements:

    def test_two_outs_never_oversell(self, shelf, product, receive):
        """100 on hand, two concurrent OUTs of 60: exactly one wins."""
        receive(shelf, 100)

        results, errors = _run_parallel(
            lambda: stock.create_movement(
                TENANT, MovementType.OUT, product.pk, 60, from_location_id=shelf.pk,
            ),
            2,
        )

        assert len(results) == 1
        assert [e.code for e in errors] == ['INSUFFICIENT_STOCK']
        balance = InventoryBalance.objects.get(location=shelf, batch=None)
        assert balance.quantity == Decimal('40')

    def test_movement_numbers_unique(self, shelf, receive):
        results, errors = _run_parallel(lambda: receive(shelf, 1), 5)

        assert errors == []
        assert len(results) == 5
        numbers = set(StockMovement.objects.values_list('number', flat=True))
        assert len(numbers) == 5
        assert InventoryBalance.objects.get(location=shelf).quantity == Decimal('5')


class TestConcurrentSequences:

    def test_first_use_race(self):
        results, errors = _run_parallel(lambda: next_sequence(TENANT, 2026, 'RACE').value, 6)

        assert errors == []
        assert sorted(results) == [1, 2, 3, 4, 5, 6]
