"""
Tests for the admin registrations.
"""

import pytest
from django.urls import reverse

from pharmastock.models import Batch, BatchStatus


pytestmark = pytest.mark.django_db


@pytest.mark.parametrize('model', [
    'warehouse', 'location', 'product', 'productpresentation', 'batch', 'inventorybalance',
    'stockmovement', 'salesorder', 'salesorderreservation', 'stockmovementrequest',
])
def test_changelist_loads(admin_client, model, shelf, lot_soon, receive):
    receive(shelf, 10, lot_soon)

    response = admin_client.get(reverse(f'admin:pharmastock_{model}_changelist'))

    assert response.status_code == 200


def test_ledger_is_read_only(admin_client):
    response = admin_client.get(reverse('admin:pharmastock_stockmovement_add'))

    assert response.status_code == 403


def test_release_action(admin_client, make_batch):
    quarantined = make_batch('L-QC', days=90, status=BatchStatus.QUARANTINE)
    released = make_batch('L-OK', days=90)

    response = admin_client.post(
        reverse('admin:pharmastock_batch_changelist'),
        {'action': 'release_batches', '_selected_action': [quarantined.pk, released.pk]},
    )

    assert response.status_code == 302
    assert Batch.objects.get(pk=quarantined.pk).status == BatchStatus.RELEASED
    assert Batch.objects.get(pk=quarantined.pk).released_by is not None
