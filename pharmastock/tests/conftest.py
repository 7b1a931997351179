"""
Pytest fixtures for Pharmastock tests.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model

from pharmastock import stock
from pharmastock.adapters.audit import reset_audit_sink
from pharmastock.expiry import today_utc
from pharmastock.models import (
    Batch,
    BatchStatus,
    Location,
    MovementType,
    Product,
    ProductPresentation,
    Warehouse,
)
from pharmastock.tests.sinks import RecordingAuditSink


User = get_user_model()

TENANT = 'acme'


@pytest.fixture(autouse=True)
def audit_entries():
    """Fresh in-memory audit trail per test."""
    reset_audit_sink()
    RecordingAuditSink.entries = []
    yield RecordingAuditSink.entries
    reset_audit_sink()


@pytest.fixture
def tenant():
    return TENANT


@pytest.fixture
def user(db):
    """Create a test user."""
    return User.objects.create_user(
        username='almacenero',
        password='testpass123'
    )


@pytest.fixture
def today():
    """Today's date in UTC, as the expiry gate sees it."""
    return today_utc()


# ══════════════════════════════════════════════════════════════
# LOCATIONS
# ══════════════════════════════════════════════════════════════

@pytest.fixture
def lpz(db):
    """Central warehouse in La Paz."""
    return Warehouse.objects.create(tenant_id=TENANT, code='LPZ-01', name='Central La Paz', city='LA PAZ')


@pytest.fixture
def scz(db):
    """Branch warehouse in Santa Cruz."""
    return Warehouse.objects.create(tenant_id=TENANT, code='SCZ-01', name='Sucursal Santa Cruz', city='Santa Cruz')


@pytest.fixture
def shelf(lpz):
    return Location.objects.create(tenant_id=TENANT, warehouse=lpz, code='A-01', name='Estante A')


@pytest.fixture
def cold_room(lpz):
    return Location.objects.create(tenant_id=TENANT, warehouse=lpz, code='FRIO', name='Cámara fría')


@pytest.fixture
def scz_shelf(scz):
    return Location.objects.create(tenant_id=TENANT, warehouse=scz, code='A-01', name='Estante A')


# ══════════════════════════════════════════════════════════════
# PRODUCTS
# ══════════════════════════════════════════════════════════════

@pytest.fixture
def product(db):
    """Paracetamol with its unit presentation."""
    product = Product.objects.create(tenant_id=TENANT, sku='PARA500', name='Paracetamol 500mg')
    ProductPresentation.objects.create(
        tenant_id=TENANT, product=product, name='Unidad',
        units_per_presentation=Decimal('1'), is_default=True,
    )
    return product


@pytest.fixture
def unit(product):
    return product.presentations.get(is_default=True)


@pytest.fixture
def box(product):
    """Box of 10 units."""
    return ProductPresentation.objects.create(
        tenant_id=TENANT, product=product, name='Caja x10',
        units_per_presentation=Decimal('10'), sort_order=1,
    )


@pytest.fixture
def other_product(db):
    return Product.objects.create(tenant_id=TENANT, sku='IBU400', name='Ibuprofeno 400mg')


# ══════════════════════════════════════════════════════════════
# BATCHES
# ══════════════════════════════════════════════════════════════

@pytest.fixture
def make_batch(product, today):
    """Factory: make_batch('L1', days=60) -> RELEASED lot expiring in 60 days."""
    def _make(number, days=None, status=BatchStatus.RELEASED, for_product=None):
        return Batch.objects.create(
            tenant_id=TENANT,
            product=for_product or product,
            batch_number=number,
            expires_at=today + timedelta(days=days) if days is not None else None,
            status=status,
        )
    return _make


@pytest.fixture
def lot_soon(make_batch):
    """Released lot expiring in 60 days."""
    return make_batch('L-SOON', days=60)


@pytest.fixture
def lot_late(make_batch):
    """Released lot expiring in 200 days."""
    return make_batch('L-LATE', days=200)


@pytest.fixture
def lot_expired(make_batch):
    """Released lot that expired yesterday."""
    return make_batch('L-EXP', days=-1)


@pytest.fixture
def lot_open_ended(make_batch):
    """Released lot without expiry date."""
    return make_batch('L-NOEXP')


# ══════════════════════════════════════════════════════════════
# HELPERS
# ══════════════════════════════════════════════════════════════

@pytest.fixture
def receive(product, user):
    """Factory: receive(location, qty, batch=None) posts an IN movement."""
    def _receive(location, qty, batch=None, for_product=None):
        return stock.post_movement(
            TENANT, MovementType.IN, (for_product or product).pk, Decimal(str(qty)),
            to_location_id=location.pk,
            batch_id=batch.pk if batch else None,
            user=user,
            reference_type='PURCHASE',
            reference_id='OC-1',
        )
    return _receive
