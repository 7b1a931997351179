"""
Tests for the movement engine: create_movement, post_movement, bulk_transfer, repack.
"""

from decimal import Decimal

import pytest
from django.test import override_settings

from pharmastock import stock, StockError
from pharmastock.models import InventoryBalance, Location, MovementType, StockMovement
from pharmastock.signals import balance_changed, movement_created, stock_depleted

from .conftest import TENANT


pytestmark = pytest.mark.django_db


def _balance(location, product, batch=None):
    return InventoryBalance.objects.get(
        tenant_id=TENANT, location=location, product=product, batch=batch,
    )


class TestCreateMovement:
    """Tests for stock.create_movement()."""

    def test_in_creates_balance_and_movement(self, shelf, product, lot_soon, user):
        """IN creates the balance lazily and records a numbered movement."""
        result = stock.create_movement(
            TENANT, MovementType.IN, product.pk, Decimal('100'),
            to_location_id=shelf.pk, batch_id=lot_soon.pk, user=user,
        )

        balance = _balance(shelf, product, lot_soon)
        assert balance.quantity == Decimal('100')
        assert balance.version == 1
        assert result.to_balance.pk == balance.pk
        assert result.from_balance is None
        assert result.movement.number.startswith('MS')
        assert result.movement.from_location_id is None
        assert result.movement.to_location_id == shelf.pk

    def test_second_in_bumps_version(self, shelf, product):
        """Every mutation increments the balance version."""
        stock.create_movement(TENANT, MovementType.IN, product.pk, 10, to_location_id=shelf.pk)
        stock.create_movement(TENANT, MovementType.IN, product.pk, 5, to_location_id=shelf.pk)

        balance = _balance(shelf, product)
        assert balance.quantity == Decimal('15')
        assert balance.version == 2

    def test_out_insufficient_stock(self, shelf, product):
        """OUT beyond on-hand fails and changes nothing."""
        stock.create_movement(TENANT, MovementType.IN, product.pk, 5, to_location_id=shelf.pk)

        with pytest.raises(StockError) as exc:
            stock.create_movement(TENANT, MovementType.OUT, product.pk, 8, from_location_id=shelf.pk)

        assert exc.value.code == 'INSUFFICIENT_STOCK'
        assert exc.value.status_code == 409
        assert exc.value.available == Decimal('5')
        assert _balance(shelf, product).quantity == Decimal('5')
        assert StockMovement.objects.count() == 1

    def test_out_without_balance_is_insufficient(self, shelf, product):
        """OUT from a key that never received stock is INSUFFICIENT_STOCK."""
        with pytest.raises(StockError) as exc:
            stock.create_movement(TENANT, MovementType.OUT, product.pk, 1, from_location_id=shelf.pk)

        assert exc.value.code == 'INSUFFICIENT_STOCK'
        assert not InventoryBalance.objects.exists()

    def test_transfer_moves_between_keys(self, shelf, cold_room, product, lot_soon):
        """TRANSFER debits origin and credits destination on the same lot."""
        stock.create_movement(TENANT, MovementType.IN, product.pk, 40, to_location_id=shelf.pk, batch_id=lot_soon.pk)

        result = stock.create_movement(
            TENANT, MovementType.TRANSFER, product.pk, 15,
            from_location_id=shelf.pk, to_location_id=cold_room.pk, batch_id=lot_soon.pk,
        )

        assert result.from_balance.quantity == Decimal('25')
        assert result.to_balance.quantity == Decimal('15')

    def test_transfer_same_location_rejected(self, shelf, product):
        with pytest.raises(StockError) as exc:
            stock.create_movement(
                TENANT, MovementType.TRANSFER, product.pk, 1,
                from_location_id=shelf.pk, to_location_id=shelf.pk,
            )
        assert exc.value.code == 'INVALID_REQUEST'

    @pytest.mark.parametrize('type,kwargs', [
        (MovementType.IN, {'from_location_id': 1}),
        (MovementType.OUT, {'to_location_id': 1}),
        (MovementType.TRANSFER, {'to_location_id': 1}),
        (MovementType.ADJUSTMENT, {}),
    ])
    def test_location_rules(self, product, type, kwargs):
        """Missing required side is INVALID_REQUEST."""
        with pytest.raises(StockError) as exc:
            stock.create_movement(TENANT, type, product.pk, 1, **kwargs)
        assert exc.value.code == 'INVALID_REQUEST'

    def test_adjustment_prefers_to_location(self, shelf, cold_room, product):
        """ADJUSTMENT with both sides only adds at to_location."""
        stock.create_movement(TENANT, MovementType.IN, product.pk, 10, to_location_id=shelf.pk)

        result = stock.create_movement(
            TENANT, MovementType.ADJUSTMENT, product.pk, 3,
            from_location_id=shelf.pk, to_location_id=cold_room.pk,
        )

        assert result.movement.from_location_id is None
        assert _balance(shelf, product).quantity == Decimal('10')
        assert _balance(cold_room, product).quantity == Decimal('3')

    def test_adjustment_subtracts_at_from_location(self, shelf, product):
        stock.create_movement(TENANT, MovementType.IN, product.pk, 10, to_location_id=shelf.pk)

        stock.create_movement(TENANT, MovementType.ADJUSTMENT, product.pk, 4, from_location_id=shelf.pk)

        assert _balance(shelf, product).quantity == Decimal('6')

    @pytest.mark.parametrize('qty', [0, -5])
    def test_non_positive_quantity(self, shelf, product, qty):
        with pytest.raises(StockError) as exc:
            stock.create_movement(TENANT, MovementType.IN, product.pk, qty, to_location_id=shelf.pk)
        assert exc.value.code == 'INVALID_QUANTITY'

    @pytest.mark.parametrize('qty', ['0.00001', Decimal('1.23456'), 1e-05])
    def test_quantity_finer_than_storage_rejected(self, shelf, product, qty):
        """Quantities are stored with 4 decimals; finer input is never rounded away."""
        with pytest.raises(StockError) as exc:
            stock.create_movement(TENANT, MovementType.IN, product.pk, qty, to_location_id=shelf.pk)

        assert exc.value.code == 'INVALID_REQUEST'
        assert exc.value.status_code == 400
        assert not StockMovement.objects.exists()
        assert not InventoryBalance.objects.exists()

    def test_four_decimals_accepted(self, shelf, product):
        stock.create_movement(TENANT, MovementType.IN, product.pk, '0.0001', to_location_id=shelf.pk)

        assert _balance(shelf, product).quantity == Decimal('0.0001')

    @pytest.mark.parametrize('qty', ['NaN', 'Infinity', '-Infinity', Decimal('NaN'), 'abc', None, '1e40'])
    def test_malformed_quantity(self, shelf, product, qty):
        with pytest.raises(StockError) as exc:
            stock.create_movement(TENANT, MovementType.IN, product.pk, qty, to_location_id=shelf.pk)

        assert exc.value.code == 'INVALID_REQUEST'
        assert not StockMovement.objects.exists()

    def test_malformed_presentation_quantity(self, shelf, product, box):
        with pytest.raises(StockError) as exc:
            stock.post_movement(
                TENANT, MovementType.IN, product.pk,
                presentation_id=box.pk, presentation_quantity='Infinity',
                to_location_id=shelf.pk,
            )
        assert exc.value.code == 'INVALID_REQUEST'

    def test_unknown_product_or_location(self, shelf, product):
        with pytest.raises(StockError) as exc:
            stock.create_movement(TENANT, MovementType.IN, 999999, 1, to_location_id=shelf.pk)
        assert exc.value.code == 'NOT_FOUND'

        with pytest.raises(StockError) as exc:
            stock.create_movement(TENANT, MovementType.IN, product.pk, 1, to_location_id=999999)
        assert exc.value.code == 'NOT_FOUND'

    def test_inactive_location_rejected(self, shelf, product):
        Location.objects.filter(pk=shelf.pk).update(is_active=False)

        with pytest.raises(StockError) as exc:
            stock.create_movement(TENANT, MovementType.IN, product.pk, 1, to_location_id=shelf.pk)
        assert exc.value.code == 'NOT_FOUND'

    def test_other_tenant_is_invisible(self, shelf, product):
        """Rows of another tenant are NOT_FOUND, never touched."""
        with pytest.raises(StockError) as exc:
            stock.create_movement('globex', MovementType.IN, product.pk, 1, to_location_id=shelf.pk)
        assert exc.value.code == 'NOT_FOUND'

    def test_batch_of_other_product_rejected(self, shelf, product, other_product, make_batch):
        foreign = make_batch('X-1', days=30, for_product=other_product)

        with pytest.raises(StockError) as exc:
            stock.create_movement(
                TENANT, MovementType.IN, product.pk, 1,
                to_location_id=shelf.pk, batch_id=foreign.pk,
            )
        assert exc.value.code == 'NOT_FOUND'

    def test_movement_is_immutable(self, shelf, product):
        """Saved movements refuse update and delete."""
        result = stock.create_movement(TENANT, MovementType.IN, product.pk, 1, to_location_id=shelf.pk)
        movement = result.movement

        movement.note = 'editado'
        with pytest.raises(ValueError):
            movement.save()
        with pytest.raises(ValueError):
            movement.delete()


class TestExpiryGate:
    """An expired lot can enter but never leave a location."""

    def test_in_of_expired_lot_allowed(self, shelf, product, lot_expired):
        stock.create_movement(
            TENANT, MovementType.IN, product.pk, 5,
            to_location_id=shelf.pk, batch_id=lot_expired.pk,
        )
        assert _balance(shelf, product, lot_expired).quantity == Decimal('5')

    @pytest.mark.parametrize('type', [MovementType.OUT, MovementType.TRANSFER])
    def test_expired_lot_cannot_leave(self, shelf, cold_room, product, lot_expired, type):
        stock.create_movement(
            TENANT, MovementType.IN, product.pk, 5,
            to_location_id=shelf.pk, batch_id=lot_expired.pk,
        )

        with pytest.raises(StockError) as exc:
            stock.create_movement(
                TENANT, type, product.pk, 1,
                from_location_id=shelf.pk, to_location_id=cold_room.pk, batch_id=lot_expired.pk,
            )

        assert exc.value.code == 'BATCH_EXPIRED'
        assert exc.value.meta['batch_id'] == lot_expired.pk
        assert exc.value.meta['batch_number'] == 'L-EXP'
        assert exc.value.meta['expires_at'] == lot_expired.expires_at
        assert _balance(shelf, product, lot_expired).quantity == Decimal('5')

    def test_lot_expiring_today_can_leave(self, shelf, product, make_batch):
        """expires_at == today is still valid."""
        lot = make_batch('L-HOY', days=0)
        stock.create_movement(TENANT, MovementType.IN, product.pk, 5, to_location_id=shelf.pk, batch_id=lot.pk)

        result = stock.create_movement(TENANT, MovementType.OUT, product.pk, 5, from_location_id=shelf.pk, batch_id=lot.pk)

        assert result.from_balance.quantity == Decimal('0')


class TestPostMovement:
    """Tests for stock.post_movement() (presentations and events)."""

    def test_presentation_quantity_converts_to_base(self, shelf, product, box):
        result = stock.post_movement(
            TENANT, MovementType.IN, product.pk,
            presentation_id=box.pk, presentation_quantity=3,
            to_location_id=shelf.pk,
        )

        assert result.movement.quantity == Decimal('30')
        assert result.movement.presentation_id == box.pk
        assert result.movement.presentation_quantity == Decimal('3')

    def test_base_quantity_uses_default_presentation(self, shelf, product, unit):
        result = stock.post_movement(TENANT, MovementType.IN, product.pk, 7, to_location_id=shelf.pk)

        assert result.movement.presentation_id == unit.pk
        assert result.movement.presentation_quantity == Decimal('7')

    def test_default_presentation_created_when_missing(self, shelf, other_product):
        result = stock.post_movement(TENANT, MovementType.IN, other_product.pk, 2, to_location_id=shelf.pk)

        presentation = other_product.presentations.get()
        assert presentation.is_default
        assert presentation.units_per_presentation == Decimal('1')
        assert result.movement.presentation_id == presentation.pk

    def test_presentation_of_other_product_rejected(self, shelf, product, other_product):
        from pharmastock.models import ProductPresentation
        foreign = ProductPresentation.objects.create(
            tenant_id=TENANT, product=other_product, name='Blister x8', units_per_presentation=8,
        )

        with pytest.raises(StockError) as exc:
            stock.post_movement(
                TENANT, MovementType.IN, product.pk,
                presentation_id=foreign.pk, presentation_quantity=1, to_location_id=shelf.pk,
            )
        assert exc.value.code == 'INVALID_REQUEST'

    def test_missing_quantity_rejected(self, shelf, product):
        with pytest.raises(StockError) as exc:
            stock.post_movement(TENANT, MovementType.IN, product.pk, to_location_id=shelf.pk)
        assert exc.value.code == 'INVALID_REQUEST'

    def test_events_sent_after_commit(self, shelf, product, django_capture_on_commit_callbacks):
        received = []

        def on_created(sender, tenant_id, movement, **kwargs):
            received.append(('created', movement.number))

        def on_changed(sender, tenant_id, balance, **kwargs):
            received.append(('changed', balance.quantity))

        def on_depleted(sender, tenant_id, balance, **kwargs):
            received.append(('depleted', balance.pk))

        movement_created.connect(on_created)
        balance_changed.connect(on_changed)
        stock_depleted.connect(on_depleted)
        try:
            with django_capture_on_commit_callbacks(execute=True):
                stock.post_movement(TENANT, MovementType.IN, product.pk, 4, to_location_id=shelf.pk)
            with django_capture_on_commit_callbacks(execute=True):
                stock.post_movement(TENANT, MovementType.OUT, product.pk, 4, from_location_id=shelf.pk)
        finally:
            movement_created.disconnect(on_created)
            balance_changed.disconnect(on_changed)
            stock_depleted.disconnect(on_depleted)

        kinds = [k for k, _ in received]
        assert kinds.count('created') == 2
        assert ('changed', Decimal('4')) in received
        assert kinds.count('depleted') == 1

    def test_no_events_on_failure(self, shelf, product, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks() as callbacks:
            with pytest.raises(StockError):
                stock.post_movement(TENANT, MovementType.OUT, product.pk, 4, from_location_id=shelf.pk)
        assert callbacks == []


class TestSequences:
    """Movement numbers are unique and gapless per tenant and year."""

    def test_numbers_increment(self, shelf, product):
        numbers = [
            stock.create_movement(TENANT, MovementType.IN, product.pk, 1, to_location_id=shelf.pk).movement.number
            for _ in range(3)
        ]
        suffixes = [int(n.rsplit('-', 1)[1]) for n in numbers]
        assert suffixes == [1, 2, 3]
        assert len(set(numbers)) == 3

    def test_failed_movement_gives_number_back(self, shelf, product):
        """A rolled back movement does not consume a number."""
        stock.create_movement(TENANT, MovementType.IN, product.pk, 1, to_location_id=shelf.pk)
        with pytest.raises(StockError):
            stock.create_movement(TENANT, MovementType.OUT, product.pk, 5, from_location_id=shelf.pk)
        movement = stock.create_movement(TENANT, MovementType.IN, product.pk, 1, to_location_id=shelf.pk).movement

        assert movement.number.endswith('-2')


class TestBulkTransfer:
    """Tests for stock.bulk_transfer()."""

    def test_lines_share_reference(self, shelf, scz_shelf, product, lot_soon, lot_late, receive):
        receive(shelf, 20, lot_soon)
        receive(shelf, 20, lot_late)

        result = stock.bulk_transfer(
            TENANT, shelf.pk, scz_shelf.pk,
            items=[
                {'product_id': product.pk, 'batch_id': lot_soon.pk, 'quantity': 5},
                {'product_id': product.pk, 'batch_id': lot_late.pk, 'quantity': 7},
            ],
        )

        assert result.reference_type == 'BULK_TRANSFER'
        movements = StockMovement.objects.filter(reference_type='BULK_TRANSFER')
        assert movements.count() == 2
        assert set(movements.values_list('reference_id', flat=True)) == {result.reference_id}
        assert _balance(scz_shelf, product, lot_late).quantity == Decimal('7')

    def test_one_failing_line_rolls_back_all(self, shelf, scz_shelf, product, lot_soon, receive):
        receive(shelf, 5, lot_soon)

        with pytest.raises(StockError) as exc:
            stock.bulk_transfer(
                TENANT, shelf.pk, scz_shelf.pk,
                items=[
                    {'product_id': product.pk, 'batch_id': lot_soon.pk, 'quantity': 3},
                    {'product_id': product.pk, 'batch_id': lot_soon.pk, 'quantity': 3},
                ],
            )

        assert exc.value.code == 'INSUFFICIENT_STOCK'
        assert _balance(shelf, product, lot_soon).quantity == Decimal('5')
        assert not StockMovement.objects.filter(reference_type='BULK_TRANSFER').exists()

    def test_location_outside_warehouse_rejected(self, shelf, scz_shelf, scz, product):
        with pytest.raises(StockError) as exc:
            stock.bulk_transfer(
                TENANT, shelf.pk, scz_shelf.pk,
                items=[{'product_id': product.pk, 'quantity': 1}],
                from_warehouse_id=scz.pk,
            )
        assert exc.value.code == 'INVALID_REQUEST'


class TestRepack:
    """Tests for stock.repack()."""

    def test_repack_with_remainder(self, shelf, product, box, unit, lot_soon):
        """2 boxes of 10 into 1 box leaves 10 loose units."""
        stock.post_movement(
            TENANT, MovementType.IN, product.pk,
            presentation_id=box.pk, presentation_quantity=2,
            to_location_id=shelf.pk, batch_id=lot_soon.pk,
        )

        result = stock.repack(
            TENANT, product.pk, lot_soon.pk, shelf.pk,
            source_presentation_id=box.pk, source_quantity=2,
            target_presentation_id=box.pk, target_quantity=1,
        )

        types = [m.type for m in result.movements]
        assert types == [MovementType.OUT, MovementType.IN, MovementType.IN]
        assert result.movements[2].presentation_id == unit.pk
        assert result.movements[2].quantity == Decimal('10')
        assert {m.reference_type for m in result.movements} == {'REPACK'}
        assert _balance(shelf, product, lot_soon).quantity == Decimal('20')

    def test_exact_repack_has_no_remainder(self, shelf, product, box, unit, lot_soon, receive):
        receive(shelf, 10, lot_soon)

        result = stock.repack(
            TENANT, product.pk, lot_soon.pk, shelf.pk,
            source_presentation_id=unit.pk, source_quantity=10,
            target_presentation_id=box.pk, target_quantity=1,
        )

        assert len(result.movements) == 2

    def test_target_larger_than_source(self, shelf, product, box, unit, lot_soon, receive):
        receive(shelf, 10, lot_soon)

        with pytest.raises(StockError) as exc:
            stock.repack(
                TENANT, product.pk, lot_soon.pk, shelf.pk,
                source_presentation_id=unit.pk, source_quantity=5,
                target_presentation_id=box.pk, target_quantity=1,
            )
        assert exc.value.code == 'INVALID_REQUEST'

    def test_remainder_tolerance_from_settings(self, shelf, product, box, unit, lot_soon, receive):
        """A remainder within REMAINING_EPSILON is not posted back as loose units."""
        receive(shelf, 11, lot_soon)

        with override_settings(PHARMASTOCK={'REMAINING_EPSILON': Decimal('1')}):
            result = stock.repack(
                TENANT, product.pk, lot_soon.pk, shelf.pk,
                source_presentation_id=unit.pk, source_quantity=11,
                target_presentation_id=box.pk, target_quantity=1,
            )

        assert len(result.movements) == 2
        assert _balance(shelf, product, lot_soon).quantity == Decimal('10')
