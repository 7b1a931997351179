"""
Stock movements: the only write path for balance quantities.

create_movement() is the primitive every workflow posts through. It must run
inside the caller's transaction; it opens a savepoint of its own so a
failure leaves no partial balance or movement behind.
"""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from pharmastock.conf import pharmastock_settings
from pharmastock.exceptions import StockError
from pharmastock.expiry import assert_not_expired
from pharmastock.models.balance import InventoryBalance
from pharmastock.models.batch import Batch
from pharmastock.models.enums import MovementType
from pharmastock.models.location import Location
from pharmastock.models.movement import StockMovement
from pharmastock.models.product import Product
from pharmastock.services.presentations import (
    QUANTUM,
    default_presentation,
    get_presentation,
    resolve_base_quantity,
    to_decimal,
)
from pharmastock.services.sequences import current_year_utc, next_sequence
from pharmastock.signals import announce_movement

logger = logging.getLogger('pharmastock')


@dataclass
class MovementResult:
    """Created movement plus the balances it touched (post-mutation)."""

    movement: StockMovement
    from_balance: InventoryBalance | None = None
    to_balance: InventoryBalance | None = None
    applied: list = field(default_factory=list)

    @property
    def balances(self) -> list[InventoryBalance]:
        return [b for b in (self.from_balance, self.to_balance) if b is not None]


@dataclass
class BulkTransferResult:
    reference_type: str
    reference_id: str
    results: list[MovementResult]


@dataclass
class RepackResult:
    reference_id: str
    movements: list[StockMovement]
    balances: list[InventoryBalance]


# ══════════════════════════════════════════════════════════════
# HELPERS
# ══════════════════════════════════════════════════════════════

def _resolve_sides(type, from_location_id, to_location_id):
    """
    Apply location presence rules by movement type.

    Returns (from_id, to_id) with ignored sides cleared.
    """
    if type == MovementType.IN:
        if not to_location_id:
            raise StockError('INVALID_REQUEST', 'to_location_id es obligatorio para IN')
        return None, to_location_id

    if type == MovementType.OUT:
        if not from_location_id:
            raise StockError('INVALID_REQUEST', 'from_location_id es obligatorio para OUT')
        return from_location_id, None

    if type == MovementType.TRANSFER:
        if not from_location_id or not to_location_id:
            raise StockError(
                'INVALID_REQUEST',
                'from_location_id y to_location_id son obligatorios para TRANSFER',
            )
        if str(from_location_id) == str(to_location_id):
            raise StockError('INVALID_REQUEST', 'Origen y destino deben ser distintos')
        return from_location_id, to_location_id

    if type == MovementType.ADJUSTMENT:
        if to_location_id:
            return None, to_location_id
        if from_location_id:
            return from_location_id, None
        raise StockError(
            'INVALID_REQUEST',
            'ADJUSTMENT requiere from_location_id o to_location_id',
        )

    raise StockError('INVALID_REQUEST', 'Tipo de movimiento inválido', type=type)


def get_active_product(tenant_id: str, product_id) -> Product:
    product = Product.objects.filter(tenant_id=tenant_id, pk=product_id, is_active=True).first()
    if product is None:
        raise StockError('NOT_FOUND', 'Producto no encontrado', product_id=product_id)
    return product


def get_active_location(tenant_id: str, location_id) -> Location:
    location = Location.objects.select_related('warehouse').filter(
        tenant_id=tenant_id, pk=location_id, is_active=True,
    ).first()
    if location is None:
        raise StockError('NOT_FOUND', 'Ubicación no encontrada', location_id=location_id)
    return location


def lock_balance(tenant_id: str, location_id, product_id, batch_id) -> InventoryBalance | None:
    """SELECT ... FOR UPDATE on one stock key. None when the row does not exist yet."""
    return InventoryBalance.objects.select_for_update().for_key(
        tenant_id, location_id, product_id, batch_id,
    ).first()


def _apply_delta(locked, tenant_id, location_id, product_id, batch_id,
                 delta: Decimal, user=None) -> InventoryBalance:
    """
    Apply delta to a locked (or absent) balance row.

    Raises:
        StockError('INSUFFICIENT_STOCK'): If the result would be negative
    """
    current = locked.quantity if locked is not None else Decimal('0')
    if current + delta < 0:
        raise StockError(
            'INSUFFICIENT_STOCK',
            available=current,
            requested=-delta,
            location_id=location_id,
            product_id=product_id,
            batch_id=batch_id,
        )

    if locked is None:
        try:
            with transaction.atomic():
                return InventoryBalance.objects.create(
                    tenant_id=tenant_id,
                    location_id=location_id,
                    product_id=product_id,
                    batch_id=batch_id,
                    quantity=delta,
                    created_by=user,
                )
        except IntegrityError:
            # Concurrent first receipt won the insert; continue on its row
            locked = lock_balance(tenant_id, location_id, product_id, batch_id)

    InventoryBalance.objects.filter(pk=locked.pk).update(
        quantity=F('quantity') + delta,
        version=F('version') + 1,
        updated_at=timezone.now(),
    )
    locked.refresh_from_db()
    return locked


# ══════════════════════════════════════════════════════════════
# SERVICE
# ══════════════════════════════════════════════════════════════

class StockMovements:
    """State-changing stock movement methods."""

    @classmethod
    def create_movement(cls, tenant_id, type, product_id, quantity,
                        from_location_id=None, to_location_id=None, batch_id=None,
                        user=None, reference_type='', reference_id='', note='',
                        presentation=None, presentation_quantity=None) -> MovementResult:
        """
        Post one movement and update the touched balances.

        Steps:
            1. Location presence rules by type (INVALID_REQUEST)
            2. Product exists and is active (NOT_FOUND)
            3. Expiry gate when stock leaves a side with a batch (BATCH_EXPIRED)
            4. Locations exist and are active (NOT_FOUND)
            5. Lock balance rows, from-side then to-side
            6. Upsert each side (INSUFFICIENT_STOCK if negative)
            7. Issue MS number and insert the immutable movement

        Concurrency:
            - Runs under transaction.atomic() (savepoint in caller's transaction)
            - select_for_update() on every touched balance before reading it
            - Lock order is always from-side then to-side
        """
        quantity = to_decimal(quantity)
        if quantity <= 0:
            raise StockError('INVALID_QUANTITY', requested=quantity)

        from_id, to_id = _resolve_sides(type, from_location_id, to_location_id)

        with transaction.atomic():
            product = get_active_product(tenant_id, product_id)

            batch = None
            if batch_id:
                batch = Batch.objects.filter(
                    tenant_id=tenant_id, pk=batch_id, product_id=product.pk,
                ).first()
                if batch is None:
                    raise StockError('NOT_FOUND', 'Lote no encontrado', batch_id=batch_id)
                if from_id:
                    assert_not_expired(batch)

            if from_id:
                from_id = get_active_location(tenant_id, from_id).pk
            if to_id:
                to_id = get_active_location(tenant_id, to_id).pk

            batch_pk = batch.pk if batch else None
            from_locked = lock_balance(tenant_id, from_id, product.pk, batch_pk) if from_id else None
            to_locked = lock_balance(tenant_id, to_id, product.pk, batch_pk) if to_id else None

            from_balance = to_balance = None
            if from_id:
                from_balance = _apply_delta(
                    from_locked, tenant_id, from_id, product.pk, batch_pk, -quantity, user,
                )
            if to_id:
                to_balance = _apply_delta(
                    to_locked, tenant_id, to_id, product.pk, batch_pk, quantity, user,
                )

            seq = next_sequence(
                tenant_id, current_year_utc(), pharmastock_settings.MOVEMENT_SEQUENCE_KEY,
            )
            movement = StockMovement.objects.create(
                tenant_id=tenant_id,
                number=seq.number,
                number_year=seq.year,
                type=type,
                product=product,
                batch=batch,
                from_location_id=from_id,
                to_location_id=to_id,
                quantity=quantity,
                presentation=presentation,
                presentation_quantity=presentation_quantity,
                reference_type=reference_type or '',
                reference_id=str(reference_id or ''),
                note=note or '',
                created_by=user,
            )

            logger.info(
                "stock.movement.created",
                extra={
                    "tenant_id": tenant_id,
                    "number": movement.number,
                    "type": type,
                    "product_id": product.pk,
                    "batch_id": batch_pk,
                    "from_location_id": from_id,
                    "to_location_id": to_id,
                    "qty": str(quantity),
                    "reference": f"{movement.reference_type}:{movement.reference_id}",
                },
            )
            return MovementResult(movement, from_balance, to_balance)

    @classmethod
    def post_movement(cls, tenant_id, type, product_id, quantity=None,
                      presentation_id=None, presentation_quantity=None,
                      from_location_id=None, to_location_id=None, batch_id=None,
                      user=None, reference_type='', reference_id='', note='') -> MovementResult:
        """
        Post a movement expressed in base units or in a presentation.

        Ordinary TRANSFERs are offered to open movement requests of the
        destination city (see MovementRequests.auto_apply). Events are
        sent after commit.
        """
        with transaction.atomic():
            get_active_product(tenant_id, product_id)
            resolved = resolve_base_quantity(
                tenant_id, product_id,
                quantity=quantity,
                presentation_id=presentation_id,
                presentation_quantity=presentation_quantity,
            )
            result = cls.create_movement(
                tenant_id, type, product_id, resolved.quantity,
                from_location_id=from_location_id,
                to_location_id=to_location_id,
                batch_id=batch_id,
                user=user,
                reference_type=reference_type,
                reference_id=reference_id,
                note=note,
                presentation=resolved.presentation,
                presentation_quantity=resolved.presentation_quantity,
            )
            cls._auto_apply(result, user)
            announce_movement(cls, result)
            return result

    @classmethod
    def _auto_apply(cls, result: MovementResult, user=None) -> None:
        movement = result.movement
        if movement.type != MovementType.TRANSFER:
            return
        if not pharmastock_settings.AUTO_APPLY_TRANSFERS:
            return
        if movement.reference_type in pharmastock_settings.AUTO_APPLY_OPT_OUT_REFERENCES:
            return

        from pharmastock.services.requests import MovementRequests
        result.applied = MovementRequests.auto_apply(movement, user=user)

    @classmethod
    def bulk_transfer(cls, tenant_id, from_location_id, to_location_id, items,
                      user=None, from_warehouse_id=None, to_warehouse_id=None,
                      note='') -> BulkTransferResult:
        """
        Post many TRANSFER lines under one BULK_TRANSFER reference.

        Each item: product_id, batch_id, quantity or presentation_id +
        presentation_quantity, and optional from_location_id,
        to_location_id, note overriding the defaults.

        Raises:
            StockError('INVALID_REQUEST'): No items, or a location outside
                the given warehouse
        """
        if not items:
            raise StockError('INVALID_REQUEST', 'Se requiere al menos un ítem')

        reference_type = 'BULK_TRANSFER'
        reference_id = str(uuid.uuid4())

        with transaction.atomic():
            base_from = get_active_location(tenant_id, from_location_id)
            base_to = get_active_location(tenant_id, to_location_id)
            if from_warehouse_id and str(base_from.warehouse_id) != str(from_warehouse_id):
                raise StockError(
                    'INVALID_REQUEST',
                    'La ubicación de origen no pertenece al almacén de origen',
                )
            if to_warehouse_id and str(base_to.warehouse_id) != str(to_warehouse_id):
                raise StockError(
                    'INVALID_REQUEST',
                    'La ubicación de destino no pertenece al almacén de destino',
                )

            results = []
            for item in items:
                results.append(cls.post_movement(
                    tenant_id,
                    MovementType.TRANSFER,
                    item['product_id'],
                    quantity=item.get('quantity'),
                    presentation_id=item.get('presentation_id'),
                    presentation_quantity=item.get('presentation_quantity'),
                    from_location_id=item.get('from_location_id') or base_from.pk,
                    to_location_id=item.get('to_location_id') or base_to.pk,
                    batch_id=item.get('batch_id'),
                    user=user,
                    reference_type=reference_type,
                    reference_id=reference_id,
                    note=item.get('note') or note,
                ))

            logger.info(
                "stock.bulk_transfer.created",
                extra={
                    "tenant_id": tenant_id,
                    "reference_id": reference_id,
                    "count": len(results),
                },
            )
            return BulkTransferResult(reference_type, reference_id, results)

    @classmethod
    def repack(cls, tenant_id, product_id, batch_id, location_id,
               source_presentation_id, source_quantity,
               target_presentation_id, target_quantity,
               user=None, note='') -> RepackResult:
        """
        Repack stock of one lot at one location between presentations.

        Posts OUT of the source packs, IN of the target packs and, when
        the target does not use up the source, IN of the remainder in the
        unit presentation. All three share reference REPACK.

        Raises:
            StockError('INVALID_REQUEST'): Invalid presentations or
                quantities, or target exceeding source
        """
        source_quantity = to_decimal(source_quantity, 'source_quantity')
        target_quantity = to_decimal(target_quantity, 'target_quantity')

        with transaction.atomic():
            get_active_product(tenant_id, product_id)
            source = get_presentation(tenant_id, product_id, source_presentation_id)
            target = get_presentation(tenant_id, product_id, target_presentation_id)

            base_source = (source_quantity * source.units_per_presentation).quantize(QUANTUM)
            base_target = (target_quantity * target.units_per_presentation).quantize(QUANTUM)
            if base_source <= 0:
                raise StockError('INVALID_REQUEST', 'Cantidad de origen inválida')
            if base_target <= 0:
                raise StockError('INVALID_REQUEST', 'Cantidad de destino inválida')
            if base_target > base_source + pharmastock_settings.REMAINING_EPSILON:
                raise StockError(
                    'INVALID_REQUEST',
                    'El destino excede al origen',
                    source=base_source,
                    target=base_target,
                )
            remainder = max(Decimal('0'), base_source - base_target)

            unit = default_presentation(tenant_id, product_id)
            if unit.units_per_presentation != 1:
                raise StockError(
                    'INVALID_REQUEST',
                    'Presentación unitaria mal configurada',
                    presentation_id=unit.pk,
                )

            reference_id = str(batch_id)
            common = dict(
                batch_id=batch_id,
                user=user,
                reference_type='REPACK',
                reference_id=reference_id,
                note=note,
            )
            results = [
                cls.create_movement(
                    tenant_id, MovementType.OUT, product_id, base_source,
                    from_location_id=location_id,
                    presentation=source, presentation_quantity=source_quantity,
                    **common,
                ),
                cls.create_movement(
                    tenant_id, MovementType.IN, product_id, base_target,
                    to_location_id=location_id,
                    presentation=target, presentation_quantity=target_quantity,
                    **common,
                ),
            ]
            if remainder > pharmastock_settings.REMAINING_EPSILON:
                results.append(cls.create_movement(
                    tenant_id, MovementType.IN, product_id, remainder,
                    to_location_id=location_id,
                    presentation=unit, presentation_quantity=remainder,
                    **common,
                ))

            for result in results:
                announce_movement(cls, result)

            balances = {}
            for result in results:
                for balance in result.balances:
                    balances[balance.pk] = balance

            logger.info(
                "stock.repack",
                extra={
                    "tenant_id": tenant_id,
                    "batch_id": batch_id,
                    "source": str(base_source),
                    "target": str(base_target),
                    "remainder": str(remainder),
                },
            )
            return RepackResult(
                reference_id,
                [r.movement for r in results],
                list(balances.values()),
            )
