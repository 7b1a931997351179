"""
Sales order workflow: confirm, fulfill, deliver, cancel, pay.

Every transition locks the order row and compares the caller's version
before looking at the status. All methods use transaction.atomic().
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from pharmastock.conf import pharmastock_settings
from pharmastock.credit import parse_credit_days, payment_due_at
from pharmastock.exceptions import StockError
from pharmastock.expiry import assert_not_expired, sellable_batch_q, today_utc
from pharmastock.models.balance import InventoryBalance
from pharmastock.models.batch import Batch
from pharmastock.models.enums import BatchStatus, MovementType, SalesOrderStatus
from pharmastock.models.order import SalesOrder, SalesOrderLine
from pharmastock.models.reservation import SalesOrderReservation
from pharmastock.services.movements import (
    StockMovements,
    get_active_location,
    get_active_product,
)
from pharmastock.services.presentations import resolve_base_quantity, to_decimal
from pharmastock.services.reservations import StockReservations
from pharmastock.services.sequences import current_year_utc, next_sequence
from pharmastock.signals import (
    announce_movement,
    order_confirmed,
    order_fulfilled,
    payment_due,
    send_on_commit,
)

logger = logging.getLogger('pharmastock')

REFERENCE_TYPE = 'SALES_ORDER'


@dataclass
class OrderResult:
    """Order after a transition plus what the transition produced."""

    order: SalesOrder
    allocations: list = field(default_factory=list)
    movements: list = field(default_factory=list)


def _lock_order(tenant_id, order_id, version) -> SalesOrder:
    """
    Lock the order and check the caller's version.

    Raises:
        StockError('NOT_FOUND'): Order absent or of another tenant
        StockError('INVALID_REQUEST'): version is not an integer
        StockError('VERSION_CONFLICT'): version does not match
    """
    order = SalesOrder.objects.select_for_update().filter(
        tenant_id=tenant_id, pk=order_id,
    ).first()
    if order is None:
        raise StockError('NOT_FOUND', 'Orden no encontrada', order_id=order_id)
    try:
        version = int(version)
    except (TypeError, ValueError):
        raise StockError('INVALID_REQUEST', 'Versión inválida', version=version, order_id=order.pk)
    if version != order.version:
        raise StockError(
            'VERSION_CONFLICT',
            expected=version,
            current=order.version,
            order_id=order.pk,
        )
    return order


def _require_status(order, *statuses) -> None:
    if order.status not in statuses:
        raise StockError(
            'STATE_CONFLICT',
            f'Orden en estado {order.status}',
            order_id=order.pk,
            status=order.status,
        )


def _transition(order, status, **fields) -> None:
    fields['status'] = status
    SalesOrder.objects.filter(pk=order.pk).update(
        version=F('version') + 1,
        updated_at=timezone.now(),
        **fields,
    )
    order.refresh_from_db()


def _require_released(batch) -> None:
    if batch.status != BatchStatus.RELEASED:
        raise StockError(
            'STATE_CONFLICT',
            'Lote no liberado',
            batch_id=batch.pk,
            batch_number=batch.batch_number,
            status=batch.status,
        )


def _fefo_pick(tenant_id, location_id, product_id, quantity, today):
    """
    Lot at the location that can cover quantity on its own.

    Lots with expiry soonest first, then lots without expiry.
    """
    base = InventoryBalance.objects.filter(
        tenant_id=tenant_id,
        location_id=location_id,
        product_id=product_id,
        batch__isnull=False,
        quantity__gte=quantity,
    ).filter(sellable_batch_q(today)).select_related('batch')

    balance = base.filter(batch__expires_at__isnull=False).order_by('batch__expires_at', 'id').first()
    if balance is None:
        balance = base.filter(batch__expires_at__isnull=True).order_by('id').first()
    return balance.batch if balance else None


class SalesOrders:
    """Sales order lifecycle methods."""

    @classmethod
    def create_order(cls, tenant_id, lines, user=None, customer_id='',
                     customer_name='', customer_city='', delivery_city='',
                     payment_mode='CASH', delivery_date=None, note='') -> SalesOrder:
        """
        Create a DRAFT order numbered from the OV sequence.

        Each line: product_id, quantity or presentation_id +
        presentation_quantity, optional batch_id and unit_price.
        No stock is reserved until confirm.
        """
        if not lines:
            raise StockError('INVALID_REQUEST', 'La orden requiere al menos una línea')

        with transaction.atomic():
            seq = next_sequence(tenant_id, current_year_utc(), pharmastock_settings.ORDER_SEQUENCE_KEY)
            order = SalesOrder.objects.create(
                tenant_id=tenant_id,
                number=seq.number,
                number_year=seq.year,
                customer_id=str(customer_id or ''),
                customer_name=customer_name,
                customer_city=customer_city,
                delivery_city=delivery_city,
                payment_mode=payment_mode or 'CASH',
                delivery_date=delivery_date,
                note=note,
                created_by=user,
            )

            for data in lines:
                product = get_active_product(tenant_id, data['product_id'])
                batch_id = data.get('batch_id')
                if batch_id and not Batch.objects.filter(
                    tenant_id=tenant_id, pk=batch_id, product=product,
                ).exists():
                    raise StockError('NOT_FOUND', 'Lote no encontrado', batch_id=batch_id)

                resolved = resolve_base_quantity(
                    tenant_id, product.pk,
                    quantity=data.get('quantity'),
                    presentation_id=data.get('presentation_id'),
                    presentation_quantity=data.get('presentation_quantity'),
                )
                SalesOrderLine.objects.create(
                    tenant_id=tenant_id,
                    order=order,
                    product=product,
                    batch_id=batch_id or None,
                    presentation=resolved.presentation,
                    presentation_quantity=resolved.presentation_quantity,
                    quantity=resolved.quantity,
                    unit_price=to_decimal(data.get('unit_price', 0), 'unit_price'),
                )

            logger.info(
                "sales.order.created",
                extra={"tenant_id": tenant_id, "order": order.number, "lines": len(lines)},
            )
            return order

    @classmethod
    def confirm_order(cls, tenant_id, order_id, version, user=None) -> OrderResult:
        """
        DRAFT -> CONFIRMED, then reserve stock FEFO.

        Reservations prefer the delivery city (falling back to the
        customer city). Short stock is reserved partially.
        """
        with transaction.atomic():
            order = _lock_order(tenant_id, order_id, version)
            _require_status(order, SalesOrderStatus.DRAFT)

            _transition(order, SalesOrderStatus.CONFIRMED)
            allocations = StockReservations.reserve_for_order(
                tenant_id, order.pk, user=user, prefer_city=order.preferred_city,
            )

            send_on_commit(
                order_confirmed, cls,
                tenant_id=tenant_id, order=order, allocations=allocations,
            )
            logger.info(
                "sales.order.confirmed",
                extra={"tenant_id": tenant_id, "order": order.number, "version": order.version},
            )
            return OrderResult(order, allocations=allocations)

    @classmethod
    def fulfill_order(cls, tenant_id, order_id, version, from_location_id, user=None,
                      note='') -> OrderResult:
        """
        Classic fulfillment: ship every line from one location.

        Existing reservations are released first. Unbatched lines get the
        FEFO lot at the location that covers them.

        Raises:
            StockError('INVALID_REQUEST'): No from_location_id or no lines
            StockError('BATCH_EXPIRED'): A chosen lot is expired
            StockError('INSUFFICIENT_STOCK'): Not enough stock at the location
        """
        with transaction.atomic():
            order = _lock_order(tenant_id, order_id, version)
            _require_status(order, SalesOrderStatus.CONFIRMED)
            if not from_location_id:
                raise StockError('INVALID_REQUEST', 'from_location_id es obligatorio')

            results = cls._ship_from_location(tenant_id, order, from_location_id, user, note)
            return cls._finish(tenant_id, order, results)

    @classmethod
    def deliver_order(cls, tenant_id, order_id, version, user=None, from_location_id=None,
                      note='') -> OrderResult:
        """
        Reservation-aware delivery.

        Consumes the order's active reservations: for each reserved
        balance decrements reserved_quantity and posts an OUT of the same
        amount, then stamps released_at on the reservations. Quantity the
        reservations did not cover is shipped FEFO from from_location_id.
        Without reservations falls back to classic fulfillment.

        Raises:
            StockError('INVALID_REQUEST'): No reservations and no from_location_id
            StockError('BATCH_EXPIRED'): A reserved lot expired meanwhile
            StockError('INSUFFICIENT_STOCK'): Uncovered quantity and no
                location (or not enough stock there)
        """
        with transaction.atomic():
            order = _lock_order(tenant_id, order_id, version)
            _require_status(order, SalesOrderStatus.CONFIRMED)

            active = list(
                SalesOrderReservation.objects.active()
                .filter(tenant_id=tenant_id, order=order)
                .select_related('balance', 'balance__batch')
                .order_by('balance_id', 'id')
            )

            if not active:
                if not from_location_id:
                    raise StockError(
                        'INVALID_REQUEST',
                        'from_location_id es obligatorio sin reservas',
                    )
                results = cls._ship_from_location(tenant_id, order, from_location_id, user, note)
            else:
                results = cls._ship_reservations(tenant_id, order, active, user, note)
                results.extend(cls._ship_shortfall(
                    tenant_id, order, active, from_location_id, user, note,
                ))

            return cls._finish(tenant_id, order, results)

    @classmethod
    def cancel_order(cls, tenant_id, order_id, version, user=None) -> OrderResult:
        """DRAFT/CONFIRMED -> CANCELLED, releasing reservations."""
        with transaction.atomic():
            order = _lock_order(tenant_id, order_id, version)
            _require_status(order, SalesOrderStatus.DRAFT, SalesOrderStatus.CONFIRMED)

            released = StockReservations.release_for_order(tenant_id, order.pk)
            _transition(order, SalesOrderStatus.CANCELLED)
            logger.info(
                "sales.order.cancelled",
                extra={"tenant_id": tenant_id, "order": order.number, "released": str(released)},
            )
            return OrderResult(order)

    @classmethod
    def mark_order_paid(cls, tenant_id, order_id, version, user=None, paid_at=None) -> SalesOrder:
        """Stamp paid_at on a FULFILLED order."""
        with transaction.atomic():
            order = _lock_order(tenant_id, order_id, version)
            _require_status(order, SalesOrderStatus.FULFILLED)
            if order.paid_at is not None:
                raise StockError('STATE_CONFLICT', 'La orden ya está pagada', order_id=order.pk)

            _transition(order, order.status, paid_at=paid_at or timezone.now())
            logger.info(
                "sales.order.paid",
                extra={"tenant_id": tenant_id, "order": order.number},
            )
            return order

    # ══════════════════════════════════════════════════════════════
    # SHIPPING
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def _post_out(cls, tenant_id, order, line, location_id, batch_id, quantity,
                  user, note):
        return StockMovements.create_movement(
            tenant_id, MovementType.OUT, line.product_id, quantity,
            from_location_id=location_id,
            batch_id=batch_id,
            user=user,
            reference_type=REFERENCE_TYPE,
            reference_id=order.number,
            note=note,
            presentation=line.presentation,
            presentation_quantity=line.presentation_quantity if quantity == line.quantity else None,
        )

    @classmethod
    def _ship_from_location(cls, tenant_id, order, from_location_id, user, note) -> list:
        location = get_active_location(tenant_id, from_location_id)
        lines = list(order.lines.select_related('batch', 'presentation').order_by('id'))
        if not lines:
            raise StockError('INVALID_REQUEST', 'La orden no tiene líneas', order_id=order.pk)

        StockReservations.release_for_order(tenant_id, order.pk)

        today = today_utc()
        for line in lines:
            if line.batch_id is None:
                batch = _fefo_pick(tenant_id, location.pk, line.product_id, line.quantity, today)
                if batch is not None:
                    line.batch = batch
                    line.save(update_fields=['batch'])
            if line.batch_id is not None:
                assert_not_expired(line.batch, today)
                _require_released(line.batch)

        # Lock every touched key in a stable order and check totals up front
        needed: dict[tuple, Decimal] = {}
        for line in lines:
            key = (line.product_id, line.batch_id)
            needed[key] = needed.get(key, Decimal('0')) + line.quantity

        locked = {}
        for product_id, batch_id in sorted(needed, key=lambda k: (k[0], k[1] or 0)):
            balance = InventoryBalance.objects.select_for_update().for_key(
                tenant_id, location.pk, product_id, batch_id,
            ).first()
            locked[(product_id, batch_id)] = balance

        for key, qty in needed.items():
            balance = locked[key]
            on_hand = balance.quantity if balance else Decimal('0')
            if on_hand < qty:
                raise StockError(
                    'INSUFFICIENT_STOCK',
                    available=on_hand,
                    requested=qty,
                    location_id=location.pk,
                    product_id=key[0],
                    batch_id=key[1],
                )

        return [
            cls._post_out(tenant_id, order, line, location.pk, line.batch_id, line.quantity, user, note)
            for line in lines
        ]

    @classmethod
    def _ship_reservations(cls, tenant_id, order, active, user, note) -> list:
        per_balance: dict[int, Decimal] = {}
        lines_by_balance = {}
        for reservation in active:
            per_balance[reservation.balance_id] = (
                per_balance.get(reservation.balance_id, Decimal('0')) + reservation.quantity
            )
            lines_by_balance.setdefault(reservation.balance_id, reservation.line)

        today = today_utc()
        locked = {}
        for balance_id in sorted(per_balance):
            balance = InventoryBalance.objects.select_for_update().select_related('batch').get(pk=balance_id)
            if balance.batch_id is not None:
                assert_not_expired(balance.batch, today)
            locked[balance_id] = balance

        now = timezone.now()
        results = []
        for balance_id in sorted(per_balance):
            balance = locked[balance_id]
            qty = per_balance[balance_id]
            InventoryBalance.objects.filter(pk=balance_id).update(
                reserved_quantity=max(Decimal('0'), balance.reserved_quantity - qty),
                version=F('version') + 1,
                updated_at=now,
            )
            line = lines_by_balance[balance_id]
            results.append(cls._post_out(
                tenant_id, order, line, balance.location_id, balance.batch_id, qty, user, note,
            ))

        SalesOrderReservation.objects.filter(pk__in=[r.pk for r in active]).update(released_at=now)
        return results

    @classmethod
    def _ship_shortfall(cls, tenant_id, order, active, from_location_id, user, note) -> list:
        covered: dict[int, Decimal] = {}
        for reservation in active:
            covered[reservation.line_id] = covered.get(reservation.line_id, Decimal('0')) + reservation.quantity

        short = []
        for line in order.lines.select_related('batch', 'presentation').order_by('id'):
            missing = line.quantity - covered.get(line.pk, Decimal('0'))
            if missing > 0:
                short.append((line, missing))
        if not short:
            return []

        if not from_location_id:
            line, missing = short[0]
            raise StockError(
                'INSUFFICIENT_STOCK',
                'Reservas insuficientes y sin ubicación de despacho',
                requested=missing,
                available=Decimal('0'),
                line_id=line.pk,
            )

        location = get_active_location(tenant_id, from_location_id)
        today = today_utc()
        results = []
        for line, missing in short:
            candidates = InventoryBalance.objects.filter(
                tenant_id=tenant_id,
                location=location,
                product_id=line.product_id,
                quantity__gt=0,
            )
            if line.batch_id:
                candidates = candidates.filter(batch_id=line.batch_id)
            ordered = [
                candidates.filter(batch__isnull=False, batch__expires_at__isnull=False)
                    .filter(sellable_batch_q(today)).order_by('batch__expires_at', 'id'),
                candidates.filter(batch__isnull=False, batch__expires_at__isnull=True)
                    .filter(sellable_batch_q(today)).order_by('id'),
                candidates.filter(batch__isnull=True).order_by('id'),
            ]
            for pool in ordered:
                for balance_id in pool.values_list('pk', flat=True):
                    if missing <= 0:
                        break
                    balance = InventoryBalance.objects.select_for_update().get(pk=balance_id)
                    take = min(balance.available, missing)
                    if take <= 0:
                        continue
                    results.append(cls._post_out(
                        tenant_id, order, line, location.pk, balance.batch_id, take, user, note,
                    ))
                    missing -= take
            if missing > 0:
                raise StockError(
                    'INSUFFICIENT_STOCK',
                    requested=missing,
                    location_id=location.pk,
                    product_id=line.product_id,
                    line_id=line.pk,
                )
        return results

    @classmethod
    def _finish(cls, tenant_id, order, results) -> OrderResult:
        now = timezone.now()
        _transition(order, SalesOrderStatus.FULFILLED, delivered_at=now)

        for result in results:
            announce_movement(cls, result)
        send_on_commit(
            order_fulfilled, cls,
            tenant_id=tenant_id, order=order, movements=[r.movement for r in results],
        )
        send_on_commit(
            payment_due, cls,
            tenant_id=tenant_id,
            order=order,
            due_at=payment_due_at(order),
            credit_days=parse_credit_days(order.payment_mode),
        )
        logger.info(
            "sales.order.fulfilled",
            extra={
                "tenant_id": tenant_id,
                "order": order.number,
                "movements": len(results),
                "version": order.version,
            },
        )
        return OrderResult(order, movements=results)
