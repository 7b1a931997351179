"""
Movement request workflow: branch-to-branch stock requests.

remaining_quantity on request items only goes down, through conditional
updates (WHERE remaining_quantity >= n), so two shipments racing for the
same item cannot both succeed past what is left.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from django.db import transaction
from django.db.models import F, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from pharmastock.conf import pharmastock_settings
from pharmastock.exceptions import StockError
from pharmastock.expiry import eligible_balance_q, today_utc
from pharmastock.models.balance import InventoryBalance
from pharmastock.models.enums import ConfirmationStatus, MovementRequestStatus, MovementType
from pharmastock.models.location import Warehouse
from pharmastock.models.request import StockMovementRequest, StockMovementRequestItem
from pharmastock.services.movements import (
    StockMovements,
    get_active_location,
    get_active_product,
)
from pharmastock.services.presentations import QUANTUM, get_presentation, resolve_base_quantity, to_decimal
from pharmastock.signals import (
    movement_request_confirmed,
    movement_request_fulfilled,
    send_on_commit,
)

logger = logging.getLogger('pharmastock')

OPEN_STATUSES = (MovementRequestStatus.OPEN, MovementRequestStatus.SENT)


@dataclass(frozen=True)
class PlanSuggestion:
    balance_id: int
    location_id: int
    batch_id: int | None
    batch_number: str
    expires_at: date | None
    opened: bool
    quantity: Decimal


@dataclass
class PlanItem:
    item_id: int
    product_id: int
    remaining: Decimal
    suggestions: list[PlanSuggestion] = field(default_factory=list)

    @property
    def suggested(self) -> Decimal:
        return sum((s.quantity for s in self.suggestions), Decimal('0'))

    @property
    def shortfall(self) -> Decimal:
        return max(Decimal('0'), self.remaining - self.suggested)


@dataclass(frozen=True)
class Application:
    """Quantity of a movement credited to a request item."""

    request_id: int
    item_id: int
    quantity: Decimal


@dataclass
class FulfillResult:
    request: StockMovementRequest
    movements: list = field(default_factory=list)


@dataclass
class BulkFulfillResult:
    reference_type: str
    reference_id: str
    destination_city: str
    movements: list = field(default_factory=list)
    applications: list = field(default_factory=list)
    fulfilled_request_ids: list = field(default_factory=list)


def _normalize_city(city) -> str:
    return str(city or '').strip().upper()


def _get_request(tenant_id, request_id, lock=False) -> StockMovementRequest:
    qs = StockMovementRequest.objects.filter(tenant_id=tenant_id, pk=request_id)
    if lock:
        qs = qs.select_for_update()
    request = qs.first()
    if request is None:
        raise StockError('NOT_FOUND', 'Solicitud no encontrada', request_id=request_id)
    return request


def _require_open(request) -> None:
    if request.status not in OPEN_STATUSES:
        raise StockError(
            'STATE_CONFLICT',
            f'Solicitud en estado {request.status}',
            request_id=request.pk,
            status=request.status,
        )


def _decrement(item_id, quantity: Decimal) -> bool:
    """Conditional decrement of remaining_quantity. False if it raced below quantity."""
    updated = StockMovementRequestItem.objects.filter(
        pk=item_id, remaining_quantity__gte=quantity,
    ).update(remaining_quantity=F('remaining_quantity') - quantity)
    return updated == 1


class MovementRequests:
    """Movement request lifecycle methods."""

    @classmethod
    def create_request(cls, tenant_id, warehouse_id, items, user=None,
                       requested_by_name='', product_id=None, note='') -> StockMovementRequest:
        """
        Open a request for the warehouse's city.

        Each item: presentation_id and quantity in packs; product_id
        defaults to the request's product_id. requested_quantity is kept
        in base units (quantity x units_per_presentation).
        """
        if not items:
            raise StockError('INVALID_REQUEST', 'La solicitud requiere al menos un ítem')

        with transaction.atomic():
            warehouse = Warehouse.objects.filter(
                tenant_id=tenant_id, pk=warehouse_id, is_active=True,
            ).first()
            if warehouse is None:
                raise StockError('NOT_FOUND', 'Almacén no encontrado', warehouse_id=warehouse_id)
            city = warehouse.city.strip()
            if not city:
                raise StockError('INVALID_REQUEST', 'El almacén no tiene ciudad', warehouse_id=warehouse.pk)

            request = StockMovementRequest.objects.create(
                tenant_id=tenant_id,
                requested_city=city,
                warehouse=warehouse,
                requested_by=requested_by_name or (user.get_username() if user else ''),
                note=note,
                created_by=user,
            )

            for data in items:
                product = get_active_product(tenant_id, data.get('product_id') or product_id)
                pack_qty = to_decimal(data.get('quantity'))
                if pack_qty <= 0:
                    raise StockError('INVALID_QUANTITY', requested=pack_qty)
                presentation = get_presentation(tenant_id, product.pk, data['presentation_id'])
                requested = (pack_qty * presentation.units_per_presentation).quantize(QUANTUM)
                StockMovementRequestItem.objects.create(
                    tenant_id=tenant_id,
                    request=request,
                    product=product,
                    presentation=presentation,
                    presentation_quantity=pack_qty,
                    requested_quantity=requested,
                    remaining_quantity=requested,
                )

            logger.info(
                "stock.movement_request.created",
                extra={
                    "tenant_id": tenant_id,
                    "request_id": request.pk,
                    "city": city,
                    "items": len(items),
                },
            )
            return request

    @classmethod
    def plan_request(cls, tenant_id, request_id, from_location_id=None, warehouse_id=None) -> list[PlanItem]:
        """
        Suggest source balances for the request's open items. Read-only.

        Candidates at the origin location (or any location of the origin
        warehouse) are ranked opened lots first, then soonest expiry, then
        batch number, then balance id. Availability is shared across
        items, so two items never claim the same unit.
        """
        if not from_location_id and not warehouse_id:
            raise StockError('INVALID_REQUEST', 'from_location_id o warehouse_id es obligatorio')

        request = _get_request(tenant_id, request_id)
        _require_open(request)

        today = today_utc()
        pool: dict[int, Decimal] = {}
        plan = []

        for item in request.items.filter(remaining_quantity__gt=0).order_by('created_at', 'id'):
            balances = InventoryBalance.objects.filter(
                tenant_id=tenant_id,
                product_id=item.product_id,
                quantity__gt=0,
                location__is_active=True,
            ).filter(eligible_balance_q(today)).select_related('batch')
            if from_location_id:
                balances = balances.filter(location_id=from_location_id)
            else:
                balances = balances.filter(location__warehouse_id=warehouse_id)

            ranked = sorted(balances, key=lambda b: (
                0 if b.batch_id and b.batch.opened_at else 1,
                b.batch is None or b.batch.expires_at is None,
                (b.batch.expires_at if b.batch_id else None) or date.max,
                b.batch.batch_number if b.batch_id else '',
                b.pk,
            ))

            entry = PlanItem(item_id=item.pk, product_id=item.product_id, remaining=item.remaining_quantity)
            need = item.remaining_quantity
            for balance in ranked:
                if need <= 0:
                    break
                free = pool.setdefault(balance.pk, balance.available)
                take = min(free, need)
                if take <= 0:
                    continue
                pool[balance.pk] = free - take
                need -= take
                entry.suggestions.append(PlanSuggestion(
                    balance_id=balance.pk,
                    location_id=balance.location_id,
                    batch_id=balance.batch_id,
                    batch_number=balance.batch.batch_number if balance.batch_id else '',
                    expires_at=balance.batch.expires_at if balance.batch_id else None,
                    opened=bool(balance.batch_id and balance.batch.opened_at),
                    quantity=take,
                ))
            plan.append(entry)

        return plan

    @classmethod
    def fulfill_request(cls, tenant_id, request_id, from_location_id, to_location_id, lines,
                        user=None, note='') -> FulfillResult:
        """
        Ship (possibly partially) against a request.

        Each line: item_id (or product_id + presentation_id), quantity in
        base units (or presentation_quantity), batch_id, and optional
        from_location_id. The item's remaining_quantity is decremented
        conditionally, then a TRANSFER tagged MOVEMENT_REQUEST is posted.
        The request becomes FULFILLED once nothing remains.

        Raises:
            StockError('INVALID_REQUEST'): No lines, or a line above remaining
            StockError('CONCURRENT_MODIFICATION'): Another shipment took the
                remaining quantity first
            StockError('STATE_CONFLICT'): Request not OPEN/SENT
        """
        if not lines:
            raise StockError('INVALID_REQUEST', 'Se requiere al menos una línea')

        with transaction.atomic():
            request = _get_request(tenant_id, request_id, lock=True)
            _require_open(request)

            results = []
            for line in lines:
                item = cls._resolve_item(request, line)
                resolved = resolve_base_quantity(
                    tenant_id, item.product_id,
                    quantity=line.get('quantity'),
                    presentation_id=line.get('presentation_id') if line.get('presentation_quantity') else None,
                    presentation_quantity=line.get('presentation_quantity'),
                )
                qty = resolved.quantity
                if qty > item.remaining_quantity:
                    raise StockError(
                        'INVALID_REQUEST',
                        'La cantidad excede lo pendiente',
                        item_id=item.pk,
                        requested=qty,
                        available=item.remaining_quantity,
                    )
                if not _decrement(item.pk, qty):
                    raise StockError(
                        'CONCURRENT_MODIFICATION',
                        item_id=item.pk,
                        requested=qty,
                    )

                results.append(StockMovements.post_movement(
                    tenant_id,
                    MovementType.TRANSFER,
                    item.product_id,
                    quantity=qty,
                    from_location_id=line.get('from_location_id') or from_location_id,
                    to_location_id=to_location_id,
                    batch_id=line.get('batch_id'),
                    user=user,
                    reference_type='MOVEMENT_REQUEST',
                    reference_id=request.pk,
                    note=line.get('note') or note,
                ))

            cls._complete_if_done(tenant_id, [request.pk], user)
            request.refresh_from_db()
            logger.info(
                "stock.movement_request.fulfill",
                extra={
                    "tenant_id": tenant_id,
                    "request_id": request.pk,
                    "lines": len(lines),
                    "status": request.status,
                },
            )
            return FulfillResult(request, results)

    @classmethod
    def _resolve_item(cls, request, line) -> StockMovementRequestItem:
        items = request.items.all()
        if line.get('item_id'):
            item = items.filter(pk=line['item_id']).first()
        else:
            items = items.filter(product_id=line.get('product_id'))
            if line.get('presentation_id'):
                items = items.filter(presentation_id=line['presentation_id'])
            item = items.filter(remaining_quantity__gt=0).order_by('created_at', 'id').first()
        if item is None:
            raise StockError(
                'NOT_FOUND',
                'Ítem de solicitud no encontrado',
                request_id=request.pk,
                item_id=line.get('item_id'),
                product_id=line.get('product_id'),
            )
        return item

    @classmethod
    def bulk_fulfill_requests(cls, tenant_id, request_ids, from_location_id, to_location_id, lines,
                              user=None, note='') -> BulkFulfillResult:
        """
        Ship many lines for several requests of one city at once.

        Each TRANSFER is tagged REQUEST_BULK_FULFILL and its quantity is
        spread over the selected requests' items of the same product, in
        request creation order then item id.

        Raises:
            StockError('STATE_CONFLICT'): Destination without city, or a
                request not open or of another city
            StockError('NOT_FOUND'): Unknown request or location
        """
        if not request_ids or not lines:
            raise StockError('INVALID_REQUEST', 'Se requieren solicitudes y líneas')

        reference_type = 'REQUEST_BULK_FULFILL'
        reference_id = str(uuid.uuid4())

        with transaction.atomic():
            to_location = get_active_location(tenant_id, to_location_id)
            destination = _normalize_city(to_location.warehouse.city)
            if not destination:
                raise StockError('STATE_CONFLICT', 'El almacén de destino no tiene ciudad')

            requests = list(
                StockMovementRequest.objects.select_for_update()
                .filter(tenant_id=tenant_id, pk__in=request_ids)
                .order_by('created_at', 'id')
            )
            if len(requests) != len(set(request_ids)):
                raise StockError('NOT_FOUND', 'Una o más solicitudes no existen')
            for request in requests:
                _require_open(request)
                if _normalize_city(request.requested_city) != destination:
                    raise StockError(
                        'STATE_CONFLICT',
                        'Todas las solicitudes deben ser de la ciudad de destino',
                        request_id=request.pk,
                    )
            get_active_location(tenant_id, from_location_id)

            order = {r.pk: idx for idx, r in enumerate(requests)}
            result = BulkFulfillResult(reference_type, reference_id, destination)
            touched = set()

            for line in lines:
                movement_result = StockMovements.post_movement(
                    tenant_id,
                    MovementType.TRANSFER,
                    line['product_id'],
                    quantity=line.get('quantity'),
                    presentation_id=line.get('presentation_id'),
                    presentation_quantity=line.get('presentation_quantity'),
                    from_location_id=line.get('from_location_id') or from_location_id,
                    to_location_id=to_location.pk,
                    batch_id=line.get('batch_id'),
                    user=user,
                    reference_type=reference_type,
                    reference_id=reference_id,
                    note=line.get('note') or note,
                )
                result.movements.append(movement_result)

                items = sorted(
                    StockMovementRequestItem.objects.filter(
                        tenant_id=tenant_id,
                        request_id__in=list(order),
                        product_id=movement_result.movement.product_id,
                        remaining_quantity__gt=0,
                    ),
                    key=lambda it: (order[it.request_id], it.pk),
                )
                applied = cls._apply_to_items(items, movement_result.movement.quantity)
                result.applications.extend(applied)
                touched.update(a.request_id for a in applied)

            result.fulfilled_request_ids = cls._complete_if_done(tenant_id, sorted(touched), user)
            logger.info(
                "stock.movement_request.bulk_fulfill",
                extra={
                    "tenant_id": tenant_id,
                    "reference_id": reference_id,
                    "movements": len(result.movements),
                    "fulfilled": result.fulfilled_request_ids,
                },
            )
            return result

    @classmethod
    def auto_apply(cls, movement, user=None) -> list[Application]:
        """
        Credit an ordinary TRANSFER to open requests of the destination city.

        Items of open requests for the same product whose requested city
        matches the destination warehouse city (case-insensitive) are
        decremented FIFO: request creation order, then item creation order.
        Runs in the movement's transaction.
        """
        city = movement.to_location.warehouse.city.strip() if movement.to_location_id else ''
        if not city:
            return []

        items = StockMovementRequestItem.objects.filter(
            tenant_id=movement.tenant_id,
            product_id=movement.product_id,
            remaining_quantity__gt=0,
            request__status__in=OPEN_STATUSES,
            request__requested_city__iexact=city,
        ).order_by('request__created_at', 'request_id', 'created_at', 'id')

        applied = cls._apply_to_items(list(items), movement.quantity)
        if applied:
            cls._complete_if_done(movement.tenant_id, sorted({a.request_id for a in applied}), user)
            logger.info(
                "stock.movement_request.auto_applied",
                extra={
                    "tenant_id": movement.tenant_id,
                    "movement": movement.number,
                    "city": city,
                    "items": len(applied),
                },
            )
        return applied

    @classmethod
    def _apply_to_items(cls, items, quantity: Decimal) -> list[Application]:
        left = quantity
        applied = []
        for item in items:
            if left <= 0:
                break
            take = min(item.remaining_quantity, left)
            if take <= 0:
                continue
            if not _decrement(item.pk, take):
                # Raced by another shipment; credit what is left now
                item.refresh_from_db(fields=['remaining_quantity'])
                take = min(item.remaining_quantity, left)
                if take <= 0 or not _decrement(item.pk, take):
                    continue
            applied.append(Application(item.request_id, item.pk, take))
            left -= take
        return applied

    @classmethod
    def _complete_if_done(cls, tenant_id, request_ids, user=None) -> list[int]:
        """Mark open requests whose remaining sum reached ~0 as FULFILLED."""
        done = []
        for request_id in request_ids:
            remaining = StockMovementRequestItem.objects.filter(
                tenant_id=tenant_id, request_id=request_id,
            ).aggregate(t=Coalesce(Sum('remaining_quantity'), Decimal('0')))['t']
            if remaining > pharmastock_settings.REMAINING_EPSILON:
                continue
            updated = StockMovementRequest.objects.filter(
                pk=request_id, status__in=OPEN_STATUSES,
            ).update(
                status=MovementRequestStatus.FULFILLED,
                fulfilled_at=timezone.now(),
                fulfilled_by=user,
                updated_at=timezone.now(),
            )
            if updated:
                done.append(request_id)
                request = StockMovementRequest.objects.get(pk=request_id)
                send_on_commit(movement_request_fulfilled, cls, tenant_id=tenant_id, request=request)
                logger.info(
                    "stock.movement_request.fulfilled",
                    extra={"tenant_id": tenant_id, "request_id": request_id},
                )
        return done

    @classmethod
    def mark_request_sent(cls, tenant_id, request_id, user=None) -> StockMovementRequest:
        """OPEN -> SENT: the origin warehouse acknowledged the request."""
        with transaction.atomic():
            request = _get_request(tenant_id, request_id, lock=True)
            if request.status != MovementRequestStatus.OPEN:
                raise StockError('STATE_CONFLICT', request_id=request.pk, status=request.status)
            request.status = MovementRequestStatus.SENT
            request.save(update_fields=['status', 'updated_at'])
            return request

    @classmethod
    def cancel_request(cls, tenant_id, request_id, user=None) -> StockMovementRequest:
        """Cancel an open request nothing has been shipped against."""
        with transaction.atomic():
            request = _get_request(tenant_id, request_id, lock=True)
            _require_open(request)
            if request.items.filter(remaining_quantity__lt=F('requested_quantity')).exists():
                raise StockError(
                    'STATE_CONFLICT',
                    'La solicitud ya fue atendida parcialmente',
                    request_id=request.pk,
                )
            request.status = MovementRequestStatus.CANCELLED
            request.save(update_fields=['status', 'updated_at'])
            logger.info(
                "stock.movement_request.cancelled",
                extra={"tenant_id": tenant_id, "request_id": request.pk},
            )
            return request

    @classmethod
    def confirm_request(cls, tenant_id, request_id, action, user=None, note='') -> StockMovementRequest:
        """
        Branch acknowledgment of a FULFILLED request: ACCEPT or REJECT.

        Independent of stock; moves confirmation_status out of PENDING once.
        """
        targets = {
            'ACCEPT': ConfirmationStatus.ACCEPTED,
            'REJECT': ConfirmationStatus.REJECTED,
        }
        if action not in targets:
            raise StockError('INVALID_REQUEST', 'Acción inválida', action=action)

        with transaction.atomic():
            request = _get_request(tenant_id, request_id, lock=True)
            if request.status != MovementRequestStatus.FULFILLED:
                raise StockError('STATE_CONFLICT', 'La solicitud no está atendida', request_id=request.pk)
            if request.confirmation_status != ConfirmationStatus.PENDING:
                raise StockError('STATE_CONFLICT', 'La solicitud ya fue confirmada', request_id=request.pk)

            request.confirmation_status = targets[action]
            request.confirmed_at = timezone.now()
            request.confirmed_by = user
            request.confirmation_note = note or ''
            request.save(update_fields=[
                'confirmation_status', 'confirmed_at', 'confirmed_by',
                'confirmation_note', 'updated_at',
            ])
            send_on_commit(movement_request_confirmed, cls, tenant_id=tenant_id, request=request)
            logger.info(
                "stock.movement_request.confirmed",
                extra={"tenant_id": tenant_id, "request_id": request.pk, "action": action},
            )
            return request
