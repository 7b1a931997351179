"""
Stock queries — read-only operations.

All methods are classmethod on Stock and use no locking. Filters are
explicit dataclasses; unset fields do not filter.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal

from django.db.models import DecimalField, F, Q, Sum, Value
from django.db.models.functions import Coalesce, Greatest
from django.utils import timezone

from pharmastock.conf import pharmastock_settings
from pharmastock.expiry import days_to_expire, eligible_balance_q, semaphore_status, today_utc
from pharmastock.models.balance import InventoryBalance
from pharmastock.models.movement import StockMovement
from pharmastock.models.request import StockMovementRequest
from pharmastock.models.reservation import SalesOrderReservation

ZERO = Decimal('0')


@dataclass
class BalanceFilter:
    location_id: int | None = None
    warehouse_id: int | None = None
    product_id: int | None = None
    batch_id: int | None = None
    city: str | None = None
    include_empty: bool = False
    take: int = 100


@dataclass
class ExpiryFilter:
    warehouse_id: int | None = None
    location_id: int | None = None
    product_id: int | None = None
    status: str | None = None  # EXPIRED, RED, YELLOW, GREEN
    cursor: int | None = None
    take: int = 50


@dataclass
class RequestFilter:
    status: str | None = None
    city: str | None = None
    cursor: int | None = None
    take: int = 50


@dataclass(frozen=True)
class FefoSuggestion:
    batch_id: int
    batch_number: str
    expires_at: date | None
    status: str
    quantity: Decimal


@dataclass(frozen=True)
class ExpiryRow:
    balance_id: int
    product_id: int
    batch_id: int
    batch_number: str
    expires_at: date
    days_to_expire: int
    status: str
    quantity: Decimal
    reserved: Decimal
    available: Decimal
    warehouse_id: int
    location_id: int


@dataclass
class ExpiryPage:
    items: list[ExpiryRow] = field(default_factory=list)
    next_cursor: int | None = None
    generated_at: datetime | None = None


def _available_expr():
    zero = Value(ZERO, output_field=DecimalField(max_digits=18, decimal_places=4))
    return Greatest(
        F('quantity') - Greatest(F('reserved_quantity'), zero),
        zero,
        output_field=DecimalField(max_digits=18, decimal_places=4),
    )


class StockQueries:
    """Read-only stock query methods."""

    @classmethod
    def available(cls, tenant_id, product_id, location_id=None, warehouse_id=None,
                  city: str | None = None) -> Decimal:
        """
        Quantity free for new reservations.

        Sum of max(0, quantity - reserved) over balances that may be
        reserved (unbatched, or RELEASED non-expired lots at active
        locations).
        """
        qs = InventoryBalance.objects.filter(
            tenant_id=tenant_id,
            product_id=product_id,
            location__is_active=True,
        ).filter(eligible_balance_q())
        if location_id:
            qs = qs.filter(location_id=location_id)
        if warehouse_id:
            qs = qs.filter(location__warehouse_id=warehouse_id)
        if city:
            qs = qs.in_city(city)

        return qs.aggregate(t=Coalesce(Sum(_available_expr()), ZERO))['t']

    @classmethod
    def get_balance(cls, tenant_id, location_id, product_id, batch_id=None) -> InventoryBalance | None:
        """Get a balance by its key."""
        return InventoryBalance.objects.for_key(tenant_id, location_id, product_id, batch_id).first()

    @classmethod
    def list_balances(cls, tenant_id, criteria: BalanceFilter | None = None):
        """Balances matching criteria, most recently changed first."""
        criteria = criteria or BalanceFilter()
        qs = InventoryBalance.objects.filter(tenant_id=tenant_id).select_related(
            'location', 'location__warehouse', 'product', 'batch',
        )
        if criteria.location_id:
            qs = qs.filter(location_id=criteria.location_id)
        if criteria.warehouse_id:
            qs = qs.filter(location__warehouse_id=criteria.warehouse_id)
        if criteria.product_id:
            qs = qs.filter(product_id=criteria.product_id)
        if criteria.batch_id:
            qs = qs.filter(batch_id=criteria.batch_id)
        if criteria.city:
            qs = qs.in_city(criteria.city)
        if not criteria.include_empty:
            qs = qs.with_stock()
        return qs.order_by('-updated_at', '-id')[:criteria.take]

    @classmethod
    def fefo_suggestions(cls, tenant_id, product_id, location_id=None, warehouse_id=None,
                         take: int = 10) -> list[FefoSuggestion]:
        """
        Lots with stock, soonest expiry first, skipping expired ones.

        With location_id, one row per balance at that location. With
        warehouse_id, quantities are summed per lot across its locations.
        """
        if not location_id and not warehouse_id:
            from pharmastock.exceptions import StockError
            raise StockError('INVALID_REQUEST', 'location_id o warehouse_id es obligatorio')

        today = today_utc()
        qs = InventoryBalance.objects.filter(
            tenant_id=tenant_id,
            product_id=product_id,
            quantity__gt=0,
            batch__isnull=False,
        ).filter(Q(batch__expires_at__isnull=True) | Q(batch__expires_at__gte=today))

        if location_id:
            rows = (
                qs.filter(location_id=location_id)
                .select_related('batch')
                .order_by(F('batch__expires_at').asc(nulls_last=True), 'id')[:take]
            )
            return [
                FefoSuggestion(
                    batch_id=r.batch_id,
                    batch_number=r.batch.batch_number,
                    expires_at=r.batch.expires_at,
                    status=r.batch.status,
                    quantity=r.quantity,
                )
                for r in rows
            ]

        grouped = (
            qs.filter(location__warehouse_id=warehouse_id)
            .values('batch_id', 'batch__batch_number', 'batch__expires_at', 'batch__status')
            .annotate(total=Sum('quantity'))
            .order_by(F('batch__expires_at').asc(nulls_last=True), 'batch_id')[:take]
        )
        return [
            FefoSuggestion(
                batch_id=g['batch_id'],
                batch_number=g['batch__batch_number'],
                expires_at=g['batch__expires_at'],
                status=g['batch__status'],
                quantity=g['total'],
            )
            for g in grouped
        ]

    @classmethod
    def expiry_summary(cls, tenant_id, criteria: ExpiryFilter | None = None) -> ExpiryPage:
        """
        Batch-bound balances with stock and an expiry date, soonest first,
        tagged with their semaphore status. Paginated by balance id cursor.
        """
        criteria = criteria or ExpiryFilter()
        today = today_utc()
        red = pharmastock_settings.EXPIRY_RED_DAYS
        yellow = pharmastock_settings.EXPIRY_YELLOW_DAYS

        qs = InventoryBalance.objects.filter(
            tenant_id=tenant_id,
            quantity__gt=0,
            batch__isnull=False,
            batch__expires_at__isnull=False,
        ).select_related('batch', 'location')
        if criteria.warehouse_id:
            qs = qs.filter(location__warehouse_id=criteria.warehouse_id)
        if criteria.location_id:
            qs = qs.filter(location_id=criteria.location_id)
        if criteria.product_id:
            qs = qs.filter(product_id=criteria.product_id)

        if criteria.status == 'EXPIRED':
            qs = qs.filter(batch__expires_at__lt=today)
        elif criteria.status == 'RED':
            qs = qs.filter(batch__expires_at__gte=today, batch__expires_at__lte=today + timedelta(days=red))
        elif criteria.status == 'YELLOW':
            qs = qs.filter(
                batch__expires_at__gt=today + timedelta(days=red),
                batch__expires_at__lte=today + timedelta(days=yellow),
            )
        elif criteria.status == 'GREEN':
            qs = qs.filter(batch__expires_at__gt=today + timedelta(days=yellow))

        if criteria.cursor:
            anchor = InventoryBalance.objects.filter(
                tenant_id=tenant_id, pk=criteria.cursor,
            ).values_list('batch__expires_at', flat=True).first()
            if anchor is not None:
                qs = qs.filter(
                    Q(batch__expires_at__gt=anchor)
                    | Q(batch__expires_at=anchor, pk__gt=criteria.cursor)
                )

        rows = list(qs.order_by('batch__expires_at', 'id')[:criteria.take + 1])
        has_more = len(rows) > criteria.take
        rows = rows[:criteria.take]

        items = []
        for r in rows:
            days = days_to_expire(r.batch.expires_at, today)
            items.append(ExpiryRow(
                balance_id=r.pk,
                product_id=r.product_id,
                batch_id=r.batch_id,
                batch_number=r.batch.batch_number,
                expires_at=r.batch.expires_at,
                days_to_expire=days,
                status=semaphore_status(days),
                quantity=r.quantity,
                reserved=r.reserved_quantity,
                available=r.available,
                warehouse_id=r.location.warehouse_id,
                location_id=r.location_id,
            ))

        return ExpiryPage(
            items=items,
            next_cursor=rows[-1].pk if has_more and rows else None,
            generated_at=timezone.now(),
        )

    @classmethod
    def reservations_for_balance(cls, tenant_id, balance_id, include_released: bool = False):
        """Reservations held against a balance, oldest first."""
        qs = SalesOrderReservation.objects.filter(
            tenant_id=tenant_id, balance_id=balance_id,
        ).select_related('order', 'line')
        if not include_released:
            qs = qs.active()
        return qs.order_by('created_at', 'id')

    @classmethod
    def reservations_for_order(cls, tenant_id, order_id):
        """All reservations of an order, active and released."""
        return SalesOrderReservation.objects.filter(
            tenant_id=tenant_id, order_id=order_id,
        ).order_by('created_at', 'id')

    @classmethod
    def movements_for_reference(cls, tenant_id, reference_type, reference_id):
        """Ledger entries posted for a document."""
        return StockMovement.objects.filter(
            tenant_id=tenant_id,
            reference_type=reference_type,
            reference_id=str(reference_id),
        ).order_by('created_at', 'id')

    @classmethod
    def list_movement_requests(cls, tenant_id, criteria: RequestFilter | None = None):
        """Movement requests, newest first. city matches case-insensitively."""
        criteria = criteria or RequestFilter()
        qs = StockMovementRequest.objects.filter(tenant_id=tenant_id).prefetch_related('items')
        if criteria.status:
            qs = qs.filter(status=criteria.status)
        if criteria.city:
            qs = qs.for_city(criteria.city)
        if criteria.cursor:
            qs = qs.filter(pk__lt=criteria.cursor)
        return qs.order_by('-id')[:criteria.take]
