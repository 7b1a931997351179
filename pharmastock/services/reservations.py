"""
FEFO reservation engine: holds stock for confirmed sales orders.

All methods use transaction.atomic() with appropriate locking.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from django.db import transaction
from django.db.models import F, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from pharmastock.exceptions import StockError
from pharmastock.expiry import eligible_balance_q, today_utc
from pharmastock.models.balance import InventoryBalance
from pharmastock.models.order import SalesOrder, SalesOrderLine
from pharmastock.models.reservation import SalesOrderReservation

logger = logging.getLogger('pharmastock')


@dataclass
class LineAllocation:
    """Outcome of reserving one order line."""

    line_id: int
    product_id: int
    requested: Decimal
    reserved: Decimal = Decimal('0')
    reservations: list = field(default_factory=list)

    @property
    def shortfall(self) -> Decimal:
        return max(Decimal('0'), self.requested - self.reserved)


def candidate_pools(tenant_id: str, line: SalesOrderLine, prefer_city: str = '',
                    today=None) -> list:
    """
    Ordered balance querysets to reserve a line from.

    Same-city pools come first when prefer_city is given, then any city.
    Within a city tier: lots with expiry soonest first, lots without
    expiry, unbatched stock. A line pinned to a lot only looks at that lot.
    Only unbatched stock or RELEASED non-expired lots at active locations
    are eligible.
    """
    base = InventoryBalance.objects.filter(
        tenant_id=tenant_id,
        product_id=line.product_id,
        location__is_active=True,
        quantity__gt=0,
    ).filter(eligible_balance_q(today))

    if line.batch_id:
        tiers = [base.filter(batch_id=line.batch_id).order_by('id')]
    else:
        tiers = [
            base.filter(batch__isnull=False, batch__expires_at__isnull=False)
                .order_by('batch__expires_at', 'id'),
            base.filter(batch__isnull=False, batch__expires_at__isnull=True).order_by('id'),
            base.filter(batch__isnull=True).order_by('id'),
        ]

    pools = []
    city = (prefer_city or '').strip()
    if city:
        pools.extend(tier.filter(location__warehouse__city__iexact=city) for tier in tiers)
    pools.extend(tiers)
    return pools


class StockReservations:
    """Reservation lifecycle methods."""

    @classmethod
    def reserve_for_order(cls, tenant_id, order_id, user=None, prefer_city=None,
                          lines=None) -> list[LineAllocation]:
        """
        Reserve stock for the order's lines, FEFO.

        Partial-tolerant: a line reserves what is available and the rest
        stays unreserved without error. Quantity already actively reserved
        for a line counts towards it, so calling again only tops up.

        Concurrency:
            - Runs under transaction.atomic()
            - select_for_update() on each candidate balance before
              computing its availability
            - Each balance is visited at most once per call
        """
        with transaction.atomic():
            order = SalesOrder.objects.filter(tenant_id=tenant_id, pk=order_id).first()
            if order is None:
                raise StockError('NOT_FOUND', 'Orden no encontrada', order_id=order_id)

            if prefer_city is None:
                prefer_city = order.preferred_city
            if lines is None:
                lines = list(order.lines.all().order_by('id'))

            today = today_utc()
            allocations = []
            for line in lines:
                allocations.append(cls._reserve_line(tenant_id, order, line, prefer_city, today, user))

            reserved = sum((a.reserved for a in allocations), Decimal('0'))
            shortfall = sum((a.shortfall for a in allocations), Decimal('0'))
            logger.info(
                "stock.reservation.created",
                extra={
                    "tenant_id": tenant_id,
                    "order": order.number,
                    "reserved": str(reserved),
                    "shortfall": str(shortfall),
                },
            )
            if shortfall > 0:
                logger.warning(
                    "stock.reservation.partial",
                    extra={
                        "tenant_id": tenant_id,
                        "order": order.number,
                        "shortfall": str(shortfall),
                    },
                )
            return allocations

    @classmethod
    def _reserve_line(cls, tenant_id, order, line, prefer_city, today, user) -> LineAllocation:
        already = line.reservations.active().aggregate(
            t=Coalesce(Sum('quantity'), Decimal('0'))
        )['t']
        allocation = LineAllocation(
            line_id=line.pk,
            product_id=line.product_id,
            requested=line.quantity,
            reserved=already,
        )
        remaining = line.quantity - already
        seen = set()

        for pool in candidate_pools(tenant_id, line, prefer_city, today):
            if remaining <= 0:
                break
            for balance_id in pool.values_list('pk', flat=True):
                if remaining <= 0:
                    break
                if balance_id in seen:
                    continue
                seen.add(balance_id)

                balance = InventoryBalance.objects.select_for_update().get(pk=balance_id)
                take = min(balance.available, remaining)
                if take <= 0:
                    continue

                InventoryBalance.objects.filter(pk=balance_id).update(
                    reserved_quantity=F('reserved_quantity') + take,
                    version=F('version') + 1,
                    updated_at=timezone.now(),
                )
                reservation = SalesOrderReservation.objects.active().filter(
                    line=line, balance_id=balance_id,
                ).first()
                if reservation is None:
                    reservation = SalesOrderReservation.objects.create(
                        tenant_id=tenant_id,
                        order=order,
                        line=line,
                        balance_id=balance_id,
                        quantity=take,
                        created_by=user,
                    )
                else:
                    SalesOrderReservation.objects.filter(pk=reservation.pk).update(
                        quantity=F('quantity') + take,
                    )
                    reservation.refresh_from_db(fields=['quantity'])

                allocation.reservations.append(reservation)
                allocation.reserved += take
                remaining -= take

        return allocation

    @classmethod
    def release_for_order(cls, tenant_id, order_id) -> Decimal:
        """
        Release every active reservation of the order.

        Decrements reserved_quantity on each balance (never below zero)
        and stamps released_at. Rows are kept.

        Returns:
            Total quantity released
        """
        with transaction.atomic():
            active = list(
                SalesOrderReservation.objects.active()
                .filter(tenant_id=tenant_id, order_id=order_id)
                .order_by('balance_id', 'id')
            )
            if not active:
                return Decimal('0')

            per_balance: dict[int, Decimal] = {}
            for reservation in active:
                per_balance[reservation.balance_id] = (
                    per_balance.get(reservation.balance_id, Decimal('0')) + reservation.quantity
                )

            now = timezone.now()
            for balance_id in sorted(per_balance):
                balance = InventoryBalance.objects.select_for_update().get(pk=balance_id)
                InventoryBalance.objects.filter(pk=balance_id).update(
                    reserved_quantity=max(Decimal('0'), balance.reserved_quantity - per_balance[balance_id]),
                    version=F('version') + 1,
                    updated_at=now,
                )

            SalesOrderReservation.objects.filter(
                pk__in=[r.pk for r in active],
            ).update(released_at=now)

            total = sum(per_balance.values(), Decimal('0'))
            logger.info(
                "stock.reservation.released",
                extra={
                    "tenant_id": tenant_id,
                    "order_id": order_id,
                    "qty": str(total),
                    "balances": len(per_balance),
                },
            )
            return total
