"""
InventoryBalance model: on-hand and reserved quantity per stock key.
"""

import logging
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q, Sum
from django.db.models.functions import Coalesce
from django.utils.translation import gettext_lazy as _

logger = logging.getLogger('pharmastock')


class BalanceQuerySet(models.QuerySet):
    """QuerySet with helper filters for balance lookups."""

    def for_tenant(self, tenant_id):
        return self.filter(tenant_id=tenant_id)

    def for_key(self, tenant_id, location_id, product_id, batch_id=None):
        """Exact stock key. batch_id=None matches unbatched stock only."""
        return self.filter(
            tenant_id=tenant_id,
            location_id=location_id,
            product_id=product_id,
            batch_id=batch_id,
        )

    def in_city(self, city: str):
        """Balances whose warehouse is in the given city (case-insensitive)."""
        return self.filter(location__warehouse__city__iexact=city.strip())

    def with_stock(self):
        return self.filter(quantity__gt=0)


class InventoryBalance(models.Model):
    """
    Stock of a product at a location, per batch (or unbatched).

    Key: (tenant, location, product, batch-or-null), unique.

    Invariants:
    - quantity never goes negative
    - reserved_quantity never goes negative
    - version increments on every mutation
    - rows are created lazily on first inward movement and never deleted

    Only the movement engine writes quantity. The reservation engine and
    delivery paths write reserved_quantity under the same row lock.
    """

    tenant_id = models.CharField(max_length=64, db_index=True, verbose_name=_('Tenant'))
    location = models.ForeignKey(
        'pharmastock.Location',
        on_delete=models.PROTECT,
        related_name='balances',
        verbose_name=_('Ubicación'),
    )
    product = models.ForeignKey(
        'pharmastock.Product',
        on_delete=models.PROTECT,
        related_name='balances',
        verbose_name=_('Producto'),
    )
    batch = models.ForeignKey(
        'pharmastock.Batch',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='balances',
        verbose_name=_('Lote'),
    )

    quantity = models.DecimalField(
        max_digits=18,
        decimal_places=4,
        default=Decimal('0'),
        verbose_name=_('Cantidad'),
    )
    reserved_quantity = models.DecimalField(
        max_digits=18,
        decimal_places=4,
        default=Decimal('0'),
        verbose_name=_('Reservado'),
    )
    version = models.PositiveIntegerField(default=1, verbose_name=_('Versión'))

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = BalanceQuerySet.as_manager()

    class Meta:
        verbose_name = _('Saldo')
        verbose_name_plural = _('Saldos')
        constraints = [
            models.UniqueConstraint(
                fields=['tenant_id', 'location', 'product', 'batch'],
                name='unique_balance_key',
            ),
            models.UniqueConstraint(
                fields=['tenant_id', 'location', 'product'],
                condition=Q(batch__isnull=True),
                name='unique_balance_key_unbatched',
            ),
            models.CheckConstraint(
                condition=Q(quantity__gte=0),
                name='balance_quantity_non_negative',
            ),
            models.CheckConstraint(
                condition=Q(reserved_quantity__gte=0),
                name='balance_reserved_non_negative',
            ),
        ]
        indexes = [
            models.Index(fields=['tenant_id', 'product'], name='ps_balance_product_idx'),
            models.Index(fields=['tenant_id', 'location'], name='ps_balance_location_idx'),
        ]

    # ══════════════════════════════════════════════════════════════
    # PROPERTIES
    # ══════════════════════════════════════════════════════════════

    @property
    def available(self) -> Decimal:
        """Quantity free for new reservations: max(0, quantity - reserved)."""
        reserved = max(Decimal('0'), self.reserved_quantity)
        return max(Decimal('0'), self.quantity - reserved)

    # ══════════════════════════════════════════════════════════════
    # METHODS
    # ══════════════════════════════════════════════════════════════

    def ledger_quantity(self) -> Decimal:
        """Quantity implied by the movement ledger for this key."""
        from pharmastock.models.movement import StockMovement

        moves = StockMovement.objects.filter(
            tenant_id=self.tenant_id,
            product_id=self.product_id,
            batch_id=self.batch_id,
        )
        zero = Decimal('0')
        inflow = moves.filter(to_location_id=self.location_id).aggregate(
            t=Coalesce(Sum('quantity'), zero)
        )['t']
        outflow = moves.filter(from_location_id=self.location_id).aggregate(
            t=Coalesce(Sum('quantity'), zero)
        )['t']
        return inflow - outflow

    def recalculate(self) -> Decimal:
        """
        Recalculate quantity from the movement ledger.

        Use for:
        - Integrity audit
        - Correction after detected inconsistency

        Returns:
            New calculated quantity
        """
        from django.db.models import F

        total = self.ledger_quantity()

        if total != self.quantity:
            old = self.quantity
            InventoryBalance.objects.filter(pk=self.pk).update(
                quantity=total,
                version=F('version') + 1,
            )
            self.refresh_from_db(fields=['quantity', 'version', 'updated_at'])
            logger.warning(
                "stock.balance.recalculated",
                extra={
                    "balance_id": self.pk,
                    "old": str(old),
                    "new": str(total),
                    "diff": str(total - old),
                },
            )

        return total

    def __str__(self) -> str:
        lot = self.batch.batch_number if self.batch_id else '-'
        return f"{self.product.sku} [{self.location} | {lot}]: {self.quantity}"
