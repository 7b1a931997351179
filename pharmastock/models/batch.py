"""
Batch model: lot traceability for products with expiry.

Pharmaceutical stock is tracked per lot for:
- Expiry control (the expiry gate blocks moving out expired lots)
- Quality control (only RELEASED lots are reserved and sold)
- Recall management (find all stock from a specific lot)
- FEFO picking: prefer lots that expire first

Usage:
    batch = stock.create_batch(
        tenant_id, product_id=product.pk,
        batch_number="L2401-A",
        expires_at=date(2027, 1, 31),
    )
    stock.release_batch(tenant_id, batch.pk, user=qc_user)
"""

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _

from pharmastock.models.enums import BatchStatus


class BatchQuerySet(models.QuerySet):
    """Custom QuerySet for Batch with convenience filters."""

    def for_tenant(self, tenant_id):
        return self.filter(tenant_id=tenant_id)

    def released(self):
        return self.filter(status=BatchStatus.RELEASED)

    def expiring_before(self, date):
        """Batches expiring on or before the given date."""
        return self.filter(expires_at__lte=date, expires_at__isnull=False)

    def expired(self, today=None):
        """Batches past their expiry date (UTC)."""
        from pharmastock.expiry import today_utc
        return self.filter(expires_at__lt=today or today_utc())


class Batch(models.Model):
    """
    Lot of a product.

    Balances reference a Batch by FK; unbatched stock has batch=None.
    QC transition QUARANTINE -> RELEASED is one-way.
    """

    tenant_id = models.CharField(max_length=64, db_index=True, verbose_name=_('Tenant'))
    product = models.ForeignKey(
        'pharmastock.Product',
        on_delete=models.PROTECT,
        related_name='batches',
        verbose_name=_('Producto'),
    )
    batch_number = models.CharField(
        max_length=64,
        verbose_name=_('Número de lote'),
    )

    manufactured_at = models.DateField(
        null=True,
        blank=True,
        verbose_name=_('Fecha de fabricación'),
    )
    expires_at = models.DateField(
        null=True,
        blank=True,
        db_index=True,
        verbose_name=_('Fecha de vencimiento'),
        help_text=_('Último día en que el lote puede despacharse'),
    )
    status = models.CharField(
        max_length=20,
        choices=BatchStatus.choices,
        default=BatchStatus.QUARANTINE,
        db_index=True,
        verbose_name=_('Estado'),
    )

    # Origin (purchase receipt, production run, return)
    source_type = models.CharField(max_length=40, blank=True, default='', verbose_name=_('Tipo de origen'))
    source_id = models.CharField(max_length=64, blank=True, default='', verbose_name=_('ID de origen'))

    presentation = models.ForeignKey(
        'pharmastock.ProductPresentation',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Presentación'),
    )

    opened_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Abierto en'))
    opened_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Abierto por'),
    )
    released_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Liberado en'))
    released_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Liberado por'),
    )

    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_('Creado en'))
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )

    objects = BatchQuerySet.as_manager()

    class Meta:
        verbose_name = _('Lote')
        verbose_name_plural = _('Lotes')
        ordering = ['expires_at', 'batch_number']
        constraints = [
            models.UniqueConstraint(
                fields=['tenant_id', 'product', 'batch_number'],
                name='unique_batch_number_per_product',
            ),
        ]
        indexes = [
            models.Index(fields=['tenant_id', 'product', 'expires_at'], name='ps_batch_expiry_idx'),
        ]

    @property
    def is_expired(self) -> bool:
        """Is this batch past its expiry date (UTC)?"""
        from pharmastock.expiry import is_expired
        return is_expired(self)

    @property
    def is_opened(self) -> bool:
        return self.opened_at is not None

    def __str__(self) -> str:
        expiry = f" (venc:{self.expires_at})" if self.expires_at else ""
        return f"Lote {self.batch_number}{expiry}"
