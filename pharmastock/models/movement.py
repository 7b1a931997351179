"""
StockMovement model: immutable ledger of stock changes.
"""

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from pharmastock.models.enums import MovementType


class StockMovement(models.Model):
    """
    Immutable record of a stock change.

    Rules:
    - NEVER update() or delete()
    - Corrections are new movements (ADJUSTMENT or inverse TRANSFER)
    - from_location / to_location hold the resolved sides: stock left
      from_location and arrived at to_location

    Rows are created only by the movement engine, which updates the
    touched balances in the same transaction.
    """

    tenant_id = models.CharField(max_length=64, db_index=True, verbose_name=_('Tenant'))
    number = models.CharField(max_length=40, verbose_name=_('Número'))
    number_year = models.PositiveIntegerField(verbose_name=_('Año'))
    type = models.CharField(
        max_length=20,
        choices=MovementType.choices,
        verbose_name=_('Tipo'),
    )

    product = models.ForeignKey(
        'pharmastock.Product',
        on_delete=models.PROTECT,
        related_name='movements',
        verbose_name=_('Producto'),
    )
    batch = models.ForeignKey(
        'pharmastock.Batch',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='movements',
        verbose_name=_('Lote'),
    )
    from_location = models.ForeignKey(
        'pharmastock.Location',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='outgoing_movements',
        verbose_name=_('Desde'),
    )
    to_location = models.ForeignKey(
        'pharmastock.Location',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='incoming_movements',
        verbose_name=_('Hacia'),
    )

    quantity = models.DecimalField(
        max_digits=18,
        decimal_places=4,
        verbose_name=_('Cantidad'),
        help_text=_('Siempre positiva, en unidades base'),
    )
    presentation = models.ForeignKey(
        'pharmastock.ProductPresentation',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Presentación'),
    )
    presentation_quantity = models.DecimalField(
        max_digits=18,
        decimal_places=4,
        null=True,
        blank=True,
        verbose_name=_('Cantidad en presentación'),
    )

    # Originating document (SALES_ORDER, MOVEMENT_REQUEST, REPACK, ...)
    reference_type = models.CharField(max_length=40, blank=True, default='', verbose_name=_('Tipo de referencia'))
    reference_id = models.CharField(max_length=64, blank=True, default='', verbose_name=_('Referencia'))
    note = models.TextField(blank=True, default='', verbose_name=_('Nota'))

    created_at = models.DateTimeField(default=timezone.now, db_index=True, verbose_name=_('Fecha/Hora'))
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Usuario'),
    )

    class Meta:
        verbose_name = _('Movimiento')
        verbose_name_plural = _('Movimientos')
        ordering = ['created_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['tenant_id', 'number'],
                name='unique_movement_number_per_tenant',
            ),
            models.CheckConstraint(
                condition=Q(quantity__gt=0),
                name='movement_quantity_positive',
            ),
        ]
        indexes = [
            models.Index(fields=['tenant_id', 'product', 'created_at'], name='ps_move_product_created_idx'),
            models.Index(fields=['tenant_id', 'reference_type', 'reference_id'], name='ps_move_reference_idx'),
        ]

    def save(self, *args, **kwargs):
        if self.pk:
            raise ValueError(
                "Los movimientos son inmutables. "
                "Para corregir, registre un nuevo movimiento."
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError(
            "Los movimientos son inmutables. "
            "Para revertir, registre un nuevo movimiento."
        )

    def __str__(self) -> str:
        return f"{self.number} {self.type} {self.quantity}"
