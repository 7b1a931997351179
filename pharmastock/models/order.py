"""
SalesOrder and SalesOrderLine models.
"""

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _

from pharmastock.models.enums import SalesOrderStatus


class SalesOrder(models.Model):
    """
    Sales order.

    LIFECYCLE:

        DRAFT --confirm--> CONFIRMED --fulfill/deliver--> FULFILLED
          |                    |
          +------cancel--------+-----> CANCELLED

    Every transition compares the caller's version with the stored one
    and bumps it.
    """

    tenant_id = models.CharField(max_length=64, db_index=True, verbose_name=_('Tenant'))
    number = models.CharField(max_length=40, verbose_name=_('Número'))
    number_year = models.PositiveIntegerField(verbose_name=_('Año'))

    customer_id = models.CharField(max_length=64, blank=True, default='', verbose_name=_('Cliente'))
    customer_name = models.CharField(max_length=200, blank=True, default='', verbose_name=_('Nombre del cliente'))
    customer_city = models.CharField(max_length=100, blank=True, default='', verbose_name=_('Ciudad del cliente'))
    delivery_city = models.CharField(max_length=100, blank=True, default='', verbose_name=_('Ciudad de entrega'))

    status = models.CharField(
        max_length=20,
        choices=SalesOrderStatus.choices,
        default=SalesOrderStatus.DRAFT,
        db_index=True,
        verbose_name=_('Estado'),
    )
    version = models.PositiveIntegerField(default=1, verbose_name=_('Versión'))

    payment_mode = models.CharField(
        max_length=20,
        default='CASH',
        verbose_name=_('Forma de pago'),
        help_text=_('CASH o CREDIT_N (N días de crédito)'),
    )
    delivery_date = models.DateTimeField(null=True, blank=True, verbose_name=_('Fecha de entrega'))
    delivered_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Entregado en'))
    paid_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Pagado en'))
    note = models.TextField(blank=True, default='', verbose_name=_('Nota'))

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _('Orden de venta')
        verbose_name_plural = _('Órdenes de venta')
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['tenant_id', 'number'],
                name='unique_sales_order_number_per_tenant',
            ),
        ]

    @property
    def preferred_city(self) -> str:
        """City used to prefer same-city stock when reserving."""
        return (self.delivery_city or self.customer_city or '').strip()

    def __str__(self) -> str:
        return f"{self.number} ({self.get_status_display()})"


class SalesOrderLine(models.Model):
    """Order line. quantity is in base units."""

    tenant_id = models.CharField(max_length=64, db_index=True, verbose_name=_('Tenant'))
    order = models.ForeignKey(
        'pharmastock.SalesOrder',
        on_delete=models.CASCADE,
        related_name='lines',
        verbose_name=_('Orden'),
    )
    product = models.ForeignKey(
        'pharmastock.Product',
        on_delete=models.PROTECT,
        related_name='+',
        verbose_name=_('Producto'),
    )
    batch = models.ForeignKey(
        'pharmastock.Batch',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Lote'),
        help_text=_('Vacío = se elige por FEFO'),
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
    quantity = models.DecimalField(
        max_digits=18,
        decimal_places=4,
        verbose_name=_('Cantidad'),
    )
    unit_price = models.DecimalField(
        max_digits=18,
        decimal_places=4,
        default=Decimal('0'),
        verbose_name=_('Precio unitario'),
    )

    class Meta:
        verbose_name = _('Línea de orden')
        verbose_name_plural = _('Líneas de orden')
        ordering = ['order', 'id']

    def __str__(self) -> str:
        return f"{self.quantity} x {self.product}"
