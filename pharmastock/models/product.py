"""
Product and ProductPresentation models.
"""

from decimal import Decimal

from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _


class Product(models.Model):
    """A stockable product. Quantities are always kept in base units."""

    tenant_id = models.CharField(max_length=64, db_index=True, verbose_name=_('Tenant'))
    sku = models.CharField(max_length=64, verbose_name=_('SKU'))
    name = models.CharField(max_length=200, verbose_name=_('Nombre'))
    generic_name = models.CharField(
        max_length=200,
        blank=True,
        default='',
        verbose_name=_('Nombre genérico'),
    )
    is_active = models.BooleanField(default=True, verbose_name=_('Activo'))

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _('Producto')
        verbose_name_plural = _('Productos')
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(
                fields=['tenant_id', 'sku'],
                name='unique_product_sku_per_tenant',
            ),
        ]

    def __str__(self) -> str:
        return f"{self.sku} {self.name}"


class ProductPresentation(models.Model):
    """
    A pack of a product (box of 10, blister, unit).

    units_per_presentation converts a presentation quantity into base
    units. At most one default presentation per product.
    """

    tenant_id = models.CharField(max_length=64, db_index=True, verbose_name=_('Tenant'))
    product = models.ForeignKey(
        'pharmastock.Product',
        on_delete=models.CASCADE,
        related_name='presentations',
        verbose_name=_('Producto'),
    )
    name = models.CharField(max_length=100, verbose_name=_('Nombre'))
    units_per_presentation = models.DecimalField(
        max_digits=18,
        decimal_places=4,
        default=Decimal('1'),
        verbose_name=_('Unidades por presentación'),
    )
    is_default = models.BooleanField(default=False, verbose_name=_('Por defecto'))
    sort_order = models.PositiveIntegerField(default=0, verbose_name=_('Orden'))
    is_active = models.BooleanField(default=True, verbose_name=_('Activo'))

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _('Presentación')
        verbose_name_plural = _('Presentaciones')
        ordering = ['product', 'sort_order', 'name']
        constraints = [
            models.UniqueConstraint(
                fields=['product'],
                condition=Q(is_default=True),
                name='unique_default_presentation_per_product',
            ),
            models.CheckConstraint(
                condition=Q(units_per_presentation__gt=0),
                name='presentation_units_positive',
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} x{self.units_per_presentation.normalize()}"
