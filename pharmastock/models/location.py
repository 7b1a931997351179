"""
Warehouse and Location models: where stock exists.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class Warehouse(models.Model):
    """
    A branch warehouse. Its city routes movement requests and
    drives the same-city preference of reservations.

    Examples:
        Warehouse.objects.create(tenant_id='acme', code='LPZ-01', name='Central La Paz', city='LA PAZ')
    """

    tenant_id = models.CharField(max_length=64, db_index=True, verbose_name=_('Tenant'))
    code = models.CharField(
        max_length=50,
        verbose_name=_('Código'),
        help_text=_('Identificador único dentro del tenant (ej: LPZ-01)'),
    )
    name = models.CharField(max_length=150, verbose_name=_('Nombre'))
    city = models.CharField(
        max_length=100,
        blank=True,
        default='',
        verbose_name=_('Ciudad'),
    )
    is_active = models.BooleanField(default=True, verbose_name=_('Activo'))

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _('Almacén')
        verbose_name_plural = _('Almacenes')
        ordering = ['code']
        constraints = [
            models.UniqueConstraint(
                fields=['tenant_id', 'code'],
                name='unique_warehouse_code_per_tenant',
            ),
        ]

    def __str__(self) -> str:
        return self.name


class Location(models.Model):
    """
    A stock position inside a warehouse (shelf, bin, cold room).

    Locations are stable entities created during setup. Deactivated
    locations cannot take part in new movements.
    """

    tenant_id = models.CharField(max_length=64, db_index=True, verbose_name=_('Tenant'))
    warehouse = models.ForeignKey(
        'pharmastock.Warehouse',
        on_delete=models.PROTECT,
        related_name='locations',
        verbose_name=_('Almacén'),
    )
    code = models.CharField(
        max_length=50,
        verbose_name=_('Código'),
        help_text=_('Identificador dentro del almacén (ej: A-01, FRIO)'),
    )
    name = models.CharField(max_length=150, blank=True, default='', verbose_name=_('Nombre'))
    is_active = models.BooleanField(default=True, verbose_name=_('Activo'))

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _('Ubicación')
        verbose_name_plural = _('Ubicaciones')
        ordering = ['warehouse', 'code']
        constraints = [
            models.UniqueConstraint(
                fields=['tenant_id', 'warehouse', 'code'],
                name='unique_location_code_per_warehouse',
            ),
        ]

    def __str__(self) -> str:
        return f"{self.warehouse.code}/{self.code}"
