"""
TenantSequence model: per tenant, per year document counters.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class TenantSequence(models.Model):
    """
    Last issued value of a document counter.

    Keyed by (tenant, year, key) where key is the document prefix
    (MS movements, OV sales orders, LOT batches, ...).
    """

    tenant_id = models.CharField(max_length=64, verbose_name=_('Tenant'))
    year = models.PositiveIntegerField(verbose_name=_('Año'))
    key = models.CharField(max_length=16, verbose_name=_('Clave'))
    current_value = models.PositiveIntegerField(default=0, verbose_name=_('Valor actual'))

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _('Secuencia')
        verbose_name_plural = _('Secuencias')
        constraints = [
            models.UniqueConstraint(
                fields=['tenant_id', 'year', 'key'],
                name='unique_sequence_per_tenant_year_key',
            ),
        ]

    def __str__(self) -> str:
        return f"{self.key}{self.year}: {self.current_value}"
