"""
StockMovementRequest models: branch-to-branch stock requests.
"""

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _

from pharmastock.models.enums import ConfirmationStatus, MovementRequestStatus


class MovementRequestQuerySet(models.QuerySet):

    def open(self):
        """Requests still waiting for stock (OPEN or acknowledged as SENT)."""
        return self.filter(status__in=[MovementRequestStatus.OPEN, MovementRequestStatus.SENT])

    def for_city(self, city: str):
        return self.filter(requested_city__iexact=city.strip())


class StockMovementRequest(models.Model):
    """
    A branch's request for stock.

    LIFECYCLE:

        OPEN --mark_sent--> SENT
          |                  |
          +--(remaining ~0)--+--> FULFILLED --confirm--> ACCEPTED | REJECTED
          |                  |
          +-----cancel-------+--> CANCELLED   (only while nothing was shipped)
    """

    tenant_id = models.CharField(max_length=64, db_index=True, verbose_name=_('Tenant'))
    status = models.CharField(
        max_length=20,
        choices=MovementRequestStatus.choices,
        default=MovementRequestStatus.OPEN,
        db_index=True,
        verbose_name=_('Estado'),
    )
    requested_city = models.CharField(max_length=100, verbose_name=_('Ciudad solicitante'))
    warehouse = models.ForeignKey(
        'pharmastock.Warehouse',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='movement_requests',
        verbose_name=_('Almacén solicitante'),
    )
    requested_by = models.CharField(max_length=150, blank=True, default='', verbose_name=_('Solicitado por'))
    note = models.TextField(blank=True, default='', verbose_name=_('Nota'))

    fulfilled_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Atendida en'))
    fulfilled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Atendida por'),
    )

    confirmation_status = models.CharField(
        max_length=20,
        choices=ConfirmationStatus.choices,
        default=ConfirmationStatus.PENDING,
        verbose_name=_('Confirmación'),
    )
    confirmed_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Confirmada en'))
    confirmed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Confirmada por'),
    )
    confirmation_note = models.TextField(blank=True, default='', verbose_name=_('Nota de confirmación'))

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = MovementRequestQuerySet.as_manager()

    class Meta:
        verbose_name = _('Solicitud de movimiento')
        verbose_name_plural = _('Solicitudes de movimiento')
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['tenant_id', 'status', 'requested_city'], name='ps_request_status_city_idx'),
        ]

    def __str__(self) -> str:
        return f"Solicitud #{self.pk} {self.requested_city} ({self.get_status_display()})"


class StockMovementRequestItem(models.Model):
    """
    A product line of a request.

    remaining_quantity (base units) starts at requested_quantity and only
    decreases, through conditional updates, as shipments are posted.
    """

    tenant_id = models.CharField(max_length=64, db_index=True, verbose_name=_('Tenant'))
    request = models.ForeignKey(
        'pharmastock.StockMovementRequest',
        on_delete=models.CASCADE,
        related_name='items',
        verbose_name=_('Solicitud'),
    )
    product = models.ForeignKey(
        'pharmastock.Product',
        on_delete=models.PROTECT,
        related_name='+',
        verbose_name=_('Producto'),
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
    requested_quantity = models.DecimalField(
        max_digits=18,
        decimal_places=4,
        verbose_name=_('Cantidad solicitada'),
    )
    remaining_quantity = models.DecimalField(
        max_digits=18,
        decimal_places=4,
        verbose_name=_('Cantidad pendiente'),
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _('Ítem de solicitud')
        verbose_name_plural = _('Ítems de solicitud')
        ordering = ['created_at', 'id']
        constraints = [
            models.CheckConstraint(
                condition=Q(remaining_quantity__gte=0),
                name='request_item_remaining_non_negative',
            ),
        ]

    @property
    def shipped_quantity(self):
        return self.requested_quantity - self.remaining_quantity

    def __str__(self) -> str:
        return f"{self.product} {self.remaining_quantity}/{self.requested_quantity}"
