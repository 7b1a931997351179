"""
SalesOrderReservation model: stock held for an order line.
"""

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _


class ReservationQuerySet(models.QuerySet):

    def active(self):
        """Reservations not yet consumed or released."""
        return self.filter(released_at__isnull=True)

    def released(self):
        return self.filter(released_at__isnull=False)


class SalesOrderReservation(models.Model):
    """
    Quantity of a balance held for a sales order line.

    LIFECYCLE:

        created (confirm) ---> released_at set (deliver, fulfill, cancel)

    Rows are never deleted so the picking history survives delivery.
    While active, the sum of reservations against a balance is covered
    by that balance's reserved_quantity.
    """

    tenant_id = models.CharField(max_length=64, db_index=True, verbose_name=_('Tenant'))
    order = models.ForeignKey(
        'pharmastock.SalesOrder',
        on_delete=models.CASCADE,
        related_name='reservations',
        verbose_name=_('Orden'),
    )
    line = models.ForeignKey(
        'pharmastock.SalesOrderLine',
        on_delete=models.CASCADE,
        related_name='reservations',
        verbose_name=_('Línea'),
    )
    balance = models.ForeignKey(
        'pharmastock.InventoryBalance',
        on_delete=models.PROTECT,
        related_name='reservations',
        verbose_name=_('Saldo'),
    )
    quantity = models.DecimalField(
        max_digits=18,
        decimal_places=4,
        verbose_name=_('Cantidad'),
    )

    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    released_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        verbose_name=_('Liberada en'),
        help_text=_('Vacío = reserva activa'),
    )

    objects = ReservationQuerySet.as_manager()

    class Meta:
        verbose_name = _('Reserva')
        verbose_name_plural = _('Reservas')
        ordering = ['created_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['tenant_id', 'line', 'balance'],
                condition=Q(released_at__isnull=True),
                name='unique_active_reservation_per_line_balance',
            ),
        ]
        indexes = [
            models.Index(fields=['order', 'released_at'], name='ps_resv_order_idx'),
            models.Index(fields=['balance', 'released_at'], name='ps_resv_balance_idx'),
        ]

    @property
    def is_active(self) -> bool:
        return self.released_at is None

    def __str__(self) -> str:
        state = 'activa' if self.is_active else 'liberada'
        return f"{self.quantity} de saldo #{self.balance_id} ({state})"
