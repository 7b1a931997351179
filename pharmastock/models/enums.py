"""
Enums for Pharmastock models.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class MovementType(models.TextChoices):
    """
    Kind of ledger entry.

    IN:         stock arrives at to_location.
    OUT:        stock leaves from from_location.
    TRANSFER:   stock moves from from_location to to_location.
    ADJUSTMENT: inventory correction; adds at to_location when given,
                otherwise subtracts at from_location.
    """
    IN = 'IN', _('Ingreso')
    OUT = 'OUT', _('Salida')
    TRANSFER = 'TRANSFER', _('Transferencia')
    ADJUSTMENT = 'ADJUSTMENT', _('Ajuste')


class BatchStatus(models.TextChoices):
    """Quality control status of a lot."""
    QUARANTINE = 'QUARANTINE', _('Cuarentena')  # Received, awaiting QC
    RELEASED = 'RELEASED', _('Liberado')        # Sellable
    REJECTED = 'REJECTED', _('Rechazado')
    USED = 'USED', _('Consumido')


class SalesOrderStatus(models.TextChoices):
    """Sales order lifecycle status."""
    DRAFT = 'DRAFT', _('Borrador')
    CONFIRMED = 'CONFIRMED', _('Confirmado')    # Stock reserved
    FULFILLED = 'FULFILLED', _('Entregado')     # Stock shipped
    CANCELLED = 'CANCELLED', _('Anulado')


class MovementRequestStatus(models.TextChoices):
    """Movement request lifecycle status."""
    OPEN = 'OPEN', _('Abierta')
    SENT = 'SENT', _('Enviada')                 # Acknowledged by the warehouse
    FULFILLED = 'FULFILLED', _('Atendida')
    CANCELLED = 'CANCELLED', _('Cancelada')


class ConfirmationStatus(models.TextChoices):
    """Branch-side acknowledgment of a fulfilled request."""
    PENDING = 'PENDING', _('Pendiente')
    ACCEPTED = 'ACCEPTED', _('Aceptada')
    REJECTED = 'REJECTED', _('Rechazada')
