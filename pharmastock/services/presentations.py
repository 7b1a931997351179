"""
Presentation resolver: converts pack quantities into base units.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.db import IntegrityError, transaction

from pharmastock.conf import pharmastock_settings
from pharmastock.exceptions import StockError
from pharmastock.models.product import ProductPresentation

logger = logging.getLogger('pharmastock')

QUANTUM = Decimal('0.0001')


@dataclass(frozen=True)
class ResolvedQuantity:
    """Base quantity plus the presentation it was expressed in."""

    quantity: Decimal
    presentation: ProductPresentation | None
    presentation_quantity: Decimal | None


def to_decimal(value, field: str = 'quantity') -> Decimal:
    """
    Parse a user supplied quantity; floats go through str to stay exact.

    Raises:
        StockError('INVALID_REQUEST'): Not a finite number, or finer than
            the 4 decimal places balances are stored with
    """
    if isinstance(value, Decimal):
        parsed = value
    else:
        try:
            parsed = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError):
            raise StockError('INVALID_REQUEST', f'{field} inválido', field=field, value=value)

    if not parsed.is_finite():
        raise StockError('INVALID_REQUEST', f'{field} inválido', field=field, value=str(value))
    try:
        exact = parsed == parsed.quantize(QUANTUM)
    except InvalidOperation:
        raise StockError('INVALID_REQUEST', f'{field} fuera de rango', field=field, value=str(value))
    if not exact:
        raise StockError(
            'INVALID_REQUEST',
            f'{field} admite como máximo 4 decimales',
            field=field,
            value=parsed,
        )
    return parsed


def default_presentation(tenant_id: str, product_id) -> ProductPresentation:
    """
    Return the product's default presentation, creating the unit one
    (factor 1) when the product has none.
    """
    def lookup():
        return ProductPresentation.objects.filter(
            tenant_id=tenant_id, product_id=product_id, is_active=True,
        ).order_by('-is_default', 'created_at', 'id').first()

    presentation = lookup()
    if presentation is not None:
        return presentation

    try:
        with transaction.atomic():
            presentation = ProductPresentation.objects.create(
                tenant_id=tenant_id,
                product_id=product_id,
                name=pharmastock_settings.DEFAULT_PRESENTATION_NAME,
                units_per_presentation=Decimal('1'),
                is_default=True,
                sort_order=0,
            )
    except IntegrityError:
        presentation = lookup()

    logger.info(
        "stock.presentation.default_created",
        extra={"product_id": product_id, "presentation_id": presentation.pk},
    )
    return presentation


def get_presentation(tenant_id: str, product_id, presentation_id) -> ProductPresentation:
    presentation = ProductPresentation.objects.filter(
        tenant_id=tenant_id, pk=presentation_id, is_active=True,
    ).first()
    if presentation is None or presentation.product_id != product_id:
        raise StockError(
            'INVALID_REQUEST',
            'Presentación inválida para este producto',
            presentation_id=presentation_id,
            product_id=product_id,
        )
    if presentation.units_per_presentation <= 0:
        raise StockError(
            'INVALID_REQUEST',
            'Unidades por presentación inválidas',
            presentation_id=presentation_id,
        )
    return presentation


def resolve_base_quantity(tenant_id: str, product_id, quantity=None,
                          presentation_id=None, presentation_quantity=None) -> ResolvedQuantity:
    """
    Resolve a movement quantity.

    Either presentation_id + presentation_quantity (base = quantity x
    units_per_presentation) or quantity in base units, recorded against
    the product's default presentation.

    Raises:
        StockError('INVALID_REQUEST'): Missing or non-positive quantity,
            or a presentation of another product
    """
    if presentation_id:
        if presentation_quantity is None:
            raise StockError(
                'INVALID_REQUEST',
                'presentation_quantity es obligatorio con presentation_id',
            )
        pres_qty = to_decimal(presentation_quantity, 'presentation_quantity')
        if pres_qty <= 0:
            raise StockError(
                'INVALID_REQUEST',
                'presentation_quantity es obligatorio con presentation_id',
                requested=pres_qty,
            )
        presentation = get_presentation(tenant_id, product_id, presentation_id)
        base = (pres_qty * presentation.units_per_presentation).quantize(QUANTUM)
        return ResolvedQuantity(base, presentation, pres_qty)

    if quantity is None:
        raise StockError('INVALID_REQUEST', 'quantity es obligatorio sin presentation_id')
    base = to_decimal(quantity)
    if base <= 0:
        raise StockError(
            'INVALID_REQUEST',
            'quantity es obligatorio sin presentation_id',
            requested=base,
        )

    presentation = default_presentation(tenant_id, product_id)
    pres_qty = (base / presentation.units_per_presentation).quantize(QUANTUM)
    return ResolvedQuantity(base, presentation, pres_qty)
