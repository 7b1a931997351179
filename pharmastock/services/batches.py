"""
Batch services: lot registration and QC transitions.
"""

import logging

from django.db import IntegrityError, transaction
from django.utils import timezone

from pharmastock.conf import pharmastock_settings
from pharmastock.exceptions import StockError
from pharmastock.models.batch import Batch
from pharmastock.models.enums import BatchStatus
from pharmastock.services.movements import get_active_product
from pharmastock.services.presentations import get_presentation
from pharmastock.services.sequences import current_year_utc, next_sequence

logger = logging.getLogger('pharmastock')


def _lock_batch(tenant_id, batch_id) -> Batch:
    batch = Batch.objects.select_for_update().filter(tenant_id=tenant_id, pk=batch_id).first()
    if batch is None:
        raise StockError('NOT_FOUND', 'Lote no encontrado', batch_id=batch_id)
    return batch


class Batches:
    """Lot lifecycle methods."""

    @classmethod
    def create_batch(cls, tenant_id, product_id, batch_number=None, expires_at=None,
                     manufactured_at=None, status=BatchStatus.QUARANTINE,
                     source_type='', source_id='', presentation_id=None,
                     user=None) -> Batch:
        """
        Register a lot. Without batch_number one is issued from the LOT
        sequence (LOT-<year><nnn>).

        Raises:
            StockError('STATE_CONFLICT'): batch_number already used for the product
        """
        with transaction.atomic():
            product = get_active_product(tenant_id, product_id)
            presentation = None
            if presentation_id:
                presentation = get_presentation(tenant_id, product.pk, presentation_id)
            if not batch_number:
                batch_number = next_sequence(
                    tenant_id, current_year_utc(), pharmastock_settings.BATCH_SEQUENCE_KEY,
                ).number

            try:
                with transaction.atomic():
                    batch = Batch.objects.create(
                        tenant_id=tenant_id,
                        product=product,
                        batch_number=batch_number,
                        expires_at=expires_at,
                        manufactured_at=manufactured_at,
                        status=status,
                        source_type=source_type,
                        source_id=str(source_id or ''),
                        presentation=presentation,
                        created_by=user,
                    )
            except IntegrityError:
                raise StockError(
                    'STATE_CONFLICT',
                    'El número de lote ya existe para este producto',
                    batch_number=batch_number,
                )

            logger.info(
                "stock.batch.created",
                extra={
                    "tenant_id": tenant_id,
                    "batch_id": batch.pk,
                    "batch_number": batch_number,
                    "expires_at": str(expires_at),
                },
            )
            return batch

    @classmethod
    def release_batch(cls, tenant_id, batch_id, user=None) -> Batch:
        """QC release: QUARANTINE -> RELEASED. One-way."""
        with transaction.atomic():
            batch = _lock_batch(tenant_id, batch_id)
            if batch.status != BatchStatus.QUARANTINE:
                raise StockError(
                    'STATE_CONFLICT',
                    'Solo se liberan lotes en cuarentena',
                    batch_id=batch.pk,
                    status=batch.status,
                )
            batch.status = BatchStatus.RELEASED
            batch.released_at = timezone.now()
            batch.released_by = user
            batch.save(update_fields=['status', 'released_at', 'released_by'])
            logger.info(
                "stock.batch.released",
                extra={"tenant_id": tenant_id, "batch_id": batch.pk},
            )
            return batch

    @classmethod
    def reject_batch(cls, tenant_id, batch_id, user=None) -> Batch:
        """QC rejection: QUARANTINE -> REJECTED."""
        with transaction.atomic():
            batch = _lock_batch(tenant_id, batch_id)
            if batch.status != BatchStatus.QUARANTINE:
                raise StockError(
                    'STATE_CONFLICT',
                    'Solo se rechazan lotes en cuarentena',
                    batch_id=batch.pk,
                    status=batch.status,
                )
            batch.status = BatchStatus.REJECTED
            batch.save(update_fields=['status'])
            logger.info(
                "stock.batch.rejected",
                extra={"tenant_id": tenant_id, "batch_id": batch.pk},
            )
            return batch

    @classmethod
    def open_batch(cls, tenant_id, batch_id, user=None) -> Batch:
        """Mark a lot as opened (partially consumed). Idempotent."""
        with transaction.atomic():
            batch = _lock_batch(tenant_id, batch_id)
            if batch.opened_at is None:
                batch.opened_at = timezone.now()
                batch.opened_by = user
                batch.save(update_fields=['opened_at', 'opened_by'])
            return batch
