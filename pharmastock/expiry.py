"""
Expiry gate for lot-bound stock.

Decides whether stock of a lot may still leave a location and which lots
are eligible for reservation and picking.

Rules:
    - A lot with expires_at < today (UTC, date-only) is expired.
      expires_at == today is still valid.
    - A lot without expires_at never expires.
    - Only RELEASED, non-expired lots are sellable.
    - Unbatched stock is always sellable.
"""

from datetime import date, timezone as dt_timezone

from django.db.models import Q
from django.utils import timezone

from pharmastock.conf import pharmastock_settings
from pharmastock.exceptions import StockError
from pharmastock.models.enums import BatchStatus


def today_utc() -> date:
    """Current date in UTC."""
    return timezone.now().astimezone(dt_timezone.utc).date()


def is_expired(batch, today: date | None = None) -> bool:
    if batch is None or batch.expires_at is None:
        return False
    return batch.expires_at < (today or today_utc())


def assert_not_expired(batch, today: date | None = None) -> None:
    """
    Raise BATCH_EXPIRED if stock of this lot may no longer be moved out.

    The error carries batch_id, batch_number and expires_at so callers can
    write a dedicated audit entry before answering 409.
    """
    if is_expired(batch, today):
        raise StockError(
            'BATCH_EXPIRED',
            batch_id=batch.pk,
            batch_number=batch.batch_number,
            expires_at=batch.expires_at,
        )


def is_sellable(batch, today: date | None = None) -> bool:
    """Lot may be reserved or picked for a sale."""
    if batch is None:
        return True
    return batch.status == BatchStatus.RELEASED and not is_expired(batch, today)


def sellable_batch_q(today: date | None = None, prefix: str = 'batch__') -> Q:
    """
    Queryset-level version of is_sellable for batch-bound rows.

    prefix is the lookup path to the Batch ('' when filtering Batch itself).
    """
    today = today or today_utc()
    return Q(**{f'{prefix}status': BatchStatus.RELEASED}) & (
        Q(**{f'{prefix}expires_at__isnull': True})
        | Q(**{f'{prefix}expires_at__gte': today})
    )


def eligible_balance_q(today: date | None = None) -> Q:
    """Balances that may be reserved: unbatched, or on a sellable lot."""
    return Q(batch__isnull=True) | sellable_batch_q(today)


def days_to_expire(expires_at: date | None, today: date | None = None) -> int | None:
    if expires_at is None:
        return None
    return (expires_at - (today or today_utc())).days


def semaphore_status(days: int | None) -> str:
    """
    Expiry colour bucket.

    EXPIRED (< 0), RED (<= red days), YELLOW (<= yellow days), GREEN
    otherwise. Lots without expiry are GREEN.
    """
    if days is None:
        return 'GREEN'
    if days < 0:
        return 'EXPIRED'
    if days <= pharmastock_settings.EXPIRY_RED_DAYS:
        return 'RED'
    if days <= pharmastock_settings.EXPIRY_YELLOW_DAYS:
        return 'YELLOW'
    return 'GREEN'
