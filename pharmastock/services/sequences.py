"""
Sequence generator: per tenant, per year document numbers.

Runs inside the caller's transaction: a number issued by a transaction
that later rolls back is given back with it.
"""

from dataclasses import dataclass

from django.db import IntegrityError, transaction
from django.db.models import F

from pharmastock.expiry import today_utc
from pharmastock.models.sequence import TenantSequence


@dataclass(frozen=True)
class Sequence:
    """An issued document number."""

    key: str
    year: int
    value: int

    @property
    def number(self) -> str:
        if self.key == 'LOT':
            return f"LOT-{self.year}{self.value:03d}"
        return f"{self.key}{self.year}-{self.value}"


def current_year_utc() -> int:
    return today_utc().year


def next_sequence(tenant_id: str, year: int, key: str) -> Sequence:
    """
    Issue the next value of (tenant, year, key).

    Concurrency:
        - Existing counters are row-locked and incremented with F()
        - A concurrent first use loses the insert race on the unique
          constraint and falls back to the locked increment
    """
    with transaction.atomic():
        seq = TenantSequence.objects.select_for_update().filter(
            tenant_id=tenant_id, year=year, key=key,
        ).first()

        if seq is None:
            try:
                with transaction.atomic():
                    TenantSequence.objects.create(
                        tenant_id=tenant_id, year=year, key=key, current_value=1,
                    )
                return Sequence(key=key, year=year, value=1)
            except IntegrityError:
                seq = TenantSequence.objects.select_for_update().get(
                    tenant_id=tenant_id, year=year, key=key,
                )

        TenantSequence.objects.filter(pk=seq.pk).update(current_value=F('current_value') + 1)
        seq.refresh_from_db(fields=['current_value'])
        return Sequence(key=key, year=year, value=seq.current_value)
