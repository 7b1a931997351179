"""
Pharmastock configuration.

Usage in settings.py:
    PHARMASTOCK = {
        "AUDIT_BACKEND": "myproject.audit.DatabaseAuditSink",
        "AUTO_APPLY_TRANSFERS": True,
        "EXPIRY_RED_DAYS": 30,
        "EXPIRY_YELLOW_DAYS": 90,
    }
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from django.conf import settings


@dataclass
class PharmastockSettings:
    """Pharmastock configuration settings."""

    # Audit sink backend (dotted path)
    AUDIT_BACKEND: str = "pharmastock.adapters.audit.LoggingAuditSink"

    # Document sequence keys
    MOVEMENT_SEQUENCE_KEY: str = "MS"
    ORDER_SEQUENCE_KEY: str = "OV"
    BATCH_SEQUENCE_KEY: str = "LOT"

    # Ordinary transfers consume open movement requests of the destination city
    AUTO_APPLY_TRANSFERS: bool = True
    AUTO_APPLY_OPT_OUT_REFERENCES: tuple = ("MOVEMENT_REQUEST", "REQUEST_BULK_FULFILL")

    # Expiry semaphore thresholds (days to expire)
    EXPIRY_RED_DAYS: int = 30
    EXPIRY_YELLOW_DAYS: int = 90

    # Presentation auto-created for products without one
    DEFAULT_PRESENTATION_NAME: str = "Unidad"

    # Remaining quantity at or below this counts as fulfilled
    REMAINING_EPSILON: Decimal = Decimal("0.000000001")


def get_pharmastock_settings() -> PharmastockSettings:
    """Load settings from Django settings."""
    user_settings: dict[str, Any] = getattr(settings, "PHARMASTOCK", {})
    return PharmastockSettings(**{
        k: v for k, v in user_settings.items()
        if k in PharmastockSettings.__dataclass_fields__
    })


class _LazySettings:
    """Lazy proxy that re-reads settings on every attribute access."""

    def __getattr__(self, name):
        return getattr(get_pharmastock_settings(), name)


pharmastock_settings = _LazySettings()
