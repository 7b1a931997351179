"""
Audit adapters: load the configured AuditSink.

Usage:
    from pharmastock.adapters import get_audit_sink

    get_audit_sink().append(tenant_id, user, "stock.expiry.blocked", "Batch", batch_id)

Settings:
    PHARMASTOCK = {
        "AUDIT_BACKEND": "myproject.audit.DatabaseAuditSink",
    }

Defaults to LoggingAuditSink, which only writes a log record.
"""

from __future__ import annotations

import logging
import threading

from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from pharmastock.conf import pharmastock_settings
from pharmastock.protocols.audit import AuditSink

logger = logging.getLogger('pharmastock')


class LoggingAuditSink:
    """AuditSink that writes each entry to the pharmastock logger."""

    def append(self, tenant_id, actor, action, entity_type, entity_id,
               before=None, after=None, metadata=None) -> None:
        logger.info(
            action,
            extra={
                "tenant_id": tenant_id,
                "actor": getattr(actor, "pk", actor),
                "entity_type": entity_type,
                "entity_id": entity_id,
                "before": before,
                "after": after,
                "audit_metadata": metadata or {},
            },
        )


# Cached sink instance
_lock = threading.Lock()
_audit_sink: AuditSink | None = None


def get_audit_sink() -> AuditSink:
    """
    Return the configured audit sink.

    Raises:
        ImproperlyConfigured: If AUDIT_BACKEND cannot be imported or does
        not implement AuditSink
    """
    global _audit_sink

    if _audit_sink is None:
        with _lock:
            if _audit_sink is None:
                backend_path = pharmastock_settings.AUDIT_BACKEND
                try:
                    sink = import_string(backend_path)()
                except ImportError as e:
                    raise ImproperlyConfigured(
                        f"Failed to import audit backend '{backend_path}': {e}"
                    ) from e
                if not isinstance(sink, AuditSink):
                    raise ImproperlyConfigured(
                        f"Audit backend '{backend_path}' does not implement append()"
                    )
                logger.debug("Loaded audit sink: %s", backend_path)
                _audit_sink = sink

    return _audit_sink


def reset_audit_sink() -> None:
    """Reset the cached sink. Useful for testing."""
    global _audit_sink
    _audit_sink = None
