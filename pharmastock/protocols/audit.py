"""
Audit Protocol: interface for the external audit trail.

Pharmastock defines this protocol; the host application persists entries
(database table, event bus, etc.).
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class AuditSink(Protocol):
    """
    Receives audit entries for stock-relevant events.

    Implementations must not raise for ordinary persistence problems;
    audit writes never decide the outcome of a stock operation.
    """

    def append(
        self,
        tenant_id: str,
        actor: Any,
        action: str,
        entity_type: str,
        entity_id: Any,
        before: dict | None = None,
        after: dict | None = None,
        metadata: dict | None = None,
    ) -> None:
        """
        Record one audit entry.

        Args:
            tenant_id: Tenant the entity belongs to
            actor: User (or user id) that triggered the event
            action: Dotted event name, e.g. "stock.expiry.blocked"
            entity_type: Model name, e.g. "Batch"
            entity_id: Primary key of the entity
            before: State before the change, if any
            after: State after the change, if any
            metadata: Extra context
        """
        ...
