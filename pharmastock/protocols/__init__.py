"""
Pharmastock Protocols.

Defines interfaces for external system integration.
"""

from pharmastock.protocols.audit import AuditSink

__all__ = [
    "AuditSink",
]
