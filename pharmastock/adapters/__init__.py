"""
Pharmastock Adapters.

Implementations of protocols for external systems.
"""

from pharmastock.adapters.audit import LoggingAuditSink, get_audit_sink, reset_audit_sink

__all__ = [
    "LoggingAuditSink",
    "get_audit_sink",
    "reset_audit_sink",
]
