"""
Exceptions for Pharmastock.

All errors are StockError with a structured code for programmatic handling.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any


class StockError(Exception):
    """
    Structured exception for stock operations.

    Usage:
        try:
            stock.create_movement(tenant_id, MovementType.OUT, ...)
        except StockError as e:
            if e.code == 'BATCH_EXPIRED':
                audit(e.meta)
            return Response(e.as_dict(), status=e.status_code)

    Attributes:
        code: Error code for programmatic handling
        message: Human-readable message
        data: Additional context data
    """

    _default_messages = {
        'INVALID_REQUEST': 'Solicitud inválida',
        'INVALID_QUANTITY': 'Cantidad inválida (debe ser positiva)',
        'FORBIDDEN': 'Operación no permitida',
        'NOT_FOUND': 'Registro no encontrado',
        'VERSION_CONFLICT': 'Conflicto de versión',
        'CONCURRENT_MODIFICATION': 'Modificación concurrente detectada',
        'INSUFFICIENT_STOCK': 'Stock insuficiente',
        'BATCH_EXPIRED': 'Lote vencido',
        'STATE_CONFLICT': 'Estado inválido para esta operación',
    }

    _status_codes = {
        'INVALID_REQUEST': 400,
        'INVALID_QUANTITY': 400,
        'FORBIDDEN': 403,
        'NOT_FOUND': 404,
        'VERSION_CONFLICT': 409,
        'CONCURRENT_MODIFICATION': 409,
        'INSUFFICIENT_STOCK': 409,
        'BATCH_EXPIRED': 409,
        'STATE_CONFLICT': 409,
    }

    def __init__(self, code: str, message: str | None = None, **data):
        self.code = code
        self.message = message or self._default_messages.get(code, code)
        self.data = data
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"StockError({self.code!r}, {self.message!r})"

    @property
    def status_code(self) -> int:
        """HTTP status the route layer should answer with."""
        return self._status_codes.get(self.code, 500)

    @property
    def meta(self) -> dict[str, Any]:
        """Display-safe payload (batch_id, batch_number, expires_at for BATCH_EXPIRED)."""
        return self.data

    @property
    def available(self) -> Decimal:
        """Shortcut for data['available']."""
        return self.data.get('available', Decimal('0'))

    @property
    def requested(self) -> Decimal:
        """Shortcut for data['requested']."""
        return self.data.get('requested', Decimal('0'))

    def as_dict(self) -> dict[str, Any]:
        """Serialize to dict (useful for APIs)."""
        return {
            'code': self.code,
            'message': self.message,
            'data': {k: _plain(v) for k, v in self.data.items()},
        }


def _plain(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value
