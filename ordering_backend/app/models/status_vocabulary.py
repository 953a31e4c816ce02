"""
Status vocabulary normalization.

Historical rows use several spellings for the same status ("Delivered",
"completed", "activo", "planning", ...). This module is the only place raw
status strings are interpreted: values are mapped onto the canonical enums
when loaded, written back in canonical form, and guard predicates match every
known spelling of a status.
"""

import enum
from typing import Dict, Optional, Type

from sqlalchemy import String, func, type_coerce
from sqlalchemy.types import TypeDecorator

from ordering_backend.app.models.order_enums import OrderStatus, PaymentStatus, DeliveryType
from ordering_backend.app.models.route_enums import RouteStatus, RouteStopStatus
from ordering_backend.app.models.ledger_enums import RelationshipStatus


# Legacy spellings, lowercase, per canonical member
_ALIASES: Dict[Type[enum.Enum], Dict[str, enum.Enum]] = {
    OrderStatus: {
        "pending_approval": OrderStatus.PENDING,
        "pendiente": OrderStatus.PENDING,
        "aprobado": OrderStatus.APPROVED,
        "rechazado": OrderStatus.REJECTED,
        "ready": OrderStatus.READY_FOR_PICKUP,
        "en_transito": OrderStatus.IN_TRANSIT,
        "completed": OrderStatus.DELIVERED,
        "entregado": OrderStatus.DELIVERED,
        "canceled": OrderStatus.CANCELLED,
        "cancelado": OrderStatus.CANCELLED,
    },
    RouteStatus: {
        "planning": RouteStatus.PLANNED,
        "started": RouteStatus.IN_PROGRESS,
        "completed": RouteStatus.FINISHED,
    },
    RouteStopStatus: {
        "entregado": RouteStopStatus.DELIVERED,
        "fallido": RouteStopStatus.FAILED,
    },
    RelationshipStatus: {
        "activo": RelationshipStatus.ACTIVE,
        "inactivo": RelationshipStatus.INACTIVE,
        "suspendido": RelationshipStatus.SUSPENDED,
    },
    PaymentStatus: {
        "pagado": PaymentStatus.PAID,
        "parcial": PaymentStatus.PARTIAL,
    },
    DeliveryType: {},
}

# Value returned for unrecognized strings; enums without a fallback raise
_FALLBACKS: Dict[Type[enum.Enum], enum.Enum] = {
    RouteStopStatus: RouteStopStatus.UNKNOWN,
}


def normalize_status(enum_cls: Type[enum.Enum], raw) -> Optional[enum.Enum]:
    """
    Map a stored or user-supplied status onto its canonical enum member.

    Comparison is case-insensitive and whitespace-tolerant.

    Raises:
        ValueError: If the value is unknown and the enum has no fallback
    """
    if raw is None:
        return None
    if isinstance(raw, enum_cls):
        return raw

    key = str(raw).strip().lower()
    try:
        return enum_cls(key)
    except ValueError:
        pass

    aliased = _ALIASES.get(enum_cls, {}).get(key)
    if aliased is not None:
        return aliased

    if enum_cls in _FALLBACKS:
        return _FALLBACKS[enum_cls]
    raise ValueError(f"Unrecognized {enum_cls.__name__} value: {raw!r}")


def spellings(enum_cls: Type[enum.Enum], *members: enum.Enum) -> list:
    """All lowercase spellings (canonical plus aliases) of the given members."""
    wanted = set(members)
    result = [m.value for m in wanted]
    for alias, member in _ALIASES.get(enum_cls, {}).items():
        if member in wanted:
            result.append(alias)
    return sorted(result)


def status_in(column, enum_cls: Type[enum.Enum], *members: enum.Enum):
    """
    Guard predicate matching any spelling of the given statuses.

    Trimmed and lowercased in SQL, like normalize_status does on load.

    Usage:
        where=[Order.id == order_id, status_in(Order.status, OrderStatus, OrderStatus.APPROVED)]
    """
    return func.lower(func.trim(type_coerce(column, String))).in_(spellings(enum_cls, *members))


class NormalizedStatus(TypeDecorator):
    """
    String column holding a status of `enum_cls`.

    Loads any known spelling as the canonical member and always writes the
    canonical value.
    """

    impl = String(32)
    cache_ok = True

    def __init__(self, enum_cls: Type[enum.Enum]):
        super().__init__()
        self.enum_cls = enum_cls

    def process_bind_param(self, value, dialect):
        member = normalize_status(self.enum_cls, value)
        return member.value if member is not None else None

    def process_result_value(self, value, dialect):
        return normalize_status(self.enum_cls, value)
