"""
Order-related enumerations.
"""

import enum


class OrderStatus(str, enum.Enum):
    """
    Order lifecycle status.

    Status flow:
        PENDING → APPROVED → PROCESSING → DELIVERED
        APPROVED → READY_FOR_PICKUP → DELIVERED (pickup orders)
        PENDING → REJECTED, APPROVED → CANCELLED
        PROCESSING → APPROVED only when a route returns the order to the pool
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSING = "processing"
    READY_FOR_PICKUP = "ready_for_pickup"
    IN_TRANSIT = "in_transit"  # Legacy routed state, treated like PROCESSING
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


TERMINAL_ORDER_STATUSES = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.REJECTED,
})

# Statuses an order can hold while claimed by a route
ROUTED_ORDER_STATUSES = frozenset({
    OrderStatus.PROCESSING,
    OrderStatus.IN_TRANSIT,
})


class PaymentStatus(str, enum.Enum):
    """Order payment status."""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class DeliveryType(str, enum.Enum):
    """How the customer receives the order."""
    DELIVERY = "delivery"
    PICKUP = "pickup"
