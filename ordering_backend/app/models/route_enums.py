"""
Route and stop enumerations.
"""

import enum


class RouteStatus(str, enum.Enum):
    """
    Route status enumeration.

    PLANNED → IN_PROGRESS → FINISHED (terminal, never reopened)
    """
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"


class RouteStopStatus(str, enum.Enum):
    """Route stop status enumeration."""
    PENDING = "pending"  # Not yet visited
    COMPLETED = "completed"  # Delivered (completion flow vocabulary)
    DELIVERED = "delivered"  # Delivered (driver outcome vocabulary)
    FINISHED = "finished"  # Delivered (legacy vocabulary)
    FAILED = "failed"  # Visited, not delivered
    UNKNOWN = "unknown"  # Unrecognized stored value


# Stop statuses that mean the order reached the customer
DELIVERED_STOP_STATUSES = frozenset({
    RouteStopStatus.COMPLETED,
    RouteStopStatus.DELIVERED,
    RouteStopStatus.FINISHED,
})


class StopOutcome(str, enum.Enum):
    """Outcome a driver may report for a stop."""
    DELIVERED = "delivered"
    FAILED = "failed"


class StopResolution(str, enum.Enum):
    """What route reconciliation did with one stop's order."""
    APPLIED = "applied"  # Order status written
    NOOP = "noop"  # Order already held the target status
    SKIPPED = "skipped"  # Order no longer in the expected pre-state
    FAILED = "failed"  # Persistence error, retry finish
