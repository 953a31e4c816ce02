"""
Ledger enumerations.
"""

import enum


class RelationshipStatus(str, enum.Enum):
    """Customer relationship (ledger row) status."""
    ACTIVE = "active"  # Accepts payments and debt postings
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
