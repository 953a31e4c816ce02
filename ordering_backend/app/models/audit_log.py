"""
Audit Log Database Model.

Tracks state transitions and consistency-gap events per tenant.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from ordering_backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for tracking transitions on orders, routes and ledgers.

    Events logged:
    - ORDER_APPROVED / ORDER_REJECTED / ORDER_READY_FOR_PICKUP / ORDER_HANDED_OVER
    - ROUTE_CREATED / ROUTE_STARTED / ROUTE_FINISHED
    - STOP_OUTCOME_REPORTED
    - PAYMENT_APPLIED / CREDIT_LIMIT_CHANGED
    - PAYMENT_ORPHANED / ROUTE_RECONCILIATION_PARTIAL / ROUTE_CREATION_COMPENSATED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    tenant_id = Column(Integer, index=True, nullable=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Which entity was affected
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity_type}:{self.entity_id})>"
