"""
Audit logging service for tracking state transitions.

Provides centralized logging for financial and operational traceability.
"""

import logging
from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from sqlalchemy.exc import SQLAlchemyError
from ordering_backend.app.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Order transitions
    ORDER_APPROVED = "ORDER_APPROVED"
    ORDER_REJECTED = "ORDER_REJECTED"
    ORDER_READY_FOR_PICKUP = "ORDER_READY_FOR_PICKUP"
    ORDER_HANDED_OVER = "ORDER_HANDED_OVER"

    # Routes
    ROUTE_CREATED = "ROUTE_CREATED"
    ROUTE_STARTED = "ROUTE_STARTED"
    ROUTE_FINISHED = "ROUTE_FINISHED"
    STOP_OUTCOME_REPORTED = "STOP_OUTCOME_REPORTED"

    # Ledger
    DEBT_POSTED = "DEBT_POSTED"
    DEBT_REVERSED = "DEBT_REVERSED"
    PAYMENT_APPLIED = "PAYMENT_APPLIED"
    CREDIT_LIMIT_CHANGED = "CREDIT_LIMIT_CHANGED"

    # Consistency gaps
    PAYMENT_ORPHANED = "PAYMENT_ORPHANED"
    DEBT_REVERSAL_FAILED = "DEBT_REVERSAL_FAILED"
    ROUTE_RECONCILIATION_PARTIAL = "ROUTE_RECONCILIATION_PARTIAL"
    ROUTE_CREATION_COMPENSATED = "ROUTE_CREATION_COMPENSATED"


async def log_event(
    db: AsyncSession,
    action: str,
    tenant_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Log a transition or consistency event to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        tenant_id: Tenant the entity belongs to
        actor_id: ID of user performing the action (None for system)
        entity_type: "order", "route", "stop", "payment" or "ledger"
        entity_id: Primary key of the affected entity
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        tenant_id=tenant_id,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata,
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    tenant_id: int,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve a tenant's audit trail with optional filtering.

    Args:
        db: Database session
        tenant_id: Tenant scope
        entity_type: Filter by entity type
        entity_id: Filter by entity ID
        action: Filter by action type
        limit: Maximum number of records to return

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).where(AuditLog.tenant_id == tenant_id).order_by(desc(AuditLog.id))

    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)

    if entity_id:
        query = query.where(AuditLog.entity_id == entity_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()


async def log_event_best_effort(db: AsyncSession, action: str, **kwargs) -> Optional[AuditLog]:
    """
    Log an event on an error path.

    The session is rolled back first since the caller usually got here from
    a failed statement. Audit write failures are logged, not raised, so the
    original error reaches the caller.
    """
    try:
        await db.rollback()
        return await log_event(db, action, **kwargs)
    except SQLAlchemyError:
        logger.exception("Could not write audit event %s for %s", action, kwargs.get("entity_id"))
        await db.rollback()
        return None
