"""
Dashboard Order Transition API Endpoints.

Staff approve, reject and hand over orders of their tenant.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from ordering_backend.app.db.session import get_db
from ordering_backend.app.core.guards import get_dashboard_context
from ordering_backend.app.domain.orders.transition_gateway import OrderTransitionGateway
from ordering_backend.app.schemas.order import (
    OrderApproveRequest, OrderRejectRequest, OrderTransitionResponse
)

router = APIRouter(prefix="/tenants/{slug}/orders", tags=["Dashboard - Orders"])


@router.post("/{order_id}/approve", response_model=OrderTransitionResponse)
async def approve_order(
    order_id: int = Path(..., description="Order ID"),
    payload: Optional[OrderApproveRequest] = None,
    context: dict = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Approve a pending order.

    The order joins the pool available for route assignment and its
    balance is posted to the customer's ledger.
    """
    result = await OrderTransitionGateway.approve(
        db,
        tenant_id=context["tenant_id"],
        order_id=order_id,
        actor_id=context["user_id"],
        invoice_number=payload.invoice_number if payload else None,
    )
    return {"success": True, **result}


@router.post("/{order_id}/reject", response_model=OrderTransitionResponse)
async def reject_order(
    order_id: int = Path(..., description="Order ID"),
    payload: Optional[OrderRejectRequest] = None,
    context: dict = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Reject a pending order, or cancel an approved one.

    Any debt posted for the order is reversed.
    """
    result = await OrderTransitionGateway.reject(
        db,
        tenant_id=context["tenant_id"],
        order_id=order_id,
        actor_id=context["user_id"],
        reason=payload.reason if payload else None,
    )
    return {"success": True, **result}


@router.post("/{order_id}/ready", response_model=OrderTransitionResponse)
async def mark_ready_for_pickup(
    order_id: int = Path(..., description="Order ID"),
    context: dict = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db)
):
    """Mark a pickup order ready for the customer to collect."""
    result = await OrderTransitionGateway.mark_ready_for_pickup(
        db, tenant_id=context["tenant_id"], order_id=order_id, actor_id=context["user_id"]
    )
    return {"success": True, **result}


@router.post("/{order_id}/hand-over", response_model=OrderTransitionResponse)
async def hand_over_pickup(
    order_id: int = Path(..., description="Order ID"),
    context: dict = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db)
):
    """Record that the customer collected a ready pickup order."""
    result = await OrderTransitionGateway.hand_over_pickup(
        db, tenant_id=context["tenant_id"], order_id=order_id, actor_id=context["user_id"]
    )
    return {"success": True, **result}
