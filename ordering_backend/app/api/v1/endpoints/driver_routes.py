"""
Driver Route Execution API Endpoints.

Drivers start their routes, report stop outcomes, collect payments and
finish the route.
"""

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ordering_backend.app.db.session import get_db
from ordering_backend.app.core.guards import get_driver_context
from ordering_backend.app.domain.routing.reconciliation import RouteReconciliationEngine
from ordering_backend.app.domain.routing.stop_tracker import StopExecutionTracker
from ordering_backend.app.schemas.route import (
    RouteStartResponse, FinishRouteResponse,
    StopOutcomeRequest, StopOutcomeResponse
)
from ordering_backend.app.schemas.ledger import FieldPaymentCreate, PaymentAppliedResponse

router = APIRouter(prefix="/driver", tags=["Driver - Route Execution"])


@router.post("/routes/{route_id}/start", response_model=RouteStartResponse)
async def start_route(
    route_id: int = Path(..., description="Route ID"),
    current_user: dict = Depends(get_driver_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Start a planned route (assigned driver only).

    Sets status IN_PROGRESS and started_at.
    """
    route = await RouteReconciliationEngine.start_route(
        db, route_id, driver_id=current_user["user_id"], tenant_id=current_user["tenant_id"]
    )
    return {"success": True, "route": route}


@router.post("/routes/{route_id}/finish", response_model=FinishRouteResponse)
async def finish_route(
    route_id: int = Path(..., description="Route ID"),
    current_user: dict = Depends(get_driver_context),
    db: AsyncSession = Depends(get_db)
):
    """Finish the driver's route; same reconciliation as the dashboard."""
    result = await RouteReconciliationEngine.finish_route(
        db,
        route_id,
        actor_id=current_user["user_id"],
        tenant_id=current_user["tenant_id"],
        driver_id=current_user["user_id"],
    )
    return {"success": True, **result}


@router.post("/stops/{stop_id}/outcome", response_model=StopOutcomeResponse)
async def report_stop_outcome(
    payload: StopOutcomeRequest,
    stop_id: int = Path(..., description="Stop ID"),
    current_user: dict = Depends(get_driver_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Report a stop as delivered or failed.

    Orders are updated when the route is finished, not here.
    """
    stop = await StopExecutionTracker.report_outcome(
        db,
        stop_id,
        driver_id=current_user["user_id"],
        outcome=payload.outcome,
        failure_reason=payload.failure_reason,
    )
    return {"success": True, "stop": stop}


@router.post("/stops/{stop_id}/payments", response_model=PaymentAppliedResponse, status_code=status.HTTP_201_CREATED)
async def collect_payment(
    payload: FieldPaymentCreate,
    stop_id: int = Path(..., description="Stop ID"),
    current_user: dict = Depends(get_driver_context),
    db: AsyncSession = Depends(get_db)
):
    """Record cash (or other) payment collected at a stop."""
    payment = await StopExecutionTracker.collect_payment(
        db,
        stop_id,
        driver_id=current_user["user_id"],
        amount=payload.amount,
        payment_method=payload.payment_method,
        notes=payload.notes,
    )
    return {"success": True, "payment": payment}
