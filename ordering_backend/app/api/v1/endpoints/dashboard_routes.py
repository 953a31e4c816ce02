"""
Dashboard Route API Endpoints.

Staff build routes from approved orders and close them out.
"""

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ordering_backend.app.db.session import get_db
from ordering_backend.app.core.guards import get_dashboard_context
from ordering_backend.app.domain.ledger.ledger_service import LedgerService
from ordering_backend.app.domain.routing.route_assignment import RouteAssignmentService
from ordering_backend.app.domain.routing.reconciliation import RouteReconciliationEngine
from ordering_backend.app.schemas.route import (
    RouteCreate, RouteCreateResponse, FinishRouteResponse
)
from ordering_backend.app.schemas.ledger import RouteCollectionsResponse

router = APIRouter(prefix="/tenants/{slug}/routes", tags=["Dashboard - Routes"])


@router.post("", response_model=RouteCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_route(
    payload: RouteCreate,
    context: dict = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a route for a driver.

    Validates:
    - Driver is an active driver of this tenant
    - Every order is APPROVED and not on another route

    Either all orders are claimed (PROCESSING, one PENDING stop each, in
    the given sequence) or none are.
    """
    route = await RouteAssignmentService.create_route(
        db,
        tenant_id=context["tenant_id"],
        driver_id=payload.driver_id,
        order_ids=payload.order_ids,
        planned_date=payload.planned_date,
        actor_id=context["user_id"],
        notes=payload.notes,
    )
    stops = await RouteAssignmentService.get_stops(db, route.id)
    return {"success": True, "route": route, "stops": stops}


@router.post("/{route_id}/finish", response_model=FinishRouteResponse)
async def finish_route(
    route_id: int = Path(..., description="Route ID"),
    context: dict = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Finish an in-progress route.

    Delivered stops mark their orders DELIVERED; every other stop returns
    its order to APPROVED. Safe to retry.
    """
    result = await RouteReconciliationEngine.finish_route(
        db, route_id, actor_id=context["user_id"], tenant_id=context["tenant_id"]
    )
    return {"success": True, **result}


@router.get("/{route_id}/collections", response_model=RouteCollectionsResponse)
async def get_route_collections(
    route_id: int = Path(..., description="Route ID"),
    context: dict = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db)
):
    """Payments the route's driver collected for orders on the route."""
    route = await RouteReconciliationEngine.get_route(db, route_id, context["tenant_id"])
    payments = await LedgerService.driver_collected_payments(db, route)
    return {
        "success": True,
        "route_id": route.id,
        "driver_id": route.driver_id,
        "total_collected": sum(p.amount for p in payments),
        "payments": payments,
    }
