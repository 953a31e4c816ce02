"""
Route Reconciliation Engine (Domain Logic).

Route state machine: PLANNED -> IN_PROGRESS -> FINISHED (terminal).

finish_route folds stop outcomes back into order status in two passes:
1. Per stop, independently and best-effort, write the order status the stop
   implies (delivered stops -> DELIVERED, anything else -> APPROVED, back
   in the assignable pool).
2. Only if no stop write failed, close the route.

FINISHED is what consumers poll for, so it is never written while an order
write is outstanding. Each order write is idempotent (an order already at
its target is a no-op) and guarded on the order still being routed by this
route, so retrying finish_route is safe and never overwrites a status set
elsewhere since.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ordering_backend.app.core.exceptions import (
    NotFoundError,
    ForbiddenError,
    InvalidStateError,
    InternalError,
)
from ordering_backend.app.db.conditional import conditional_update, reload
from ordering_backend.app.domain.routing.route_assignment import RouteAssignmentService
from ordering_backend.app.models.order import Order
from ordering_backend.app.models.order_enums import OrderStatus, ROUTED_ORDER_STATUSES
from ordering_backend.app.models.route import Route
from ordering_backend.app.models.route_enums import (
    RouteStatus,
    RouteStopStatus,
    StopResolution,
    DELIVERED_STOP_STATUSES,
)
from ordering_backend.app.models.status_vocabulary import status_in
from ordering_backend.app.services.audit import AuditAction, log_event, log_event_best_effort
from ordering_backend.app.services.invalidation import notify_change

logger = logging.getLogger(__name__)


def classify_stop(stop_status: RouteStopStatus) -> OrderStatus:
    """Order status implied by a stop's final status."""
    if stop_status in DELIVERED_STOP_STATUSES:
        return OrderStatus.DELIVERED
    # pending, failed, unknown
    return OrderStatus.APPROVED


class RouteReconciliationEngine:

    @staticmethod
    async def get_route(db: AsyncSession, route_id: int, tenant_id: Optional[int] = None) -> Route:
        """
        Raises:
            NotFoundError: Route missing or outside the tenant
        """
        where = [Route.id == route_id]
        if tenant_id is not None:
            where.append(Route.tenant_id == tenant_id)
        route = await reload(db, Route, *where)
        if route is None:
            raise NotFoundError("Route", route_id)
        return route

    @staticmethod
    async def start_route(
        db: AsyncSession, route_id: int, driver_id: int, tenant_id: Optional[int] = None
    ) -> Route:
        """
        Driver starts their planned route.

        Raises:
            ForbiddenError: Caller is not the assigned driver
            InvalidStateError: Route is not PLANNED
        """
        route = await RouteReconciliationEngine.get_route(db, route_id, tenant_id)

        if route.driver_id != driver_id:
            raise ForbiddenError("Only the assigned driver can start this route")

        if route.status != RouteStatus.PLANNED:
            raise InvalidStateError(
                f"Route cannot be started from {route.status.value}",
                {"route_id": route_id, "route_status": route.status.value},
            )

        started = await conditional_update(
            db,
            Route,
            [
                Route.id == route_id,
                Route.driver_id == driver_id,
                status_in(Route.status, RouteStatus, RouteStatus.PLANNED),
            ],
            {"status": RouteStatus.IN_PROGRESS, "started_at": datetime.now(timezone.utc)},
        )

        route = await reload(db, Route, Route.id == route_id)
        if not started:
            raise InvalidStateError(
                f"Route cannot be started from {route.status.value}",
                {"route_id": route_id, "route_status": route.status.value},
            )

        await log_event(
            db,
            AuditAction.ROUTE_STARTED,
            tenant_id=route.tenant_id,
            actor_id=driver_id,
            entity_type="route",
            entity_id=route_id,
        )
        await notify_change(route.tenant_id, "route", route_id, "route_started")
        return route

    @staticmethod
    async def finish_route(
        db: AsyncSession,
        route_id: int,
        actor_id: Optional[int] = None,
        tenant_id: Optional[int] = None,
        driver_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Reconcile stop outcomes into orders and close the route.

        Args:
            driver_id: When set, the caller must be the route's driver

        Returns:
            {"route", "already_finished", "stops": [per-stop resolution]}

        Raises:
            ForbiddenError: driver_id given and not the route's driver
            InvalidStateError: Route is not IN_PROGRESS (and not already FINISHED)
            InternalError: Some order writes failed; route left IN_PROGRESS, retry
        """
        route = await RouteReconciliationEngine.get_route(db, route_id, tenant_id)
        route_tenant_id = route.tenant_id

        if driver_id is not None and route.driver_id != driver_id:
            raise ForbiddenError("Only the assigned driver can finish this route")

        stops = [
            {
                "stop_id": stop.id,
                "order_id": stop.order_id,
                "sequence_order": stop.sequence_order,
                "stop_status": stop.status,
                "delivered_by": stop.delivered_by,
            }
            for stop in await RouteAssignmentService.get_stops(db, route_id)
        ]

        if route.status == RouteStatus.FINISHED:
            results = [
                await RouteReconciliationEngine._observe(db, stop)
                for stop in stops
            ]
            return {"route": route, "already_finished": True, "stops": results}

        if route.status != RouteStatus.IN_PROGRESS:
            raise InvalidStateError(
                f"Route cannot be finished from {route.status.value}",
                {"route_id": route_id, "route_status": route.status.value},
            )

        default_deliverer = route.driver_id

        # Pass 1: order writes, one per stop
        results = []
        for stop in stops:
            target = classify_stop(stop["stop_status"])
            resolution = await RouteReconciliationEngine._write_order_status(
                db, route_id, stop, target, stop["delivered_by"] or default_deliverer
            )
            results.append({**RouteReconciliationEngine._describe(stop, target), "resolution": resolution})

        failed = [r for r in results if r["resolution"] == StopResolution.FAILED]
        if failed:
            details = {"route_id": route_id, "stops": RouteReconciliationEngine._serializable(results)}
            await log_event_best_effort(
                db,
                AuditAction.ROUTE_RECONCILIATION_PARTIAL,
                tenant_id=route_tenant_id,
                actor_id=actor_id,
                entity_type="route",
                entity_id=route_id,
                metadata=details,
            )
            raise InternalError(
                f"{len(failed)} order update(s) failed; route left in progress, retry finish",
                details,
            )

        # Pass 2: close the route
        await RouteReconciliationEngine._close_route(db, route_id)

        skipped = [r["order_id"] for r in results if r["resolution"] == StopResolution.SKIPPED]
        await log_event(
            db,
            AuditAction.ROUTE_FINISHED,
            tenant_id=route_tenant_id,
            actor_id=actor_id,
            entity_type="route",
            entity_id=route_id,
            metadata={"stops": RouteReconciliationEngine._serializable(results), "skipped_orders": skipped},
        )
        await notify_change(route_tenant_id, "route", route_id, "route_finished")

        route = await reload(db, Route, Route.id == route_id)
        return {"route": route, "already_finished": False, "stops": results}

    # Steps

    @staticmethod
    async def _write_order_status(
        db: AsyncSession,
        route_id: int,
        stop: dict,
        target: OrderStatus,
        delivered_by: Optional[int],
    ) -> StopResolution:
        order_id = stop["order_id"]
        try:
            order = await reload(db, Order, Order.id == order_id)
            if order is None:
                logger.warning("Route %s stop %s references missing order %s", route_id, stop["stop_id"], order_id)
                return StopResolution.SKIPPED

            if order.status == target:
                return StopResolution.NOOP

            if target == OrderStatus.DELIVERED:
                values = {
                    "status": OrderStatus.DELIVERED,
                    "delivered_at": datetime.now(timezone.utc),
                    "delivered_by": delivered_by,
                }
            else:
                values = {"status": OrderStatus.APPROVED, "current_route_id": None}

            applied = await conditional_update(
                db,
                Order,
                [
                    Order.id == order_id,
                    status_in(Order.status, OrderStatus, *ROUTED_ORDER_STATUSES),
                    or_(Order.current_route_id == route_id, Order.current_route_id.is_(None)),
                ],
                values,
            )
        except SQLAlchemyError:
            logger.exception("Route %s: status write for order %s failed", route_id, order_id)
            await db.rollback()
            return StopResolution.FAILED

        if not applied:
            logger.warning(
                "Route %s: order %s is no longer routed by this route (now %s); left unchanged",
                route_id, order_id, order.status.value,
            )
            return StopResolution.SKIPPED
        return StopResolution.APPLIED

    @staticmethod
    async def _close_route(db: AsyncSession, route_id: int) -> None:
        try:
            closed = await conditional_update(
                db,
                Route,
                [Route.id == route_id, status_in(Route.status, RouteStatus, RouteStatus.IN_PROGRESS)],
                {"status": RouteStatus.FINISHED, "finished_at": datetime.now(timezone.utc)},
            )
        except SQLAlchemyError:
            logger.exception("Route %s: orders reconciled but route could not be closed", route_id)
            await db.rollback()
            raise InternalError(
                "Orders reconciled but route could not be closed; retry finish",
                {"route_id": route_id},
            )

        if not closed:
            route = await reload(db, Route, Route.id == route_id)
            if route.status != RouteStatus.FINISHED:
                raise InvalidStateError(
                    f"Route cannot be finished from {route.status.value}",
                    {"route_id": route_id, "route_status": route.status.value},
                )
            # Closed by a concurrent finish

    @staticmethod
    async def _observe(db: AsyncSession, stop: dict) -> dict:
        """Resolution of a stop on an already finished route, without writing."""
        target = classify_stop(stop["stop_status"])
        order = await reload(db, Order, Order.id == stop["order_id"])
        resolution = StopResolution.NOOP if order is not None and order.status == target else StopResolution.SKIPPED
        return {**RouteReconciliationEngine._describe(stop, target), "resolution": resolution}

    @staticmethod
    def _describe(stop: dict, target: OrderStatus) -> dict:
        return {
            "stop_id": stop["stop_id"],
            "order_id": stop["order_id"],
            "sequence_order": stop["sequence_order"],
            "stop_status": stop["stop_status"],
            "order_status": target,
        }

    @staticmethod
    def _serializable(results: list) -> list:
        return [
            {key: value.value if hasattr(value, "value") else value for key, value in r.items()}
            for r in results
        ]
