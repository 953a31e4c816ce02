"""
Stop Execution Tracker (Domain Logic).

Records what the driver reports at each stop. Orders are not touched here:
outcomes are folded into order status in one pass when the route finishes.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ordering_backend.app.core.config import settings
from ordering_backend.app.core.exceptions import NotFoundError, ForbiddenError, InvalidStateError
from ordering_backend.app.db.conditional import conditional_update, reload
from ordering_backend.app.domain.ledger.ledger_service import LedgerService
from ordering_backend.app.models.order import Order
from ordering_backend.app.models.payment import Payment
from ordering_backend.app.models.route import Route
from ordering_backend.app.models.route_enums import (
    RouteStatus,
    RouteStopStatus,
    StopOutcome,
    DELIVERED_STOP_STATUSES,
)
from ordering_backend.app.models.route_stop import RouteStop
from ordering_backend.app.models.status_vocabulary import status_in
from ordering_backend.app.services.audit import AuditAction, log_event
from ordering_backend.app.services.invalidation import notify_change

logger = logging.getLogger(__name__)

OUTCOME_STATUS = {
    StopOutcome.DELIVERED: RouteStopStatus.DELIVERED,
    StopOutcome.FAILED: RouteStopStatus.FAILED,
}


class StopExecutionTracker:

    @staticmethod
    async def get_stop_for_driver(db: AsyncSession, stop_id: int, driver_id: int) -> tuple:
        """
        Load a stop and its route, checking the caller drives that route.

        Raises:
            NotFoundError: Stop or route missing
            ForbiddenError: Caller is not the route's driver
        """
        stop = await reload(db, RouteStop, RouteStop.id == stop_id)
        if stop is None:
            raise NotFoundError("Stop", stop_id)

        route = await reload(db, Route, Route.id == stop.route_id)
        if route is None:
            raise NotFoundError("Route", stop.route_id)

        if route.driver_id != driver_id:
            raise ForbiddenError("Only the assigned driver can update this stop")

        return stop, route

    @staticmethod
    async def report_outcome(
        db: AsyncSession,
        stop_id: int,
        driver_id: int,
        outcome: StopOutcome,
        failure_reason: Optional[str] = None,
    ) -> RouteStop:
        """
        Record a delivered/failed outcome for a pending stop.

        Reporting the same outcome again is a no-op. A stop that already has
        a different outcome is final.

        Raises:
            NotFoundError, ForbiddenError
            InvalidStateError: Route not in progress, or stop already has another outcome
        """
        stop, route = await StopExecutionTracker.get_stop_for_driver(db, stop_id, driver_id)

        if route.status != RouteStatus.IN_PROGRESS:
            raise InvalidStateError(
                "Stops can only be reported on a route in progress",
                {"route_id": route.id, "route_status": route.status.value},
            )

        target = OUTCOME_STATUS[outcome]

        if stop.status != RouteStopStatus.PENDING:
            if StopExecutionTracker._same_outcome(stop.status, target):
                return stop
            raise InvalidStateError(
                "Stop outcome already reported",
                {"stop_id": stop_id, "stop_status": stop.status.value},
            )

        now = datetime.now(timezone.utc)
        values = {
            "status": target,
            "actual_arrival_time": stop.actual_arrival_time or now,
            "actual_departure_time": now,
        }
        if outcome == StopOutcome.DELIVERED:
            values["delivered_by"] = driver_id
            values["failure_reason"] = None
        else:
            values["failure_reason"] = failure_reason

        updated = await conditional_update(
            db,
            RouteStop,
            [
                RouteStop.id == stop_id,
                status_in(RouteStop.status, RouteStopStatus, RouteStopStatus.PENDING),
            ],
            values,
        )

        stop = await reload(db, RouteStop, RouteStop.id == stop_id)
        if not updated and not StopExecutionTracker._same_outcome(stop.status, target):
            raise InvalidStateError(
                "Stop outcome already reported",
                {"stop_id": stop_id, "stop_status": stop.status.value},
            )

        if updated:
            await log_event(
                db,
                AuditAction.STOP_OUTCOME_REPORTED,
                tenant_id=route.tenant_id,
                actor_id=driver_id,
                entity_type="stop",
                entity_id=stop_id,
                metadata={"route_id": route.id, "order_id": stop.order_id, "outcome": outcome.value},
            )
            await notify_change(route.tenant_id, "route", route.id, "stop_reported")
        return stop

    @staticmethod
    async def collect_payment(
        db: AsyncSession,
        stop_id: int,
        driver_id: int,
        amount: Decimal,
        payment_method: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Payment:
        """
        Driver collects money at a stop.

        Goes through LedgerService.apply_payment with the driver as
        collector; created_by is what marks it as a field collection.
        """
        stop, route = await StopExecutionTracker.get_stop_for_driver(db, stop_id, driver_id)

        if route.status == RouteStatus.PLANNED:
            raise InvalidStateError(
                "Route has not started",
                {"route_id": route.id, "route_status": route.status.value},
            )

        order = await reload(db, Order, Order.id == stop.order_id)
        if order is None:
            raise NotFoundError("Order", stop.order_id)

        return await LedgerService.apply_payment(
            db,
            tenant_id=route.tenant_id,
            customer_id=order.customer_id,
            amount=amount,
            payment_method=payment_method or settings.field_payment_method,
            collector_id=driver_id,
            order_id=order.id,
            notes=notes,
        )

    @staticmethod
    def _same_outcome(current: RouteStopStatus, target: RouteStopStatus) -> bool:
        if target == RouteStopStatus.DELIVERED:
            return current in DELIVERED_STOP_STATUSES
        return current == target
