"""
Route Assignment Service (Domain Logic).

Creates a route for a driver from a batch of approved orders.

The claim is all-or-nothing. Each order is claimed with a conditional
update (APPROVED and unclaimed -> PROCESSING, owned by the route), so of two
concurrent requests including the same order only one can win. If any claim
or the stop insert fails, the steps already applied are compensated:
claims released, stops and route deleted.
"""

import logging
import uuid
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ordering_backend.app.core.exceptions import (
    NotFoundError,
    InvalidStateError,
    ClaimConflictError,
    DomainValidationError,
    InternalError,
)
from ordering_backend.app.db.conditional import (
    conditional_update,
    insert_row,
    insert_rows,
    delete_rows,
    reload,
)
from ordering_backend.app.models.enums import UserRole
from ordering_backend.app.models.order import Order
from ordering_backend.app.models.order_enums import OrderStatus
from ordering_backend.app.models.route import Route
from ordering_backend.app.models.route_enums import RouteStatus, RouteStopStatus
from ordering_backend.app.models.route_stop import RouteStop
from ordering_backend.app.models.status_vocabulary import status_in
from ordering_backend.app.models.user import User
from ordering_backend.app.services.audit import AuditAction, log_event, log_event_best_effort
from ordering_backend.app.services.invalidation import notify_change

logger = logging.getLogger(__name__)

ROUTE_NUMBER_ATTEMPTS = 3


def generate_route_number() -> str:
    """RT-YYYYMMDD-XXXX"""
    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    return f"RT-{today}-{uuid.uuid4().hex[:4].upper()}"


class RouteAssignmentService:

    @staticmethod
    async def create_route(
        db: AsyncSession,
        tenant_id: int,
        driver_id: int,
        order_ids: List[int],
        planned_date: date,
        actor_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Route:
        """
        Create a route claiming the given orders.

        Stops are sequenced by position in order_ids (1-based); no route
        optimization is performed.

        Flow:
        1. Validate input, driver and every order (no writes)
        2. Insert the route (PLANNED)
        3. Claim each order: APPROVED -> PROCESSING, current_route_id = route
        4. Insert one PENDING stop per order
        5. On failure in 3-4: release claims, delete stops and route

        Raises:
            DomainValidationError: Empty or duplicated order list
            NotFoundError: Driver is not a driver of this tenant
            InvalidStateError: Driver account is inactive
            ClaimConflictError: Some order is missing, not approved or already claimed
            InternalError: Persistence failure (compensated)
        """
        # 1. Validation
        if not order_ids:
            raise DomainValidationError("A route needs at least one order")
        if len(set(order_ids)) != len(order_ids):
            raise DomainValidationError(
                "Duplicate orders in route",
                {"order_ids": order_ids},
            )

        await RouteAssignmentService._validate_driver(db, tenant_id, driver_id)

        conflicts = await RouteAssignmentService._find_conflicts(db, tenant_id, order_ids)
        if conflicts:
            raise ClaimConflictError("Some orders cannot be assigned to a route", conflicts)

        # 2. Route
        route = await RouteAssignmentService._insert_route(
            db, tenant_id, driver_id, planned_date, len(order_ids), actor_id, notes
        )
        route_id = route.id

        # 3-4. Claim and stops, compensated on failure
        try:
            await RouteAssignmentService._claim_orders(db, tenant_id, route_id, order_ids)
            await RouteAssignmentService._create_stops(db, route_id, order_ids)
        except ClaimConflictError as e:
            await RouteAssignmentService._compensate(db, tenant_id, route_id, actor_id, e.details)
            raise
        except SQLAlchemyError:
            logger.exception("Route %s creation failed, compensating", route_id)
            await RouteAssignmentService._compensate(
                db, tenant_id, route_id, actor_id, {"reason": "persistence_error"}
            )
            raise InternalError("Route could not be created", {"order_ids": order_ids})

        route = await reload(db, Route, Route.id == route_id)

        await log_event(
            db,
            AuditAction.ROUTE_CREATED,
            tenant_id=tenant_id,
            actor_id=actor_id,
            entity_type="route",
            entity_id=route_id,
            metadata={"driver_id": driver_id, "order_ids": order_ids, "route_number": route.route_number},
        )
        await notify_change(tenant_id, "route", route_id, "route_created")
        return route

    @staticmethod
    async def get_stops(db: AsyncSession, route_id: int) -> list[RouteStop]:
        """Stops of a route in visiting order."""
        result = await db.execute(
            select(RouteStop)
            .where(RouteStop.route_id == route_id)
            .order_by(RouteStop.sequence_order)
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()

    # Steps

    @staticmethod
    async def _validate_driver(db: AsyncSession, tenant_id: int, driver_id: int) -> User:
        driver = await reload(db, User, User.id == driver_id)
        if driver is None or driver.role != UserRole.DRIVER or driver.tenant_id != tenant_id:
            raise NotFoundError("Driver", driver_id)
        if not driver.is_active:
            raise InvalidStateError("Driver account is inactive", {"driver_id": driver_id})
        return driver

    @staticmethod
    async def _find_conflicts(db: AsyncSession, tenant_id: int, order_ids: List[int]) -> dict:
        """Reasons, keyed by order id, why orders cannot be claimed right now."""
        result = await db.execute(
            select(Order)
            .where(Order.id.in_(order_ids), Order.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        )
        orders = {order.id: order for order in result.scalars().all()}

        conflicts = {}
        for order_id in order_ids:
            order = orders.get(order_id)
            if order is None:
                conflicts[str(order_id)] = "not_found"
            elif order.status != OrderStatus.APPROVED:
                conflicts[str(order_id)] = f"status_{order.status.value}"
            elif order.current_route_id is not None:
                conflicts[str(order_id)] = "already_claimed"
        return conflicts

    @staticmethod
    async def _insert_route(
        db: AsyncSession,
        tenant_id: int,
        driver_id: int,
        planned_date: date,
        total_stops: int,
        actor_id: Optional[int],
        notes: Optional[str],
    ) -> Route:
        for attempt in range(1, ROUTE_NUMBER_ATTEMPTS + 1):
            try:
                return await insert_row(db, Route(
                    route_number=generate_route_number(),
                    tenant_id=tenant_id,
                    created_by=actor_id,
                    driver_id=driver_id,
                    status=RouteStatus.PLANNED,
                    planned_date=planned_date,
                    notes=notes,
                    total_stops=total_stops,
                ))
            except IntegrityError:
                await db.rollback()
                if attempt == ROUTE_NUMBER_ATTEMPTS:
                    logger.exception("Could not allocate a route number")
                    raise InternalError("Route could not be created")
                logger.warning("Route number collision, retrying (%s/%s)", attempt, ROUTE_NUMBER_ATTEMPTS)

    @staticmethod
    async def _claim_orders(db: AsyncSession, tenant_id: int, route_id: int, order_ids: List[int]) -> None:
        for order_id in order_ids:
            claimed = await conditional_update(
                db,
                Order,
                [
                    Order.id == order_id,
                    Order.tenant_id == tenant_id,
                    status_in(Order.status, OrderStatus, OrderStatus.APPROVED),
                    Order.current_route_id.is_(None),
                ],
                {"status": OrderStatus.PROCESSING, "current_route_id": route_id},
            )
            if not claimed:
                raise ClaimConflictError(
                    "Order was claimed concurrently",
                    {str(order_id): "claimed_concurrently"},
                )

    @staticmethod
    async def _create_stops(db: AsyncSession, route_id: int, order_ids: List[int]) -> list[RouteStop]:
        return await insert_rows(db, [
            RouteStop(
                route_id=route_id,
                order_id=order_id,
                sequence_order=position,
                status=RouteStopStatus.PENDING,
            )
            for position, order_id in enumerate(order_ids, start=1)
        ])

    @staticmethod
    async def _compensate(
        db: AsyncSession,
        tenant_id: int,
        route_id: int,
        actor_id: Optional[int],
        details: dict,
    ) -> None:
        """Undo a partially created route: release claims, drop stops, drop route."""
        await db.rollback()
        released = False
        try:
            released = await RouteAssignmentService._release_claims(db, route_id)
            await RouteAssignmentService._discard_route(db, route_id)
        except SQLAlchemyError:
            logger.exception("Compensation of route %s failed; orders may still be claimed", route_id)
            details = {**details, "compensation_failed": True}

        await log_event_best_effort(
            db,
            AuditAction.ROUTE_CREATION_COMPENSATED,
            tenant_id=tenant_id,
            actor_id=actor_id,
            entity_type="route",
            entity_id=route_id,
            metadata={**details, "claims_released": released},
        )

    @staticmethod
    async def _release_claims(db: AsyncSession, route_id: int) -> bool:
        return await conditional_update(
            db,
            Order,
            [
                Order.current_route_id == route_id,
                status_in(Order.status, OrderStatus, OrderStatus.PROCESSING),
            ],
            {"status": OrderStatus.APPROVED, "current_route_id": None},
        )

    @staticmethod
    async def _discard_route(db: AsyncSession, route_id: int) -> None:
        await delete_rows(db, RouteStop, [RouteStop.route_id == route_id])
        await delete_rows(db, Route, [Route.id == route_id])
