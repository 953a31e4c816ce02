"""
Order Transition Gateway (Domain Logic).

Dashboard-initiated order transitions. These compete with route-driven
transitions on the same order, so each one is a single-row conditional
update guarded by the status the caller observed.

Allowed transitions:
    approve:                PENDING -> APPROVED
    reject:                 PENDING -> REJECTED, APPROVED -> CANCELLED
    mark_ready_for_pickup:  APPROVED | PROCESSING -> READY_FOR_PICKUP (pickup orders)
    hand_over_pickup:       READY_FOR_PICKUP -> DELIVERED
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ordering_backend.app.core.exceptions import (
    NotFoundError,
    InvalidTransitionError,
    DomainValidationError,
    InternalError,
)
from ordering_backend.app.db.conditional import conditional_update, reload
from ordering_backend.app.domain.ledger.ledger_service import LedgerService
from ordering_backend.app.models.order import Order
from ordering_backend.app.models.order_enums import OrderStatus, DeliveryType
from ordering_backend.app.models.status_vocabulary import status_in
from ordering_backend.app.services.audit import AuditAction, log_event
from ordering_backend.app.services.invalidation import notify_change

logger = logging.getLogger(__name__)


APPROVE_FROM = (OrderStatus.PENDING,)
REJECT_TARGETS = {
    OrderStatus.PENDING: OrderStatus.REJECTED,
    OrderStatus.APPROVED: OrderStatus.CANCELLED,
}
READY_FROM = (OrderStatus.APPROVED, OrderStatus.PROCESSING)
HAND_OVER_FROM = (OrderStatus.READY_FOR_PICKUP,)


class OrderTransitionGateway:

    @staticmethod
    async def get_order(db: AsyncSession, tenant_id: int, order_id: int) -> Order:
        """
        Load an order inside the tenant scope.

        Raises:
            NotFoundError: Order missing or owned by another tenant
        """
        order = await reload(db, Order, Order.id == order_id, Order.tenant_id == tenant_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    @staticmethod
    async def approve(
        db: AsyncSession,
        tenant_id: int,
        order_id: int,
        actor_id: int,
        invoice_number: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Approve a pending order and post its balance to the customer's ledger.

        The order enters the assignable pool even if the ledger posting
        fails; that case is reported as ledger_synced=False and can be
        retried since posting is idempotent.
        """
        order = await OrderTransitionGateway.get_order(db, tenant_id, order_id)

        values = {
            "status": OrderStatus.APPROVED,
            "approved_at": datetime.now(timezone.utc),
            "approved_by": actor_id,
        }
        if invoice_number:
            values["invoice_number"] = invoice_number

        order = await OrderTransitionGateway._transition(
            db, order, APPROVE_FROM, OrderStatus.APPROVED, values
        )

        ledger_synced = True
        try:
            await LedgerService.post_order_debt(db, order, actor_id)
        except InternalError:
            logger.error("Order %s approved but its debt was not posted", order_id)
            ledger_synced = False

        await log_event(
            db,
            AuditAction.ORDER_APPROVED,
            tenant_id=tenant_id,
            actor_id=actor_id,
            entity_type="order",
            entity_id=order_id,
            metadata={"invoice_number": invoice_number, "ledger_synced": ledger_synced},
        )
        await notify_change(tenant_id, "order", order_id, "order_approved")

        order = await reload(db, Order, Order.id == order_id)
        return {"order": order, "ledger_synced": ledger_synced}

    @staticmethod
    async def reject(
        db: AsyncSession,
        tenant_id: int,
        order_id: int,
        actor_id: int,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Reject a pending order or cancel an approved one.

        Debt already posted for the order is reversed through the ledger.
        """
        order = await OrderTransitionGateway.get_order(db, tenant_id, order_id)
        observed = order.status

        target = REJECT_TARGETS.get(observed)
        if target is None:
            raise InvalidTransitionError(order_id, observed.value, OrderStatus.REJECTED.value)

        order = await OrderTransitionGateway._transition(
            db,
            order,
            (observed,),
            target,
            {"status": target, "cancellation_reason": reason},
        )

        ledger_synced = await LedgerService.reverse_order_debt(db, order, actor_id)

        await log_event(
            db,
            AuditAction.ORDER_REJECTED,
            tenant_id=tenant_id,
            actor_id=actor_id,
            entity_type="order",
            entity_id=order_id,
            metadata={"from": observed.value, "to": target.value, "reason": reason},
        )
        await notify_change(tenant_id, "order", order_id, f"order_{target.value}")

        order = await reload(db, Order, Order.id == order_id)
        return {"order": order, "ledger_synced": ledger_synced}

    @staticmethod
    async def mark_ready_for_pickup(
        db: AsyncSession, tenant_id: int, order_id: int, actor_id: int
    ) -> Dict[str, Any]:
        """Mark a pickup order ready at the counter. Releases any route claim."""
        order = await OrderTransitionGateway.get_order(db, tenant_id, order_id)

        if order.delivery_type != DeliveryType.PICKUP:
            raise DomainValidationError(
                "Only pickup orders can be marked ready for pickup",
                {"order_id": order_id, "delivery_type": order.delivery_type.value},
            )

        order = await OrderTransitionGateway._transition(
            db,
            order,
            READY_FROM,
            OrderStatus.READY_FOR_PICKUP,
            {"status": OrderStatus.READY_FOR_PICKUP, "current_route_id": None},
        )

        await log_event(
            db,
            AuditAction.ORDER_READY_FOR_PICKUP,
            tenant_id=tenant_id,
            actor_id=actor_id,
            entity_type="order",
            entity_id=order_id,
        )
        await notify_change(tenant_id, "order", order_id, "order_ready_for_pickup")
        return {"order": order, "ledger_synced": True}

    @staticmethod
    async def hand_over_pickup(
        db: AsyncSession, tenant_id: int, order_id: int, actor_id: int
    ) -> Dict[str, Any]:
        """Customer collected a ready pickup order."""
        order = await OrderTransitionGateway.get_order(db, tenant_id, order_id)

        order = await OrderTransitionGateway._transition(
            db,
            order,
            HAND_OVER_FROM,
            OrderStatus.DELIVERED,
            {
                "status": OrderStatus.DELIVERED,
                "delivered_at": datetime.now(timezone.utc),
                "delivered_by": actor_id,
            },
        )

        await log_event(
            db,
            AuditAction.ORDER_HANDED_OVER,
            tenant_id=tenant_id,
            actor_id=actor_id,
            entity_type="order",
            entity_id=order_id,
        )
        await notify_change(tenant_id, "order", order_id, "order_delivered")
        return {"order": order, "ledger_synced": True}

    @staticmethod
    async def _transition(
        db: AsyncSession,
        order: Order,
        allowed_from: tuple,
        target: OrderStatus,
        values: Dict[str, Any],
    ) -> Order:
        """
        Compare-and-swap the order status.

        Raises:
            InvalidTransitionError: Status not in allowed_from, before or at write time
        """
        order_id = order.id
        if order.status not in allowed_from:
            raise InvalidTransitionError(order_id, order.status.value, target.value)

        updated = await conditional_update(
            db,
            Order,
            [
                Order.id == order_id,
                Order.tenant_id == order.tenant_id,
                status_in(Order.status, OrderStatus, *allowed_from),
            ],
            values,
        )

        current = await reload(db, Order, Order.id == order_id)
        if not updated:
            # Lost a race with another transition
            raise InvalidTransitionError(
                order_id,
                current.status.value,
                target.value,
                {"reason": "status changed concurrently"},
            )
        return current
