"""
Ledger Service (Domain Logic).

Owns the per-tenant, per-customer credit limit and outstanding debt.

current_debt is maintained incrementally:
- increased when an approved order's balance is posted
- decreased when a payment is applied or a posted order is cancelled

Debt is posted when an order is approved, not when it is delivered, so a
credit check sees every order the tenant has committed to ship.

Amounts are Decimal cents. Arithmetic updates are rounded to two places in
SQL so the >= guards compare exact cents on every backend.

Every change is one conditional arithmetic UPDATE, never a
read-modify-write pair, so concurrent collectors cannot lose updates.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ordering_backend.app.core.config import settings
from ordering_backend.app.core.money import ZERO, to_money, money_json
from ordering_backend.app.core.exceptions import (
    NotFoundError,
    InvalidStateError,
    AmountExceedsDebtError,
    DomainValidationError,
    InternalError,
)
from ordering_backend.app.db.conditional import conditional_update, insert_row, reload
from ordering_backend.app.models.customer_relationship import CustomerRelationship
from ordering_backend.app.models.ledger_enums import RelationshipStatus
from ordering_backend.app.models.order import Order
from ordering_backend.app.models.order_enums import PaymentStatus
from ordering_backend.app.models.payment import Payment
from ordering_backend.app.models.route import Route
from ordering_backend.app.models.route_stop import RouteStop
from ordering_backend.app.models.user import User
from ordering_backend.app.models.enums import UserRole
from ordering_backend.app.models.status_vocabulary import status_in
from ordering_backend.app.services.audit import AuditAction, log_event, log_event_best_effort
from ordering_backend.app.services.invalidation import notify_change

logger = logging.getLogger(__name__)


class LedgerService:

    @staticmethod
    async def get_relationship(
        db: AsyncSession, tenant_id: int, customer_id: int
    ) -> CustomerRelationship:
        """
        Fetch the ledger row of a customer with a tenant.

        Raises:
            NotFoundError: No ledger row exists yet
        """
        relationship = await reload(
            db,
            CustomerRelationship,
            CustomerRelationship.tenant_id == tenant_id,
            CustomerRelationship.customer_id == customer_id,
        )
        if relationship is None:
            raise NotFoundError("Customer relationship", customer_id)
        return relationship

    @staticmethod
    async def check_credit(db: AsyncSession, tenant_id: int, customer_id: int) -> dict:
        """Read the credit position. available = max(0, limit - debt)."""
        relationship = await LedgerService.get_relationship(db, tenant_id, customer_id)
        return {
            "customer_id": customer_id,
            "credit_limit": relationship.credit_limit,
            "current_debt": relationship.current_debt,
            "available": max(ZERO, relationship.credit_limit - relationship.current_debt),
            "status": relationship.status,
            "payment_terms_days": relationship.payment_terms_days,
        }

    @staticmethod
    async def set_credit_limit(
        db: AsyncSession,
        tenant_id: int,
        customer_id: int,
        new_limit: Decimal,
        actor_id: Optional[int] = None,
    ) -> CustomerRelationship:
        """
        Overwrite the credit limit. Creates the ledger row on first use.

        Raises:
            DomainValidationError: Negative limit
            NotFoundError: Unknown customer
        """
        if new_limit is not None:
            new_limit = to_money(new_limit)
        if new_limit is None or new_limit < 0:
            raise DomainValidationError(
                "Credit limit must be zero or positive", {"credit_limit": new_limit}
            )

        relationship = await LedgerService._ensure_relationship(db, tenant_id, customer_id)
        previous = relationship.credit_limit

        await conditional_update(
            db,
            CustomerRelationship,
            [CustomerRelationship.id == relationship.id],
            {"credit_limit": new_limit},
        )
        relationship = await reload(db, CustomerRelationship, CustomerRelationship.id == relationship.id)

        await log_event(
            db,
            AuditAction.CREDIT_LIMIT_CHANGED,
            tenant_id=tenant_id,
            actor_id=actor_id,
            entity_type="ledger",
            entity_id=relationship.id,
            metadata={"customer_id": customer_id, "from": money_json(previous), "to": money_json(new_limit)},
        )
        await notify_change(tenant_id, "ledger", relationship.id, "credit_limit_changed")
        return relationship

    @staticmethod
    async def apply_payment(
        db: AsyncSession,
        tenant_id: int,
        customer_id: int,
        amount: Decimal,
        payment_method: str,
        collector_id: int,
        order_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Payment:
        """
        Record a payment and decrement the customer's debt.

        Flow:
        1. Validate amount, ledger status and the optional order (no writes yet)
        2. Insert the Payment row
        3. Conditional decrement: current_debt -= amount WHERE current_debt >= amount
        4. Best-effort: reduce the order's balance_due and payment_status

        If step 3 fails the Payment row is orphaned. That gap is logged and
        audited as PAYMENT_ORPHANED with the payment id, never repaired here.

        Raises:
            DomainValidationError: amount <= 0 or order of another customer
            NotFoundError: No ledger row, or order not in this tenant
            InvalidStateError: Ledger relationship is not active
            AmountExceedsDebtError: amount > current_debt
            InternalError: Debt decrement failed after the payment was stored
        """
        # 1. Validation
        if amount is not None:
            amount = to_money(amount)
        if amount is None or amount <= 0:
            raise DomainValidationError("Payment amount must be positive", {"amount": amount})

        relationship = await LedgerService.get_relationship(db, tenant_id, customer_id)

        if relationship.status != RelationshipStatus.ACTIVE:
            raise InvalidStateError(
                f"Customer relationship is {relationship.status.value}",
                {"customer_id": customer_id, "status": relationship.status.value},
            )

        if amount > relationship.current_debt:
            raise AmountExceedsDebtError(amount, relationship.current_debt)

        if order_id is not None:
            order = await reload(db, Order, Order.id == order_id, Order.tenant_id == tenant_id)
            if order is None:
                raise NotFoundError("Order", order_id)
            if order.customer_id != customer_id:
                raise DomainValidationError(
                    "Order belongs to a different customer",
                    {"order_id": order_id, "customer_id": customer_id},
                )

        # 2. Insert payment
        payment = await insert_row(db, Payment(
            tenant_id=tenant_id,
            customer_id=customer_id,
            order_id=order_id,
            amount=amount,
            payment_method=payment_method,
            notes=notes,
            created_by=collector_id,
            payment_date=datetime.now(timezone.utc).date(),
        ))
        payment_id = payment.id
        relationship_id = relationship.id

        # 3. Decrement debt
        try:
            decremented = await conditional_update(
                db,
                CustomerRelationship,
                [
                    CustomerRelationship.id == relationship_id,
                    CustomerRelationship.current_debt >= amount,
                    status_in(CustomerRelationship.status, RelationshipStatus, RelationshipStatus.ACTIVE),
                ],
                {"current_debt": func.round(CustomerRelationship.current_debt - amount, 2)},
            )
        except SQLAlchemyError:
            logger.exception("Debt decrement failed for payment %s", payment_id)
            await LedgerService._record_orphan(
                db, payment_id, tenant_id, customer_id, collector_id, amount, "decrement_error"
            )
            raise InternalError(
                "Payment recorded but the ledger could not be updated",
                {"payment_id": payment_id},
            )

        if not decremented:
            await LedgerService._record_orphan(
                db, payment_id, tenant_id, customer_id, collector_id, amount, "debt_changed"
            )
            relationship = await reload(db, CustomerRelationship, CustomerRelationship.id == relationship_id)
            raise AmountExceedsDebtError(
                amount, relationship.current_debt, {"payment_id": payment_id}
            )

        # 4. Order balance
        if order_id is not None:
            await LedgerService._apply_to_order(db, order_id, amount)

        await log_event(
            db,
            AuditAction.PAYMENT_APPLIED,
            tenant_id=tenant_id,
            actor_id=collector_id,
            entity_type="payment",
            entity_id=payment_id,
            metadata={
                "customer_id": customer_id,
                "amount": money_json(amount),
                "method": payment_method,
                "order_id": order_id,
            },
        )
        await notify_change(tenant_id, "ledger", relationship_id, "payment_applied")
        return await reload(db, Payment, Payment.id == payment_id)

    @staticmethod
    async def post_order_debt(db: AsyncSession, order: Order, actor_id: Optional[int] = None) -> bool:
        """
        Add an approved order's balance to the customer's debt.

        Idempotent through the order's debt_posted flag: the flag is flipped
        first and flipped back if the ledger increment fails.

        Returns:
            True if debt was posted by this call, False if already posted or nothing owed

        Raises:
            InternalError: Flag write or ledger increment failed (flag restored when possible)
        """
        order_id, tenant_id, customer_id = order.id, order.tenant_id, order.customer_id
        amount = to_money(order.balance_due or 0)
        if amount <= 0:
            return False

        try:
            flipped = await conditional_update(
                db, Order, [Order.id == order_id, Order.debt_posted == False], {"debt_posted": True}
            )
        except SQLAlchemyError:
            logger.exception("Could not mark order %s as posted", order_id)
            await db.rollback()
            raise InternalError("Could not post order debt", {"order_id": order_id})
        if not flipped:
            return False

        relationship_id = None
        incremented = False
        try:
            relationship = await LedgerService._ensure_relationship(db, tenant_id, customer_id)
            relationship_id = relationship.id
            incremented = await conditional_update(
                db,
                CustomerRelationship,
                [CustomerRelationship.id == relationship_id],
                {"current_debt": func.round(CustomerRelationship.current_debt + amount, 2)},
            )
        except (SQLAlchemyError, NotFoundError):
            logger.exception("Debt posting failed for order %s", order_id)
            await db.rollback()

        if not incremented:
            # Compensate: leave the order retryable
            restored = False
            try:
                restored = await conditional_update(
                    db, Order, [Order.id == order_id, Order.debt_posted == True], {"debt_posted": False}
                )
            except SQLAlchemyError:
                logger.exception("Order %s is marked as posted but carries no debt", order_id)
                await db.rollback()
            raise InternalError(
                "Could not post order debt", {"order_id": order_id, "flag_restored": restored}
            )

        await log_event(
            db,
            AuditAction.DEBT_POSTED,
            tenant_id=tenant_id,
            actor_id=actor_id,
            entity_type="order",
            entity_id=order_id,
            metadata={"customer_id": customer_id, "amount": money_json(amount)},
        )
        await notify_change(tenant_id, "ledger", relationship_id, "debt_posted")
        return True

    @staticmethod
    async def reverse_order_debt(db: AsyncSession, order: Order, actor_id: Optional[int] = None) -> bool:
        """
        Remove a cancelled order's unpaid balance from the customer's debt.

        Returns:
            True if reversed (or nothing to reverse), False if the ledger could not be updated.
            A failure is audited as DEBT_REVERSAL_FAILED and the flag stays set.
        """
        order_id, tenant_id, customer_id = order.id, order.tenant_id, order.customer_id
        amount = to_money(order.balance_due or 0)

        try:
            flipped = await conditional_update(
                db, Order, [Order.id == order_id, Order.debt_posted == True], {"debt_posted": False}
            )
            if flipped:
                order = await reload(db, Order, Order.id == order_id)
                amount = to_money(order.balance_due or 0)
        except SQLAlchemyError:
            logger.exception("Could not clear the posted flag of order %s", order_id)
            await db.rollback()
            await LedgerService._record_reversal_failure(
                db, order_id, tenant_id, customer_id, actor_id, amount, "flag_error"
            )
            return False

        if not flipped or amount <= 0:
            return True

        reversed_ok = False
        try:
            reversed_ok = await conditional_update(
                db,
                CustomerRelationship,
                [
                    CustomerRelationship.tenant_id == tenant_id,
                    CustomerRelationship.customer_id == customer_id,
                    CustomerRelationship.current_debt >= amount,
                ],
                {"current_debt": func.round(CustomerRelationship.current_debt - amount, 2)},
            )
        except SQLAlchemyError:
            logger.exception("Debt reversal failed for order %s", order_id)
            await db.rollback()

        if not reversed_ok:
            await LedgerService._record_reversal_failure(
                db, order_id, tenant_id, customer_id, actor_id, amount, "decrement_failed"
            )
            try:
                await conditional_update(
                    db, Order, [Order.id == order_id, Order.debt_posted == False], {"debt_posted": True}
                )
            except SQLAlchemyError:
                logger.exception("Order %s carries debt but is no longer marked as posted", order_id)
                await db.rollback()
            return False

        await log_event(
            db,
            AuditAction.DEBT_REVERSED,
            tenant_id=tenant_id,
            actor_id=actor_id,
            entity_type="order",
            entity_id=order_id,
            metadata={"customer_id": customer_id, "amount": money_json(amount)},
        )
        return True

    @staticmethod
    async def driver_collected_payments(db: AsyncSession, route: Route) -> list[Payment]:
        """
        Payments collected in the field for a route.

        A payment is field-collected when its collector is the route's driver
        and its order is one of the route's stops. There is no flag column.
        """
        route_orders = select(RouteStop.order_id).where(RouteStop.route_id == route.id)
        result = await db.execute(
            select(Payment)
            .where(
                Payment.tenant_id == route.tenant_id,
                Payment.created_by == route.driver_id,
                Payment.order_id.in_(route_orders),
            )
            .order_by(Payment.id)
        )
        return result.scalars().all()

    # Internal steps

    @staticmethod
    async def _ensure_relationship(
        db: AsyncSession, tenant_id: int, customer_id: int
    ) -> CustomerRelationship:
        """Get the ledger row, creating it when the customer first transacts."""
        relationship = await reload(
            db,
            CustomerRelationship,
            CustomerRelationship.tenant_id == tenant_id,
            CustomerRelationship.customer_id == customer_id,
        )
        if relationship is not None:
            return relationship

        customer = await db.get(User, customer_id)
        if customer is None or customer.role != UserRole.CUSTOMER:
            raise NotFoundError("Customer", customer_id)

        try:
            return await insert_row(db, CustomerRelationship(
                tenant_id=tenant_id,
                customer_id=customer_id,
                credit_limit=ZERO,
                current_debt=ZERO,
                payment_terms_days=settings.default_payment_terms_days,
                status=RelationshipStatus.ACTIVE,
            ))
        except IntegrityError:
            # Created concurrently
            await db.rollback()
            return await LedgerService.get_relationship(db, tenant_id, customer_id)

    @staticmethod
    async def _apply_to_order(db: AsyncSession, order_id: int, amount: Decimal) -> bool:
        """Reduce an order's balance_due. Guarded on the balance that was read."""
        try:
            order = await reload(db, Order, Order.id == order_id)
            remaining = max(ZERO, to_money(order.balance_due - amount))
            applied = await conditional_update(
                db,
                Order,
                [Order.id == order_id, Order.balance_due == order.balance_due],
                {
                    "balance_due": remaining,
                    "payment_status": PaymentStatus.PAID if remaining == 0 else PaymentStatus.PARTIAL,
                },
            )
        except SQLAlchemyError:
            logger.exception("Order %s balance not updated for payment", order_id)
            await db.rollback()
            return False

        if not applied:
            logger.warning("Order %s balance changed concurrently; payment not reflected on order", order_id)
        return applied

    @staticmethod
    async def _record_orphan(
        db: AsyncSession,
        payment_id: int,
        tenant_id: int,
        customer_id: int,
        collector_id: int,
        amount: Decimal,
        reason: str,
    ) -> None:
        logger.error(
            "Orphaned payment %s: amount %s for customer %s was stored without a debt decrement (%s)",
            payment_id, amount, customer_id, reason,
        )
        await log_event_best_effort(
            db,
            AuditAction.PAYMENT_ORPHANED,
            tenant_id=tenant_id,
            actor_id=collector_id,
            entity_type="payment",
            entity_id=payment_id,
            metadata={"customer_id": customer_id, "amount": money_json(amount), "reason": reason},
        )

    @staticmethod
    async def _record_reversal_failure(
        db: AsyncSession,
        order_id: int,
        tenant_id: int,
        customer_id: int,
        actor_id: Optional[int],
        amount: Decimal,
        reason: str,
    ) -> None:
        logger.error("Debt of order %s (%s) was not reversed (%s)", order_id, amount, reason)
        await log_event_best_effort(
            db,
            AuditAction.DEBT_REVERSAL_FAILED,
            tenant_id=tenant_id,
            actor_id=actor_id,
            entity_type="order",
            entity_id=order_id,
            metadata={"customer_id": customer_id, "amount": money_json(amount), "reason": reason},
        )
