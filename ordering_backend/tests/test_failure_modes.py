"""
Failure Injection Tests.

Validates that partial failures are surfaced, audited and recoverable.
"""

import json
import pytest
from unittest.mock import AsyncMock
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from ordering_backend.app.core.exceptions import AmountExceedsDebtError, InternalError
from ordering_backend.app.domain.ledger import ledger_service
from ordering_backend.app.domain.ledger.ledger_service import LedgerService
from ordering_backend.app.domain.orders.transition_gateway import OrderTransitionGateway
from ordering_backend.app.models.customer_relationship import CustomerRelationship
from ordering_backend.app.models.order import Order
from ordering_backend.app.models.order_enums import OrderStatus
from ordering_backend.app.models.payment import Payment
from ordering_backend.app.services.audit import AuditAction, get_audit_trail
from ordering_backend.app.services.invalidation import notify_change, cache_key


def failing_for(model, real, values_match=None):
    """conditional_update that raises for one model and passes the rest through."""
    async def _update(db, target, where, values):
        if target is model and (values_match is None or values == values_match):
            raise OperationalError("UPDATE", {}, ConnectionResetError("connection reset"))
        return await real(db, target, where, values)
    return _update


# TEST 1: Invalidation hook never blocks a transition
@pytest.mark.asyncio
async def test_redis_outage_does_not_block_approval(db_session, tenant, staff, make_order, mock_redis, mocker):
    order = await make_order(status=OrderStatus.PENDING)
    mocker.patch.object(mock_redis, "publish", new=AsyncMock(side_effect=RedisError("Connection refused")))

    result = await OrderTransitionGateway.approve(db_session, tenant.id, order.id, staff.id)

    assert result["order"].status == OrderStatus.APPROVED
    assert result["ledger_synced"] is True


@pytest.mark.asyncio
async def test_notify_change_reports_failure(mock_redis, mocker):
    mocker.patch.object(mock_redis, "delete", new=AsyncMock(side_effect=ConnectionRefusedError()))

    assert await notify_change(1, "order", 7, "order_approved") is False
    assert mock_redis.published == []


@pytest.mark.asyncio
async def test_notify_change_publishes_and_drops_cache(mock_redis):
    await mock_redis.set(cache_key(3, "order", 7), "cached")
    await mock_redis.set(cache_key(3, "order"), "cached list")

    assert await notify_change(3, "order", 7, "order_approved") is True

    assert mock_redis.store == {}
    channel, message = mock_redis.published[0]
    assert channel == "ordering:events:3"
    event = json.loads(message)
    assert event["entity_type"] == "order"
    assert event["entity_id"] == 7
    assert event["event"] == "order_approved"
    assert "at" in event


# TEST 2: Orphaned payments
@pytest.mark.asyncio
async def test_decrement_failure_orphans_payment(session_factory, db_session, tenant, customer, staff, make_ledger, mocker):
    await make_ledger(current_debt=200)
    mocker.patch.object(
        ledger_service, "conditional_update",
        new=failing_for(CustomerRelationship, ledger_service.conditional_update),
    )

    async with session_factory() as db:
        with pytest.raises(InternalError) as exc:
            await LedgerService.apply_payment(db, tenant.id, customer.id, 50, "office", staff.id)
    payment_id = exc.value.details["payment_id"]

    # Payment stored, debt untouched, gap audited
    payment = (await db_session.execute(select(Payment).where(Payment.id == payment_id))).scalar_one()
    assert payment.amount == 50

    ledger = await LedgerService.get_relationship(db_session, tenant.id, customer.id)
    assert ledger.current_debt == 200

    events = await get_audit_trail(db_session, tenant.id, action=AuditAction.PAYMENT_ORPHANED)
    assert len(events) == 1
    assert events[0].entity_id == payment_id
    assert events[0].meta_data["reason"] == "decrement_error"


@pytest.mark.asyncio
async def test_concurrent_collection_orphans_payment(session_factory, db_session, tenant, customer, staff, make_ledger, mocker):
    """Another collector drains the debt between validation and decrement."""
    ledger = await make_ledger(current_debt=100)
    ledger_id = ledger.id
    real_insert = ledger_service.insert_row

    async def insert_then_race(db, row):
        stored = await real_insert(db, row)
        await ledger_service.conditional_update(
            db, CustomerRelationship, [CustomerRelationship.id == ledger_id], {"current_debt": 20}
        )
        return stored

    mocker.patch.object(ledger_service, "insert_row", new=insert_then_race)

    async with session_factory() as db:
        with pytest.raises(AmountExceedsDebtError) as exc:
            await LedgerService.apply_payment(db, tenant.id, customer.id, 80, "office", staff.id)
    assert exc.value.details["current_debt"] == 20
    assert "payment_id" in exc.value.details

    ledger = await LedgerService.get_relationship(db_session, tenant.id, customer.id)
    assert ledger.current_debt == 20

    events = await get_audit_trail(db_session, tenant.id, action=AuditAction.PAYMENT_ORPHANED)
    assert events[0].meta_data["reason"] == "debt_changed"


# TEST 3: Order debt posting
@pytest.mark.asyncio
async def test_post_debt_failure_restores_flag(session_factory, db_session, tenant, customer, staff, make_ledger, make_order, mocker):
    await make_ledger(current_debt=0)
    order = await make_order(total=75)
    order_id = order.id
    mocker.patch.object(
        ledger_service, "conditional_update",
        new=failing_for(CustomerRelationship, ledger_service.conditional_update),
    )

    async with session_factory() as db:
        fresh = await db.get(Order, order_id)
        with pytest.raises(InternalError):
            await LedgerService.post_order_debt(db, fresh, staff.id)
    mocker.stopall()

    await db_session.refresh(order)
    assert order.debt_posted is False

    # Retry succeeds once the store recovers
    assert await LedgerService.post_order_debt(db_session, order, staff.id) is True
    ledger = await LedgerService.get_relationship(db_session, tenant.id, customer.id)
    assert ledger.current_debt == 75


@pytest.mark.asyncio
async def test_reverse_debt_failure_is_audited(session_factory, db_session, tenant, customer, staff, make_ledger, make_order):
    ledger = await make_ledger(current_debt=0)
    order = await make_order(total=120)
    await LedgerService.post_order_debt(db_session, order, staff.id)

    # Payments recorded against other orders leave less debt than this order's balance
    await ledger_service.conditional_update(
        db_session, CustomerRelationship, [CustomerRelationship.id == ledger.id], {"current_debt": 50}
    )

    order_id = order.id
    async with session_factory() as db:
        fresh = await db.get(Order, order_id)
        assert await LedgerService.reverse_order_debt(db, fresh, staff.id) is False

    await db_session.refresh(order)
    assert order.debt_posted is True

    ledger = await LedgerService.get_relationship(db_session, tenant.id, customer.id)
    assert ledger.current_debt == 50

    events = await get_audit_trail(db_session, tenant.id, action=AuditAction.DEBT_REVERSAL_FAILED)
    assert len(events) == 1
    assert events[0].entity_id == order_id


# TEST 4: debt_posted flag writes
@pytest.mark.asyncio
async def test_approve_survives_flag_write_failure(session_factory, db_session, tenant, customer, staff, make_ledger, make_order, mocker):
    await make_ledger(current_debt=0)
    order = await make_order(status=OrderStatus.PENDING, total=80)
    order_id = order.id
    mocker.patch.object(
        ledger_service, "conditional_update",
        new=failing_for(Order, ledger_service.conditional_update),
    )

    async with session_factory() as db:
        result = await OrderTransitionGateway.approve(db, tenant.id, order_id, staff.id)
        status, synced = result["order"].status, result["ledger_synced"]
    mocker.stopall()

    assert status == OrderStatus.APPROVED
    assert synced is False

    await db_session.refresh(order)
    assert order.debt_posted is False
    ledger = await LedgerService.get_relationship(db_session, tenant.id, customer.id)
    assert ledger.current_debt == 0

    # Posting is retryable
    assert await LedgerService.post_order_debt(db_session, order, staff.id) is True
    ledger = await LedgerService.get_relationship(db_session, tenant.id, customer.id)
    assert ledger.current_debt == 80


@pytest.mark.asyncio
async def test_post_debt_reports_unrestored_flag(session_factory, tenant, customer, staff, make_ledger, make_order, mocker):
    await make_ledger(current_debt=0)
    order_id = (await make_order(total=45)).id
    real = ledger_service.conditional_update
    mocker.patch.object(
        ledger_service, "conditional_update",
        new=failing_for(Order, failing_for(CustomerRelationship, real), {"debt_posted": False}),
    )

    async with session_factory() as db:
        fresh = await db.get(Order, order_id)
        with pytest.raises(InternalError) as exc:
            await LedgerService.post_order_debt(db, fresh, staff.id)

    assert exc.value.details == {"order_id": order_id, "flag_restored": False}


@pytest.mark.asyncio
async def test_reject_survives_flag_write_failure(session_factory, db_session, tenant, customer, staff, make_ledger, make_order, mocker):
    await make_ledger(current_debt=0)
    order = await make_order(status=OrderStatus.PENDING, total=60)
    order_id = order.id
    await OrderTransitionGateway.approve(db_session, tenant.id, order_id, staff.id)
    mocker.patch.object(
        ledger_service, "conditional_update",
        new=failing_for(Order, ledger_service.conditional_update),
    )

    async with session_factory() as db:
        result = await OrderTransitionGateway.reject(db, tenant.id, order_id, staff.id, "Customer called")
        status, synced = result["order"].status, result["ledger_synced"]
    mocker.stopall()

    assert status == OrderStatus.CANCELLED
    assert synced is False

    # Debt and flag stay together so the reversal can be retried
    await db_session.refresh(order)
    assert order.debt_posted is True
    ledger = await LedgerService.get_relationship(db_session, tenant.id, customer.id)
    assert ledger.current_debt == 60

    events = await get_audit_trail(db_session, tenant.id, action=AuditAction.DEBT_REVERSAL_FAILED)
    assert len(events) == 1
    assert events[0].entity_id == order_id
    assert events[0].meta_data["reason"] == "flag_error"
    assert events[0].meta_data["amount"] == "60.00"


@pytest.mark.asyncio
async def test_reverse_debt_survives_flag_restore_failure(session_factory, db_session, tenant, customer, staff, make_ledger, make_order, mocker):
    await make_ledger(current_debt=0)
    order = await make_order(total=30)
    order_id = order.id
    await LedgerService.post_order_debt(db_session, order, staff.id)
    real = ledger_service.conditional_update
    mocker.patch.object(
        ledger_service, "conditional_update",
        new=failing_for(Order, failing_for(CustomerRelationship, real), {"debt_posted": True}),
    )

    async with session_factory() as db:
        fresh = await db.get(Order, order_id)
        assert await LedgerService.reverse_order_debt(db, fresh, staff.id) is False
    mocker.stopall()

    ledger = await LedgerService.get_relationship(db_session, tenant.id, customer.id)
    assert ledger.current_debt == 30

    events = await get_audit_trail(db_session, tenant.id, action=AuditAction.DEBT_REVERSAL_FAILED)
    assert events[0].meta_data["reason"] == "decrement_failed"
