"""
Dashboard Finance API Endpoints.

Office payments and customer credit.
"""

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ordering_backend.app.db.session import get_db
from ordering_backend.app.core.config import settings
from ordering_backend.app.core.guards import get_dashboard_context
from ordering_backend.app.domain.ledger.ledger_service import LedgerService
from ordering_backend.app.schemas.ledger import (
    PaymentCreate, PaymentAppliedResponse,
    CreditResponse, CreditLimitUpdate
)

router = APIRouter(prefix="/tenants/{slug}", tags=["Dashboard - Finance"])


@router.post("/finance/payments", response_model=PaymentAppliedResponse, status_code=status.HTTP_201_CREATED)
async def apply_payment(
    payload: PaymentCreate,
    context: dict = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Record a payment received at the office.

    Rejected with ERR_AMOUNT_EXCEEDS_DEBT when larger than the current debt.
    """
    payment = await LedgerService.apply_payment(
        db,
        tenant_id=context["tenant_id"],
        customer_id=payload.customer_id,
        amount=payload.amount,
        payment_method=payload.payment_method or settings.office_payment_method,
        collector_id=context["user_id"],
        order_id=payload.order_id,
        notes=payload.notes,
    )
    return {"success": True, "payment": payment}


@router.get("/customers/{customer_id}/credit", response_model=CreditResponse)
async def get_credit(
    customer_id: int = Path(..., description="Customer user ID"),
    context: dict = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db)
):
    """Credit limit, current debt and available credit."""
    credit = await LedgerService.check_credit(db, context["tenant_id"], customer_id)
    return {"success": True, "credit": credit}


@router.put("/customers/{customer_id}/credit-limit", response_model=CreditResponse)
async def set_credit_limit(
    payload: CreditLimitUpdate,
    customer_id: int = Path(..., description="Customer user ID"),
    context: dict = Depends(get_dashboard_context),
    db: AsyncSession = Depends(get_db)
):
    """Overwrite the customer's credit limit."""
    await LedgerService.set_credit_limit(
        db,
        tenant_id=context["tenant_id"],
        customer_id=customer_id,
        new_limit=payload.credit_limit,
        actor_id=context["user_id"],
    )
    credit = await LedgerService.check_credit(db, context["tenant_id"], customer_id)
    return {"success": True, "credit": credit}
