"""
Ledger and payment schemas.

Requests take Decimal amounts with at most two places; responses render
money as JSON numbers.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from ordering_backend.app.models.ledger_enums import RelationshipStatus


class PaymentCreate(BaseModel):
    """Schema for recording a payment at the office."""
    customer_id: int
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    payment_method: Optional[str] = Field(None, min_length=1, max_length=50)
    order_id: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=500)


class FieldPaymentCreate(BaseModel):
    """Schema for a driver collecting payment at a stop."""
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    payment_method: Optional[str] = Field(None, min_length=1, max_length=50)
    notes: Optional[str] = Field(None, max_length=500)


class PaymentResponse(BaseModel):
    """Schema for displaying a payment."""
    id: int
    tenant_id: int
    customer_id: int
    order_id: Optional[int]
    amount: float
    payment_method: str
    notes: Optional[str]
    created_by: int
    payment_date: date
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentAppliedResponse(BaseModel):
    """Response after a payment is applied."""
    success: bool = True
    payment: PaymentResponse


class CreditSnapshot(BaseModel):
    """Credit position of a customer with the tenant."""
    customer_id: int
    credit_limit: float
    current_debt: float
    available: float
    status: RelationshipStatus
    payment_terms_days: Optional[int]


class CreditResponse(BaseModel):
    """Response for credit reads and limit changes."""
    success: bool = True
    credit: CreditSnapshot


class CreditLimitUpdate(BaseModel):
    """Schema for overwriting a credit limit."""
    credit_limit: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)


class RouteCollectionsResponse(BaseModel):
    """Payments collected in the field by a route's driver."""
    success: bool = True
    route_id: int
    driver_id: int
    total_collected: float
    payments: List[PaymentResponse]
