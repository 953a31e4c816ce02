"""
Order transition schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from ordering_backend.app.models.order_enums import OrderStatus, PaymentStatus, DeliveryType


class OrderApproveRequest(BaseModel):
    """Schema for approving a pending order."""
    invoice_number: Optional[str] = Field(None, max_length=100)


class OrderRejectRequest(BaseModel):
    """Schema for rejecting or cancelling an order."""
    reason: Optional[str] = Field(None, max_length=500)


class OrderResponse(BaseModel):
    """Schema for displaying an order."""
    id: int
    order_number: Optional[str]
    tenant_id: int
    customer_id: int
    delivery_type: DeliveryType
    status: OrderStatus
    current_route_id: Optional[int]
    total_amount: float
    balance_due: float
    payment_status: PaymentStatus
    debt_posted: bool
    invoice_number: Optional[str]
    approved_at: Optional[datetime]
    approved_by: Optional[int]
    cancellation_reason: Optional[str]
    delivered_at: Optional[datetime]
    delivered_by: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class OrderTransitionResponse(BaseModel):
    """Response after an order transition."""
    success: bool = True
    order: OrderResponse
    ledger_synced: bool  # False when the ledger side effect must be retried
