"""
Order database model.

The order record store: lifecycle status and monetary totals.
Mutated only through conditional updates guarded by the current status.
"""

from sqlalchemy import Column, Integer, String, Numeric, Boolean, ForeignKey, DateTime, Text, Enum
from sqlalchemy.sql import func
from ordering_backend.app.db.session import Base
from ordering_backend.app.models.order_enums import OrderStatus, PaymentStatus, DeliveryType
from ordering_backend.app.models.status_vocabulary import NormalizedStatus


class Order(Base):
    """
    Order model.

    Created at checkout (outside this service) in PENDING status.
    `current_route_id` names the route holding the claim while the order is
    PROCESSING; it is cleared when the route returns the order to the pool.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_number = Column(String(50), nullable=True, index=True)

    # Ownership
    tenant_id = Column(Integer, ForeignKey('tenants.id'), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    delivery_type = Column(Enum(DeliveryType), default=DeliveryType.DELIVERY, nullable=False)

    # Lifecycle
    status = Column(NormalizedStatus(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    current_route_id = Column(Integer, ForeignKey('routes.id'), nullable=True, index=True)

    # Financials
    total_amount = Column(Numeric(12, 2), nullable=False)
    balance_due = Column(Numeric(12, 2), nullable=False)
    payment_status = Column(NormalizedStatus(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    debt_posted = Column(Boolean, default=False, nullable=False)

    # Review
    invoice_number = Column(String(100), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approved_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Delivery
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    delivered_by = Column(Integer, ForeignKey('users.id'), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Order(id={self.id}, tenant={self.tenant_id}, status='{self.status.value}', total={self.total_amount})>"
