"""
Payment database model.

Append-only financial audit trail.
"""

from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, Date, String, Text, CheckConstraint
from sqlalchemy.sql import func
from ordering_backend.app.db.session import Base


class Payment(Base):
    """
    Payment model.

    Immutable record of money received from a customer.
    NO updates or deletions allowed.
    Field collections are the rows whose `created_by` is the driver of the
    route carrying the order; there is no separate flag.
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Linkage
    tenant_id = Column(Integer, ForeignKey('tenants.id'), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey('orders.id'), nullable=True, index=True)

    # Financials
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(50), nullable=False)
    notes = Column(Text, nullable=True)

    # Collector (staff member or driver)
    created_by = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    payment_date = Column(Date, nullable=False)

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_payments_amount_positive'),
    )

    def __repr__(self):
        return f"<Payment(id={self.id}, customer={self.customer_id}, amount={self.amount})>"
