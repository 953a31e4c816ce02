"""
Customer Relationship (ledger) database model.

Running credit limit and outstanding debt of one customer with one tenant.
"""

from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func
from ordering_backend.app.db.session import Base
from ordering_backend.app.models.ledger_enums import RelationshipStatus
from ordering_backend.app.models.status_vocabulary import NormalizedStatus


class CustomerRelationship(Base):
    """
    Ledger row.

    current_debt = (sum of unpaid order balances posted) - (sum of payments applied).
    Maintained incrementally with conditional arithmetic updates; never
    recomputed from scratch.
    """
    __tablename__ = "customer_relationships"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Parties
    tenant_id = Column(Integer, ForeignKey('tenants.id'), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Financials
    credit_limit = Column(Numeric(12, 2), default=0, nullable=False)
    current_debt = Column(Numeric(12, 2), default=0, nullable=False)
    payment_terms_days = Column(Integer, nullable=True)

    status = Column(NormalizedStatus(RelationshipStatus), default=RelationshipStatus.ACTIVE, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'customer_id', name='uq_customer_relationships_tenant_customer'),
        CheckConstraint('credit_limit >= 0', name='ck_customer_relationships_limit_nonneg'),
        CheckConstraint('current_debt >= 0', name='ck_customer_relationships_debt_nonneg'),
    )

    def __repr__(self):
        return f"<CustomerRelationship(tenant={self.tenant_id}, customer={self.customer_id}, debt={self.current_debt})>"
