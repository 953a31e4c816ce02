"""
User database model.

Staff, drivers and customers are all users; staff and drivers belong to a tenant.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, ForeignKey
from sqlalchemy.sql import func
from ordering_backend.app.db.session import Base
from ordering_backend.app.models.enums import UserRole


class User(Base):
    """
    User model for authentication and tenant membership.

    Customers have no tenant_id: they transact with many tenants and hold
    one ledger row (CustomerRelationship) per tenant.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    full_name = Column(String(200), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    role = Column(Enum(UserRole), default=UserRole.CUSTOMER, nullable=False)

    # Membership - staff and drivers work for one tenant
    tenant_id = Column(Integer, ForeignKey('tenants.id'), index=True, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role.value}', tenant={self.tenant_id})>"
