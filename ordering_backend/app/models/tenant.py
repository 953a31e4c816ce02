"""
Tenant (distributor) database model.

Every order, route, payment and ledger row is scoped to exactly one tenant.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from ordering_backend.app.db.session import Base


class Tenant(Base):
    """
    Tenant model.

    An independent distributor operating its own catalog, orders and routes.
    Resolved from the URL slug on every dashboard request.
    """
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    slug = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(200), nullable=False)

    # Status (soft delete)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Tenant(id={self.id}, slug='{self.slug}', active={self.is_active})>"
