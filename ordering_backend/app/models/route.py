"""
Route database model.

Routes are created by dashboard staff from approved orders and executed by one driver.
"""

from sqlalchemy import Column, Integer, String, Text, Date, ForeignKey, DateTime
from sqlalchemy.sql import func
from ordering_backend.app.db.session import Base
from ordering_backend.app.models.route_enums import RouteStatus
from ordering_backend.app.models.status_vocabulary import NormalizedStatus


class Route(Base):
    """
    Route model.

    A route exclusively claims its orders for its lifetime. Its FINISHED
    status is the signal consumers use to stop polling, so it is written
    last during reconciliation.
    """
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    route_number = Column(String(30), unique=True, nullable=False)

    # Ownership
    tenant_id = Column(Integer, ForeignKey('tenants.id'), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey('users.id'), nullable=True)

    # Driver assignment
    driver_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Status
    status = Column(NormalizedStatus(RouteStatus), default=RouteStatus.PLANNED, nullable=False, index=True)

    planned_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)
    total_stops = Column(Integer, default=0, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Route(id={self.id}, number='{self.route_number}', status='{self.status.value}')>"
