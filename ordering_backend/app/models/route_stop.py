"""
Route Stop database model.

Stops are the delivery points of a route, one per claimed order.
"""

from sqlalchemy import Column, Integer, Text, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from ordering_backend.app.db.session import Base
from ordering_backend.app.models.route_enums import RouteStopStatus
from ordering_backend.app.models.status_vocabulary import NormalizedStatus


class RouteStop(Base):
    """
    Route Stop model.

    Owned by its route; references (does not own) an order.
    The driver's reported outcome lives here until the route is finished.
    """
    __tablename__ = "route_stops"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    route_id = Column(Integer, ForeignKey('routes.id'), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey('orders.id'), nullable=False, index=True)

    # Visiting order within the route (1, 2, 3, ...)
    sequence_order = Column(Integer, nullable=False)

    status = Column(NormalizedStatus(RouteStopStatus), default=RouteStopStatus.PENDING, nullable=False)

    # Execution
    actual_arrival_time = Column(DateTime(timezone=True), nullable=True)
    actual_departure_time = Column(DateTime(timezone=True), nullable=True)
    delivered_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    failure_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('route_id', 'sequence_order', name='uq_route_stops_route_sequence'),
    )

    def __repr__(self):
        return f"<RouteStop(id={self.id}, route_id={self.route_id}, order_id={self.order_id}, seq={self.sequence_order})>"
