"""
Route, stop and reconciliation schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional, List
from ordering_backend.app.models.order_enums import OrderStatus
from ordering_backend.app.models.route_enums import (
    RouteStatus,
    RouteStopStatus,
    StopOutcome,
    StopResolution,
)


class RouteCreate(BaseModel):
    """Schema for creating a route from approved orders."""
    driver_id: int
    order_ids: List[int] = Field(..., min_length=1, description="Visiting order; position becomes sequence_order")
    planned_date: date
    notes: Optional[str] = Field(None, max_length=1000)


class RouteResponse(BaseModel):
    """Schema for displaying a route."""
    id: int
    route_number: str
    tenant_id: int
    driver_id: int
    created_by: Optional[int]
    status: RouteStatus
    planned_date: date
    notes: Optional[str]
    total_stops: int
    created_at: datetime
    started_at: Optional[datetime]
    finished_at: Optional[datetime]

    class Config:
        from_attributes = True


class RouteStopResponse(BaseModel):
    """Schema for displaying a route stop."""
    id: int
    route_id: int
    order_id: int
    sequence_order: int
    status: RouteStopStatus
    actual_arrival_time: Optional[datetime]
    actual_departure_time: Optional[datetime]
    delivered_by: Optional[int]
    failure_reason: Optional[str]

    class Config:
        from_attributes = True


class RouteCreateResponse(BaseModel):
    """Response after creating a route."""
    success: bool = True
    route: RouteResponse
    stops: List[RouteStopResponse]


class RouteStartResponse(BaseModel):
    """Response after starting a route."""
    success: bool = True
    route: RouteResponse


class StopReconciliationResult(BaseModel):
    """What finishing the route did with one stop's order."""
    stop_id: int
    order_id: int
    sequence_order: int
    stop_status: RouteStopStatus
    order_status: OrderStatus  # Target implied by the stop
    resolution: StopResolution


class FinishRouteResponse(BaseModel):
    """Response after finishing a route."""
    success: bool = True
    route: RouteResponse
    already_finished: bool
    stops: List[StopReconciliationResult]


class StopOutcomeRequest(BaseModel):
    """Schema for a driver reporting a stop outcome."""
    outcome: StopOutcome
    failure_reason: Optional[str] = Field(None, max_length=500)


class StopOutcomeResponse(BaseModel):
    """Response after reporting a stop outcome."""
    success: bool = True
    stop: RouteStopResponse
