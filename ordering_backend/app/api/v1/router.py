"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from ordering_backend.app.api.v1.endpoints import (
    dashboard_orders, dashboard_routes, finance,
    driver_routes
)

router = APIRouter()

# Dashboard (tenant staff)
router.include_router(dashboard_orders.router)
router.include_router(dashboard_routes.router)
router.include_router(finance.router)

# Driver app
router.include_router(driver_routes.router)
