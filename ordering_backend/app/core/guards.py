"""
Security guards for role-based and tenant-based access control.

Provides dependencies for protecting dashboard and driver endpoints.
"""

from typing import List
from fastapi import Depends, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ordering_backend.app.db.session import get_db
from ordering_backend.app.models.enums import UserRole, DASHBOARD_ROLES
from ordering_backend.app.core.dependencies import get_current_user
from ordering_backend.app.core.exceptions import ForbiddenError
from ordering_backend.app.services.tenancy import resolve_tenant


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/routes/{route_id}/start")
        async def start(current_user: dict = Depends(require_role([UserRole.DRIVER]))):
            ...

    Args:
        allowed_roles: List of UserRole enums that are allowed to access the endpoint

    Returns:
        FastAPI dependency function that validates user role

    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        try:
            user_role = UserRole(current_user.get("role"))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role"
            )

        if user_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_user

    return role_checker


async def get_dashboard_context(
    slug: str = Path(..., description="Tenant slug"),
    current_user: dict = Depends(require_role(DASHBOARD_ROLES)),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    Resolve the tenant from the slug and require the actor to be its staff.

    Returns:
        Actor dict extended with the resolved tenant_id and tenant_name

    Raises:
        NotFoundError: Unknown tenant slug
        ForbiddenError: Actor works for a different tenant
    """
    tenant = await resolve_tenant(db, slug)

    if current_user.get("tenant_id") != tenant.id:
        raise ForbiddenError("You are not a member of this tenant")

    return {**current_user, "tenant_id": tenant.id, "tenant_name": tenant.name}


async def get_driver_context(
    current_user: dict = Depends(require_role([UserRole.DRIVER]))
) -> dict:
    """
    Require a driver that belongs to a tenant.

    Route and stop lookups are scoped to that tenant.
    """
    if current_user.get("tenant_id") is None:
        raise ForbiddenError("Driver is not assigned to a tenant")
    return current_user
