"""
Tenant resolver.

Resolves the distributor slug from the URL into a tenant scope.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ordering_backend.app.core.exceptions import NotFoundError
from ordering_backend.app.models.tenant import Tenant


async def resolve_tenant(db: AsyncSession, slug: str) -> Tenant:
    """
    Resolve an active tenant by slug.

    Raises:
        NotFoundError: If no active tenant has this slug
    """
    result = await db.execute(
        select(Tenant).where(Tenant.slug == slug, Tenant.is_active == True)
    )
    tenant = result.scalar_one_or_none()
    if tenant is None:
        raise NotFoundError("Tenant", slug)
    return tenant
