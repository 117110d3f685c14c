"""Shared dependency for site ownership access checks."""

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import SiteNotFoundError
from app.dependencies import CurrentOrganization, DbSession
from app.models.site import Site

SITE_NOT_FOUND_DETAIL = "Site not found"


async def load_org_site(session: AsyncSession, site_id: str, organization_id: str) -> Site:
    """Load a site owned by `organization_id`; other organizations' sites are not found."""
    result = await session.execute(
        select(Site).where(
            Site.id == site_id,
            Site.organization_id == organization_id,
        )
    )
    site = result.scalar_one_or_none()
    if site is None:
        raise SiteNotFoundError(site_id)
    return site


async def get_org_site(
    site_id: str,
    current_org: CurrentOrganization,
    session: DbSession,
) -> Site:
    """Return a site only when it belongs to the caller's organization."""
    try:
        return await load_org_site(session, site_id, current_org.organization_id)
    except SiteNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=SITE_NOT_FOUND_DETAIL,
        ) from e
