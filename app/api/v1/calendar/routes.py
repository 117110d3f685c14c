"""Content calendar API endpoints."""

import logging
from datetime import date

from fastapi import APIRouter, HTTPException, Query, status

from app.api.v1.calendar.constants import SCHEDULED_RUN_NOT_FOUND_DETAIL
from app.api.v1.dependencies import get_org_site
from app.core.exceptions import ValidationError
from app.dependencies import CurrentOrganization, DbSession
from app.schemas.calendar import ScheduledRunCreateRequest, ScheduledRunResponse
from app.services.content_calendar import (
    create_scheduled_runs,
    delete_pending_run,
    list_scheduled_runs,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/{site_id}",
    response_model=list[ScheduledRunResponse],
    summary="List scheduled runs",
    description="Return a site's scheduled runs for one month (`YYYY-MM`), oldest first.",
)
async def list_runs(
    site_id: str,
    current_org: CurrentOrganization,
    session: DbSession,
    month: str = Query(..., description="Month in YYYY-MM format"),
) -> list[ScheduledRunResponse]:
    """List scheduled runs for a month."""
    await get_org_site(site_id, current_org, session)

    try:
        runs = await list_scheduled_runs(session, site_id, month)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message,
        ) from e

    return [ScheduledRunResponse.model_validate(run) for run in runs]


@router.post(
    "/{site_id}",
    response_model=list[ScheduledRunResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Schedule runs",
    description=(
        "Create pending scheduled runs for the given dates. Dates that already have a run "
        "are left unchanged and are not returned."
    ),
)
async def create_runs(
    site_id: str,
    request: ScheduledRunCreateRequest,
    current_org: CurrentOrganization,
    session: DbSession,
) -> list[ScheduledRunResponse]:
    """Bulk-create scheduled runs."""
    await get_org_site(site_id, current_org, session)

    runs = await create_scheduled_runs(session, site_id, request.dates)
    return [ScheduledRunResponse.model_validate(run) for run in runs]


@router.delete(
    "/{site_id}/{scheduled_date}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a scheduled run",
    description="Delete a pending scheduled run. Runs that were already processed are kept.",
)
async def delete_run(
    site_id: str,
    scheduled_date: date,
    current_org: CurrentOrganization,
    session: DbSession,
) -> None:
    """Delete a pending scheduled run."""
    await get_org_site(site_id, current_org, session)

    if not await delete_pending_run(session, site_id, scheduled_date):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=SCHEDULED_RUN_NOT_FOUND_DETAIL,
        )
    logger.info(
        "Scheduled run deleted",
        extra={"site_id": site_id, "scheduled_date": scheduled_date.isoformat()},
    )
