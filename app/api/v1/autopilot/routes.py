"""Autopilot API endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, status

from app.api.v1.autopilot.constants import (
    CRON_SECRET_NOT_CONFIGURED_DETAIL,
    INVALID_TRIGGER_CREDENTIALS_DETAIL,
    NO_KEYWORD_OPPORTUNITIES_DETAIL,
)
from app.api.v1.dependencies import get_org_site
from app.config import settings
from app.core.exceptions import PipelineError
from app.core.security import verify_cron_secret
from app.dependencies import CurrentOrganization, DbSession
from app.models.site import Site
from app.schemas.autopilot import (
    AutopilotConfigUpdate,
    AutopilotStatusResponse,
    AutopilotTriggerResponse,
    GenerationReport,
    PickedKeywordResponse,
)
from app.services.autopilot import (
    apply_autopilot_config,
    record_generation_started,
    run_autopilot_cycle,
)
from app.services.keyword_ledger import pick_top_keyword

logger = logging.getLogger(__name__)

router = APIRouter()


async def require_cron_secret(
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Validate the scheduler's `Authorization: Bearer <CRON_SECRET>` header."""
    expected = settings.cron_secret
    if not expected:
        if settings.environment == "development":
            return
        logger.error("Autopilot trigger refused: CRON_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=CRON_SECRET_NOT_CONFIGURED_DETAIL,
        )

    if not verify_cron_secret(authorization, expected):
        logger.warning("Autopilot trigger rejected: invalid credentials")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=INVALID_TRIGGER_CREDENTIALS_DETAIL,
        )


def pipeline_conflict(error: PipelineError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=error.message)


@router.post(
    "/trigger",
    response_model=AutopilotTriggerResponse,
    dependencies=[Depends(require_cron_secret)],
    summary="Run one autopilot cycle",
    description=(
        "Called by the periodic scheduler. Claims at most one due site and picks its top "
        "keyword, then processes content calendar rows scheduled for today."
    ),
)
async def trigger_autopilot(session: DbSession) -> AutopilotTriggerResponse:
    """Advance the autopilot by one step."""
    result = await run_autopilot_cycle(session)
    return AutopilotTriggerResponse.model_validate(result)


@router.get(
    "/{site_id}",
    response_model=AutopilotStatusResponse,
    summary="Get autopilot status",
    description="Return the site's autopilot settings and current pipeline state.",
)
async def get_autopilot_status(
    site_id: str,
    current_org: CurrentOrganization,
    session: DbSession,
) -> AutopilotStatusResponse:
    """Get autopilot status for a site."""
    site = await get_org_site(site_id, current_org, session)
    return AutopilotStatusResponse.model_validate(site)


@router.put(
    "/{site_id}",
    response_model=AutopilotStatusResponse,
    summary="Update autopilot settings",
    description=(
        "Partially update autopilot settings. Enabling schedules the next run at the daily "
        "slot; disabling clears it. `clear_pipeline` resets the pipeline to idle."
    ),
)
async def update_autopilot_config(
    site_id: str,
    config: AutopilotConfigUpdate,
    current_org: CurrentOrganization,
    session: DbSession,
) -> AutopilotStatusResponse:
    """Update autopilot settings for a site."""
    site = await get_org_site(site_id, current_org, session)

    try:
        updated: Site = await apply_autopilot_config(
            session,
            site,
            **config.model_dump(exclude_unset=True),
        )
    except PipelineError as e:
        raise pipeline_conflict(e) from e

    return AutopilotStatusResponse.model_validate(updated)


@router.post(
    "/{site_id}/pick-keyword",
    response_model=PickedKeywordResponse,
    summary="Preview the next keyword",
    description="Return the site's top keyword without changing pipeline state.",
)
async def pick_keyword(
    site_id: str,
    current_org: CurrentOrganization,
    session: DbSession,
) -> PickedKeywordResponse:
    """Return the highest-scoring active keyword for a site."""
    await get_org_site(site_id, current_org, session)

    keyword = await pick_top_keyword(session, site_id)
    if keyword is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=NO_KEYWORD_OPPORTUNITIES_DETAIL,
        )
    return PickedKeywordResponse.model_validate(keyword)


@router.post(
    "/{site_id}/generation",
    response_model=AutopilotStatusResponse,
    summary="Report article generation",
    description=(
        "Called by the article generator once an article exists for the claimed keyword. "
        "Moves the pipeline to `generating` and marks the keyword used."
    ),
)
async def report_generation(
    site_id: str,
    report: GenerationReport,
    current_org: CurrentOrganization,
    session: DbSession,
) -> AutopilotStatusResponse:
    """Record that generation started for the site's claimed keyword."""
    site = await get_org_site(site_id, current_org, session)

    try:
        updated = await record_generation_started(
            session,
            site,
            keyword_id=report.keyword_id,
            article_id=report.article_id,
        )
    except PipelineError as e:
        raise pipeline_conflict(e) from e

    return AutopilotStatusResponse.model_validate(updated)
