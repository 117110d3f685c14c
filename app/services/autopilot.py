"""Autopilot pipeline: periodic site claiming, configuration and generation reports.

One trigger invocation advances at most one site:

    Idle --trigger--> AwaitingGeneration(k) --generation report--> Generating(k, a)
      ^                                                                  |
      +------------------------- clear_pipeline -------------------------+

Claiming is a single conditional UPDATE, so overlapping triggers cannot both
claim the same site. Calendar rows due today are processed on every trigger
regardless of the claim outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.clock import as_utc, utcnow
from app.core.exceptions import PipelineTransitionError
from app.models.pipeline_state import (
    AWAITING_GENERATION,
    AwaitingGeneration,
    Generating,
    Idle,
)
from app.models.site import Site
from app.services.content_calendar import process_due_scheduled_runs
from app.services.keyword_ledger import mark_keyword_used, pick_top_keyword

logger = logging.getLogger(__name__)

CADENCE_DAYS = {
    "daily": 1,
    "every_3_days": 3,
    "weekly": 7,
}
DEFAULT_CADENCE_DAYS = 7
MIN_ARTICLES_PER_RUN = 1
MAX_ARTICLES_PER_RUN = 5

NO_SITES_DUE_MESSAGE = "No sites due for autopilot run"
NO_KEYWORDS_MESSAGE = "No keywords available"
CLAIMED_MESSAGE = "Keyword picked, awaiting article generation"
LOST_RACE_MESSAGE = "Site was claimed by another run"
NO_ACTIVE_KEYWORDS_ERROR = (
    "No active keywords found — research keywords or refresh from Search Console first"
)


@dataclass(slots=True)
class AutopilotCycleResult:
    message: str
    claimed: bool = False
    site_id: str | None = None
    keyword_id: str | None = None
    keyword: str | None = None
    scheduled_runs_processed: int = 0


def compute_next_run_at(
    cadence: str | None,
    now: datetime,
    slot_hour: int | None = None,
) -> datetime:
    """Advance by the cadence interval, then snap to the daily UTC slot.

    Unknown cadences fall back to weekly.
    """
    hour = settings.autopilot_slot_hour_utc if slot_hour is None else slot_hour
    days = CADENCE_DAYS.get(cadence or "", DEFAULT_CADENCE_DAYS)
    advanced = as_utc(now) + timedelta(days=days)  # type: ignore[operator]
    return advanced.replace(hour=hour, minute=0, second=0, microsecond=0)


def clamp_articles_per_run(value: int) -> int:
    return min(max(value, MIN_ARTICLES_PER_RUN), MAX_ARTICLES_PER_RUN)


async def find_due_site(session: AsyncSession, now: datetime) -> Site | None:
    """Oldest-due idle site with autopilot enabled, if any."""
    result = await session.execute(
        select(Site)
        .where(
            Site.autopilot_enabled.is_(True),
            Site.pipeline_step.is_(None),
            Site.next_run_at.isnot(None),
            Site.next_run_at <= now,
        )
        .order_by(Site.next_run_at.asc(), Site.id.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def claim_site(
    session: AsyncSession,
    site_id: str,
    keyword_id: str,
    *,
    now: datetime,
    next_run_at: datetime,
) -> bool:
    """Move a due, idle site to AwaitingGeneration in one conditional UPDATE.

    Returns False when another invocation got there first.
    """
    result = await session.execute(
        update(Site)
        .where(
            Site.id == site_id,
            Site.pipeline_step.is_(None),
            Site.autopilot_enabled.is_(True),
            Site.next_run_at <= now,
        )
        .values(
            **AwaitingGeneration(keyword_id=keyword_id).to_columns(),
            last_error=None,
            last_run_at=now,
            next_run_at=next_run_at,
        )
        .returning(Site.id)
        .execution_options(synchronize_session=False)
    )
    return result.scalar_one_or_none() is not None


async def record_no_keywords(
    session: AsyncSession,
    site_id: str,
    *,
    now: datetime,
    next_run_at: datetime,
) -> None:
    """Leave the site idle, note why, and push it to its next slot."""
    await session.execute(
        update(Site)
        .where(Site.id == site_id, Site.pipeline_step.is_(None))
        .values(
            last_error=NO_ACTIVE_KEYWORDS_ERROR,
            last_run_at=now,
            next_run_at=next_run_at,
        )
        .execution_options(synchronize_session=False)
    )


async def _advance_due_site(session: AsyncSession, now: datetime) -> AutopilotCycleResult:
    site = await find_due_site(session, now)
    if site is None:
        logger.info("No sites due for autopilot run")
        return AutopilotCycleResult(message=NO_SITES_DUE_MESSAGE)

    next_run_at = compute_next_run_at(site.autopilot_cadence, now)
    keyword = await pick_top_keyword(session, site.id)

    if keyword is None:
        await record_no_keywords(session, site.id, now=now, next_run_at=next_run_at)
        logger.info(
            "Autopilot found no eligible keyword",
            extra={"site_id": site.id, "next_run_at": next_run_at.isoformat()},
        )
        return AutopilotCycleResult(message=NO_KEYWORDS_MESSAGE, site_id=site.id)

    claimed = await claim_site(
        session,
        site.id,
        keyword.id,
        now=now,
        next_run_at=next_run_at,
    )
    if not claimed:
        logger.info("Autopilot claim lost to a concurrent run", extra={"site_id": site.id})
        return AutopilotCycleResult(message=LOST_RACE_MESSAGE, site_id=site.id)

    logger.info(
        "Autopilot claimed site",
        extra={
            "site_id": site.id,
            "keyword_id": keyword.id,
            "next_run_at": next_run_at.isoformat(),
        },
    )
    return AutopilotCycleResult(
        message=CLAIMED_MESSAGE,
        claimed=True,
        site_id=site.id,
        keyword_id=keyword.id,
        keyword=keyword.keyword,
    )


async def advance_due_site(
    session: AsyncSession,
    *,
    now: datetime | None = None,
) -> AutopilotCycleResult:
    """Advance at most one due site and commit the outcome."""
    result = await _advance_due_site(session, now or utcnow())
    await session.commit()
    return result


async def run_autopilot_cycle(
    session: AsyncSession,
    *,
    now: datetime | None = None,
) -> AutopilotCycleResult:
    """Run one trigger invocation.

    The site outcome is committed before calendar rows are processed so a
    calendar failure cannot undo a claim.
    """
    now = now or utcnow()
    result = await advance_due_site(session, now=now)

    result.scheduled_runs_processed = await process_due_scheduled_runs(session, now=now)
    return result


async def apply_autopilot_config(
    session: AsyncSession,
    site: Site,
    *,
    enabled: bool | None = None,
    cadence: str | None = None,
    iq_level: str | None = None,
    articles_per_run: int | None = None,
    clear_pipeline: bool = False,
    now: datetime | None = None,
) -> Site:
    """Apply a partial settings update to a site.

    Enabling (or changing cadence while enabled) schedules the next slot;
    disabling clears it. `clear_pipeline` returns the site to Idle.
    """
    now = now or utcnow()

    if cadence is not None:
        site.autopilot_cadence = cadence
    if iq_level is not None:
        site.autopilot_iq_level = iq_level
    if articles_per_run is not None:
        site.autopilot_articles_per_run = clamp_articles_per_run(articles_per_run)

    if enabled is False:
        site.autopilot_enabled = False
        site.next_run_at = None
    elif enabled or (cadence is not None and site.autopilot_enabled):
        site.autopilot_enabled = True
        site.next_run_at = compute_next_run_at(site.autopilot_cadence, now)

    # Raw columns, so a row left in an illegal combination can still be reset.
    pipeline_columns = (site.pipeline_step, site.pipeline_keyword_id, site.pipeline_article_id)
    if clear_pipeline and any(value is not None for value in pipeline_columns):
        logger.info(
            "Autopilot pipeline cleared",
            extra={"site_id": site.id, "previous_step": site.pipeline_step},
        )
        for column, value in Idle().to_columns().items():
            setattr(site, column, value)

    await session.flush()
    return site


async def record_generation_started(
    session: AsyncSession,
    site: Site,
    *,
    keyword_id: str,
    article_id: str,
) -> Site:
    """Move AwaitingGeneration(k) to Generating(k, article) and mark k used."""
    state = site.pipeline_state
    if not isinstance(state, AwaitingGeneration) or state.keyword_id != keyword_id:
        raise PipelineTransitionError(
            site.id,
            "Site is not awaiting generation for this keyword",
        )

    result = await session.execute(
        update(Site)
        .where(
            Site.id == site.id,
            Site.pipeline_step == AWAITING_GENERATION,
            Site.pipeline_keyword_id == keyword_id,
        )
        .values(**Generating(keyword_id=keyword_id, article_id=article_id).to_columns())
        .returning(Site.id)
        .execution_options(synchronize_session=False)
    )
    if result.scalar_one_or_none() is None:
        raise PipelineTransitionError(
            site.id,
            "Site is not awaiting generation for this keyword",
        )

    if not await mark_keyword_used(session, site.id, keyword_id):
        logger.warning(
            "Generated keyword was not active",
            extra={"site_id": site.id, "keyword_id": keyword_id},
        )

    await session.refresh(site)
    logger.info(
        "Autopilot generation started",
        extra={"site_id": site.id, "keyword_id": keyword_id, "article_id": article_id},
    )
    return site
