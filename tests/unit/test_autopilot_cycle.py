"""Unit tests for the autopilot trigger cycle and pipeline transitions."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from app.core.clock import as_utc
from app.core.exceptions import PipelineTransitionError
from app.models.keyword import Keyword
from app.models.pipeline_state import (
    AWAITING_GENERATION,
    GENERATING,
    AwaitingGeneration,
    Generating,
    Idle,
)
from app.models.scheduled_run import ScheduledRun
from app.models.site import Site
from app.services.autopilot import (
    CLAIMED_MESSAGE,
    LOST_RACE_MESSAGE,
    NO_ACTIVE_KEYWORDS_ERROR,
    NO_KEYWORDS_MESSAGE,
    NO_SITES_DUE_MESSAGE,
    apply_autopilot_config,
    claim_site,
    record_generation_started,
    run_autopilot_cycle,
)
from app.services.content_calendar import FAILED, KEYWORD_PICKED, NO_KEYWORDS_AVAILABLE, PENDING

NOW = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)
NEXT_WEEKLY_SLOT = datetime(2024, 3, 17, 6, 0, tzinfo=timezone.utc)


async def _reload_site(session_factory, site_id: str) -> Site:
    async with session_factory() as session:
        site = await session.get(Site, site_id)
        assert site is not None
        return site


async def _due_site(make_site, hours_overdue: float, **overrides) -> Site:
    return await make_site(
        autopilot_enabled=True,
        next_run_at=NOW - timedelta(hours=hours_overdue),
        **overrides,
    )


@pytest.mark.asyncio
async def test_cycle_claims_oldest_due_site_only(session_factory, make_site, make_keyword) -> None:
    recent = await _due_site(make_site, 1)
    oldest = await _due_site(make_site, 2)
    await make_keyword(recent.id, "recent keyword", opportunity_score=90)
    await make_keyword(oldest.id, "weak keyword", opportunity_score=20)
    best = await make_keyword(oldest.id, "best keyword", opportunity_score=80)

    async with session_factory() as session:
        result = await run_autopilot_cycle(session, now=NOW)
        await session.commit()

    assert result.claimed is True
    assert result.message == CLAIMED_MESSAGE
    assert result.site_id == oldest.id
    assert result.keyword_id == best.id
    assert result.keyword == "best keyword"

    claimed = await _reload_site(session_factory, oldest.id)
    assert claimed.pipeline_state == AwaitingGeneration(keyword_id=best.id)
    assert as_utc(claimed.last_run_at) == NOW
    assert as_utc(claimed.next_run_at) == NEXT_WEEKLY_SLOT
    assert claimed.last_error is None

    untouched = await _reload_site(session_factory, recent.id)
    assert untouched.pipeline_state == Idle()
    assert as_utc(untouched.next_run_at) == NOW - timedelta(hours=1)
    assert untouched.last_run_at is None


@pytest.mark.asyncio
async def test_claim_does_not_mark_keyword_used(session_factory, make_site, make_keyword) -> None:
    site = await _due_site(make_site, 1)
    keyword = await make_keyword(site.id, "shoes")

    async with session_factory() as session:
        await run_autopilot_cycle(session, now=NOW)
        await session.commit()

    async with session_factory() as session:
        stored = await session.get(Keyword, keyword.id)
        assert stored is not None
        assert stored.status == "active"


@pytest.mark.asyncio
async def test_cycle_ignores_disabled_busy_and_future_sites(
    session_factory, make_site, make_keyword
) -> None:
    disabled = await make_site(autopilot_enabled=False, next_run_at=NOW - timedelta(days=1))
    busy = await _due_site(
        make_site,
        5,
        pipeline_step=AWAITING_GENERATION,
        pipeline_keyword_id="kw_pending",
    )
    future = await make_site(autopilot_enabled=True, next_run_at=NOW + timedelta(minutes=1))
    unscheduled = await make_site(autopilot_enabled=True, next_run_at=None)
    for site in (disabled, busy, future, unscheduled):
        await make_keyword(site.id, "shoes")

    async with session_factory() as session:
        result = await run_autopilot_cycle(session, now=NOW)
        await session.commit()

    assert result.message == NO_SITES_DUE_MESSAGE
    assert result.claimed is False
    assert result.site_id is None

    still_busy = await _reload_site(session_factory, busy.id)
    assert still_busy.pipeline_state == AwaitingGeneration(keyword_id="kw_pending")


@pytest.mark.asyncio
async def test_site_due_exactly_now_is_claimed(session_factory, make_site, make_keyword) -> None:
    site = await make_site(autopilot_enabled=True, next_run_at=NOW)
    await make_keyword(site.id, "shoes")

    async with session_factory() as session:
        result = await run_autopilot_cycle(session, now=NOW)
        await session.commit()

    assert result.claimed is True
    assert result.site_id == site.id


@pytest.mark.asyncio
async def test_site_without_keywords_is_rescheduled_and_next_site_gets_a_turn(
    session_factory, make_site, make_keyword
) -> None:
    empty = await _due_site(make_site, 3)
    stocked = await _due_site(make_site, 1, autopilot_cadence="daily")
    await make_keyword(empty.id, "unscored", opportunity_score=0)
    keyword = await make_keyword(stocked.id, "shoes")

    async with session_factory() as session:
        first = await run_autopilot_cycle(session, now=NOW)
        await session.commit()

    assert first.message == NO_KEYWORDS_MESSAGE
    assert first.claimed is False
    assert first.site_id == empty.id

    skipped = await _reload_site(session_factory, empty.id)
    assert skipped.pipeline_state == Idle()
    assert skipped.last_error == NO_ACTIVE_KEYWORDS_ERROR
    assert as_utc(skipped.last_run_at) == NOW
    assert as_utc(skipped.next_run_at) == NEXT_WEEKLY_SLOT

    async with session_factory() as session:
        second = await run_autopilot_cycle(session, now=NOW)
        await session.commit()

    assert second.claimed is True
    assert second.site_id == stocked.id
    assert second.keyword_id == keyword.id

    claimed = await _reload_site(session_factory, stocked.id)
    assert as_utc(claimed.next_run_at) == datetime(2024, 3, 11, 6, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_successful_claim_clears_previous_error(
    session_factory, make_site, make_keyword
) -> None:
    site = await _due_site(make_site, 1, last_error=NO_ACTIVE_KEYWORDS_ERROR)
    await make_keyword(site.id, "shoes")

    async with session_factory() as session:
        await run_autopilot_cycle(session, now=NOW)
        await session.commit()

    claimed = await _reload_site(session_factory, site.id)
    assert claimed.last_error is None


@pytest.mark.asyncio
async def test_second_claim_on_same_site_loses(session_factory, make_site, make_keyword) -> None:
    site = await _due_site(make_site, 1)
    keyword = await make_keyword(site.id, "shoes")
    other = await make_keyword(site.id, "boots")

    async with session_factory() as session:
        assert await claim_site(
            session, site.id, keyword.id, now=NOW, next_run_at=NEXT_WEEKLY_SLOT
        )
        await session.commit()

    async with session_factory() as session:
        assert not await claim_site(
            session, site.id, other.id, now=NOW, next_run_at=NEXT_WEEKLY_SLOT
        )
        await session.commit()

    claimed = await _reload_site(session_factory, site.id)
    assert claimed.pipeline_state == AwaitingGeneration(keyword_id=keyword.id)


@pytest.mark.asyncio
async def test_cycle_reports_lost_race_when_site_was_claimed_meanwhile(
    monkeypatch, session_factory, make_site, make_keyword
) -> None:
    stale = await _due_site(make_site, 1)
    keyword = await make_keyword(stale.id, "shoes")

    async with session_factory() as session:
        assert await claim_site(
            session, stale.id, keyword.id, now=NOW, next_run_at=NEXT_WEEKLY_SLOT
        )
        await session.commit()

    async def _stale_due_site(session, now):
        return stale

    monkeypatch.setattr("app.services.autopilot.find_due_site", _stale_due_site)

    async with session_factory() as session:
        result = await run_autopilot_cycle(session, now=NOW)
        await session.commit()

    assert result.message == LOST_RACE_MESSAGE
    assert result.claimed is False
    assert result.site_id == stale.id


@pytest.mark.asyncio
async def test_back_to_back_cycles_do_not_double_claim(
    session_factory, make_site, make_keyword
) -> None:
    site = await _due_site(make_site, 1)
    await make_keyword(site.id, "shoes")

    async with session_factory() as session:
        first = await run_autopilot_cycle(session, now=NOW)
        await session.commit()
    async with session_factory() as session:
        second = await run_autopilot_cycle(session, now=NOW)
        await session.commit()

    assert first.claimed is True
    assert second.message == NO_SITES_DUE_MESSAGE


@pytest.mark.asyncio
async def test_calendar_rows_are_processed_independently_of_claims(
    session_factory, make_site, make_keyword
) -> None:
    due = await _due_site(make_site, 1)
    calendar_only = await make_site(
        pipeline_step=AWAITING_GENERATION,
        pipeline_keyword_id="kw_pending",
    )
    no_keywords = await make_site()
    await make_keyword(due.id, "due keyword")
    picked = await make_keyword(calendar_only.id, "calendar keyword", opportunity_score=75)

    today = NOW.date()
    async with session_factory() as session:
        session.add_all(
            [
                ScheduledRun(site_id=calendar_only.id, scheduled_date=today),
                ScheduledRun(site_id=calendar_only.id, scheduled_date=today + timedelta(days=1)),
                ScheduledRun(site_id=no_keywords.id, scheduled_date=today),
            ]
        )
        await session.commit()

    async with session_factory() as session:
        result = await run_autopilot_cycle(session, now=NOW)
        await session.commit()

    assert result.claimed is True
    assert result.site_id == due.id
    assert result.scheduled_runs_processed == 2

    async with session_factory() as session:
        runs = {
            (run.site_id, run.scheduled_date): run
            for run in (await session.execute(select(ScheduledRun))).scalars()
        }

    today_run = runs[(calendar_only.id, today)]
    assert today_run.status == KEYWORD_PICKED
    assert today_run.keyword_id == picked.id
    assert today_run.keyword_text == "calendar keyword"
    assert runs[(calendar_only.id, today + timedelta(days=1))].status == PENDING

    failed_run = runs[(no_keywords.id, today)]
    assert failed_run.status == FAILED
    assert failed_run.error == NO_KEYWORDS_AVAILABLE

    untouched = await _reload_site(session_factory, calendar_only.id)
    assert untouched.pipeline_state == AwaitingGeneration(keyword_id="kw_pending")
    assert untouched.last_run_at is None


@pytest.mark.asyncio
async def test_calendar_rows_processed_when_no_site_is_due(
    session_factory, make_site, make_keyword
) -> None:
    site = await make_site()
    await make_keyword(site.id, "shoes")
    async with session_factory() as session:
        session.add(ScheduledRun(site_id=site.id, scheduled_date=date(2024, 3, 10)))
        await session.commit()

    async with session_factory() as session:
        result = await run_autopilot_cycle(session, now=NOW)
        await session.commit()

    assert result.message == NO_SITES_DUE_MESSAGE
    assert result.scheduled_runs_processed == 1


@pytest.mark.asyncio
async def test_generation_report_moves_site_to_generating(
    session_factory, make_site, make_keyword
) -> None:
    site = await make_site(autopilot_enabled=True)
    keyword = await make_keyword(site.id, "shoes")

    async with session_factory() as session:
        loaded = await session.get(Site, site.id)
        loaded.pipeline_step = AWAITING_GENERATION
        loaded.pipeline_keyword_id = keyword.id
        await session.commit()

    async with session_factory() as session:
        loaded = await session.get(Site, site.id)
        updated = await record_generation_started(
            session,
            loaded,
            keyword_id=keyword.id,
            article_id="art_1",
        )
        await session.commit()

    assert updated.pipeline_state == Generating(keyword_id=keyword.id, article_id="art_1")

    async with session_factory() as session:
        stored = await session.get(Keyword, keyword.id)
        assert stored.status == "used"
        reloaded = await session.get(Site, site.id)
        assert reloaded.pipeline_step == GENERATING


@pytest.mark.asyncio
async def test_generation_report_rejects_wrong_state_or_keyword(
    session_factory, make_site, make_keyword
) -> None:
    idle = await make_site()
    waiting = await make_site(pipeline_step=AWAITING_GENERATION, pipeline_keyword_id="kw_1")
    keyword = await make_keyword(idle.id, "shoes")

    async with session_factory() as session:
        loaded = await session.get(Site, idle.id)
        with pytest.raises(PipelineTransitionError):
            await record_generation_started(
                session, loaded, keyword_id=keyword.id, article_id="art_1"
            )

    async with session_factory() as session:
        loaded = await session.get(Site, waiting.id)
        with pytest.raises(PipelineTransitionError):
            await record_generation_started(
                session, loaded, keyword_id="kw_other", article_id="art_1"
            )


@pytest.mark.asyncio
async def test_config_enable_schedules_and_disable_clears(session_factory, make_site) -> None:
    site = await make_site()

    async with session_factory() as session:
        loaded = await session.get(Site, site.id)
        await apply_autopilot_config(
            session,
            loaded,
            enabled=True,
            cadence="daily",
            iq_level="high",
            articles_per_run=9,
            now=NOW,
        )
        await session.commit()

    enabled = await _reload_site(session_factory, site.id)
    assert enabled.autopilot_enabled is True
    assert enabled.autopilot_cadence == "daily"
    assert enabled.autopilot_iq_level == "high"
    assert enabled.autopilot_articles_per_run == 5
    assert as_utc(enabled.next_run_at) == datetime(2024, 3, 11, 6, 0, tzinfo=timezone.utc)

    async with session_factory() as session:
        loaded = await session.get(Site, site.id)
        await apply_autopilot_config(session, loaded, cadence="every_3_days", now=NOW)
        await session.commit()

    rescheduled = await _reload_site(session_factory, site.id)
    assert as_utc(rescheduled.next_run_at) == datetime(2024, 3, 13, 6, 0, tzinfo=timezone.utc)

    async with session_factory() as session:
        loaded = await session.get(Site, site.id)
        await apply_autopilot_config(session, loaded, enabled=False, articles_per_run=0, now=NOW)
        await session.commit()

    disabled = await _reload_site(session_factory, site.id)
    assert disabled.autopilot_enabled is False
    assert disabled.next_run_at is None
    assert disabled.autopilot_articles_per_run == 1


@pytest.mark.asyncio
async def test_config_cadence_change_while_disabled_keeps_schedule_empty(
    session_factory, make_site
) -> None:
    site = await make_site()

    async with session_factory() as session:
        loaded = await session.get(Site, site.id)
        await apply_autopilot_config(session, loaded, cadence="daily", now=NOW)
        await session.commit()

    stored = await _reload_site(session_factory, site.id)
    assert stored.autopilot_cadence == "daily"
    assert stored.autopilot_enabled is False
    assert stored.next_run_at is None


@pytest.mark.asyncio
async def test_config_clear_pipeline_returns_site_to_idle(session_factory, make_site) -> None:
    site = await make_site(
        autopilot_enabled=True,
        pipeline_step=GENERATING,
        pipeline_keyword_id="kw_1",
        pipeline_article_id="art_1",
    )

    async with session_factory() as session:
        loaded = await session.get(Site, site.id)
        await apply_autopilot_config(session, loaded, clear_pipeline=True, now=NOW)
        await session.commit()

    cleared = await _reload_site(session_factory, site.id)
    assert cleared.pipeline_state == Idle()
    assert cleared.autopilot_enabled is True


@pytest.mark.asyncio
async def test_config_clear_pipeline_resets_illegal_column_combination(
    session_factory, make_site
) -> None:
    site = await make_site(autopilot_enabled=True, pipeline_step=AWAITING_GENERATION)

    async with session_factory() as session:
        loaded = await session.get(Site, site.id)
        await apply_autopilot_config(session, loaded, clear_pipeline=True, now=NOW)
        await session.commit()

    cleared = await _reload_site(session_factory, site.id)
    assert cleared.pipeline_step is None
    assert cleared.pipeline_keyword_id is None
    assert cleared.pipeline_article_id is None
    assert cleared.pipeline_state == Idle()
