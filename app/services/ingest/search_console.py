"""Refresh a site's keyword ledger from Search Console query performance."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.clock import as_utc, utcnow
from app.core.exceptions import GoogleNotConnectedError, GoogleTokenExpiredError
from app.integrations.search_console import (
    SearchAnalyticsRow,
    SearchConsoleClient,
    reporting_window,
)
from app.models.site import Site
from app.services.keyword_ledger import KeywordWrite, load_ledger_snapshot, upsert_keyword
from app.services.scoring import ConsoleSignals, LedgerSnapshot, score_console_keyword

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SearchConsoleRefreshResult:
    queries_seen: int = 0
    keywords_upserted: int = 0
    opportunities_scored: int = 0
    failed_writes: int = 0


def get_site_access_token(site: Site, *, now: datetime | None = None) -> str:
    """Return the site's stored Google token, or raise if it cannot be used."""
    if site.google_status != "active":
        raise GoogleNotConnectedError(site.id)

    expires_at = as_utc(site.google_token_expires_at)
    if not site.google_access_token or (expires_at is not None and expires_at <= (now or utcnow())):
        raise GoogleTokenExpiredError(site.id)
    return site.google_access_token


def console_signals_from_row(row: SearchAnalyticsRow) -> ConsoleSignals:
    """Convert an API row: ctr becomes a percentage, position gets one decimal."""
    return ConsoleSignals(
        keyword=row.query,
        clicks=row.clicks,
        impressions=row.impressions,
        ctr=round(row.ctr * 100, 2),
        position=round(row.position, 1) if row.position else None,
    )


def build_console_write(signals: ConsoleSignals, snapshot: LedgerSnapshot) -> KeywordWrite:
    opportunity = score_console_keyword(
        signals,
        snapshot,
        penalty=settings.covered_keyword_penalty,
    )
    return KeywordWrite(
        keyword=signals.keyword,
        metrics={
            "clicks": signals.clicks,
            "impressions": signals.impressions,
            "ctr": signals.ctr,
            "current_position": signals.position,
        },
        derived={
            "opportunity_type": opportunity.opportunity_type,
            "opportunity_score": opportunity.score,
            "reasoning": opportunity.reasoning or None,
            "action": opportunity.action or None,
            "topic_cluster": opportunity.topic_cluster,
        },
    )


async def refresh_from_search_console(
    session: AsyncSession,
    site: Site,
    *,
    lookback_days: int | None = None,
    client_factory: Callable[[str], SearchConsoleClient] = SearchConsoleClient,
    now: datetime | None = None,
) -> SearchConsoleRefreshResult:
    """Fetch query rows, score each one and upsert it into the ledger.

    Each upsert runs in its own savepoint; a failed write is logged and the
    remaining rows are still written.
    """
    now = now or utcnow()
    access_token = get_site_access_token(site, now=now)
    start_date, end_date = reporting_window(
        lookback_days or settings.search_console_default_lookback_days,
        now=now,
    )

    async with client_factory(access_token) as client:
        rows = await client.query_search_analytics(
            site.resolved_gsc_property,
            start_date,
            end_date,
        )

    result = SearchConsoleRefreshResult(queries_seen=len(rows))
    if not rows:
        logger.info("Search Console returned no rows", extra={"site_id": site.id})
        return result

    snapshot = await load_ledger_snapshot(session, site.id)

    for row in rows:
        signals = console_signals_from_row(row)
        write = build_console_write(signals, snapshot)
        try:
            async with session.begin_nested():
                await upsert_keyword(session, site.id, write)
        except SQLAlchemyError as e:
            result.failed_writes += 1
            logger.warning(
                "Keyword upsert failed",
                extra={"site_id": site.id, "keyword": signals.keyword, "error": str(e)},
            )
            continue

        result.keywords_upserted += 1
        if write.derived["opportunity_type"] is not None:
            result.opportunities_scored += 1

    logger.info(
        "Search Console refresh complete",
        extra={
            "site_id": site.id,
            "queries_seen": result.queries_seen,
            "keywords_upserted": result.keywords_upserted,
            "opportunities_scored": result.opportunities_scored,
            "failed_writes": result.failed_writes,
        },
    )
    return result
