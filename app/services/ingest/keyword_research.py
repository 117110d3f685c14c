"""Enrich a site's keyword ledger with Keyword Planner market data."""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.integrations.keyword_planner import KeywordIdea, KeywordPlannerClient
from app.models.site import Site
from app.services.keyword_ledger import KeywordWrite, load_ledger_snapshot, upsert_keyword
from app.services.scoring import (
    CONTENT_GAP,
    LedgerSnapshot,
    MarketReconciliation,
    MarketSignals,
    score_market_keyword,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class KeywordResearchResult:
    keywords_fetched: int = 0
    keywords_upserted: int = 0
    content_gaps_found: int = 0
    gated: int = 0
    failed_writes: int = 0


def build_market_write(
    idea: KeywordIdea,
    snapshot: LedgerSnapshot,
) -> tuple[KeywordWrite, MarketReconciliation | None]:
    """Build the ledger write for one idea.

    Terms already on page one only get their market metrics refreshed. Other
    terms get `max(gap, stored)` as their score, and are reclassified as a
    content gap only when the new gap score is at least the stored one.
    """
    signals = MarketSignals(
        keyword=idea.keyword,
        search_volume=idea.avg_monthly_searches,
        competition=idea.competition,
        competition_index=idea.competition_index,
    )
    write = KeywordWrite(
        keyword=idea.keyword,
        metrics={
            "search_volume": idea.avg_monthly_searches,
            "competition": idea.competition,
            "competition_index": idea.competition_index,
        },
    )

    reconciliation = score_market_keyword(
        signals,
        snapshot,
        penalty=settings.covered_keyword_penalty,
    )
    if reconciliation is None:
        return write, None

    write.derived["opportunity_score"] = reconciliation.score
    write.derived["topic_cluster"] = reconciliation.topic_cluster
    if reconciliation.reclassified:
        write.derived["opportunity_type"] = CONTENT_GAP
        write.derived["reasoning"] = reconciliation.reasoning
        write.derived["action"] = reconciliation.action
    return write, reconciliation


async def research_keywords(
    session: AsyncSession,
    site: Site,
    seeds: list[str],
    *,
    use_url: bool = False,
    client_factory: Callable[[], KeywordPlannerClient] = KeywordPlannerClient,
) -> KeywordResearchResult:
    """Fetch keyword ideas for seeds and reconcile them into the ledger."""
    async with client_factory() as client:
        ideas = await client.generate_keyword_ideas(seeds, use_url=use_url)

    result = KeywordResearchResult(keywords_fetched=len(ideas))
    if not ideas:
        logger.info("Keyword Planner returned no ideas", extra={"site_id": site.id})
        return result

    snapshot = await load_ledger_snapshot(session, site.id)

    for idea in ideas:
        write, reconciliation = build_market_write(idea, snapshot)
        try:
            async with session.begin_nested():
                await upsert_keyword(session, site.id, write)
        except SQLAlchemyError as e:
            result.failed_writes += 1
            logger.warning(
                "Keyword upsert failed",
                extra={"site_id": site.id, "keyword": idea.keyword, "error": str(e)},
            )
            continue

        result.keywords_upserted += 1
        if reconciliation is None:
            result.gated += 1
        elif reconciliation.reclassified:
            result.content_gaps_found += 1

    logger.info(
        "Keyword research complete",
        extra={
            "site_id": site.id,
            "keywords_fetched": result.keywords_fetched,
            "keywords_upserted": result.keywords_upserted,
            "content_gaps_found": result.content_gaps_found,
            "gated": result.gated,
            "failed_writes": result.failed_writes,
        },
    )
    return result
