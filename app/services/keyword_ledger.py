"""Keyword ledger reads and the upsert discipline shared by every ingest path."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.article import Article
from app.models.keyword import Keyword
from app.services.scoring import LedgerSnapshot, PriorKeyword, normalize_keyword

logger = logging.getLogger(__name__)

METRIC_FIELDS = frozenset(
    {
        "clicks",
        "impressions",
        "ctr",
        "current_position",
        "search_volume",
        "competition",
        "competition_index",
    }
)
DERIVED_FIELDS = frozenset(
    {
        "opportunity_type",
        "opportunity_score",
        "reasoning",
        "action",
        "topic_cluster",
    }
)
CONFLICT_KEY = ("site_id", "keyword_normalized")


@dataclass(slots=True)
class KeywordWrite:
    """One ingest write.

    `metrics` are overwritten with the latest source values. `derived` fields
    are set only when present, so a write that skips re-scoring leaves the
    stored classification alone. Neither may carry `status`.
    """

    keyword: str
    metrics: dict[str, Any] = field(default_factory=dict)
    derived: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        unknown_metrics = set(self.metrics) - METRIC_FIELDS
        unknown_derived = set(self.derived) - DERIVED_FIELDS
        if unknown_metrics or unknown_derived:
            raise ValueError(
                f"Unsupported keyword write fields: {sorted(unknown_metrics | unknown_derived)}"
            )
        score = self.derived.get("opportunity_score")
        if score is not None and score < 0:
            raise ValueError("opportunity_score must be >= 0")


def _dialect_insert(session: AsyncSession) -> Callable[..., Any]:
    dialect_name = session.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert
    if dialect_name == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Keyword upsert is not supported on dialect {dialect_name!r}")


async def upsert_keyword(session: AsyncSession, site_id: str, write: KeywordWrite) -> str:
    """Insert or update a keyword keyed on (site, normalized text); return its id."""
    insert = _dialect_insert(session)
    values: dict[str, Any] = {
        "site_id": site_id,
        "keyword": write.keyword.strip(),
        "keyword_normalized": normalize_keyword(write.keyword),
        **write.metrics,
        **write.derived,
    }
    stmt = insert(Keyword).values(**values)

    update_set: dict[str, Any] = {
        name: stmt.excluded[name] for name in (*write.metrics, *write.derived)
    }
    update_set["updated_at"] = func.now()

    stmt = stmt.on_conflict_do_update(
        index_elements=list(CONFLICT_KEY),
        set_=update_set,
    ).returning(Keyword.id)

    result = await session.execute(stmt)
    return result.scalar_one()


async def load_ledger_snapshot(session: AsyncSession, site_id: str) -> LedgerSnapshot:
    """Read prior keyword values and article coverage for one site."""
    keyword_rows = await session.execute(
        select(
            Keyword.keyword_normalized,
            Keyword.search_volume,
            Keyword.competition,
            Keyword.competition_index,
            Keyword.current_position,
            Keyword.opportunity_score,
        ).where(Keyword.site_id == site_id)
    )
    priors: Mapping[str, PriorKeyword] = {
        row.keyword_normalized: PriorKeyword(
            search_volume=row.search_volume,
            competition=row.competition,
            competition_index=row.competition_index,
            current_position=row.current_position,
            opportunity_score=row.opportunity_score or 0,
        )
        for row in keyword_rows
    }

    article_rows = await session.execute(
        select(Article.primary_keyword).where(
            Article.site_id == site_id,
            Article.primary_keyword.isnot(None),
        )
    )
    covered = [row.primary_keyword for row in article_rows]

    return LedgerSnapshot.build(keywords=priors, covered_keywords=covered)


async def pick_top_keyword(session: AsyncSession, site_id: str) -> Keyword | None:
    """Return the site's highest-scoring active keyword with a positive score.

    Equal scores resolve to the oldest keyword so repeated picks are stable.
    """
    result = await session.execute(
        select(Keyword)
        .where(
            Keyword.site_id == site_id,
            Keyword.status == "active",
            Keyword.opportunity_score > 0,
        )
        .order_by(
            Keyword.opportunity_score.desc(),
            Keyword.created_at.asc(),
            Keyword.id.asc(),
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def mark_keyword_used(session: AsyncSession, site_id: str, keyword_id: str) -> bool:
    """Flip an active keyword to `used`. Returns False if it was not active."""
    result = await session.execute(
        update(Keyword)
        .where(
            Keyword.id == keyword_id,
            Keyword.site_id == site_id,
            Keyword.status == "active",
        )
        .values(status="used", updated_at=func.now())
        .returning(Keyword.id)
    )
    marked = result.scalar_one_or_none() is not None
    if marked:
        logger.info("Keyword marked used", extra={"site_id": site_id, "keyword_id": keyword_id})
    return marked


async def list_keywords(
    session: AsyncSession,
    site_id: str,
    *,
    status: str | None = None,
    opportunity_type: str | None = None,
    topic_cluster: str | None = None,
    search: str | None = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[Keyword], int]:
    """Page through a site's keywords, best opportunities first."""
    query = select(Keyword).where(Keyword.site_id == site_id)
    if status:
        query = query.where(Keyword.status == status)
    if opportunity_type:
        query = query.where(Keyword.opportunity_type == opportunity_type)
    if topic_cluster:
        query = query.where(Keyword.topic_cluster == topic_cluster)
    if search:
        query = query.where(
            Keyword.keyword_normalized.contains(normalize_keyword(search), autoescape=True)
        )

    total = await session.scalar(select(func.count()).select_from(query.subquery())) or 0

    offset = (page - 1) * page_size
    result = await session.execute(
        query.order_by(Keyword.opportunity_score.desc(), Keyword.keyword_normalized.asc())
        .offset(offset)
        .limit(page_size)
    )
    return list(result.scalars().all()), total
