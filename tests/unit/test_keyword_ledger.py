"""Unit tests for keyword ledger upserts, picks and listing."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from app.models.keyword import Keyword
from app.services.keyword_ledger import (
    KeywordWrite,
    list_keywords,
    load_ledger_snapshot,
    mark_keyword_used,
    pick_top_keyword,
    upsert_keyword,
)
from app.services.scoring import PriorKeyword

CREATED = datetime(2024, 3, 1, 12, 0)


async def _load_keywords(session_factory, site_id: str) -> list[Keyword]:
    async with session_factory() as session:
        result = await session.execute(
            select(Keyword).where(Keyword.site_id == site_id).order_by(Keyword.keyword_normalized)
        )
        return list(result.scalars().all())


def test_keyword_write_rejects_unknown_fields_and_negative_scores() -> None:
    with pytest.raises(ValueError, match="status"):
        KeywordWrite(keyword="shoes", derived={"status": "used"})
    with pytest.raises(ValueError, match="opportunity_score"):
        KeywordWrite(keyword="shoes", derived={"opportunity_score": -1})


@pytest.mark.asyncio
async def test_upsert_is_case_insensitive_and_keeps_first_display_text(
    session_factory, make_site
) -> None:
    site = await make_site()

    async with session_factory() as session:
        first_id = await upsert_keyword(
            session,
            site.id,
            KeywordWrite(
                keyword="  Running Shoes ",
                metrics={"clicks": 5, "impressions": 200},
                derived={"opportunity_type": "quick_win", "opportunity_score": 70},
            ),
        )
        await session.commit()

    async with session_factory() as session:
        second_id = await upsert_keyword(
            session,
            site.id,
            KeywordWrite(keyword="running   SHOES", metrics={"clicks": 9, "search_volume": 1200}),
        )
        await session.commit()

    rows = await _load_keywords(session_factory, site.id)

    assert first_id == second_id
    assert len(rows) == 1
    row = rows[0]
    assert row.keyword == "Running Shoes"
    assert row.keyword_normalized == "running shoes"
    assert row.clicks == 9
    assert row.impressions == 200
    assert row.search_volume == 1200
    assert row.opportunity_type == "quick_win"
    assert row.opportunity_score == 70


@pytest.mark.asyncio
async def test_upsert_never_touches_status(session_factory, make_site, make_keyword) -> None:
    site = await make_site()
    await make_keyword(site.id, "trail shoes", status="used", opportunity_score=40)

    async with session_factory() as session:
        await upsert_keyword(
            session,
            site.id,
            KeywordWrite(
                keyword="Trail Shoes",
                metrics={"impressions": 900},
                derived={"opportunity_score": 85},
            ),
        )
        await session.commit()

    [row] = await _load_keywords(session_factory, site.id)
    assert row.status == "used"
    assert row.opportunity_score == 85
    assert row.impressions == 900


@pytest.mark.asyncio
async def test_upsert_keeps_sites_separate(session_factory, make_site) -> None:
    site_a = await make_site()
    site_b = await make_site()

    async with session_factory() as session:
        await upsert_keyword(session, site_a.id, KeywordWrite(keyword="shoes"))
        await upsert_keyword(session, site_b.id, KeywordWrite(keyword="shoes"))
        await session.commit()

    async with session_factory() as session:
        total = await session.scalar(select(func.count()).select_from(Keyword))
    assert total == 2


@pytest.mark.asyncio
async def test_snapshot_reads_priors_and_article_coverage(
    db_session, make_site, make_keyword, make_article
) -> None:
    site = await make_site()
    other = await make_site()
    await make_keyword(
        site.id,
        "Trail Shoes",
        search_volume=5000,
        competition="LOW",
        competition_index=5,
        current_position=22.5,
        opportunity_score=60,
    )
    await make_article(site.id, "Best Running Shoes")
    await make_article(site.id, "untargeted post", primary_keyword=None)
    await make_article(other.id, "hiking boots")

    snapshot = await load_ledger_snapshot(db_session, site.id)

    assert snapshot.prior("trail shoes") == PriorKeyword(
        search_volume=5000,
        competition="LOW",
        competition_index=5,
        current_position=22.5,
        opportunity_score=60,
    )
    assert snapshot.is_covered("best running shoes")
    assert not snapshot.is_covered("hiking boots")
    assert snapshot.covered_keywords == frozenset({"best running shoes"})


@pytest.mark.asyncio
async def test_pick_top_keyword_prefers_score_then_age(db_session, make_site, make_keyword) -> None:
    site = await make_site()
    other = await make_site()
    await make_keyword(site.id, "low", opportunity_score=40, created_at=CREATED)
    await make_keyword(
        site.id, "newer tie", opportunity_score=70, created_at=CREATED + timedelta(hours=1)
    )
    older = await make_keyword(site.id, "older tie", opportunity_score=70, created_at=CREATED)
    await make_keyword(site.id, "used", opportunity_score=95, status="used", created_at=CREATED)
    await make_keyword(other.id, "elsewhere", opportunity_score=100, created_at=CREATED)

    picked = await pick_top_keyword(db_session, site.id)

    assert picked is not None
    assert picked.id == older.id


@pytest.mark.asyncio
async def test_pick_top_keyword_ignores_zero_scores(db_session, make_site, make_keyword) -> None:
    site = await make_site()
    await make_keyword(site.id, "unscored", opportunity_score=0)

    assert await pick_top_keyword(db_session, site.id) is None


@pytest.mark.asyncio
async def test_mark_keyword_used_only_flips_active_rows(
    session_factory, make_site, make_keyword
) -> None:
    site = await make_site()
    other = await make_site()
    keyword = await make_keyword(site.id, "shoes")

    async with session_factory() as session:
        assert await mark_keyword_used(session, other.id, keyword.id) is False
        assert await mark_keyword_used(session, site.id, keyword.id) is True
        assert await mark_keyword_used(session, site.id, keyword.id) is False
        await session.commit()

    [row] = await _load_keywords(session_factory, site.id)
    assert row.status == "used"


@pytest.mark.asyncio
async def test_list_keywords_filters_and_pages(db_session, make_site, make_keyword) -> None:
    site = await make_site()
    await make_keyword(
        site.id, "how to lace shoes", opportunity_score=90, opportunity_type="content_gap",
        topic_cluster="How-To",
    )
    await make_keyword(
        site.id, "best running shoes", opportunity_score=80, opportunity_type="quick_win",
        topic_cluster="Comparison",
    )
    await make_keyword(
        site.id, "shoe sizes", opportunity_score=30, opportunity_type="quick_win", status="used",
    )
    await make_keyword(site.id, "socks", opportunity_score=10)

    everything, total = await list_keywords(db_session, site.id)
    assert total == 4
    assert [k.keyword for k in everything] == [
        "how to lace shoes",
        "best running shoes",
        "shoe sizes",
        "socks",
    ]

    active, total = await list_keywords(db_session, site.id, status="active")
    assert total == 3
    assert "shoe sizes" not in [k.keyword for k in active]

    quick_wins, total = await list_keywords(db_session, site.id, opportunity_type="quick_win")
    assert total == 2

    how_to, total = await list_keywords(db_session, site.id, topic_cluster="How-To")
    assert [k.keyword for k in how_to] == ["how to lace shoes"]

    searched, total = await list_keywords(db_session, site.id, search="  SHOES ")
    assert total == 2
    assert {k.keyword for k in searched} == {"how to lace shoes", "best running shoes"}

    second_page, total = await list_keywords(db_session, site.id, page=2, page_size=3)
    assert total == 4
    assert [k.keyword for k in second_page] == ["socks"]


@pytest.mark.asyncio
async def test_list_keywords_search_matches_wildcards_literally(
    db_session, make_site, make_keyword
) -> None:
    site = await make_site()
    await make_keyword(site.id, "100% cotton shirts")
    await make_keyword(site.id, "1000 cotton shirts")
    await make_keyword(site.id, "snake_case naming")
    await make_keyword(site.id, "snakescase naming")

    percent, total = await list_keywords(db_session, site.id, search="0%")
    assert total == 1
    assert [k.keyword for k in percent] == ["100% cotton shirts"]

    underscore, total = await list_keywords(db_session, site.id, search="e_c")
    assert total == 1
    assert [k.keyword for k in underscore] == ["snake_case naming"]
