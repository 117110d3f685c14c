"""Shared fixtures for database-backed unit tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.models import Base
from app.models.article import Article
from app.models.keyword import Keyword
from app.models.site import Site
from app.services.scoring import normalize_keyword


@pytest_asyncio.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'autopilot.db'}")

    # aiosqlite's implicit BEGIN breaks SAVEPOINT handling; emit our own.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection: Any, _record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def make_site(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[Site]]:
    counter = {"n": 0}

    async def _make_site(**overrides: Any) -> Site:
        counter["n"] += 1
        values: dict[str, Any] = {
            "organization_id": "org_1",
            "name": f"Site {counter['n']}",
            "domain": f"site{counter['n']}.example.com",
        }
        values.update(overrides)
        async with session_factory() as session:
            site = Site(**values)
            session.add(site)
            await session.commit()
            return site

    return _make_site


@pytest_asyncio.fixture
async def make_keyword(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[Keyword]]:
    async def _make_keyword(site_id: str, keyword: str, **overrides: Any) -> Keyword:
        values: dict[str, Any] = {
            "site_id": site_id,
            "keyword": keyword,
            "keyword_normalized": normalize_keyword(keyword),
            "opportunity_score": 50,
        }
        values.update(overrides)
        async with session_factory() as session:
            row = Keyword(**values)
            session.add(row)
            await session.commit()
            return row

    return _make_keyword


@pytest_asyncio.fixture
async def make_article(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[Article]]:
    async def _make_article(site_id: str, title: str, **overrides: Any) -> Article:
        values: dict[str, Any] = {
            "site_id": site_id,
            "title": title.title(),
            "slug": title.replace(" ", "-"),
            "primary_keyword": title,
        }
        values.update(overrides)
        async with session_factory() as session:
            article = Article(**values)
            session.add(article)
            await session.commit()
            return article

    return _make_article
