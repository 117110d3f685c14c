"""Content calendar: dated keyword picks processed by the autopilot trigger."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import date, datetime

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utc_today, utcnow
from app.core.exceptions import ValidationError
from app.models.base import generate_id
from app.models.scheduled_run import ScheduledRun
from app.services.keyword_ledger import pick_top_keyword

logger = logging.getLogger(__name__)

PENDING = "pending"
KEYWORD_PICKED = "keyword_picked"
FAILED = "failed"
NO_KEYWORDS_AVAILABLE = "No active keywords available"

_MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


def month_window(month: str) -> tuple[date, date]:
    """Half-open [first day, first day of next month) for a `YYYY-MM` string."""
    match = _MONTH_PATTERN.match(month or "")
    if not match:
        raise ValidationError("month must be in YYYY-MM format")
    year, mon = int(match.group(1)), int(match.group(2))
    if not 1 <= mon <= 12:
        raise ValidationError("month must be between 01 and 12")

    start = date(year, mon, 1)
    end = date(year + 1, 1, 1) if mon == 12 else date(year, mon + 1, 1)
    return start, end


async def process_due_scheduled_runs(
    session: AsyncSession,
    *,
    now: datetime | None = None,
) -> int:
    """Pick a keyword for every pending calendar row dated today (UTC).

    Only calendar rows are written; site pipeline state is left alone. A row
    that fails to update is logged and skipped. Returns the number of rows
    advanced.
    """
    today = utc_today(now or utcnow())
    result = await session.execute(
        select(ScheduledRun)
        .where(
            ScheduledRun.status == PENDING,
            ScheduledRun.scheduled_date == today,
        )
        .order_by(ScheduledRun.site_id.asc(), ScheduledRun.id.asc())
    )
    runs = list(result.scalars().all())

    processed = 0
    for run in runs:
        # A rolled-back savepoint expires the row, so read its keys up front.
        run_id, site_id = run.id, run.site_id
        try:
            async with session.begin_nested():
                keyword = await pick_top_keyword(session, site_id)
                if keyword is not None:
                    run.status = KEYWORD_PICKED
                    run.keyword_id = keyword.id
                    run.keyword_text = keyword.keyword
                    run.error = None
                else:
                    run.status = FAILED
                    run.error = NO_KEYWORDS_AVAILABLE
        except SQLAlchemyError as e:
            logger.warning(
                "Scheduled run update failed",
                extra={"scheduled_run_id": run_id, "site_id": site_id, "error": str(e)},
            )
            continue
        processed += 1

    if runs:
        logger.info(
            "Processed scheduled runs",
            extra={"date": today.isoformat(), "due": len(runs), "processed": processed},
        )
    return processed


async def create_scheduled_runs(
    session: AsyncSession,
    site_id: str,
    dates: Iterable[date],
) -> list[ScheduledRun]:
    """Insert pending rows for each date; existing (site, date) rows are kept.

    Returns only the rows created by this call.
    """
    unique_dates = sorted(set(dates))
    if not unique_dates:
        return []

    dialect_name = session.get_bind().dialect.name
    insert = postgresql.insert if dialect_name == "postgresql" else sqlite.insert
    stmt = (
        insert(ScheduledRun)
        .values(
            [
                {
                    "id": generate_id(),
                    "site_id": site_id,
                    "scheduled_date": scheduled_date,
                    "status": PENDING,
                }
                for scheduled_date in unique_dates
            ]
        )
        .on_conflict_do_nothing(index_elements=["site_id", "scheduled_date"])
        .returning(ScheduledRun)
    )
    result = await session.scalars(stmt)
    created = sorted(result.all(), key=lambda run: run.scheduled_date)

    logger.info(
        "Scheduled runs created",
        extra={"site_id": site_id, "requested": len(unique_dates), "created": len(created)},
    )
    return created


async def list_scheduled_runs(
    session: AsyncSession,
    site_id: str,
    month: str,
) -> list[ScheduledRun]:
    start, end = month_window(month)
    result = await session.execute(
        select(ScheduledRun)
        .where(
            ScheduledRun.site_id == site_id,
            ScheduledRun.scheduled_date >= start,
            ScheduledRun.scheduled_date < end,
        )
        .order_by(ScheduledRun.scheduled_date.asc())
    )
    return list(result.scalars().all())


async def delete_pending_run(
    session: AsyncSession,
    site_id: str,
    scheduled_date: date,
) -> bool:
    """Delete a still-pending row. Returns False when nothing pending matched."""
    result = await session.execute(
        delete(ScheduledRun)
        .where(
            ScheduledRun.site_id == site_id,
            ScheduledRun.scheduled_date == scheduled_date,
            ScheduledRun.status == PENDING,
        )
        .returning(ScheduledRun.id)
        .execution_options(synchronize_session=False)
    )
    return result.scalar_one_or_none() is not None
