"""Run one autopilot trigger cycle directly against the database.

Useful when the HTTP trigger is unavailable (local development, one-off
backfills of calendar rows for today).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone

from app.core.clock import utcnow
from app.core.database import close_db, get_session_context
from app.core.db_retry import RetryPolicy, run_with_transient_db_retry
from app.core.logging import setup_logging
from app.services.autopilot import AutopilotCycleResult, advance_due_site
from app.services.content_calendar import process_due_scheduled_runs

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--now",
        type=parse_timestamp,
        default=None,
        help="Evaluate due sites as of this ISO-8601 instant (default: current time)",
    )
    parser.add_argument(
        "--attempts",
        type=int,
        default=3,
        help="Attempts on transient database connection errors (default: 3)",
    )
    return parser.parse_args(argv)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid timestamp: {value}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


async def _advance_once(now: datetime) -> AutopilotCycleResult:
    async with get_session_context() as session:
        return await advance_due_site(session, now=now)


async def _process_calendar_once(now: datetime) -> int:
    async with get_session_context() as session:
        return await process_due_scheduled_runs(session, now=now)


async def _main(args: argparse.Namespace) -> AutopilotCycleResult:
    now = args.now or utcnow()
    policy = RetryPolicy(attempts=args.attempts)
    try:
        # Retried separately: once a claim commits, a retry must not claim again.
        result = await run_with_transient_db_retry(
            lambda: _advance_once(now),
            operation_name="autopilot_advance_site",
            policy=policy,
        )
        result.scheduled_runs_processed = await run_with_transient_db_retry(
            lambda: _process_calendar_once(now),
            operation_name="autopilot_scheduled_runs",
            policy=policy,
        )
        return result
    finally:
        await close_db()


def main(argv: list[str] | None = None) -> int:
    setup_logging()
    args = parse_args(argv)
    result = asyncio.run(_main(args))
    print(json.dumps(asdict(result), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
