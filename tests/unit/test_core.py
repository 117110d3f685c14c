"""Unit tests for settings parsing, log formatting and DB retry helpers."""

from __future__ import annotations

import json
import logging

import pytest
from sqlalchemy.exc import OperationalError

from app.config import Settings
from app.core.db_retry import (
    RetryPolicy,
    is_transient_connection_error,
    run_with_transient_db_retry,
)
from app.core.logging import REDACTED, JSONExtrasFormatter


@pytest.mark.parametrize(
    ("raw", "normalized"),
    [
        ("postgres://u:p@db/autopilot", "postgresql+asyncpg://u:p@db/autopilot"),
        ("postgresql://u:p@db/autopilot", "postgresql+asyncpg://u:p@db/autopilot"),
        ("postgresql+psycopg2://u:p@db/autopilot", "postgresql+asyncpg://u:p@db/autopilot"),
        ("sqlite+aiosqlite:///local.db", "sqlite+aiosqlite:///local.db"),
    ],
)
def test_database_url_is_normalized_to_asyncpg(raw: str, normalized: str) -> None:
    assert Settings(database_url=raw).database_url == normalized


@pytest.mark.parametrize(
    ("raw", "origins"),
    [
        ('["https://a.example.com", "https://b.example.com"]', ["https://a.example.com", "https://b.example.com"]),
        ("https://a.example.com, https://b.example.com", ["https://a.example.com", "https://b.example.com"]),
        ('"https://a.example.com"', ["https://a.example.com"]),
        ("", []),
    ],
)
def test_cors_origins_accept_json_or_comma_separated(raw: str, origins: list[str]) -> None:
    assert Settings(cors_origins=raw).cors_origins == origins


def test_slot_hour_must_be_a_clock_hour() -> None:
    with pytest.raises(ValueError):
        Settings(autopilot_slot_hour_utc=24)


def test_google_ads_configured_requires_every_credential() -> None:
    complete = {
        "google_ads_developer_token": "dev",
        "google_ads_customer_id": "123",
        "google_ads_refresh_token": "refresh",
        "google_client_id": "client",
        "google_client_secret": "secret",
    }

    assert Settings(**complete).google_ads_configured is True
    assert Settings(**{**complete, "google_client_secret": None}).google_ads_configured is False


def test_log_formatter_appends_extras_and_redacts_credentials() -> None:
    record = logging.LogRecord(
        name="app.services.autopilot",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Autopilot claimed site",
        args=(),
        exc_info=None,
    )
    record.site_id = "site_1"
    record.access_token = "ya29.secret"

    line = JSONExtrasFormatter().format(record)

    prefix, _, extras = line.partition(" {")
    assert prefix.endswith("| INFO     | app.services.autopilot | Autopilot claimed site")
    assert json.loads("{" + extras) == {"site_id": "site_1", "access_token": REDACTED}


def test_transient_connection_errors_are_recognized() -> None:
    assert is_transient_connection_error(OperationalError("SELECT 1", {}, Exception("boom")))
    assert is_transient_connection_error(RuntimeError("connection is closed"))
    assert not is_transient_connection_error(ValueError("bad input"))


@pytest.mark.asyncio
async def test_retry_reruns_transient_failures_only() -> None:
    attempts = {"n": 0}

    async def _flaky() -> str:
        attempts["n"] += 1
        if attempts["n"] < 3:
            raise RuntimeError("server closed the connection unexpectedly")
        return "done"

    result = await run_with_transient_db_retry(
        _flaky,
        operation_name="flaky",
        policy=RetryPolicy(attempts=3, base_delay_seconds=0),
    )
    assert result == "done"
    assert attempts["n"] == 3

    async def _broken() -> None:
        raise ValueError("not transient")

    with pytest.raises(ValueError):
        await run_with_transient_db_retry(
            _broken,
            operation_name="broken",
            policy=RetryPolicy(base_delay_seconds=0),
        )
    assert attempts["n"] == 3


@pytest.mark.asyncio
async def test_retry_gives_up_after_last_attempt() -> None:
    calls = {"n": 0}

    async def _always_dropped() -> None:
        calls["n"] += 1
        raise RuntimeError("connection reset by peer")

    with pytest.raises(RuntimeError):
        await run_with_transient_db_retry(
            _always_dropped,
            operation_name="dropped",
            policy=RetryPolicy(attempts=2, base_delay_seconds=0),
        )
    assert calls["n"] == 2


def test_retry_policy_validates_bounds() -> None:
    with pytest.raises(ValueError, match="attempts"):
        RetryPolicy(attempts=0)
    with pytest.raises(ValueError, match="base_delay_seconds"):
        RetryPolicy(base_delay_seconds=-1)
    assert RetryPolicy(base_delay_seconds=0.5).delay_for(3) == 1.5
