"""Retry policy for database work interrupted by dropped connections."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError

logger = logging.getLogger(__name__)

_ResultT = TypeVar("_ResultT")

# asyncpg raises these when the server or a pooler drops the socket.
_TRANSIENT_DRIVER_ERRORS = frozenset(
    {
        "CannotConnectNowError",
        "ConnectionDoesNotExistError",
        "ConnectionFailureError",
        "TooManyConnectionsError",
    }
)
_CONNECTION_ERROR_MARKERS = (
    "connection is closed",
    "connection was closed",
    "server closed the connection unexpectedly",
    "connection reset by peer",
)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded retries with a linear backoff of `base_delay_seconds * attempt`."""

    attempts: int = 3
    base_delay_seconds: float = 0.2

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must be >= 0")

    def delay_for(self, attempt: int) -> float:
        return self.base_delay_seconds * attempt


def is_transient_connection_error(exc: BaseException) -> bool:
    """True when the failure came from a lost connection rather than the query."""
    if isinstance(exc, (InterfaceError, OperationalError)):
        return True
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        if type(exc.orig).__name__ in _TRANSIENT_DRIVER_ERRORS:
            return True

    lowered = str(exc).lower()
    return any(marker in lowered for marker in _CONNECTION_ERROR_MARKERS)


async def run_with_transient_db_retry(
    operation: Callable[[], Awaitable[_ResultT]],
    *,
    operation_name: str,
    policy: RetryPolicy | None = None,
    log_context: Mapping[str, Any] | None = None,
) -> _ResultT:
    """Run `operation`, re-running it after transient connection failures.

    The operation must open its own session so every attempt starts with a
    clean transaction. Any other error propagates immediately.
    """
    policy = policy or RetryPolicy()
    context = {**(log_context or {}), "operation": operation_name}

    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= policy.attempts or not is_transient_connection_error(exc):
                raise
            logger.warning(
                "Transient database error, retrying",
                extra={
                    **context,
                    "attempt": attempt,
                    "max_attempts": policy.attempts,
                    "error": str(exc),
                },
            )
            await asyncio.sleep(policy.delay_for(attempt))
            attempt += 1
