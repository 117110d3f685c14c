"""Google Search Console integration for per-site query performance."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any
from urllib.parse import quote

import httpx

from app.config import settings
from app.core.clock import utcnow
from app.core.exceptions import ExternalAPIError, RateLimitExceededError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SearchAnalyticsRow:
    """One query row. `ctr` is a fraction (0..1) as returned by the API."""

    query: str
    clicks: int
    impressions: int
    ctr: float
    position: float


def reporting_window(
    lookback_days: int,
    *,
    now: datetime | None = None,
    delay_days: int | None = None,
) -> tuple[date, date]:
    """Return (start, end) for a lookback ending before the data-lag horizon."""
    delay = settings.search_console_data_delay_days if delay_days is None else delay_days
    end = (now or utcnow()).date() - timedelta(days=delay)
    start = end - timedelta(days=lookback_days)
    return start, end


class SearchConsoleClient:
    """Client for the Search Console searchAnalytics API.

    Authenticates with a per-site OAuth access token; acquiring and refreshing
    that token happens elsewhere.
    """

    BASE_URL = "https://www.googleapis.com/webmasters/v3"

    def __init__(self, access_token: str, timeout: float = 30.0) -> None:
        self.access_token = access_token
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "SearchConsoleClient":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/json",
            },
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client must be used as async context manager")
        return self._client

    async def query_search_analytics(
        self,
        gsc_property: str,
        start_date: date,
        end_date: date,
        row_limit: int | None = None,
    ) -> list[SearchAnalyticsRow]:
        """Fetch per-query clicks, impressions, ctr and position for a property."""
        url = f"{self.BASE_URL}/sites/{quote(gsc_property, safe='')}/searchAnalytics/query"
        payload = {
            "startDate": start_date.isoformat(),
            "endDate": end_date.isoformat(),
            "dimensions": ["query"],
            "rowLimit": row_limit or settings.search_console_row_limit,
        }
        logger.info(
            "Search Console request",
            extra={
                "property": gsc_property,
                "start_date": payload["startDate"],
                "end_date": payload["endDate"],
            },
        )

        try:
            response = await self.client.post(url, json=payload)
        except httpx.HTTPError as e:
            logger.warning("Search Console HTTP error", extra={"error": str(e)})
            raise ExternalAPIError("Search Console", str(e)) from e

        if response.status_code == 429:
            logger.warning("Search Console rate limit hit", extra={"property": gsc_property})
            raise RateLimitExceededError("Search Console")

        if response.status_code >= 400:
            logger.warning(
                "Search Console API error",
                extra={"property": gsc_property, "status": response.status_code},
            )
            raise ExternalAPIError(
                "Search Console",
                f"request failed with status {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        return [row for row in map(_parse_row, response.json().get("rows", [])) if row]


def _parse_row(raw: dict[str, Any]) -> SearchAnalyticsRow | None:
    keys = raw.get("keys") or []
    if not keys or not keys[0]:
        return None
    return SearchAnalyticsRow(
        query=str(keys[0]),
        clicks=int(raw.get("clicks") or 0),
        impressions=int(raw.get("impressions") or 0),
        ctr=float(raw.get("ctr") or 0.0),
        position=float(raw.get("position") or 0.0),
    )
