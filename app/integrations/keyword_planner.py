"""Google Ads Keyword Planner integration for search volume and competition."""

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from app.config import settings
from app.core.exceptions import APIKeyMissingError, ExternalAPIError, RateLimitExceededError
from app.services.scoring import normalize_competition

logger = logging.getLogger(__name__)

API_NAME = "Keyword Planner"
TOKEN_URL = "https://oauth2.googleapis.com/token"
LANGUAGE_ENGLISH = "languageConstants/1000"
GEO_UNITED_STATES = "geoTargetConstants/2840"


@dataclass(frozen=True, slots=True)
class KeywordIdea:
    """Keyword idea with market metrics. Bids are in micros."""

    keyword: str
    avg_monthly_searches: int
    competition: str
    competition_index: int
    top_of_page_bid_low: int = 0
    top_of_page_bid_high: int = 0


def _strip_dashes(value: str | None) -> str | None:
    return value.replace("-", "") if value else value


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def describe_ads_error(body: str, status_code: int) -> str:
    """Collapse a Google Ads error payload into one readable message."""
    try:
        payload = json.loads(body)
    except ValueError:
        return f"request failed with status {status_code}"
    if not isinstance(payload, dict):
        return f"request failed with status {status_code}"

    error = payload.get("error") or {}
    parts = [error.get("message") or f"request failed with status {status_code}"]
    codes = [
        f"{category}: {code}"
        for detail in error.get("details") or []
        for item in detail.get("errors") or []
        for category, code in (item.get("errorCode") or {}).items()
    ]
    if codes:
        parts.append(f"[{', '.join(codes)}]")
    return " ".join(parts)


class KeywordPlannerClient:
    """Client for Google Ads `generateKeywordIdeas`.

    Uses process-level credentials: a developer token, the target customer id,
    an optional manager (login) customer id and an OAuth refresh token that is
    exchanged for an access token on first use.
    """

    BASE_URL = "https://googleads.googleapis.com"

    def __init__(self, timeout: float = 60.0) -> None:
        if not settings.google_ads_configured:
            raise APIKeyMissingError(API_NAME)

        self.developer_token = settings.google_ads_developer_token
        self.customer_id = _strip_dashes(settings.google_ads_customer_id)
        self.login_customer_id = _strip_dashes(settings.google_ads_login_customer_id)
        self.api_version = settings.google_ads_api_version
        self.max_seeds = settings.google_ads_max_seeds
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self._access_token: str | None = None

    async def __aenter__(self) -> "KeywordPlannerClient":
        self._client = httpx.AsyncClient(timeout=self.timeout)
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client must be used as async context manager")
        return self._client

    async def _get_access_token(self) -> str:
        if self._access_token:
            return self._access_token

        try:
            response = await self.client.post(
                TOKEN_URL,
                data={
                    "client_id": settings.google_client_id,
                    "client_secret": settings.google_client_secret,
                    "refresh_token": settings.google_ads_refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as e:
            logger.warning("Google Ads token refresh HTTP error", extra={"error": str(e)})
            raise ExternalAPIError(API_NAME, str(e)) from e

        if response.status_code >= 400:
            logger.warning(
                "Google Ads token refresh failed",
                extra={"status": response.status_code},
            )
            raise ExternalAPIError(
                API_NAME,
                "failed to refresh access token; check the OAuth client and refresh token",
                status_code=response.status_code,
                body=response.text,
            )

        self._access_token = response.json()["access_token"]
        return self._access_token

    async def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {await self._get_access_token()}",
            "developer-token": self.developer_token or "",
            "Content-Type": "application/json",
        }
        if self.login_customer_id:
            headers["login-customer-id"] = self.login_customer_id
        return headers

    def build_request_body(self, seeds: list[str], use_url: bool = False) -> dict[str, Any]:
        """Build the ideas request; a single seed with `use_url` is sent as a URL seed."""
        body: dict[str, Any] = {
            "language": LANGUAGE_ENGLISH,
            "geoTargetConstants": [GEO_UNITED_STATES],
            "keywordPlanNetwork": "GOOGLE_SEARCH",
        }
        if use_url and len(seeds) == 1:
            body["urlSeed"] = {"url": seeds[0]}
        else:
            body["keywordSeed"] = {"keywords": seeds[: self.max_seeds]}
        return body

    async def generate_keyword_ideas(
        self,
        seeds: list[str],
        use_url: bool = False,
    ) -> list[KeywordIdea]:
        """Fetch keyword ideas for seed terms (or one URL).

        Keywords come back lower-cased; zero-volume ideas are dropped.
        """
        if not seeds:
            return []

        url = f"{self.BASE_URL}/{self.api_version}/customers/{self.customer_id}:generateKeywordIdeas"
        logger.info(
            "Keyword Planner request",
            extra={"seeds": len(seeds), "use_url": use_url},
        )

        try:
            response = await self.client.post(
                url,
                json=self.build_request_body(seeds, use_url),
                headers=await self._headers(),
            )
        except httpx.HTTPError as e:
            logger.warning("Keyword Planner HTTP error", extra={"error": str(e)})
            raise ExternalAPIError(API_NAME, str(e)) from e

        if response.status_code == 429:
            logger.warning("Keyword Planner rate limit hit")
            raise RateLimitExceededError(API_NAME)

        if response.status_code >= 400:
            logger.warning(
                "Keyword Planner API error",
                extra={"status": response.status_code},
            )
            raise ExternalAPIError(
                API_NAME,
                describe_ads_error(response.text, response.status_code),
                status_code=response.status_code,
                body=response.text,
            )

        return parse_keyword_ideas(response.json())


def parse_keyword_ideas(payload: dict[str, Any]) -> list[KeywordIdea]:
    ideas: list[KeywordIdea] = []
    for result in payload.get("results") or []:
        text = result.get("text")
        metrics = result.get("keywordIdeaMetrics")
        if not text or not metrics:
            continue

        volume = _as_int(metrics.get("avgMonthlySearches"))
        if volume <= 0:
            continue

        ideas.append(
            KeywordIdea(
                keyword=text.lower(),
                avg_monthly_searches=volume,
                competition=normalize_competition(metrics.get("competition")),
                competition_index=_as_int(metrics.get("competitionIndex")),
                top_of_page_bid_low=_as_int(metrics.get("lowTopOfPageBidMicros")),
                top_of_page_bid_high=_as_int(metrics.get("highTopOfPageBidMicros")),
            )
        )
    return ideas
