"""Keywords API endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Query, status

from app.api.v1.dependencies import get_org_site
from app.api.v1.keywords.constants import (
    DEFAULT_PAGE,
    DEFAULT_PAGE_SIZE,
    GOOGLE_ADS_NOT_CONFIGURED_DETAIL,
    MAX_PAGE_SIZE,
)
from app.config import settings
from app.core.exceptions import (
    APIKeyMissingError,
    ExternalAPIError,
    GoogleNotConnectedError,
    GoogleTokenExpiredError,
)
from app.dependencies import CurrentOrganization, DbSession
from app.schemas.keyword import (
    KeywordListResponse,
    KeywordResearchRequest,
    KeywordResearchResponse,
    KeywordResponse,
    SearchConsoleRefreshRequest,
    SearchConsoleRefreshResponse,
)
from app.services.ingest.keyword_research import research_keywords
from app.services.ingest.search_console import refresh_from_search_console
from app.services.keyword_ledger import list_keywords as list_site_keywords

logger = logging.getLogger(__name__)

router = APIRouter()


def upstream_error(error: ExternalAPIError) -> HTTPException:
    """Map an upstream API failure to 502, keeping the upstream status and body."""
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={
            "message": error.message,
            "upstream_status": error.status_code,
            "upstream_body": error.body,
        },
    )


@router.post(
    "/refresh",
    response_model=SearchConsoleRefreshResponse,
    summary="Refresh keywords from Search Console",
    description=(
        "Fetch query performance for the site's Search Console property, score every query "
        "and upsert it into the keyword ledger."
    ),
)
async def refresh_keywords(
    request: SearchConsoleRefreshRequest,
    current_org: CurrentOrganization,
    session: DbSession,
) -> SearchConsoleRefreshResponse:
    """Refresh a site's keywords from Search Console."""
    site = await get_org_site(request.site_id, current_org, session)

    try:
        result = await refresh_from_search_console(
            session,
            site,
            lookback_days=request.lookback_days,
        )
    except (GoogleNotConnectedError, GoogleTokenExpiredError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
        ) from e
    except ExternalAPIError as e:
        logger.warning(
            "Search Console refresh failed",
            extra={"site_id": site.id, "status": e.status_code},
        )
        raise upstream_error(e) from e

    return SearchConsoleRefreshResponse(
        queries_seen=result.queries_seen,
        keywords_upserted=result.keywords_upserted,
        opportunities_scored=result.opportunities_scored,
    )


@router.post(
    "/research",
    response_model=KeywordResearchResponse,
    summary="Research keywords",
    description=(
        "Fetch Keyword Planner ideas for seed terms (or one URL when `use_url` is set) and "
        "reconcile their market data into the keyword ledger as content gaps."
    ),
)
async def research_site_keywords(
    request: KeywordResearchRequest,
    current_org: CurrentOrganization,
    session: DbSession,
) -> KeywordResearchResponse:
    """Research market keywords for a site."""
    site = await get_org_site(request.site_id, current_org, session)

    if not settings.google_ads_configured:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=GOOGLE_ADS_NOT_CONFIGURED_DETAIL,
        )

    try:
        result = await research_keywords(
            session,
            site,
            request.seeds,
            use_url=request.use_url,
        )
    except APIKeyMissingError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=GOOGLE_ADS_NOT_CONFIGURED_DETAIL,
        ) from e
    except ExternalAPIError as e:
        logger.warning(
            "Keyword research failed",
            extra={"site_id": site.id, "status": e.status_code},
        )
        raise upstream_error(e) from e

    return KeywordResearchResponse(
        keywords_fetched=result.keywords_fetched,
        keywords_upserted=result.keywords_upserted,
        content_gaps_found=result.content_gaps_found,
    )


@router.get(
    "/{site_id}",
    response_model=KeywordListResponse,
    summary="List keywords",
    description=(
        "Return paginated keywords for a site, best opportunities first, with optional "
        "filters for status, opportunity type, topic cluster and text search."
    ),
)
async def list_keywords(
    site_id: str,
    current_org: CurrentOrganization,
    session: DbSession,
    page: int = Query(DEFAULT_PAGE, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    status_filter: str | None = Query(None, alias="status"),
    opportunity_type: str | None = Query(None),
    topic_cluster: str | None = Query(None),
    search: str | None = Query(None),
) -> KeywordListResponse:
    """List keywords for a site with filters."""
    await get_org_site(site_id, current_org, session)

    keywords, total = await list_site_keywords(
        session,
        site_id,
        status=status_filter,
        opportunity_type=opportunity_type,
        topic_cluster=topic_cluster,
        search=search,
        page=page,
        page_size=page_size,
    )

    return KeywordListResponse(
        items=[KeywordResponse.model_validate(k) for k in keywords],
        total=total,
        page=page,
        page_size=page_size,
    )
