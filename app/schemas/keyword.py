"""Keyword schemas."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class KeywordResponse(BaseModel):
    """Schema for keyword response."""

    id: str
    site_id: str
    keyword: str
    keyword_normalized: str
    status: str

    # Search Console metrics
    clicks: int | None
    impressions: int | None
    ctr: float | None
    current_position: float | None

    # Market metrics
    search_volume: int | None
    competition: str | None
    competition_index: int | None

    # Opportunity
    opportunity_type: str | None
    opportunity_score: int
    reasoning: str | None
    action: str | None
    topic_cluster: str

    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class KeywordListResponse(BaseModel):
    """Schema for keyword list response."""

    items: list[KeywordResponse]
    total: int
    page: int
    page_size: int


class SearchConsoleRefreshRequest(BaseModel):
    """Refresh a site's keywords from Search Console."""

    site_id: str
    lookback_days: int = Field(default=90, ge=1, le=480)


class SearchConsoleRefreshResponse(BaseModel):
    queries_seen: int
    keywords_upserted: int
    opportunities_scored: int


class KeywordResearchRequest(BaseModel):
    """Research market keywords from seed terms or a single URL."""

    site_id: str
    seeds: list[str] = Field(min_length=1)
    use_url: bool = False

    @field_validator("seeds")
    @classmethod
    def _clean_seeds(cls, value: list[str]) -> list[str]:
        seeds = [seed.strip() for seed in value if seed and seed.strip()]
        if not seeds:
            raise ValueError("seeds must contain at least one keyword or URL")
        return seeds


class KeywordResearchResponse(BaseModel):
    keywords_fetched: int
    keywords_upserted: int
    content_gaps_found: int
