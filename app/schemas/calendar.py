"""Content calendar schemas."""

from datetime import date, datetime

from pydantic import BaseModel, Field


class ScheduledRunResponse(BaseModel):
    id: str
    site_id: str
    scheduled_date: date
    status: str
    keyword_id: str | None
    keyword_text: str | None
    error: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ScheduledRunCreateRequest(BaseModel):
    """Dates to schedule. Dates that already have a row are skipped."""

    dates: list[date] = Field(min_length=1, max_length=366)
