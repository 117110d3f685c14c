"""Autopilot schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

Cadence = Literal["daily", "every_3_days", "weekly"]
IQLevel = Literal["low", "medium", "high"]


class AutopilotStatusResponse(BaseModel):
    """Autopilot settings plus the site's pipeline projection."""

    site_id: str = Field(validation_alias="id")
    autopilot_enabled: bool
    autopilot_cadence: str
    autopilot_iq_level: str
    autopilot_articles_per_run: int
    next_run_at: datetime | None
    last_run_at: datetime | None
    last_error: str | None
    pipeline_step: str | None
    pipeline_keyword_id: str | None
    pipeline_article_id: str | None

    model_config = {"from_attributes": True, "populate_by_name": True}


class AutopilotConfigUpdate(BaseModel):
    """Partial autopilot settings update.

    `articles_per_run` is clamped to 1..5 rather than rejected.
    `clear_pipeline` returns the site to idle after a resume completes.
    """

    enabled: bool | None = None
    cadence: Cadence | None = None
    iq_level: IQLevel | None = None
    articles_per_run: int | None = None
    clear_pipeline: bool = False


class GenerationReport(BaseModel):
    """Sent by the article generator once an article exists for the claimed keyword."""

    keyword_id: str
    article_id: str


class PickedKeywordResponse(BaseModel):
    id: str
    keyword: str
    opportunity_type: str | None
    opportunity_score: int
    reasoning: str | None
    action: str | None
    topic_cluster: str

    model_config = {"from_attributes": True}


class AutopilotTriggerResponse(BaseModel):
    """Outcome of one periodic trigger invocation."""

    message: str
    claimed: bool = False
    site_id: str | None = None
    keyword_id: str | None = None
    keyword: str | None = None
    scheduled_runs_processed: int = 0

    model_config = {"from_attributes": True}
