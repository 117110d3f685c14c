"""Site model: a tenant-owned content property with autopilot settings."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Literal

from sqlalchemy import Boolean, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDMixin
from app.models.pipeline_state import PipelineState, pipeline_state_from_columns

if TYPE_CHECKING:
    from app.models.article import Article
    from app.models.keyword import Keyword
    from app.models.scheduled_run import ScheduledRun


AutopilotCadence = Literal["daily", "every_3_days", "weekly"]
AutopilotIQLevel = Literal["low", "medium", "high"]
GoogleStatus = Literal["not_connected", "active", "expired", "revoked", "error"]


class Site(Base, UUIDMixin, TimestampMixin):
    """Connected content site."""

    __tablename__ = "sites"
    __table_args__ = (UniqueConstraint("organization_id", "domain", name="uq_sites_org_domain"),)

    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), nullable=False)

    # Search Console connection (tokens are acquired and refreshed elsewhere)
    gsc_property: Mapped[str | None] = mapped_column(String(500), nullable=True)
    google_status: Mapped[str] = mapped_column(String(20), default="not_connected", nullable=False)
    google_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    google_token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Autopilot settings
    autopilot_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    autopilot_cadence: Mapped[str] = mapped_column(String(20), default="weekly", nullable=False)
    autopilot_iq_level: Mapped[str] = mapped_column(String(20), default="medium", nullable=False)
    autopilot_articles_per_run: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Pipeline state (see app.models.pipeline_state)
    pipeline_step: Mapped[str | None] = mapped_column(String(50), nullable=True)
    pipeline_keyword_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    pipeline_article_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    next_run_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    keywords: Mapped[list[Keyword]] = relationship(
        "Keyword",
        back_populates="site",
        cascade="all, delete-orphan",
    )
    articles: Mapped[list[Article]] = relationship(
        "Article",
        back_populates="site",
        cascade="all, delete-orphan",
    )
    scheduled_runs: Mapped[list[ScheduledRun]] = relationship(
        "ScheduledRun",
        back_populates="site",
        cascade="all, delete-orphan",
    )

    @property
    def pipeline_state(self) -> PipelineState:
        return pipeline_state_from_columns(
            self.pipeline_step,
            self.pipeline_keyword_id,
            self.pipeline_article_id,
        )

    @property
    def resolved_gsc_property(self) -> str:
        return self.gsc_property or f"sc-domain:{self.domain}"

    def __repr__(self) -> str:
        return f"<Site {self.name} ({self.domain})>"
