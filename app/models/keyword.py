"""Keyword ledger model."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from sqlalchemy import (
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.site import Site


OpportunityType = Literal["quick_win", "ctr_optimization", "content_gap"]
CompetitionBand = Literal["LOW", "MEDIUM", "HIGH", "UNKNOWN"]
KeywordStatus = Literal["active", "used"]


class Keyword(Base, UUIDMixin, TimestampMixin):
    """Search term scoped to a site, with metrics and opportunity scoring."""

    __tablename__ = "keywords"
    __table_args__ = (
        UniqueConstraint("site_id", "keyword_normalized", name="uq_keywords_site_normalized"),
        CheckConstraint("opportunity_score >= 0", name="ck_keywords_score_non_negative"),
        Index("ix_keywords_site_status_score", "site_id", "status", "opportunity_score"),
    )

    site_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Core data
    keyword: Mapped[str] = mapped_column(String(500), nullable=False)
    keyword_normalized: Mapped[str] = mapped_column(String(500), nullable=False)

    # Search Console metrics
    clicks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    impressions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ctr: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_position: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Market research metrics
    search_volume: Mapped[int | None] = mapped_column(Integer, nullable=True)
    competition: Mapped[str | None] = mapped_column(String(20), nullable=True)
    competition_index: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Scoring output
    opportunity_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    opportunity_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    action: Mapped[str | None] = mapped_column(Text, nullable=True)
    topic_cluster: Mapped[str] = mapped_column(String(50), default="General", nullable=False)

    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)

    site: Mapped[Site] = relationship("Site", back_populates="keywords")

    def __repr__(self) -> str:
        return f"<Keyword {self.keyword}>"
