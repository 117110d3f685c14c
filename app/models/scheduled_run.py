"""Content calendar: one scheduled keyword pick per site and date."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Literal

from sqlalchemy import Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.site import Site


ScheduledRunStatus = Literal["pending", "keyword_picked", "failed"]


class ScheduledRun(Base, UUIDMixin, TimestampMixin):
    """Calendar entry asking for a keyword pick on a specific day."""

    __tablename__ = "scheduled_runs"
    __table_args__ = (
        UniqueConstraint("site_id", "scheduled_date", name="uq_scheduled_runs_site_date"),
        Index("ix_scheduled_runs_status_date", "status", "scheduled_date"),
    )

    site_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)

    keyword_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    keyword_text: Mapped[str | None] = mapped_column(String(500), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    site: Mapped[Site] = relationship("Site", back_populates="scheduled_runs")

    def __repr__(self) -> str:
        return f"<ScheduledRun {self.site_id} {self.scheduled_date} {self.status}>"
