"""Article model (written by the generation collaborator, read by scoring)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.site import Site


class Article(Base, UUIDMixin, TimestampMixin):
    """Generated article; the core only reads its keyword coverage."""

    __tablename__ = "articles"
    __table_args__ = (UniqueConstraint("site_id", "slug", name="uq_articles_site_slug"),)

    site_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    keyword_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("keywords.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    slug: Mapped[str] = mapped_column(String(500), nullable=False)
    primary_keyword: Mapped[str | None] = mapped_column(String(500), nullable=True)
    category: Mapped[str] = mapped_column(String(100), default="General", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="draft", nullable=False)

    site: Mapped[Site] = relationship("Site", back_populates="articles")

    def __repr__(self) -> str:
        return f"<Article {self.slug}>"
