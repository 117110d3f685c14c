"""create sites, keywords, articles and scheduled runs

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-03-02 09:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0a1b2c3d4e5f"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "sites",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("domain", sa.String(length=255), nullable=False),
        sa.Column("gsc_property", sa.String(length=500), nullable=True),
        sa.Column(
            "google_status",
            sa.String(length=20),
            server_default="not_connected",
            nullable=False,
        ),
        sa.Column("google_access_token", sa.Text(), nullable=True),
        sa.Column("google_token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "autopilot_enabled",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column(
            "autopilot_cadence",
            sa.String(length=20),
            server_default="weekly",
            nullable=False,
        ),
        sa.Column(
            "autopilot_iq_level",
            sa.String(length=20),
            server_default="medium",
            nullable=False,
        ),
        sa.Column(
            "autopilot_articles_per_run",
            sa.Integer(),
            server_default=sa.text("1"),
            nullable=False,
        ),
        sa.Column("pipeline_step", sa.String(length=50), nullable=True),
        sa.Column("pipeline_keyword_id", sa.String(length=36), nullable=True),
        sa.Column("pipeline_article_id", sa.String(length=36), nullable=True),
        sa.Column("next_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "domain", name="uq_sites_org_domain"),
    )
    op.create_index(op.f("ix_sites_organization_id"), "sites", ["organization_id"], unique=False)
    op.create_index(op.f("ix_sites_next_run_at"), "sites", ["next_run_at"], unique=False)

    op.create_table(
        "keywords",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("site_id", sa.String(length=36), nullable=False),
        sa.Column("keyword", sa.String(length=500), nullable=False),
        sa.Column("keyword_normalized", sa.String(length=500), nullable=False),
        sa.Column("clicks", sa.Integer(), nullable=True),
        sa.Column("impressions", sa.Integer(), nullable=True),
        sa.Column("ctr", sa.Float(), nullable=True),
        sa.Column("current_position", sa.Float(), nullable=True),
        sa.Column("search_volume", sa.Integer(), nullable=True),
        sa.Column("competition", sa.String(length=20), nullable=True),
        sa.Column("competition_index", sa.Integer(), nullable=True),
        sa.Column("opportunity_type", sa.String(length=30), nullable=True),
        sa.Column(
            "opportunity_score",
            sa.Integer(),
            server_default=sa.text("0"),
            nullable=False,
        ),
        sa.Column("reasoning", sa.Text(), nullable=True),
        sa.Column("action", sa.Text(), nullable=True),
        sa.Column(
            "topic_cluster",
            sa.String(length=50),
            server_default="General",
            nullable=False,
        ),
        sa.Column("status", sa.String(length=20), server_default="active", nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["site_id"], ["sites.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("site_id", "keyword_normalized", name="uq_keywords_site_normalized"),
        sa.CheckConstraint("opportunity_score >= 0", name="ck_keywords_score_non_negative"),
    )
    op.create_index(op.f("ix_keywords_site_id"), "keywords", ["site_id"], unique=False)
    op.create_index(
        "ix_keywords_site_status_score",
        "keywords",
        ["site_id", "status", "opportunity_score"],
        unique=False,
    )

    op.create_table(
        "articles",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("site_id", sa.String(length=36), nullable=False),
        sa.Column("keyword_id", sa.String(length=36), nullable=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("slug", sa.String(length=500), nullable=False),
        sa.Column("primary_keyword", sa.String(length=500), nullable=True),
        sa.Column("category", sa.String(length=100), server_default="General", nullable=False),
        sa.Column("status", sa.String(length=20), server_default="draft", nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["keyword_id"], ["keywords.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["site_id"], ["sites.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("site_id", "slug", name="uq_articles_site_slug"),
    )
    op.create_index(op.f("ix_articles_site_id"), "articles", ["site_id"], unique=False)
    op.create_index(op.f("ix_articles_keyword_id"), "articles", ["keyword_id"], unique=False)

    op.create_table(
        "scheduled_runs",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("site_id", sa.String(length=36), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), server_default="pending", nullable=False),
        sa.Column("keyword_id", sa.String(length=36), nullable=True),
        sa.Column("keyword_text", sa.String(length=500), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["site_id"], ["sites.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("site_id", "scheduled_date", name="uq_scheduled_runs_site_date"),
    )
    op.create_index(op.f("ix_scheduled_runs_site_id"), "scheduled_runs", ["site_id"], unique=False)
    op.create_index(
        "ix_scheduled_runs_status_date",
        "scheduled_runs",
        ["status", "scheduled_date"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_scheduled_runs_status_date", table_name="scheduled_runs")
    op.drop_index(op.f("ix_scheduled_runs_site_id"), table_name="scheduled_runs")
    op.drop_table("scheduled_runs")

    op.drop_index(op.f("ix_articles_keyword_id"), table_name="articles")
    op.drop_index(op.f("ix_articles_site_id"), table_name="articles")
    op.drop_table("articles")

    op.drop_index("ix_keywords_site_status_score", table_name="keywords")
    op.drop_index(op.f("ix_keywords_site_id"), table_name="keywords")
    op.drop_table("keywords")

    op.drop_index(op.f("ix_sites_next_run_at"), table_name="sites")
    op.drop_index(op.f("ix_sites_organization_id"), table_name="sites")
    op.drop_table("sites")
