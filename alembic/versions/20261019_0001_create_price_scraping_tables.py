"""create price scraping tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tracked_urls",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("hint", sa.Text(), nullable=False),
        sa.Column("material_key", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("auto_scraping_enabled", sa.Boolean(), nullable=False),
        sa.Column("interval_hours", sa.Integer(), nullable=False),
        sa.Column("price_multiplier", sa.Numeric(precision=10, scale=4), nullable=False),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_due_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_result", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "interval_hours > 0 AND interval_hours <= 8760",
            name="ck_tracked_urls_interval_range",
        ),
        sa.CheckConstraint("price_multiplier > 0", name="ck_tracked_urls_multiplier_positive"),
        sa.CheckConstraint(
            "next_due_at IS NULL OR last_run_at IS NULL OR next_due_at >= last_run_at",
            name="ck_tracked_urls_next_after_last",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_tracked_urls_due",
        "tracked_urls",
        ["is_active", "auto_scraping_enabled", "next_due_at"],
        unique=False,
    )
    op.create_index("ix_tracked_urls_material_key", "tracked_urls", ["material_key"], unique=False)

    op.create_table(
        "scrape_attempts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tracked_url_id", sa.Uuid(), nullable=True),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("hint", sa.Text(), nullable=False),
        sa.Column("trigger", sa.String(length=32), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("price", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("final_price", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("availability", sa.String(length=255), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("strategy", sa.String(length=32), nullable=True),
        sa.Column("error_type", sa.String(length=32), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("elapsed_ms", sa.Integer(), nullable=False),
        sa.Column("scraped_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tracked_url_id"], ["tracked_urls.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_scrape_attempts_tracked_url_scraped_at",
        "scrape_attempts",
        ["tracked_url_id", "scraped_at"],
        unique=False,
    )
    op.create_index("ix_scrape_attempts_scraped_at", "scrape_attempts", ["scraped_at"], unique=False)

    op.create_table(
        "price_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("material_key", sa.String(length=255), nullable=False),
        sa.Column("unit_price", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("source", sa.String(length=16), nullable=False),
        sa.Column("tracked_url_id", sa.Uuid(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tracked_url_id"], ["tracked_urls.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("material_key", name="uq_price_records_material_key"),
    )


def downgrade() -> None:
    op.drop_table("price_records")
    op.drop_index("ix_scrape_attempts_scraped_at", table_name="scrape_attempts")
    op.drop_index("ix_scrape_attempts_tracked_url_scraped_at", table_name="scrape_attempts")
    op.drop_table("scrape_attempts")
    op.drop_index("ix_tracked_urls_material_key", table_name="tracked_urls")
    op.drop_index("ix_tracked_urls_due", table_name="tracked_urls")
    op.drop_table("tracked_urls")
