"""create acquisition session, scraper run, credit and snapshot tables

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:30:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "intelligence_sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("domain", sa.String(length=255), nullable=False),
        sa.Column(
            "phase",
            sa.String(length=32),
            nullable=False,
            comment="discovering, extracting, validating, enhancing, complete, aborted, deleted",
        ),
        sa.Column(
            "merged_data",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            comment="stats, pages, extractedData, audit trail and costs",
        ),
        sa.Column(
            "version",
            sa.Integer(),
            nullable=False,
            comment="Optimistic concurrency counter, incremented on every update",
        ),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_intelligence_sessions_user_domain",
        "intelligence_sessions",
        ["user_id", "domain"],
        unique=False,
    )
    op.create_index(
        "ix_intelligence_sessions_phase_updated_at",
        "intelligence_sessions",
        ["phase", "updated_at"],
        unique=False,
    )
    op.create_index(
        "uq_intelligence_sessions_active_user_domain",
        "intelligence_sessions",
        ["user_id", "domain"],
        unique=True,
        postgresql_where=sa.text("phase NOT IN ('complete', 'aborted', 'deleted')"),
    )

    op.create_table(
        "scraper_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("scraper_id", sa.String(length=64), nullable=False),
        sa.Column("pages_scraped", sa.Integer(), nullable=False),
        sa.Column("data_points", sa.Integer(), nullable=False),
        sa.Column("discovered_links", sa.Integer(), nullable=False),
        sa.Column("duration_ms", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, comment="running, complete, failed"),
        sa.Column("extracted_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["intelligence_sessions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scraper_runs_session_id", "scraper_runs", ["session_id"], unique=False)
    op.create_index(
        "ix_scraper_runs_scraper_id_status",
        "scraper_runs",
        ["scraper_id", "status"],
        unique=False,
    )

    op.create_table(
        "credit_accounts",
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("balance", sa.Integer(), nullable=False),
        sa.Column("credits_used", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("balance >= 0", name="ck_credit_accounts_balance_non_negative"),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "credit_transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False, comment="Positive for debits, negative for refunds"),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_credit_transactions_user_id_created_at",
        "credit_transactions",
        ["user_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "extraction_snapshots",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("session_version", sa.Integer(), nullable=False),
        sa.Column("domain", sa.String(length=255), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["intelligence_sessions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "session_id",
            "session_version",
            name="uq_extraction_snapshots_session_version",
        ),
    )


def downgrade() -> None:
    op.drop_table("extraction_snapshots")
    op.drop_index("ix_credit_transactions_user_id_created_at", table_name="credit_transactions")
    op.drop_table("credit_transactions")
    op.drop_table("credit_accounts")
    op.drop_index("ix_scraper_runs_scraper_id_status", table_name="scraper_runs")
    op.drop_index("ix_scraper_runs_session_id", table_name="scraper_runs")
    op.drop_table("scraper_runs")
    op.drop_index("uq_intelligence_sessions_active_user_domain", table_name="intelligence_sessions")
    op.drop_index("ix_intelligence_sessions_phase_updated_at", table_name="intelligence_sessions")
    op.drop_index("ix_intelligence_sessions_user_domain", table_name="intelligence_sessions")
    op.drop_table("intelligence_sessions")
