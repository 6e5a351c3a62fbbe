"""Reward settlement ledger and event outbox

Revision ID: 004
Revises: 003
Create Date: 2026-10-18

Creates: reward_distributions, reward_settlement_commits, event_outbox
Enums: distributiontype, eventstatus
"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "004"
down_revision: str | None = "003"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # ── 1. Create enum types ──────────────────────────────────────────────
    op.execute("CREATE TYPE distributiontype AS ENUM ('epoch');")
    op.execute("""
        CREATE TYPE eventstatus AS ENUM ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED');
    """)

    # ── 2. Reward settlement ──────────────────────────────────────────────
    op.execute("""
        CREATE TABLE reward_distributions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            sprint_id UUID NOT NULL REFERENCES sprints(id) ON DELETE CASCADE,
            user_id UUID NOT NULL REFERENCES user_profiles(id) ON DELETE CASCADE,
            distribution_type distributiontype NOT NULL DEFAULT 'epoch',
            points INTEGER NOT NULL,
            share NUMERIC(12, 9) NOT NULL,
            amount NUMERIC(20, 9) NOT NULL CHECK (amount >= 0),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("""
        CREATE INDEX ix_reward_distributions_sprint_type
        ON reward_distributions (sprint_id, distribution_type);
    """)

    op.execute("""
        CREATE TABLE reward_settlement_commits (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            idempotency_key VARCHAR(255) NOT NULL UNIQUE,
            sprint_id UUID NOT NULL REFERENCES sprints(id) ON DELETE CASCADE,
            committed_by UUID REFERENCES user_profiles(id) ON DELETE SET NULL,
            result JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    # ── 3. Event outbox ───────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE event_outbox (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            event_type VARCHAR(100) NOT NULL,
            aggregate_type VARCHAR(50) NOT NULL,
            aggregate_id VARCHAR(64) NOT NULL,
            payload JSONB NOT NULL DEFAULT '{}',
            status eventstatus NOT NULL DEFAULT 'PENDING',
            attempts INTEGER NOT NULL DEFAULT 0,
            max_attempts INTEGER NOT NULL DEFAULT 5,
            last_error TEXT,
            processed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute(
        "CREATE INDEX ix_event_outbox_aggregate ON event_outbox (aggregate_type, aggregate_id);"
    )
    op.execute(
        "CREATE INDEX ix_event_outbox_pending ON event_outbox (created_at) WHERE status = 'PENDING';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS event_outbox CASCADE;")
    op.execute("DROP TABLE IF EXISTS reward_settlement_commits CASCADE;")
    op.execute("DROP TABLE IF EXISTS reward_distributions CASCADE;")

    op.execute("DROP TYPE IF EXISTS eventstatus;")
    op.execute("DROP TYPE IF EXISTS distributiontype;")
