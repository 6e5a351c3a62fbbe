"""Dispute arbitration tables

Revision ID: 003
Revises: 002
Create Date: 2026-10-18

Creates: disputes, dispute_comments, dispute_transitions
Enums: disputestatus, disputetier, disputereason, disputeresolution, commentvisibility
"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "003"
down_revision: str | None = "002"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # ── 1. Create enum types ──────────────────────────────────────────────
    op.execute("""
        CREATE TYPE disputestatus AS ENUM (
            'open', 'mediation', 'awaiting_response', 'under_review', 'resolved',
            'appealed', 'appeal_review', 'dismissed', 'withdrawn', 'mediated'
        );
    """)
    op.execute("CREATE TYPE disputetier AS ENUM ('mediation', 'council', 'admin');")
    op.execute("""
        CREATE TYPE disputereason AS ENUM (
            'rejected_unfairly', 'low_quality_score', 'plagiarism_claim', 'reviewer_bias', 'other'
        );
    """)
    op.execute("""
        CREATE TYPE disputeresolution AS ENUM ('overturned', 'upheld', 'compromise', 'dismissed');
    """)
    op.execute("CREATE TYPE commentvisibility AS ENUM ('parties_only', 'arbitrator', 'public');")

    # ── 2. Create disputes table ───────────────────────────────────────────
    op.execute("""
        CREATE TABLE disputes (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),

            -- Links
            submission_id UUID NOT NULL REFERENCES task_submissions(id) ON DELETE CASCADE,
            task_id UUID NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
            sprint_id UUID REFERENCES sprints(id) ON DELETE SET NULL,

            -- Parties
            disputant_id UUID NOT NULL REFERENCES user_profiles(id) ON DELETE RESTRICT,
            reviewer_id UUID NOT NULL REFERENCES user_profiles(id) ON DELETE RESTRICT,
            arbitrator_id UUID REFERENCES user_profiles(id) ON DELETE SET NULL,

            status disputestatus NOT NULL DEFAULT 'open',
            tier disputetier NOT NULL DEFAULT 'council',
            reason disputereason NOT NULL,

            -- Evidence
            evidence_text TEXT NOT NULL,
            evidence_links JSONB NOT NULL DEFAULT '[]',
            evidence_files JSONB NOT NULL DEFAULT '[]',
            response_text TEXT,
            response_links JSONB NOT NULL DEFAULT '[]',
            response_submitted_at TIMESTAMPTZ,

            -- Deadlines
            response_deadline TIMESTAMPTZ NOT NULL,
            mediation_deadline TIMESTAMPTZ,
            appeal_deadline TIMESTAMPTZ,

            -- Two-party mediation confirmation
            mediation_proposed_by UUID REFERENCES user_profiles(id) ON DELETE SET NULL,
            mediation_proposed_outcome TEXT,
            mediation_proposed_at TIMESTAMPTZ,

            -- Resolution
            resolution disputeresolution,
            resolution_notes TEXT,
            new_quality_score INTEGER CHECK (new_quality_score BETWEEN 1 AND 5),
            resolved_at TIMESTAMPTZ,

            -- XP
            xp_stake INTEGER NOT NULL DEFAULT 0,
            xp_refunded INTEGER NOT NULL DEFAULT 0,
            review_snapshot JSONB NOT NULL DEFAULT '{}',

            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),

            CONSTRAINT ck_disputes_resolution_notes
                CHECK (resolution IS NULL OR resolution_notes IS NOT NULL),
            CONSTRAINT ck_disputes_compromise_score
                CHECK ((resolution = 'compromise') = (new_quality_score IS NOT NULL)
                       OR resolution IS NULL)
        );
    """)
    op.execute(
        "CREATE INDEX ix_disputes_sprint_id ON disputes (sprint_id) WHERE sprint_id IS NOT NULL;"
    )
    op.execute(
        "CREATE INDEX ix_disputes_disputant_created ON disputes (disputant_id, created_at);"
    )
    op.execute("CREATE INDEX ix_disputes_arbitrator_id ON disputes (arbitrator_id);")
    op.execute("CREATE INDEX ix_disputes_status ON disputes (status);")
    # At most one non-terminal dispute per submission
    op.execute("""
        CREATE UNIQUE INDEX ux_disputes_active_submission ON disputes (submission_id)
        WHERE status NOT IN ('resolved', 'dismissed', 'withdrawn', 'mediated');
    """)

    # ── 3. Comments and audit trail ────────────────────────────────────────
    op.execute("""
        CREATE TABLE dispute_comments (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            dispute_id UUID NOT NULL REFERENCES disputes(id) ON DELETE CASCADE,
            user_id UUID NOT NULL REFERENCES user_profiles(id) ON DELETE RESTRICT,
            content TEXT NOT NULL,
            visibility commentvisibility NOT NULL DEFAULT 'parties_only',
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_dispute_comments_dispute_id ON dispute_comments (dispute_id);")

    op.execute("""
        CREATE TABLE dispute_transitions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            dispute_id UUID NOT NULL REFERENCES disputes(id) ON DELETE CASCADE,
            from_status disputestatus NOT NULL,
            to_status disputestatus NOT NULL,
            from_tier disputetier,
            to_tier disputetier,
            transitioned_by UUID REFERENCES user_profiles(id) ON DELETE SET NULL,
            reason TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute(
        "CREATE INDEX ix_dispute_transitions_dispute_id ON dispute_transitions (dispute_id);"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS dispute_transitions CASCADE;")
    op.execute("DROP TABLE IF EXISTS dispute_comments CASCADE;")
    op.execute("DROP TABLE IF EXISTS disputes CASCADE;")

    op.execute("DROP TYPE IF EXISTS commentvisibility;")
    op.execute("DROP TYPE IF EXISTS disputeresolution;")
    op.execute("DROP TYPE IF EXISTS disputereason;")
    op.execute("DROP TYPE IF EXISTS disputetier;")
    op.execute("DROP TYPE IF EXISTS disputestatus;")
