"""Members, org config, sprints and tasks

Revision ID: 002
Revises: 001
Create Date: 2026-10-18

Creates: user_profiles, orgs, sprints, sprint_snapshots, sprint_transitions,
         task_templates, tasks, task_submissions
Enums: userrole, sprintstatus, rewardsettlementstatus, incompleteaction,
       taskstatus, submissionreviewstatus
"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # ── 1. Create enum types ──────────────────────────────────────────────
    op.execute("CREATE TYPE userrole AS ENUM ('guest', 'member', 'council', 'admin');")
    op.execute("""
        CREATE TYPE sprintstatus AS ENUM (
            'planning', 'active', 'review', 'dispute_window', 'settlement', 'completed'
        );
    """)
    op.execute(
        "CREATE TYPE rewardsettlementstatus AS ENUM ('pending', 'committed', 'held', 'killed');"
    )
    op.execute("CREATE TYPE incompleteaction AS ENUM ('backlog', 'next_sprint');")
    op.execute("""
        CREATE TYPE taskstatus AS ENUM ('backlog', 'todo', 'in_progress', 'review', 'done');
    """)
    op.execute("""
        CREATE TYPE submissionreviewstatus AS ENUM ('pending', 'approved', 'rejected', 'disputed');
    """)

    # ── 2. Members and org config ─────────────────────────────────────────
    op.execute("""
        CREATE TABLE user_profiles (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email VARCHAR(255) NOT NULL UNIQUE,
            name VARCHAR(255),
            role userrole NOT NULL DEFAULT 'member',
            xp_total INTEGER NOT NULL DEFAULT 0 CHECK (xp_total >= 0),
            total_points INTEGER NOT NULL DEFAULT 0 CHECK (total_points >= 0),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_user_profiles_role ON user_profiles (role);")

    op.execute("""
        CREATE TABLE orgs (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name VARCHAR(255) NOT NULL,
            gamification_config JSONB NOT NULL DEFAULT '{}',
            rewards_config JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    # ── 3. Sprints ────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE sprints (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name VARCHAR(100) NOT NULL,
            goal TEXT,
            capacity_points INTEGER,
            start_at TIMESTAMPTZ NOT NULL,
            end_at TIMESTAMPTZ NOT NULL,
            status sprintstatus NOT NULL DEFAULT 'planning',
            created_by UUID REFERENCES user_profiles(id) ON DELETE SET NULL,

            active_started_at TIMESTAMPTZ,
            review_started_at TIMESTAMPTZ,
            dispute_window_started_at TIMESTAMPTZ,
            dispute_window_ends_at TIMESTAMPTZ,
            settlement_started_at TIMESTAMPTZ,
            completed_at TIMESTAMPTZ,

            settlement_blocked_reason TEXT,
            settlement_integrity_flags JSONB NOT NULL DEFAULT '[]',

            reward_pool NUMERIC(20, 9),
            reward_settlement_status rewardsettlementstatus NOT NULL DEFAULT 'pending',
            reward_settlement_idempotency_key VARCHAR(255),
            reward_settlement_committed_at TIMESTAMPTZ,
            reward_settlement_kill_switch_at TIMESTAMPTZ,
            reward_emission_cap NUMERIC(20, 9),
            reward_carryover_amount NUMERIC(20, 9) NOT NULL DEFAULT 0,
            reward_carryover_sprint_count INTEGER NOT NULL DEFAULT 0,

            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),

            CONSTRAINT ck_sprints_dates CHECK (end_at > start_at)
        );
    """)
    op.execute("CREATE INDEX ix_sprints_status ON sprints (status);")
    op.execute("CREATE INDEX ix_sprints_completed_at ON sprints (completed_at);")

    op.execute("""
        CREATE TABLE sprint_snapshots (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            sprint_id UUID NOT NULL UNIQUE REFERENCES sprints(id) ON DELETE CASCADE,
            completed_by UUID NOT NULL REFERENCES user_profiles(id) ON DELETE RESTRICT,
            total_tasks INTEGER NOT NULL,
            completed_tasks INTEGER NOT NULL,
            incomplete_tasks INTEGER NOT NULL,
            total_points INTEGER NOT NULL,
            completed_points INTEGER NOT NULL,
            completion_rate NUMERIC(5, 2) NOT NULL,
            task_summary JSONB NOT NULL DEFAULT '[]',
            incomplete_action incompleteaction NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    op.execute("""
        CREATE TABLE sprint_transitions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            sprint_id UUID NOT NULL REFERENCES sprints(id) ON DELETE CASCADE,
            from_status sprintstatus NOT NULL,
            to_status sprintstatus NOT NULL,
            transitioned_by UUID NOT NULL REFERENCES user_profiles(id) ON DELETE RESTRICT,
            metadata_extra JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_sprint_transitions_sprint_id ON sprint_transitions (sprint_id);")

    # ── 4. Tasks ──────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE task_templates (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            title VARCHAR(255) NOT NULL,
            description TEXT,
            points INTEGER NOT NULL DEFAULT 0,
            is_recurring BOOLEAN NOT NULL DEFAULT false,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    op.execute("""
        CREATE TABLE tasks (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            title VARCHAR(255) NOT NULL,
            description TEXT,
            status taskstatus NOT NULL DEFAULT 'backlog',
            points INTEGER NOT NULL DEFAULT 0,
            sprint_id UUID REFERENCES sprints(id) ON DELETE SET NULL,
            assignee_id UUID REFERENCES user_profiles(id) ON DELETE SET NULL,
            template_id UUID REFERENCES task_templates(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_tasks_sprint_id ON tasks (sprint_id);")
    op.execute("CREATE INDEX ix_tasks_assignee_id ON tasks (assignee_id);")

    op.execute("""
        CREATE TABLE task_submissions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            task_id UUID NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
            user_id UUID NOT NULL REFERENCES user_profiles(id) ON DELETE CASCADE,
            reviewer_id UUID REFERENCES user_profiles(id) ON DELETE SET NULL,
            content TEXT,
            review_status submissionreviewstatus NOT NULL DEFAULT 'pending',
            quality_score INTEGER CHECK (quality_score BETWEEN 1 AND 5),
            earned_points INTEGER,
            reviewed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_task_submissions_task_id ON task_submissions (task_id);")
    op.execute("CREATE INDEX ix_task_submissions_user_id ON task_submissions (user_id);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS task_submissions CASCADE;")
    op.execute("DROP TABLE IF EXISTS tasks CASCADE;")
    op.execute("DROP TABLE IF EXISTS task_templates CASCADE;")
    op.execute("DROP TABLE IF EXISTS sprint_transitions CASCADE;")
    op.execute("DROP TABLE IF EXISTS sprint_snapshots CASCADE;")
    op.execute("DROP TABLE IF EXISTS sprints CASCADE;")
    op.execute("DROP TABLE IF EXISTS orgs CASCADE;")
    op.execute("DROP TABLE IF EXISTS user_profiles CASCADE;")

    op.execute("DROP TYPE IF EXISTS submissionreviewstatus;")
    op.execute("DROP TYPE IF EXISTS taskstatus;")
    op.execute("DROP TYPE IF EXISTS incompleteaction;")
    op.execute("DROP TYPE IF EXISTS rewardsettlementstatus;")
    op.execute("DROP TYPE IF EXISTS sprintstatus;")
    op.execute("DROP TYPE IF EXISTS userrole;")
