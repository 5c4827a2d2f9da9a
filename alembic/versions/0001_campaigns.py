"""campaigns

Revision ID: 0001_campaigns
Revises:
Create Date: 2026-10-16

"""

from alembic import op

revision = "0001_campaigns"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS campaigns (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            title TEXT NOT NULL,
            slug TEXT NOT NULL,
            description TEXT,
            category TEXT NOT NULL DEFAULT 'general',
            goal_amount NUMERIC(12,2) NOT NULL DEFAULT 0 CHECK (goal_amount >= 0),
            raised_amount NUMERIC(12,2) NOT NULL DEFAULT 0 CHECK (raised_amount >= 0),
            donor_count INTEGER NOT NULL DEFAULT 0,
            currency TEXT NOT NULL DEFAULT 'USD',
            status TEXT NOT NULL DEFAULT 'active'
                CHECK (status IN ('active', 'completed', 'paused', 'draft')),
            is_urgent BOOLEAN NOT NULL DEFAULT FALSE,
            priority INTEGER NOT NULL DEFAULT 0,
            start_date TIMESTAMPTZ NOT NULL DEFAULT now(),
            end_date TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """
    )
    op.execute("CREATE UNIQUE INDEX IF NOT EXISTS uq_campaigns_slug ON campaigns(slug)")
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_campaigns_status_category ON campaigns(status, category)"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS campaigns")
