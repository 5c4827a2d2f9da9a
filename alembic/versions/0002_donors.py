"""donors

Revision ID: 0002_donors
Revises: 0001_campaigns
Create Date: 2026-10-16

"""

from alembic import op

revision = "0002_donors"
down_revision = "0001_campaigns"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS donors (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email TEXT NOT NULL,
            first_name TEXT NOT NULL DEFAULT '',
            last_name TEXT NOT NULL DEFAULT '',
            phone TEXT,
            address JSONB,
            preferred_currency TEXT NOT NULL DEFAULT 'USD',
            total_donated NUMERIC(12,2) NOT NULL DEFAULT 0,
            donation_count INTEGER NOT NULL DEFAULT 0,
            average_donation NUMERIC(12,2) NOT NULL DEFAULT 0,
            largest_donation NUMERIC(12,2) NOT NULL DEFAULT 0,
            first_donation_at TIMESTAMPTZ,
            last_donation_at TIMESTAMPTZ,
            donor_type TEXT NOT NULL DEFAULT 'first_time'
                CHECK (donor_type IN
                    ('first_time', 'returning', 'recurring', 'major_donor', 'champion')),
            tags TEXT[] NOT NULL DEFAULT '{}',
            active_subscriptions TEXT[] NOT NULL DEFAULT '{}',
            communication_preferences JSONB NOT NULL DEFAULT
                '{"email": true, "newsletter": false, "updates": true, "tax_receipts": true}',
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            is_blacklisted BOOLEAN NOT NULL DEFAULT FALSE,
            blacklist_reason TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """
    )
    op.execute("CREATE UNIQUE INDEX IF NOT EXISTS uq_donors_email ON donors(email)")
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_donors_total ON donors(total_donated DESC)"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS donors")
