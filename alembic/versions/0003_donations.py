"""donations

Revision ID: 0003_donations
Revises: 0002_donors
Create Date: 2026-10-16

"""

from alembic import op

revision = "0003_donations"
down_revision = "0002_donors"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS donations (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            stripe_payment_intent_id TEXT,
            stripe_invoice_id TEXT,
            stripe_subscription_id TEXT,
            stripe_customer_id TEXT,
            campaign_id UUID REFERENCES campaigns(id),
            ministry TEXT,
            donor_first_name TEXT NOT NULL DEFAULT '',
            donor_last_name TEXT NOT NULL DEFAULT '',
            donor_email TEXT NOT NULL,
            donor_phone TEXT,
            donor_address JSONB,
            amount NUMERIC(12,2) NOT NULL CHECK (amount > 0),
            currency TEXT NOT NULL DEFAULT 'USD',
            net_amount NUMERIC(12,2),
            transaction_fee NUMERIC(12,2) NOT NULL DEFAULT 0,
            refunded_amount NUMERIC(12,2),
            is_recurring BOOLEAN NOT NULL DEFAULT FALSE,
            recurring_frequency TEXT
                CHECK (recurring_frequency IN ('monthly', 'quarterly', 'annually')),
            is_anonymous BOOLEAN NOT NULL DEFAULT FALSE,
            message TEXT CHECK (char_length(message) <= 1000),
            dedication_type TEXT NOT NULL DEFAULT 'none'
                CHECK (dedication_type IN ('in_honor', 'in_memory', 'none')),
            dedication_name TEXT CHECK (char_length(dedication_name) <= 100),
            payment_status TEXT NOT NULL DEFAULT 'pending'
                CHECK (payment_status IN ('pending', 'processing', 'requires_action',
                                          'succeeded', 'failed', 'refunded', 'canceled')),
            source TEXT NOT NULL DEFAULT 'web',
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            processed_at TIMESTAMPTZ,
            refunded_at TIMESTAMPTZ,
            canceled_at TIMESTAMPTZ,
            CHECK ((campaign_id IS NULL) <> (ministry IS NULL))
        )
        """
    )
    # idempotency keys for the confirm and webhook paths
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_donations_payment_intent "
        "ON donations(stripe_payment_intent_id)"
    )
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_donations_invoice "
        "ON donations(stripe_invoice_id)"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_donations_subscription "
        "ON donations(stripe_subscription_id)"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_donations_status_created "
        "ON donations(payment_status, created_at DESC)"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_donations_campaign ON donations(campaign_id)"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_donations_email ON donations(LOWER(donor_email))"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS donations")
