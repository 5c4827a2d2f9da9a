from datetime import datetime
from decimal import Decimal
from typing import Any
from psycopg2.extras import Json

DONOR_COLS = [
    "id",
    "email",
    "first_name",
    "last_name",
    "phone",
    "address",
    "preferred_currency",
    "total_donated",
    "donation_count",
    "average_donation",
    "largest_donation",
    "first_donation_at",
    "last_donation_at",
    "donor_type",
    "tags",
    "active_subscriptions",
    "communication_preferences",
    "is_active",
    "is_blacklisted",
    "blacklist_reason",
    "created_at",
    "updated_at",
]

_SELECT = ", ".join(DONOR_COLS)

DEFAULT_PREFERENCES = {
    "email": True,
    "newsletter": False,
    "updates": True,
    "tax_receipts": True,
}


def _row(row) -> dict[str, Any] | None:
    if not row:
        return None
    return dict(zip(DONOR_COLS, row))


def upsert_donor_totals(
    cur,
    *,
    email: str,
    first_name: str,
    last_name: str,
    phone: str | None,
    address: dict | None,
    currency: str,
    amount: Decimal,
    at: datetime,
) -> dict[str, Any]:
    """
    Create the donor on first gift or fold `amount` into the running totals.
    One statement, so concurrent gifts from the same email never lose updates.
    """
    cur.execute(
        f"""
        INSERT INTO donors (email, first_name, last_name, phone, address,
                            preferred_currency, communication_preferences,
                            total_donated, donation_count, average_donation,
                            largest_donation, first_donation_at, last_donation_at)
        VALUES (LOWER(%(email)s), %(first)s, %(last)s, %(phone)s, %(address)s,
                %(currency)s, %(prefs)s,
                %(amt)s, 1, %(amt)s, %(amt)s, %(at)s, %(at)s)
        ON CONFLICT (email) DO UPDATE SET
            first_name = EXCLUDED.first_name,
            last_name = EXCLUDED.last_name,
            phone = COALESCE(EXCLUDED.phone, donors.phone),
            address = COALESCE(EXCLUDED.address, donors.address),
            total_donated = donors.total_donated + EXCLUDED.total_donated,
            donation_count = donors.donation_count + 1,
            average_donation = ROUND(
                (donors.total_donated + EXCLUDED.total_donated)
                / (donors.donation_count + 1), 2),
            largest_donation = GREATEST(donors.largest_donation, EXCLUDED.largest_donation),
            first_donation_at = COALESCE(donors.first_donation_at, EXCLUDED.first_donation_at),
            last_donation_at = EXCLUDED.last_donation_at,
            updated_at = now()
        RETURNING {_SELECT}
        """,
        {
            "email": email,
            "first": first_name,
            "last": last_name,
            "phone": phone,
            "address": Json(address) if address is not None else None,
            "currency": currency,
            "prefs": Json(DEFAULT_PREFERENCES),
            "amt": amount,
            "at": at,
        },
    )
    return _row(cur.fetchone())


def set_classification(
    cur, donor_id: str, donor_type: str, tags: list[str]
) -> dict[str, Any] | None:
    cur.execute(
        f"""
        UPDATE donors SET donor_type = %s, tags = %s, updated_at = now()
        WHERE id = %s
        RETURNING {_SELECT}
        """,
        (donor_type, tags, donor_id),
    )
    return _row(cur.fetchone())


def add_active_subscription(
    cur, email: str, subscription_id: str
) -> dict[str, Any] | None:
    cur.execute(
        f"""
        UPDATE donors
        SET active_subscriptions = CASE
                WHEN %(sub)s = ANY(active_subscriptions) THEN active_subscriptions
                ELSE array_append(active_subscriptions, %(sub)s) END,
            updated_at = now()
        WHERE email = LOWER(%(email)s)
        RETURNING {_SELECT}
        """,
        {"sub": subscription_id, "email": email},
    )
    return _row(cur.fetchone())


def remove_active_subscription(cur, subscription_id: str) -> list[dict[str, Any]]:
    cur.execute(
        f"""
        UPDATE donors
        SET active_subscriptions = array_remove(active_subscriptions, %s),
            updated_at = now()
        WHERE %s = ANY(active_subscriptions)
        RETURNING {_SELECT}
        """,
        (subscription_id, subscription_id),
    )
    return [_row(r) for r in cur.fetchall()]


def replace_totals(cur, email: str, totals: dict[str, Any]) -> dict[str, Any] | None:
    """Overwrite totals with values recomputed from succeeded donations."""
    count = int(totals["donation_count"])
    total = Decimal(totals["total_donated"])
    average = (total / count).quantize(Decimal("0.01")) if count else Decimal("0")
    cur.execute(
        f"""
        UPDATE donors
        SET total_donated = %s, donation_count = %s, average_donation = %s,
            largest_donation = %s, first_donation_at = %s, last_donation_at = %s,
            updated_at = now()
        WHERE email = LOWER(%s)
        RETURNING {_SELECT}
        """,
        (
            total,
            count,
            average,
            totals["largest_donation"],
            totals["first_donation_at"],
            totals["last_donation_at"],
            email,
        ),
    )
    return _row(cur.fetchone())


def get_donor_by_email(cur, email: str) -> dict[str, Any] | None:
    cur.execute(f"SELECT {_SELECT} FROM donors WHERE email = LOWER(%s)", (email,))
    return _row(cur.fetchone())


def update_preferences(
    cur, email: str, preferences: dict[str, bool]
) -> dict[str, Any] | None:
    cur.execute(
        f"""
        UPDATE donors
        SET communication_preferences = communication_preferences || %s,
            updated_at = now()
        WHERE email = LOWER(%s)
        RETURNING {_SELECT}
        """,
        (Json(preferences), email),
    )
    return _row(cur.fetchone())


def donor_segments(cur) -> dict[str, int]:
    cur.execute(
        """
        SELECT COUNT(*)::int,
               COUNT(*) FILTER (WHERE is_active)::int,
               COUNT(*) FILTER (WHERE total_donated >= 1000)::int,
               COUNT(*) FILTER (WHERE cardinality(active_subscriptions) > 0)::int,
               COUNT(*) FILTER (WHERE donation_count = 1)::int
        FROM donors
        """
    )
    row = cur.fetchone()
    cols = [
        "total_donors",
        "active_donors",
        "major_donors",
        "recurring_donors",
        "first_time_donors",
    ]
    return dict(zip(cols, row))
