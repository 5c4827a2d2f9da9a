from decimal import Decimal
from typing import Any

CAMPAIGN_COLS = [
    "id",
    "title",
    "slug",
    "description",
    "category",
    "goal_amount",
    "raised_amount",
    "donor_count",
    "currency",
    "status",
    "is_urgent",
    "priority",
    "start_date",
    "end_date",
    "created_at",
    "updated_at",
]

_SELECT = ", ".join(CAMPAIGN_COLS)


def _row(row) -> dict[str, Any] | None:
    if not row:
        return None
    return dict(zip(CAMPAIGN_COLS, row))


def get_campaign(cur, campaign_id: str) -> dict[str, Any] | None:
    cur.execute(f"SELECT {_SELECT} FROM campaigns WHERE id = %s", (campaign_id,))
    return _row(cur.fetchone())


def get_campaign_by_slug(cur, slug: str) -> dict[str, Any] | None:
    cur.execute(
        f"""
        SELECT {_SELECT} FROM campaigns
        WHERE slug = %s AND status IN ('active', 'completed')
        """,
        (slug,),
    )
    return _row(cur.fetchone())


def list_campaigns(
    cur,
    *,
    status: str | None = None,
    category: str | None = None,
    limit: int = 10,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    where, params = [], []
    if status:
        where.append("status = %s")
        params.append(status)
    if category:
        where.append("category = %s")
        params.append(category)
    clause = ("WHERE " + " AND ".join(where)) if where else ""
    cur.execute(f"SELECT COUNT(*)::int FROM campaigns {clause}", tuple(params))
    total = cur.fetchone()[0]
    cur.execute(
        f"""
        SELECT {_SELECT} FROM campaigns {clause}
        ORDER BY created_at DESC
        LIMIT %s OFFSET %s
        """,
        tuple(params + [limit, offset]),
    )
    return [_row(r) for r in cur.fetchall()], total


def featured_campaigns(cur, limit: int = 6) -> list[dict[str, Any]]:
    cur.execute(
        f"""
        SELECT {_SELECT} FROM campaigns
        WHERE status = 'active' AND (is_urgent OR priority >= 5)
        ORDER BY is_urgent DESC, priority DESC, created_at DESC
        LIMIT %s
        """,
        (limit,),
    )
    return [_row(r) for r in cur.fetchall()]


def increment_raised(cur, campaign_id: str, amount: Decimal) -> dict[str, Any] | None:
    """
    Atomic increment. All right-hand sides see the pre-update row, so the
    completed check uses the new total without a read-modify-write.
    """
    cur.execute(
        f"""
        UPDATE campaigns
        SET raised_amount = raised_amount + %(amt)s,
            donor_count = donor_count + 1,
            status = CASE
                WHEN status = 'active' AND goal_amount > 0
                     AND raised_amount + %(amt)s >= goal_amount
                THEN 'completed' ELSE status END,
            updated_at = now()
        WHERE id = %(id)s
        RETURNING {_SELECT}
        """,
        {"amt": amount, "id": campaign_id},
    )
    return _row(cur.fetchone())


def decrement_raised(cur, campaign_id: str, amount: Decimal) -> dict[str, Any] | None:
    """Refund reversal. Reopens a completed campaign that drops below goal."""
    cur.execute(
        f"""
        UPDATE campaigns
        SET raised_amount = GREATEST(raised_amount - %(amt)s, 0),
            donor_count = GREATEST(donor_count - 1, 0),
            status = CASE
                WHEN status = 'completed' AND raised_amount - %(amt)s < goal_amount
                THEN 'active' ELSE status END,
            updated_at = now()
        WHERE id = %(id)s
        RETURNING {_SELECT}
        """,
        {"amt": amount, "id": campaign_id},
    )
    return _row(cur.fetchone())


def insert_campaign(cur, data: dict[str, Any]) -> dict[str, Any] | None:
    cur.execute(
        f"""
        INSERT INTO campaigns (title, slug, description, category, goal_amount,
                               currency, status, is_urgent, priority, end_date)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (slug) DO NOTHING
        RETURNING {_SELECT}
        """,
        (
            data["title"],
            data["slug"],
            data.get("description"),
            data.get("category", "general"),
            data.get("goal_amount", 0),
            data.get("currency", "USD"),
            data.get("status", "active"),
            bool(data.get("is_urgent")),
            int(data.get("priority") or 0),
            data.get("end_date"),
        ),
    )
    return _row(cur.fetchone())
