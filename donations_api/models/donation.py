from datetime import datetime
from decimal import Decimal
from typing import Any
from psycopg2.extras import Json

DONATION_COLS = [
    "id",
    "stripe_payment_intent_id",
    "stripe_invoice_id",
    "stripe_subscription_id",
    "stripe_customer_id",
    "campaign_id",
    "ministry",
    "donor_first_name",
    "donor_last_name",
    "donor_email",
    "donor_phone",
    "donor_address",
    "amount",
    "currency",
    "net_amount",
    "transaction_fee",
    "refunded_amount",
    "is_recurring",
    "recurring_frequency",
    "is_anonymous",
    "message",
    "dedication_type",
    "dedication_name",
    "payment_status",
    "source",
    "created_at",
    "updated_at",
    "processed_at",
    "refunded_at",
    "canceled_at",
]

_SELECT = ", ".join(DONATION_COLS)

_INSERT_COLS = [
    "stripe_payment_intent_id",
    "stripe_invoice_id",
    "stripe_subscription_id",
    "stripe_customer_id",
    "campaign_id",
    "ministry",
    "donor_first_name",
    "donor_last_name",
    "donor_email",
    "donor_phone",
    "donor_address",
    "amount",
    "currency",
    "net_amount",
    "transaction_fee",
    "is_recurring",
    "recurring_frequency",
    "is_anonymous",
    "message",
    "dedication_type",
    "dedication_name",
    "payment_status",
    "source",
    "processed_at",
]


def _row(row) -> dict[str, Any] | None:
    if not row:
        return None
    return dict(zip(DONATION_COLS, row))


def insert_donation(cur, rec: dict[str, Any]) -> dict[str, Any] | None:
    """
    Insert one donation. Returns None when a row with the same intent id or
    invoice id already exists (the unique indexes are the idempotency keys).
    """
    params = dict(rec)
    if params.get("donor_address") is not None:
        params["donor_address"] = Json(params["donor_address"])
    placeholders = ", ".join(f"%({c})s" for c in _INSERT_COLS)
    sql = f"""
    INSERT INTO donations ({", ".join(_INSERT_COLS)})
    VALUES ({placeholders})
    ON CONFLICT DO NOTHING
    RETURNING {_SELECT}
    """
    cur.execute(sql, {c: params.get(c) for c in _INSERT_COLS})
    return _row(cur.fetchone())


def get_donation(cur, donation_id: str) -> dict[str, Any] | None:
    cur.execute(f"SELECT {_SELECT} FROM donations WHERE id = %s", (donation_id,))
    return _row(cur.fetchone())


def get_donation_by_pi(cur, pi_id: str) -> dict[str, Any] | None:
    cur.execute(
        f"SELECT {_SELECT} FROM donations WHERE stripe_payment_intent_id = %s",
        (pi_id,),
    )
    return _row(cur.fetchone())


def get_donation_by_invoice(cur, invoice_id: str) -> dict[str, Any] | None:
    cur.execute(
        f"SELECT {_SELECT} FROM donations WHERE stripe_invoice_id = %s",
        (invoice_id,),
    )
    return _row(cur.fetchone())


def get_subscription_origin(cur, subscription_id: str) -> dict[str, Any] | None:
    """The first donation recorded for a subscription."""
    cur.execute(
        f"""
        SELECT {_SELECT} FROM donations
        WHERE stripe_subscription_id = %s
        ORDER BY created_at ASC
        LIMIT 1
        """,
        (subscription_id,),
    )
    return _row(cur.fetchone())


def transition_status_by_pi(
    cur,
    pi_id: str,
    new_status: str,
    allowed_from: list[str],
    *,
    refunded_amount=None,
    at: datetime | None = None,
) -> dict[str, Any] | None:
    """
    Move a donation to `new_status` only if it currently sits in one of
    `allowed_from`. Returns the updated row, or None if nothing moved.
    """
    sql = f"""
    UPDATE donations
    SET payment_status = %(new)s,
        processed_at = CASE WHEN %(new)s = 'succeeded'
                            THEN COALESCE(processed_at, %(at)s) ELSE processed_at END,
        refunded_at = CASE WHEN %(new)s = 'refunded' THEN %(at)s ELSE refunded_at END,
        refunded_amount = CASE WHEN %(new)s = 'refunded'
                               THEN COALESCE(%(refunded)s, amount) ELSE refunded_amount END,
        canceled_at = CASE WHEN %(new)s = 'canceled' THEN %(at)s ELSE canceled_at END,
        updated_at = now()
    WHERE stripe_payment_intent_id = %(pi)s
      AND payment_status::text = ANY(%(allowed)s)
    RETURNING {_SELECT}
    """
    cur.execute(
        sql,
        {
            "new": new_status,
            "at": at,
            "refunded": refunded_amount,
            "pi": pi_id,
            "allowed": allowed_from,
        },
    )
    return _row(cur.fetchone())


def update_refunded_amount(
    cur, pi_id: str, amount: Decimal, at: datetime
) -> dict[str, Any] | None:
    """Raise `refunded_amount` on an already refunded donation; never lowers it."""
    cur.execute(
        f"""
        UPDATE donations
        SET refunded_amount = %s, refunded_at = %s, updated_at = now()
        WHERE stripe_payment_intent_id = %s
          AND payment_status = 'refunded'
          AND (refunded_amount IS NULL OR refunded_amount < %s)
        RETURNING {_SELECT}
        """,
        (amount, at, pi_id, amount),
    )
    return _row(cur.fetchone())


def cancel_by_subscription(
    cur, subscription_id: str, allowed_from: list[str], at: datetime
) -> list[dict[str, Any]]:
    cur.execute(
        f"""
        UPDATE donations
        SET payment_status = 'canceled', canceled_at = %s, updated_at = now()
        WHERE stripe_subscription_id = %s
          AND payment_status::text = ANY(%s)
        RETURNING {_SELECT}
        """,
        (at, subscription_id, allowed_from),
    )
    return [_row(r) for r in cur.fetchall()]


def _filters(
    *,
    status: str | None = None,
    campaign_id: str | None = None,
    ministry: str | None = None,
    donor_email: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    public_only: bool = False,
) -> tuple[str, list[Any]]:
    where, params = [], []
    if status:
        where.append("payment_status = %s")
        params.append(status)
    if campaign_id:
        where.append("campaign_id = %s")
        params.append(campaign_id)
    if ministry:
        where.append("ministry = %s")
        params.append(ministry)
    if donor_email:
        where.append("LOWER(donor_email) = LOWER(%s)")
        params.append(donor_email)
    if start:
        where.append("created_at >= %s")
        params.append(start)
    if end:
        where.append("created_at <= %s")
        params.append(end)
    if public_only:
        where.append("is_anonymous = FALSE")
    clause = ("WHERE " + " AND ".join(where)) if where else ""
    return clause, params


def list_donations(
    cur, *, limit: int | None = None, offset: int = 0, **filters
) -> list[dict[str, Any]]:
    clause, params = _filters(**filters)
    sql = f"SELECT {_SELECT} FROM donations {clause} ORDER BY created_at DESC"
    if limit is not None:
        sql += " LIMIT %s OFFSET %s"
        params += [limit, offset]
    cur.execute(sql, tuple(params))
    return [_row(r) for r in cur.fetchall()]


def count_donations(cur, **filters) -> int:
    clause, params = _filters(**filters)
    cur.execute(f"SELECT COUNT(*)::int FROM donations {clause}", tuple(params))
    return cur.fetchone()[0]


def succeeded_totals_for_donor(cur, email: str) -> dict[str, Any]:
    cur.execute(
        """
        SELECT COALESCE(SUM(amount), 0), COUNT(*)::int, COALESCE(MAX(amount), 0),
               MIN(created_at), MAX(created_at)
        FROM donations
        WHERE LOWER(donor_email) = LOWER(%s) AND payment_status = 'succeeded'
        """,
        (email,),
    )
    row = cur.fetchone()
    cols = [
        "total_donated",
        "donation_count",
        "largest_donation",
        "first_donation_at",
        "last_donation_at",
    ]
    return dict(zip(cols, row))
