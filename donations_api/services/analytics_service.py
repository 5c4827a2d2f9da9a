"""
Read-only reducers over donation rows.

Only `succeeded` donations count toward any total. Anonymous donations keep
their amounts but never expose donor identity in public listings.
"""

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List

from donations_api.models.status import PaymentStatus
from donations_api.utils.masking import display_name

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def _succeeded(donations: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        d for d in donations if d.get("payment_status") == PaymentStatus.SUCCEEDED.value
    ]


def _avg(total: Decimal, count: int) -> Decimal:
    return (total / count).quantize(CENT) if count else ZERO


def _day(ts) -> str:
    if isinstance(ts, datetime):
        return ts.date().isoformat()
    if isinstance(ts, date):
        return ts.isoformat()
    return str(ts)[:10]


def summarize(donations: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    rows = _succeeded(donations)
    total = sum((Decimal(d["amount"]) for d in rows), ZERO)
    fees = sum((Decimal(d.get("transaction_fee") or 0) for d in rows), ZERO)
    recurring = sum(1 for d in rows if d.get("is_recurring"))
    return {
        "total_donations": len(rows),
        "total_amount": total,
        "average_amount": _avg(total, len(rows)),
        "total_fees": fees,
        "net_amount": total - fees,
        "unique_donors": len({(d.get("donor_email") or "").lower() for d in rows}),
        "recurring_donations": recurring,
        "one_time_donations": len(rows) - recurring,
    }


def daily_trends(
    donations: Iterable[Dict[str, Any]], limit: int = 30
) -> List[Dict[str, Any]]:
    """Per-day count and amount, newest day first."""
    buckets: Dict[str, Dict[str, Any]] = defaultdict(
        lambda: {"count": 0, "amount": ZERO}
    )
    for d in _succeeded(donations):
        b = buckets[_day(d["created_at"])]
        b["count"] += 1
        b["amount"] += Decimal(d["amount"])
    days = sorted(buckets, reverse=True)[:limit]
    return [{"date": day, **buckets[day]} for day in days]


def breakdown_by_attribution(
    donations: Iterable[Dict[str, Any]],
    campaign_titles: Dict[str, str] | None = None,
) -> List[Dict[str, Any]]:
    titles = campaign_titles or {}
    groups: Dict[tuple, Dict[str, Any]] = {}
    for d in _succeeded(donations):
        if d.get("campaign_id"):
            key = ("campaign", str(d["campaign_id"]))
            label = titles.get(key[1], key[1])
        else:
            key = ("ministry", d.get("ministry") or "unattributed")
            label = key[1]
        g = groups.setdefault(
            key, {"kind": key[0], "key": key[1], "label": label, "count": 0, "amount": ZERO}
        )
        g["count"] += 1
        g["amount"] += Decimal(d["amount"])
    out = sorted(groups.values(), key=lambda g: g["amount"], reverse=True)
    for g in out:
        g["average"] = _avg(g["amount"], g["count"])
    return out


def top_donors(
    donations: Iterable[Dict[str, Any]], limit: int = 10
) -> List[Dict[str, Any]]:
    """Largest givers by total. Anonymous gifts are left out entirely."""
    donors: Dict[str, Dict[str, Any]] = {}
    for d in _succeeded(donations):
        if d.get("is_anonymous"):
            continue
        email = (d.get("donor_email") or "").lower()
        entry = donors.setdefault(
            email,
            {
                "email": email,
                "name": f"{d.get('donor_first_name') or ''} {d.get('donor_last_name') or ''}".strip(),
                "total_donated": ZERO,
                "donation_count": 0,
                "last_donation_at": None,
            },
        )
        entry["total_donated"] += Decimal(d["amount"])
        entry["donation_count"] += 1
        if entry["last_donation_at"] is None or d["created_at"] > entry["last_donation_at"]:
            entry["last_donation_at"] = d["created_at"]
    ranked = sorted(
        donors.values(),
        key=lambda e: (e["total_donated"], e["donation_count"]),
        reverse=True,
    )
    return ranked[:limit]


def donor_stats(donations: Iterable[Dict[str, Any]], email: str) -> Dict[str, Any]:
    email = email.lower()
    rows = [
        d for d in _succeeded(donations) if (d.get("donor_email") or "").lower() == email
    ]
    total = sum((Decimal(d["amount"]) for d in rows), ZERO)
    dates = [d["created_at"] for d in rows]
    return {
        "email": email,
        "donation_count": len(rows),
        "total_donated": total,
        "average_donation": _avg(total, len(rows)),
        "largest_donation": max((Decimal(d["amount"]) for d in rows), default=ZERO),
        "first_donation_at": min(dates, default=None),
        "last_donation_at": max(dates, default=None),
    }


def public_recent(
    donations: Iterable[Dict[str, Any]], limit: int = 10
) -> List[Dict[str, Any]]:
    rows = sorted(_succeeded(donations), key=lambda d: d["created_at"], reverse=True)
    out = []
    for d in rows[:limit]:
        anonymous = bool(d.get("is_anonymous"))
        out.append(
            {
                "id": str(d["id"]),
                "amount": Decimal(d["amount"]),
                "currency": d.get("currency"),
                "donor_name": display_name(
                    d.get("donor_first_name"), d.get("donor_last_name"), anonymous
                ),
                "is_anonymous": anonymous,
                "campaign_id": str(d["campaign_id"]) if d.get("campaign_id") else None,
                "ministry": d.get("ministry"),
                "message": None if anonymous else d.get("message"),
                "is_recurring": bool(d.get("is_recurring")),
                "created_at": d["created_at"],
            }
        )
    return out


def campaign_progress(
    campaign: Dict[str, Any], donations: Iterable[Dict[str, Any]] = ()
) -> Dict[str, Any]:
    goal = Decimal(campaign.get("goal_amount") or 0)
    raised = Decimal(campaign.get("raised_amount") or 0)
    percent = float((raised / goal * 100).quantize(CENT)) if goal > 0 else 0.0
    return {
        "campaign_id": str(campaign["id"]),
        "title": campaign.get("title"),
        "status": campaign.get("status"),
        "currency": campaign.get("currency"),
        "goal_amount": goal,
        "raised_amount": raised,
        "remaining": max(goal - raised, ZERO),
        "percent": min(percent, 100.0),
        "donor_count": int(campaign.get("donor_count") or 0),
        "recent_donations": public_recent(donations, limit=5),
    }
