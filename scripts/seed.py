#!/usr/bin/env python3
"""
Seed database with demo campaigns.

Usage: python scripts/seed.py [--force]
Requires: migrations applied (alembic upgrade head)
"""
import os
import sys

# Ensure the package is on path when run from a checkout
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from donations_api.models.campaign import insert_campaign
from donations_api.utils.db import get_db_connection

CAMPAIGNS = [
    {
        "title": "Clean Water for Kisumu",
        "slug": "clean-water-kisumu",
        "description": "Boreholes and filtration for three rural villages.",
        "category": "water",
        "goal_amount": 25000,
        "is_urgent": True,
        "priority": 8,
    },
    {
        "title": "Upendo Academy Scholarships",
        "slug": "upendo-academy-scholarships",
        "description": "A full year of school fees for 40 students.",
        "category": "education",
        "goal_amount": 12000,
        "priority": 6,
    },
    {
        "title": "Holiday Homes Winter Appeal",
        "slug": "holiday-homes-winter",
        "description": "Blankets, heating and meals through the cold months.",
        "category": "shelter",
        "goal_amount": 5000,
        "priority": 3,
    },
    {
        "title": "Workplace Ministry Retreat",
        "slug": "workplace-ministry-retreat",
        "description": "Draft: annual retreat for workplace chaplains.",
        "category": "ministry",
        "goal_amount": 3000,
        "status": "draft",
    },
]


def seed():
    with get_db_connection() as conn, conn.cursor() as cur:
        created = [c for c in (insert_campaign(cur, data) for data in CAMPAIGNS) if c]
        conn.commit()
    print(f"Seeded {len(created)} campaign(s) ({len(CAMPAIGNS) - len(created)} already present).")
    for c in created:
        print(f"  {c['id']}  {c['slug']}  goal={c['goal_amount']}  status={c['status']}")


def force_seed():
    """Clear demo data and re-seed. Use with caution."""
    slugs = [c["slug"] for c in CAMPAIGNS]
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(
            "DELETE FROM donations WHERE campaign_id IN (SELECT id FROM campaigns WHERE slug = ANY(%s))",
            (slugs,),
        )
        cur.execute("DELETE FROM campaigns WHERE slug = ANY(%s)", (slugs,))
        conn.commit()
    print("Cleared demo campaigns. Seeding...")
    seed()


if __name__ == "__main__":
    if "--force" in sys.argv:
        force_seed()
    else:
        seed()
