"""
PostgreSQL record store.

`PostgresStore.transaction()` yields a `PostgresTransaction` bound to one
connection; everything done through it commits together or not at all.
Read helpers on the store open their own short-lived connection.

The confirmation workflow only talks to this interface, so tests can swap in
an in-memory store with the same methods.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterator
from uuid import UUID

import psycopg2

from donations_api.errors import (
    AttributionNotFound,
    DuplicateIntent,
    PersistenceError,
)
from donations_api.models import campaign as campaign_sql
from donations_api.models import donation as donation_sql
from donations_api.models import donor as donor_sql
from donations_api.utils.db import get_db_connection

logger = logging.getLogger(__name__)


def is_uuid(v: str | None) -> bool:
    try:
        UUID(str(v))
        return True
    except (TypeError, ValueError):
        return False


class PostgresTransaction:
    def __init__(self, cur):
        self.cur = cur

    def insert_donation(self, rec: dict[str, Any]) -> dict[str, Any]:
        row = donation_sql.insert_donation(self.cur, rec)
        if row is not None:
            return row
        existing = None
        if rec.get("stripe_invoice_id"):
            existing = donation_sql.get_donation_by_invoice(
                self.cur, rec["stripe_invoice_id"]
            )
        if existing is None and rec.get("stripe_payment_intent_id"):
            existing = donation_sql.get_donation_by_pi(
                self.cur, rec["stripe_payment_intent_id"]
            )
        raise DuplicateIntent(existing or {})

    def get_donation_by_intent(self, intent_id: str) -> dict[str, Any] | None:
        return donation_sql.get_donation_by_pi(self.cur, intent_id)

    def get_subscription_origin(self, subscription_id: str) -> dict[str, Any] | None:
        return donation_sql.get_subscription_origin(self.cur, subscription_id)

    def increment_campaign(self, campaign_id: str, amount: Decimal) -> dict[str, Any]:
        row = campaign_sql.increment_raised(self.cur, campaign_id, amount)
        if row is None:
            raise AttributionNotFound(f"campaign {campaign_id} not found")
        return row

    def decrement_campaign(self, campaign_id: str, amount: Decimal) -> dict[str, Any]:
        row = campaign_sql.decrement_raised(self.cur, campaign_id, amount)
        if row is None:
            raise AttributionNotFound(f"campaign {campaign_id} not found")
        return row

    def upsert_donor(
        self, snapshot: dict[str, Any], amount: Decimal, currency: str, at: datetime
    ) -> dict[str, Any]:
        return donor_sql.upsert_donor_totals(
            self.cur,
            email=snapshot["email"],
            first_name=snapshot.get("first_name") or "",
            last_name=snapshot.get("last_name") or "",
            phone=snapshot.get("phone"),
            address=snapshot.get("address"),
            currency=currency,
            amount=amount,
            at=at,
        )

    def add_donor_subscription(
        self, email: str, subscription_id: str
    ) -> dict[str, Any] | None:
        return donor_sql.add_active_subscription(self.cur, email, subscription_id)

    def remove_donor_subscription(self, subscription_id: str) -> list[dict[str, Any]]:
        return donor_sql.remove_active_subscription(self.cur, subscription_id)

    def set_donor_classification(
        self, donor_id: str, donor_type: str, tags: list[str]
    ) -> dict[str, Any] | None:
        return donor_sql.set_classification(self.cur, donor_id, donor_type, tags)

    def recompute_donor_totals(self, email: str) -> dict[str, Any] | None:
        totals = donation_sql.succeeded_totals_for_donor(self.cur, email)
        return donor_sql.replace_totals(self.cur, email, totals)

    def transition_by_intent(
        self,
        intent_id: str,
        new_status: str,
        allowed_from: list[str],
        *,
        refunded_amount: Decimal | None = None,
        at: datetime | None = None,
    ) -> dict[str, Any] | None:
        return donation_sql.transition_status_by_pi(
            self.cur,
            intent_id,
            new_status,
            allowed_from,
            refunded_amount=refunded_amount,
            at=at,
        )

    def update_refunded_amount(
        self, intent_id: str, amount: Decimal, at: datetime
    ) -> dict[str, Any] | None:
        return donation_sql.update_refunded_amount(self.cur, intent_id, amount, at)

    def cancel_by_subscription(
        self, subscription_id: str, allowed_from: list[str], at: datetime
    ) -> list[dict[str, Any]]:
        return donation_sql.cancel_by_subscription(
            self.cur, subscription_id, allowed_from, at
        )


class PostgresStore:
    def __init__(self, database_url: str | None = None):
        self.database_url = database_url

    def _connect(self):
        return get_db_connection(self.database_url)

    @contextmanager
    def _cursor(self):
        try:
            conn = self._connect()
        except psycopg2.Error as e:
            raise PersistenceError(f"database unavailable: {e}") from e
        try:
            # psycopg2: leaving the `with conn` block commits, an exception rolls back
            with conn:
                with conn.cursor() as cur:
                    yield cur
        except psycopg2.Error as e:
            logger.exception("transaction rolled back")
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[PostgresTransaction]:
        with self._cursor() as cur:
            yield PostgresTransaction(cur)

    def _read(self):
        return self._cursor()

    def ping(self) -> bool:
        with self._read() as cur:
            cur.execute("SELECT 1")
            return cur.fetchone()[0] == 1

    # donations

    def get_donation(self, donation_id: str) -> dict[str, Any] | None:
        if not is_uuid(donation_id):
            return None
        with self._read() as cur:
            return donation_sql.get_donation(cur, donation_id)

    def get_donation_by_intent(self, intent_id: str) -> dict[str, Any] | None:
        with self._read() as cur:
            return donation_sql.get_donation_by_pi(cur, intent_id)

    def get_subscription_origin(self, subscription_id: str) -> dict[str, Any] | None:
        with self._read() as cur:
            return donation_sql.get_subscription_origin(cur, subscription_id)

    def list_donations(
        self, *, limit: int | None = None, offset: int = 0, **filters
    ) -> list[dict[str, Any]]:
        with self._read() as cur:
            return donation_sql.list_donations(
                cur, limit=limit, offset=offset, **filters
            )

    def count_donations(self, **filters) -> int:
        with self._read() as cur:
            return donation_sql.count_donations(cur, **filters)

    # campaigns

    def get_campaign(self, campaign_id: str) -> dict[str, Any] | None:
        if not is_uuid(campaign_id):
            return None
        with self._read() as cur:
            return campaign_sql.get_campaign(cur, campaign_id)

    def get_campaign_by_slug(self, slug: str) -> dict[str, Any] | None:
        with self._read() as cur:
            return campaign_sql.get_campaign_by_slug(cur, slug)

    def list_campaigns(self, **filters) -> tuple[list[dict[str, Any]], int]:
        with self._read() as cur:
            return campaign_sql.list_campaigns(cur, **filters)

    def featured_campaigns(self, limit: int = 6) -> list[dict[str, Any]]:
        with self._read() as cur:
            return campaign_sql.featured_campaigns(cur, limit)

    # donors

    def get_donor(self, email: str) -> dict[str, Any] | None:
        with self._read() as cur:
            return donor_sql.get_donor_by_email(cur, email)

    def update_donor_preferences(
        self, email: str, preferences: dict[str, bool]
    ) -> dict[str, Any] | None:
        with self._read() as cur:
            return donor_sql.update_preferences(cur, email, preferences)

    def donor_segments(self) -> dict[str, int]:
        with self._read() as cur:
            return donor_sql.donor_segments(cur)
