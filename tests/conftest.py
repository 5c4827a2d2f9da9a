"""
Shared fixtures: an in-memory store with real transaction semantics
(snapshot + rollback), a scripted Stripe gateway, a recording notifier and a
synchronous notification dispatcher.
"""
import copy
import json
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
import stripe

from donations_api import create_app
from donations_api.config import Settings
from donations_api.container import ServiceContainer
from donations_api.errors import (
    AttributionNotFound,
    DuplicateIntent,
    GatewayError,
    NotifierError,
    PersistenceError,
)
from donations_api.models.campaign import CAMPAIGN_COLS
from donations_api.models.donation import DONATION_COLS
from donations_api.models.donor import DEFAULT_PREFERENCES, DONOR_COLS
from donations_api.services.gateway import (
    PaymentIntentHandle,
    PaymentIntentInfo,
    RefundInfo,
)
from donations_api.tasks import notify_donation
from donations_api.utils import rate_limit

CENT = Decimal("0.01")


# ============================================================================
# IN-MEMORY STORE
# ============================================================================


class FakeTransaction:
    def __init__(self, store):
        self.s = store

    def _check(self, op):
        if self.s.fail_on == op:
            raise PersistenceError(f"injected failure in {op}")

    def insert_donation(self, rec):
        self._check("insert_donation")
        for d in self.s.donations.values():
            same_pi = rec.get("stripe_payment_intent_id") and (
                d["stripe_payment_intent_id"] == rec["stripe_payment_intent_id"]
            )
            same_invoice = rec.get("stripe_invoice_id") and (
                d["stripe_invoice_id"] == rec["stripe_invoice_id"]
            )
            if same_pi or same_invoice:
                raise DuplicateIntent(copy.deepcopy(d))
        row = {c: None for c in DONATION_COLS}
        row.update(copy.deepcopy(rec))
        row["id"] = str(uuid4())
        row["created_at"] = row["updated_at"] = self.s.tick()
        self.s.donations[row["id"]] = row
        return copy.deepcopy(row)

    def get_donation_by_intent(self, intent_id):
        return self.s.get_donation_by_intent(intent_id)

    def get_subscription_origin(self, subscription_id):
        return self.s.get_subscription_origin(subscription_id)

    def increment_campaign(self, campaign_id, amount):
        self._check("increment_campaign")
        c = self.s.campaigns.get(str(campaign_id))
        if c is None:
            raise AttributionNotFound(f"campaign {campaign_id} not found")
        new_total = c["raised_amount"] + amount
        if c["status"] == "active" and c["goal_amount"] > 0 and new_total >= c["goal_amount"]:
            c["status"] = "completed"
        c["raised_amount"] = new_total
        c["donor_count"] += 1
        return copy.deepcopy(c)

    def decrement_campaign(self, campaign_id, amount):
        c = self.s.campaigns.get(str(campaign_id))
        if c is None:
            raise AttributionNotFound(f"campaign {campaign_id} not found")
        new_total = c["raised_amount"] - amount
        if c["status"] == "completed" and new_total < c["goal_amount"]:
            c["status"] = "active"
        c["raised_amount"] = max(new_total, Decimal("0"))
        c["donor_count"] = max(c["donor_count"] - 1, 0)
        return copy.deepcopy(c)

    def upsert_donor(self, snapshot, amount, currency, at):
        self._check("upsert_donor")
        email = snapshot["email"].lower()
        d = self.s.donors.get(email)
        if d is None:
            d = {c: None for c in DONOR_COLS}
            d.update(
                id=str(uuid4()),
                email=email,
                preferred_currency=currency,
                total_donated=amount,
                donation_count=1,
                average_donation=amount,
                largest_donation=amount,
                first_donation_at=at,
                last_donation_at=at,
                donor_type="first_time",
                tags=[],
                active_subscriptions=[],
                communication_preferences=dict(DEFAULT_PREFERENCES),
                is_active=True,
                is_blacklisted=False,
            )
            self.s.donors[email] = d
        else:
            d["total_donated"] += amount
            d["donation_count"] += 1
            d["average_donation"] = (d["total_donated"] / d["donation_count"]).quantize(CENT)
            d["largest_donation"] = max(d["largest_donation"], amount)
            d["last_donation_at"] = at
        d["first_name"] = snapshot.get("first_name") or ""
        d["last_name"] = snapshot.get("last_name") or ""
        d["phone"] = snapshot.get("phone") or d["phone"]
        d["address"] = snapshot.get("address") or d["address"]
        return copy.deepcopy(d)

    def add_donor_subscription(self, email, subscription_id):
        d = self.s.donors.get(email.lower())
        if d is None:
            return None
        if subscription_id not in d["active_subscriptions"]:
            d["active_subscriptions"].append(subscription_id)
        return copy.deepcopy(d)

    def remove_donor_subscription(self, subscription_id):
        out = []
        for d in self.s.donors.values():
            if subscription_id in d["active_subscriptions"]:
                d["active_subscriptions"].remove(subscription_id)
                out.append(copy.deepcopy(d))
        return out

    def set_donor_classification(self, donor_id, donor_type, tags):
        self._check("set_donor_classification")
        for d in self.s.donors.values():
            if d["id"] == donor_id:
                d["donor_type"] = donor_type
                d["tags"] = list(tags)
                return copy.deepcopy(d)
        return None

    def recompute_donor_totals(self, email):
        d = self.s.donors.get(email.lower())
        if d is None:
            return None
        rows = [
            x
            for x in self.s.donations.values()
            if x["donor_email"] == email.lower() and x["payment_status"] == "succeeded"
        ]
        total = sum((x["amount"] for x in rows), Decimal("0"))
        d["total_donated"] = total
        d["donation_count"] = len(rows)
        d["average_donation"] = (total / len(rows)).quantize(CENT) if rows else Decimal("0")
        d["largest_donation"] = max((x["amount"] for x in rows), default=Decimal("0"))
        d["first_donation_at"] = min((x["created_at"] for x in rows), default=None)
        d["last_donation_at"] = max((x["created_at"] for x in rows), default=None)
        return copy.deepcopy(d)

    def transition_by_intent(
        self, intent_id, new_status, allowed_from, *, refunded_amount=None, at=None
    ):
        self._check("transition_by_intent")
        for d in self.s.donations.values():
            if d["stripe_payment_intent_id"] != intent_id:
                continue
            if d["payment_status"] not in allowed_from:
                return None
            d["payment_status"] = new_status
            if new_status == "refunded":
                d["refunded_at"] = at
                d["refunded_amount"] = refunded_amount if refunded_amount is not None else d["amount"]
            if new_status == "canceled":
                d["canceled_at"] = at
            return copy.deepcopy(d)
        return None

    def update_refunded_amount(self, intent_id, amount, at):
        for d in self.s.donations.values():
            if d["stripe_payment_intent_id"] != intent_id or d["payment_status"] != "refunded":
                continue
            if d["refunded_amount"] is not None and d["refunded_amount"] >= amount:
                return None
            d["refunded_amount"] = amount
            d["refunded_at"] = at
            return copy.deepcopy(d)
        return None

    def cancel_by_subscription(self, subscription_id, allowed_from, at):
        out = []
        for d in self.s.donations.values():
            if d["stripe_subscription_id"] == subscription_id and d["payment_status"] in allowed_from:
                d["payment_status"] = "canceled"
                d["canceled_at"] = at
                out.append(copy.deepcopy(d))
        return out


class FakeStore:
    def __init__(self):
        self.donations = {}
        self.donors = {}
        self.campaigns = {}
        self.fail_on = None
        self.commits = 0
        self._clock = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def tick(self):
        self._clock += timedelta(minutes=1)
        return self._clock

    @contextmanager
    def transaction(self):
        snapshot = copy.deepcopy((self.donations, self.donors, self.campaigns))
        try:
            yield FakeTransaction(self)
        except BaseException:
            self.donations, self.donors, self.campaigns = snapshot
            raise
        self.commits += 1

    def add_campaign(self, goal="1000", raised="0", status="active", **extra):
        row = {c: None for c in CAMPAIGN_COLS}
        cid = str(uuid4())
        row.update(
            id=cid,
            title=extra.pop("title", "Clean Water"),
            slug=extra.pop("slug", f"campaign-{cid[:8]}"),
            category="water",
            goal_amount=Decimal(goal),
            raised_amount=Decimal(raised),
            donor_count=0,
            currency="USD",
            status=status,
            is_urgent=False,
            priority=0,
            created_at=self.tick(),
        )
        row.update(extra)
        self.campaigns[cid] = row
        return copy.deepcopy(row)

    def ping(self):
        if self.fail_on == "ping":
            raise PersistenceError("database unavailable")
        return True

    def get_donation(self, donation_id):
        d = self.donations.get(str(donation_id))
        return copy.deepcopy(d) if d else None

    def get_donation_by_intent(self, intent_id):
        for d in self.donations.values():
            if d["stripe_payment_intent_id"] == intent_id:
                return copy.deepcopy(d)
        return None

    def get_subscription_origin(self, subscription_id):
        rows = [d for d in self.donations.values() if d["stripe_subscription_id"] == subscription_id]
        return copy.deepcopy(min(rows, key=lambda d: d["created_at"])) if rows else None

    def _filtered(self, status=None, campaign_id=None, ministry=None, donor_email=None,
                  start=None, end=None, public_only=False):
        rows = list(self.donations.values())
        if status:
            rows = [d for d in rows if d["payment_status"] == status]
        if campaign_id:
            rows = [d for d in rows if d["campaign_id"] == campaign_id]
        if ministry:
            rows = [d for d in rows if d["ministry"] == ministry]
        if donor_email:
            rows = [d for d in rows if d["donor_email"] == donor_email.lower()]
        if start:
            rows = [d for d in rows if d["created_at"] >= start]
        if end:
            rows = [d for d in rows if d["created_at"] <= end]
        if public_only:
            rows = [d for d in rows if not d["is_anonymous"]]
        return sorted(rows, key=lambda d: d["created_at"], reverse=True)

    def list_donations(self, *, limit=None, offset=0, **filters):
        rows = self._filtered(**filters)[offset:]
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    def count_donations(self, **filters):
        return len(self._filtered(**filters))

    def get_campaign(self, campaign_id):
        c = self.campaigns.get(str(campaign_id))
        return copy.deepcopy(c) if c else None

    def get_campaign_by_slug(self, slug):
        for c in self.campaigns.values():
            if c["slug"] == slug and c["status"] in ("active", "completed"):
                return copy.deepcopy(c)
        return None

    def list_campaigns(self, *, status=None, category=None, limit=10, offset=0):
        rows = [
            c for c in self.campaigns.values()
            if (not status or c["status"] == status) and (not category or c["category"] == category)
        ]
        rows.sort(key=lambda c: c["created_at"], reverse=True)
        return copy.deepcopy(rows[offset:offset + limit]), len(rows)

    def featured_campaigns(self, limit=6):
        rows = [
            c for c in self.campaigns.values()
            if c["status"] == "active" and (c["is_urgent"] or c["priority"] >= 5)
        ]
        return copy.deepcopy(rows[:limit])

    def get_donor(self, email):
        d = self.donors.get(email.lower())
        return copy.deepcopy(d) if d else None

    def update_donor_preferences(self, email, preferences):
        d = self.donors.get(email.lower())
        if d is None:
            return None
        d["communication_preferences"].update(preferences)
        return copy.deepcopy(d)

    def donor_segments(self):
        donors = list(self.donors.values())
        return {
            "total_donors": len(donors),
            "active_donors": sum(1 for d in donors if d["is_active"]),
            "major_donors": sum(1 for d in donors if d["total_donated"] >= 1000),
            "recurring_donors": sum(1 for d in donors if d["active_subscriptions"]),
            "first_time_donors": sum(1 for d in donors if d["donation_count"] == 1),
        }


# ============================================================================
# GATEWAY / NOTIFIER / DISPATCHER FAKES
# ============================================================================


class FakeGateway:
    def __init__(self):
        self.intents = {}
        self.calls = []
        self.refund_status = "succeeded"
        self._n = 0

    def _next(self, prefix):
        self._n += 1
        return f"{prefix}_{self._n:04d}"

    def add_intent(self, intent_id=None, amount="50.00", status="succeeded", currency="USD",
                   fee="0.00", metadata=None, invoice_id=None, subscription_id=None,
                   customer_id=None):
        intent = PaymentIntentInfo(
            intent_id=intent_id or self._next("pi"),
            status=status,
            amount=Decimal(amount),
            currency=currency,
            fee=Decimal(fee),
            metadata=dict(metadata or {}),
            customer_id=customer_id,
            invoice_id=invoice_id,
            subscription_id=subscription_id,
        )
        self.intents[intent.intent_id] = intent
        return intent

    def retrieve_payment_intent(self, intent_id):
        self.calls.append(("retrieve_payment_intent", intent_id))
        if intent_id not in self.intents:
            raise GatewayError(f"No such payment_intent: {intent_id}")
        return self.intents[intent_id]

    def create_payment_intent(self, amount, currency, metadata, receipt_email=None):
        self.calls.append(("create_payment_intent", amount, currency))
        pi = self.add_intent(amount=amount, status="requires_payment_method",
                             currency=currency, metadata=metadata)
        return PaymentIntentHandle(pi.intent_id, f"{pi.intent_id}_secret")

    def create_customer(self, email, name, address=None):
        self.calls.append(("create_customer", email))
        return self._next("cus")

    def create_price(self, amount, currency, interval, interval_count=1):
        self.calls.append(("create_price", amount, interval, interval_count))
        return self._next("price")

    def create_subscription(self, customer_id, price_id, metadata):
        self.calls.append(("create_subscription", customer_id, price_id))
        sub_id = self._next("sub")
        pi = self.add_intent(status="requires_payment_method", metadata=metadata,
                             subscription_id=sub_id, invoice_id=self._next("in"),
                             customer_id=customer_id)
        return PaymentIntentHandle(pi.intent_id, f"{pi.intent_id}_secret", sub_id, customer_id)

    def cancel_subscription(self, subscription_id):
        self.calls.append(("cancel_subscription", subscription_id))
        return {"id": subscription_id, "status": "canceled"}

    def create_refund(self, intent_id, amount=None, reason=None):
        self.calls.append(("create_refund", intent_id, amount, reason))
        full = self.intents[intent_id].amount if intent_id in self.intents else Decimal("0")
        return RefundInfo(self._next("re"), intent_id, amount or full, self.refund_status)

    def list_payment_methods(self, customer_id):
        return [{"id": "pm_1", "card": {"brand": "visa", "last4": "4242",
                                        "exp_month": 12, "exp_year": 2030}}]

    def construct_event(self, payload, sig_header):
        if sig_header != "valid-signature":
            raise stripe.SignatureVerificationError("No signatures found", sig_header)
        return json.loads(payload)

    def ping(self):
        return True


class RecordingNotifier:
    def __init__(self):
        self.sent = []
        self.fail = False

    def _record(self, kind, donation):
        if self.fail:
            raise NotifierError(f"{kind} failed")
        self.sent.append((kind, donation["id"]))

    def send_receipt(self, donation, campaign_title=None, preferences=None):
        self._record("receipt", donation)

    def send_thank_you(self, donation, campaign_title=None, preferences=None):
        self._record("thank_you", donation)

    def send_admin_notification(self, donation, campaign_title=None):
        self._record("admin", donation)

    def test_connection(self):
        return True, "fake"


class SyncDispatcher:
    """Runs the notification task inline so tests can assert on it."""

    def __init__(self, notifier, store):
        self.notifier = notifier
        self.store = store
        self.dispatched = []

    def dispatch(self, donation):
        self.dispatched.append(donation["id"])
        notify_donation(self.notifier, self.store, donation)
        return "sync"


class FakeSocketIO:
    def __init__(self):
        self.emitted = []

    def emit(self, event, payload, to=None):
        self.emitted.append((event, payload, to))


class FakeCache:
    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value

    def delete(self, key):
        self.data.pop(key, None)


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def settings():
    return Settings(
        stripe_secret_key="sk_test_x",
        stripe_webhook_secret="whsec_test",
        rate_limit_enabled=False,
        admin_api_key="test-admin-key",
        socketio_async_mode="threading",
        admin_email="admin@example.org",
        jwt_secret="test-jwt-secret-with-enough-length-for-hs256",
    )


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def services(settings, store, gateway, notifier):
    return ServiceContainer(
        settings=settings,
        store=store,
        gateway=gateway,
        notifier=notifier,
        dispatcher=SyncDispatcher(notifier, store),
        cache=FakeCache(),
        socketio=FakeSocketIO(),
    )


@pytest.fixture
def campaign(store):
    return store.add_campaign(goal="1000", raised="0")


@pytest.fixture
def donor_metadata():
    return {
        "donor_email": "ada@example.com",
        "donor_first_name": "Ada",
        "donor_last_name": "Lovelace",
        "is_recurring": "false",
        "is_anonymous": "false",
        "dedication_type": "none",
        "source": "web",
    }


@pytest.fixture
def app(services):
    rate_limit.reset()
    app = create_app(services=services)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers(client):
    resp = client.post("/api/auth/token", headers={"X-Admin-Key": "test-admin-key"})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.get_json()['access_token']}"}
