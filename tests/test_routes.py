"""
HTTP-level tests through the Flask test client
"""
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from donations_api import create_app
from donations_api.utils import rate_limit


def _intent_body(**kw):
    body = {
        "amount": "50.00",
        "currency": "USD",
        "ministry": "Holiday Homes",
        "donor": {"email": "ada@example.com", "first_name": "Ada", "last_name": "Lovelace"},
    }
    body.update(kw)
    return body


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def paid(gateway, donor_metadata, campaign):
    """Succeeded $50 intent for the test campaign"""
    return gateway.add_intent("pi_paid", amount="50.00", metadata={**donor_metadata, "campaign_id": campaign["id"]})


@pytest.fixture
def confirmed(client, paid):
    """The confirm response body for pi_paid"""
    return client.post("/api/donations/confirm", json={"payment_intent_id": "pi_paid"}).get_json()


# ============================================================================
# HEALTH / AUTH
# ============================================================================


class TestHealth:
    def test_ping(self, client):
        assert client.get("/api/health/ping").get_json()["ok"] is True

    def test_healthy(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"

    def test_database_down(self, client, store):
        store.fail_on = "ping"
        resp = client.get("/api/health")
        assert resp.status_code == 503
        assert resp.get_json()["checks"]["database"]["ok"] is False


class TestAuth:
    def test_wrong_admin_key(self, client):
        resp = client.post("/api/auth/token", headers={"X-Admin-Key": "nope"})
        assert resp.status_code == 401

    def test_admin_route_needs_token(self, client):
        assert client.get("/api/donations").status_code == 401

    def test_non_admin_role_forbidden(self, app, client):
        with app.app_context():
            token = create_access_token(identity="viewer", additional_claims={"role": "viewer"})
        resp = client.get("/api/donations", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 403

    def test_metrics(self, client, admin_headers):
        resp = client.get("/admin/metrics", headers=admin_headers)
        assert resp.status_code == 200
        assert b"donations_" in resp.data


# ============================================================================
# DONATIONS
# ============================================================================


class TestIntentRoute:
    def test_create(self, client):
        resp = client.post("/api/donations/intent", json=_intent_body())
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["client_secret"]
        assert body["amount"] == "50.00"

    def test_invalid_email(self, client):
        body = _intent_body(donor={"email": "not-an-email", "first_name": "A", "last_name": "B"})
        resp = client.post("/api/donations/intent", json=body)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "VALIDATION_ERROR"
        assert resp.get_json()["details"]

    def test_unknown_campaign(self, client):
        body = _intent_body(ministry=None, campaign_id="5b1e8f2c-0000-4000-8000-000000000000")
        resp = client.post("/api/donations/intent", json=body)
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "ATTRIBUTION_NOT_FOUND"

    def test_rate_limited(self, settings, services):
        settings.rate_limit_enabled = True
        settings.rate_limit_donation_per_window = 2
        rate_limit.reset()
        client = create_app(services=services).test_client()

        codes = [client.post("/api/donations/intent", json=_intent_body()).status_code for _ in range(3)]

        assert codes == [200, 200, 429]
        rate_limit.reset()


class TestConfirmRoute:
    def test_created_then_replayed(self, client, paid):
        first = client.post("/api/donations/confirm", json={"payment_intent_id": "pi_paid"})
        second = client.post("/api/donations/confirm", json={"payment_intent_id": "pi_paid"})

        assert first.status_code == 201
        assert second.status_code == 200
        assert first.get_json()["donation_id"] == second.get_json()["donation_id"]
        assert second.get_json()["created"] is False
        assert first.get_json()["amount"] == "50.00"

    def test_declined(self, client, gateway, donor_metadata):
        gateway.add_intent("pi_bad", status="requires_payment_method", metadata=donor_metadata)
        resp = client.post("/api/donations/confirm", json={"payment_intent_id": "pi_bad"})
        assert resp.status_code == 400
        assert resp.get_json()["payment_status"] == "requires_payment_method"

    def test_gateway_unavailable(self, client):
        resp = client.post("/api/donations/confirm", json={"payment_intent_id": "pi_unknown"})
        assert resp.status_code == 502

    def test_missing_intent_id(self, client):
        assert client.post("/api/donations/confirm", json={}).status_code == 400


class TestDonationViews:
    def test_public_view_masks_email(self, client, confirmed):
        body = client.get(f"/api/donations/{confirmed['donation_id']}").get_json()
        assert body["donor_name"] == "Ada L"
        assert body["donor_email"] == "a***a@example.com"
        assert "donor_first_name" not in body
        assert "transaction_fee" not in body

    def test_anonymous_view(self, client, gateway, donor_metadata, campaign):
        gateway.add_intent("pi_anon", metadata={**donor_metadata, "campaign_id": campaign["id"], "is_anonymous": "true"})
        donation_id = client.post("/api/donations/confirm", json={"payment_intent_id": "pi_anon"}).get_json()["donation_id"]

        body = client.get(f"/api/donations/{donation_id}").get_json()
        assert body["donor_name"] == "Anonymous"
        assert body["donor_email"] is None

        recent = client.get("/api/donations/recent").get_json()["donations"]
        assert recent[0]["donor_name"] == "Anonymous"

    def test_unknown_donation(self, client):
        resp = client.get("/api/donations/does-not-exist")
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "DONATION_NOT_FOUND"

    def test_admin_list(self, client, admin_headers, confirmed):
        body = client.get("/api/donations?status=succeeded", headers=admin_headers).get_json()
        assert body["pagination"]["total"] == 1
        assert body["donations"][0]["donor_email"] == "ada@example.com"

    def test_bad_filter(self, client, admin_headers):
        resp = client.get("/api/donations?status=bogus", headers=admin_headers)
        assert resp.status_code == 400

    def test_analytics_summary(self, client, admin_headers, confirmed, campaign):
        body = client.get("/api/donations/analytics/summary", headers=admin_headers).get_json()
        assert body["summary"]["total_donations"] == 1
        assert body["summary"]["total_amount"] == "50.00"
        assert body["breakdown"][0]["label"] == campaign["title"]

    def test_top_donors(self, client, admin_headers, confirmed):
        body = client.get("/api/donations/top-donors", headers=admin_headers).get_json()
        assert body["donors"][0]["email"] == "ada@example.com"


class TestPaymentRoutes:
    def test_refund(self, client, admin_headers, confirmed):
        resp = client.post(
            "/api/payments/refund",
            json={"payment_intent_id": "pi_paid", "amount": "10.00"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["amount"] == "10.00"
        assert body["payment_status"] == "refunded"

    def test_refund_unknown(self, client, admin_headers):
        resp = client.post("/api/payments/refund", json={"payment_intent_id": "pi_none"}, headers=admin_headers)
        assert resp.status_code == 404

    def test_payment_methods(self, client, admin_headers):
        body = client.get("/api/payments/methods/cus_1", headers=admin_headers).get_json()
        assert body["payment_methods"][0]["last4"] == "4242"


class TestWebhookRoute:
    def test_bad_signature(self, client):
        resp = client.post(
            "/api/webhooks/stripe",
            data=b'{"type": "payment_intent.succeeded"}',
            headers={"Stripe-Signature": "forged"},
        )
        assert resp.status_code == 400

    def test_ignored_event(self, client):
        resp = client.post(
            "/api/webhooks/stripe",
            data=b'{"id": "evt_1", "type": "customer.updated", "data": {"object": {}}}',
            headers={"Stripe-Signature": "valid-signature"},
        )
        assert resp.status_code == 200
        assert resp.get_json() == {"ignored": "customer.updated"}


# ============================================================================
# CAMPAIGNS / DONORS
# ============================================================================


class TestCampaignRoutes:
    def test_list_and_lookup(self, client, campaign):
        listing = client.get("/api/campaigns").get_json()
        assert listing["pagination"]["total"] == 1
        assert client.get(f"/api/campaigns/{campaign['slug']}").get_json()["id"] == campaign["id"]
        assert client.get(f"/api/campaigns/id/{campaign['id']}").status_code == 200
        assert client.get("/api/campaigns/no-such-slug").status_code == 404

    def test_featured(self, client, store):
        urgent = store.add_campaign(is_urgent=True)
        store.add_campaign(priority=1)
        body = client.get("/api/campaigns/featured").get_json()
        assert [c["id"] for c in body["campaigns"]] == [urgent["id"]]

    def test_progress_cached_until_donation(self, client, store, campaign, paid):
        url = f"/api/campaigns/{campaign['id']}/progress"
        assert client.get(url).get_json()["raised_amount"] == "0"

        store.campaigns[campaign["id"]]["raised_amount"] = Decimal("999")
        assert client.get(url).get_json()["raised_amount"] == "0"

        client.post("/api/donations/confirm", json={"payment_intent_id": "pi_paid"})
        body = client.get(url).get_json()
        assert body["raised_amount"] == "1049.00"
        assert body["recent_donations"][0]["donor_name"] == "Ada L"


class TestDonorRoutes:
    def test_profile(self, client, admin_headers, confirmed):
        body = client.get("/api/donors/ada@example.com", headers=admin_headers).get_json()
        assert body["stats"]["total_donated"] == "50.00"
        assert body["donor"]["donor_type"] == "first_time"

    def test_unknown_donor(self, client, admin_headers):
        resp = client.get("/api/donors/nobody@example.com", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "DONOR_NOT_FOUND"

    def test_preferences(self, client, admin_headers, confirmed):
        resp = client.patch(
            "/api/donors/ada@example.com/preferences",
            json={"newsletter": True},
            headers=admin_headers,
        )
        assert resp.get_json()["communication_preferences"]["newsletter"] is True

    def test_unknown_preference(self, client, admin_headers, confirmed):
        resp = client.patch(
            "/api/donors/ada@example.com/preferences",
            json={"sms": True},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_segments(self, client, admin_headers, confirmed):
        body = client.get("/api/donors/segments", headers=admin_headers).get_json()
        assert body["total_donors"] == 1
        assert body["succeeded_donations"] == 1
