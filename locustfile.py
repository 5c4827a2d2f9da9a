"""
Locust load tests for the Donations API.

Install: pip install -e .[load]
Run: locust -f locustfile.py --host=http://127.0.0.1:5050

For headless: locust -f locustfile.py --host=http://127.0.0.1:5050 \
    --users 10 --spawn-rate 2 --run-time 1m --headless

Intent creation is rate limited per IP; set RATE_LIMIT_ENABLED=0 on the
server when load testing it.
"""

import os
from locust import HttpUser, task, between

CAMPAIGN_ID = os.getenv("LOCUST_CAMPAIGN_ID", "00000000-0000-0000-0000-000000000001")


class DonationsAPIUser(HttpUser):
    wait_time = between(1, 3)

    def on_start(self):
        """Optional: exchange LOCUST_ADMIN_KEY for an admin token."""
        self.token = None
        if os.getenv("LOCUST_ADMIN_KEY"):
            r = self.client.post(
                "/api/auth/token",
                headers={"X-Admin-Key": os.getenv("LOCUST_ADMIN_KEY")},
            )
            if r.status_code == 200 and "access_token" in r.json():
                self.token = r.json()["access_token"]

    def _headers(self):
        h = {"Content-Type": "application/json"}
        if self.token:
            h["Authorization"] = f"Bearer {self.token}"
        return h

    @task(10)
    def ping(self):
        self.client.get("/api/health/ping")

    @task(8)
    def recent(self):
        self.client.get("/api/donations/recent?limit=10")

    @task(6)
    def campaign_progress(self):
        self.client.get(f"/api/campaigns/{CAMPAIGN_ID}/progress", name="/api/campaigns/[id]/progress")

    @task(4)
    def featured(self):
        self.client.get("/api/campaigns/featured")

    @task(2)
    def create_intent(self):
        self.client.post(
            "/api/donations/intent",
            json={
                "campaign_id": CAMPAIGN_ID,
                "amount": "10.00",
                "currency": "USD",
                "donor": {
                    "email": "load@example.com",
                    "first_name": "Load",
                    "last_name": "Test",
                },
            },
            headers=self._headers(),
        )

    @task(1)
    def summary(self):
        if self.token:
            self.client.get("/api/donations/analytics/summary", headers=self._headers())
