#!/usr/bin/env python3
"""
Manual smoke test for the donations API.

Usage:
  python scripts/smoke_api.py [--base URL] [--admin-key KEY]

  Ensure the server is running first:
    PORT=5050 python run.py

  And the DB is seeded:
    python scripts/seed.py --force  # if needed

Payments are not completed here (that needs Stripe.js or the Stripe CLI), so
confirm is expected to come back as PAYMENT_NOT_SUCCEEDED.
"""
import argparse
import json
import sys
from urllib.request import Request, urlopen
from urllib.error import HTTPError, URLError

BASE = "http://127.0.0.1:5050"


def req(method: str, path: str, data=None, token=None, headers=None) -> tuple[dict | None, int]:
    url = f"{BASE.rstrip('/')}{path}"
    h = {"Content-Type": "application/json"}
    if token:
        h["Authorization"] = f"Bearer {token}"
    h.update(headers or {})
    body = json.dumps(data).encode() if data is not None else None
    try:
        r = urlopen(Request(url, data=body, headers=h, method=method), timeout=10)
        raw = r.read().decode()
        return (json.loads(raw) if raw else {}), r.status
    except HTTPError as e:
        raw = e.read().decode() if e.fp else ""
        try:
            out = json.loads(raw) if raw else {}
        except json.JSONDecodeError:
            out = {"error": raw or str(e)}
        return out, e.code
    except URLError as e:
        print(f"Connection error: {e}")
        return None, 0


class Tally:
    def __init__(self):
        self.ok = 0
        self.fail = 0

    def check(self, label: str, passed: bool, detail="") -> bool:
        if passed:
            self.ok += 1
            print(f"   OK {label}")
        else:
            self.fail += 1
            print(f"   FAIL {label} {detail}")
        return passed


def main():
    global BASE
    ap = argparse.ArgumentParser()
    ap.add_argument("--base", default=BASE, help="Base URL (default: http://127.0.0.1:5050)")
    ap.add_argument("--admin-key", default=None, help="X-Admin-Key for admin checks")
    args = ap.parse_args()
    BASE = args.base.rstrip("/")
    t = Tally()

    print("1. Health ...")
    resp, code = req("GET", "/api/health")
    if resp is None:
        sys.exit(1)
    t.check(f"status={resp.get('status')}", code in (200, 503), resp)

    print("2. List active campaigns ...")
    resp, code = req("GET", "/api/campaigns?status=active")
    campaigns = (resp or {}).get("campaigns") or []
    if not t.check(f"{len(campaigns)} active", code == 200 and campaigns, resp):
        print("   No active campaign; run: python scripts/seed.py --force")
        sys.exit(1)
    campaign_id = campaigns[0]["id"]

    print("3. Campaign progress ...")
    resp, code = req("GET", f"/api/campaigns/{campaign_id}/progress")
    t.check(f"percent={(resp or {}).get('percent')}", code == 200, resp)

    print("4. Create intent ...")
    donor = {"email": "smoke@example.com", "first_name": "Smoke", "last_name": "Test"}
    resp, code = req(
        "POST",
        "/api/donations/intent",
        {"campaign_id": campaign_id, "amount": "5.00", "currency": "USD", "donor": donor},
    )
    intent_id = (resp or {}).get("payment_intent_id")
    t.check(f"pi={intent_id}", code == 200 and intent_id, resp)

    print("5. Confirm unpaid intent (expect decline) ...")
    if intent_id:
        resp, code = req("POST", "/api/donations/confirm", {"payment_intent_id": intent_id})
        t.check(
            f"declined status={(resp or {}).get('payment_status')}",
            code == 400 and (resp or {}).get("error") == "PAYMENT_NOT_SUCCEEDED",
            resp,
        )

    print("6. Validation (amount below minimum) ...")
    resp, code = req(
        "POST",
        "/api/donations/intent",
        {"ministry": "Clean Water Initiative", "amount": "0.50", "donor": donor},
    )
    t.check(f"rejected: {(resp or {}).get('error')}", code == 400, resp)

    print("7. Unknown ministry ...")
    resp, code = req(
        "POST",
        "/api/donations/intent",
        {"ministry": "Not A Ministry", "amount": "10.00", "donor": donor},
    )
    t.check(f"rejected: {(resp or {}).get('error')}", code == 404, resp)

    print("8. Recent donations ...")
    resp, code = req("GET", "/api/donations/recent?limit=5")
    t.check(f"{len((resp or {}).get('donations') or [])} shown", code == 200, resp)

    if args.admin_key:
        print("9. Admin token + summary ...")
        resp, code = req("POST", "/api/auth/token", headers={"X-Admin-Key": args.admin_key})
        token = (resp or {}).get("access_token")
        if t.check("token obtained", code == 200 and token, resp):
            resp, code = req("GET", "/api/donations/analytics/summary", token=token)
            t.check(
                f"total={(resp or {}).get('summary', {}).get('total_amount')}",
                code == 200,
                resp,
            )

    print(f"\n{t.ok} passed, {t.fail} failed")
    sys.exit(1 if t.fail else 0)


if __name__ == "__main__":
    main()
