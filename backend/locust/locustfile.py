"""
Locust Load Test Suite

Tokens are minted locally with the shared identity-provider secret, so the
API under test must run with the same SECRET_KEY and with LOCUST_ADMIN_EMAIL
listed in ADMIN_EMAILS.

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Purchase storm on a small item
  locust -f locustfile.py --tags throughput   # Cached catalogue reads
  locust -f locustfile.py --tags gate         # Same credential at many gates
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests
"""

import json
import os
import random
import uuid
from datetime import datetime, timedelta, timezone

from jose import jwt
from locust import HttpUser, task, between, tag, events

SECRET_KEY = os.environ.get("SECRET_KEY", "super-secret-key-change-in-production")
ADMIN_EMAIL = os.environ.get("LOCUST_ADMIN_EMAIL", "admin@festival.test")

# Shared state
ITEM_IDS = []
STORM_ITEM_ID = None
GATE_CREDENTIAL = None

# PNG signature plus padding; the API never decodes proofs
PROOF = b"\x89PNG\r\n\x1a\n" + b"\x00" * 256


def mint_token(email: str) -> str:
    claims = {
        "sub": f"load|{email}",
        "email": email,
        "name": email.split("@")[0],
        "exp": datetime.now(timezone.utc) + timedelta(hours=2),
    }
    return jwt.encode(claims, SECRET_KEY, algorithm="HS256")


def headers_for(email: str) -> dict:
    return {"Authorization": f"Bearer {mint_token(email)}"}


def random_email() -> str:
    return f"load_{uuid.uuid4().hex[:10]}@student.test"


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print("SETUP: items are created lazily by the first user of each class")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users -> 10 tickets

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT SUM(quantity) FROM tickets WHERE item_id = X AND status = 'confirmed';
    Should be <= 10, and items.available_count = 10 - that sum.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = headers_for(random_email())

        if not STORM_ITEM_ID:
            resp = self.client.post(
                "/api/v1/items",
                json={"kind": "workshop", "title": "Storm Workshop", "max_capacity": 10, "unit_price": 50},
                headers=headers_for(ADMIN_EMAIL),
            )
            if resp.status_code == 201:
                globals()["STORM_ITEM_ID"] = resp.json()["id"]
                print(f"\nCreated item {STORM_ITEM_ID} with 10 tickets\n")

    @tag("concurrency")
    @task
    def buy_limited_tickets(self):
        """All users fight for the same 10 tickets."""
        if not STORM_ITEM_ID:
            return

        with self.client.post(
            "/api/v1/tickets",
            json={"item_id": STORM_ITEM_ID, "quantity": 1},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: sold out
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class GateUser(HttpUser):
    """
    TEST 2: One approved credential presented at every gate at once

    Run: locust -f locustfile.py --tags gate -u 30 -r 30 --run-time 15s

    Exactly one request in the whole run may get 200; the rest must be 409.
    """
    wait_time = between(0, 0.05)

    def on_start(self):
        self.headers = headers_for(ADMIN_EMAIL)
        if GATE_CREDENTIAL:
            return

        admin = self.headers
        holder = headers_for(random_email())
        item = self.client.post(
            "/api/v1/items",
            json={"kind": "concert", "title": "Gate Test Night", "max_capacity": 5, "gated": True},
            headers=admin,
        )
        if item.status_code != 201:
            return
        item_id = item.json()["id"]

        submitted = self.client.post(
            f"/api/v1/items/{item_id}/registrations",
            files={"payment_proof": ("proof.png", PROOF, "image/png")},
            data={"transaction_id": "LOAD-TEST"},
            headers=holder,
        )
        if submitted.status_code != 201:
            return
        self.client.post(f"/api/v1/registrations/{submitted.json()['id']}/approve", headers=admin)

        credential = self.client.get(f"/api/v1/items/{item_id}/credential", headers=holder)
        if credential.status_code == 200:
            # Gates send the JSON the QR encodes
            globals()["GATE_CREDENTIAL"] = json.dumps(credential.json()["payload"])

    @tag("gate")
    @task
    def scan_same_credential(self):
        if not GATE_CREDENTIAL:
            return
        with self.client.post(
            "/api/v1/scan",
            json={"code": GATE_CREDENTIAL},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 409):
                resp.success()  # 200 at most once per run
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 3: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_items_cached(self):
        page = random.randint(1, 5)
        resp = self.client.get(f"/api/v1/items?page={page}&page_size=20", name="/api/v1/items [cached]")
        if resp.status_code == 200:
            for item in resp.json().get("items", []):
                if item["id"] not in ITEM_IDS:
                    ITEM_IDS.append(item["id"])

    @tag("throughput", "read")
    @task(3)
    def get_item_detail(self):
        if ITEM_IDS:
            self.client.get(f"/api/v1/items/{random.choice(ITEM_IDS)}", name="/api/v1/items/{id}")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 4: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = headers_for(random_email())

    def _expect(self, resp, allowed):
        if resp.status_code in allowed:
            resp.success()
        else:
            resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_item(self):
        with self.client.post("/api/v1/tickets", json={"item_id": 999999, "quantity": 1},
                              headers=self.headers, catch_response=True) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def zero_quantity(self):
        with self.client.post("/api/v1/tickets", json={"item_id": 1, "quantity": 0},
                              headers=self.headers, catch_response=True) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def huge_quantity(self):
        with self.client.post("/api/v1/tickets", json={"item_id": 1, "quantity": 999999},
                              headers=self.headers, catch_response=True) as resp:
            self._expect(resp, [404, 409, 422])

    @tag("edge")
    @task
    def garbage_scan(self):
        with self.client.post("/api/v1/scan", json={"code": "{not json"},
                              headers=self.headers, catch_response=True) as resp:
            self._expect(resp, [403, 404])

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post("/api/v1/tickets", json={"item_id": 1, "quantity": 1},
                              catch_response=True) as resp:
            self._expect(resp, [401])
