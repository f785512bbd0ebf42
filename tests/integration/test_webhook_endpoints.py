"""Integration tests for the identity provider and Stripe webhooks, and checkout creation."""

import base64
import hashlib
import hmac
import json
import time
from types import SimpleNamespace

import pytest
import stripe

from app.api.routes import signup as signup_routes
from app.api.routes import stripe as stripe_routes
from app.api.routes.signup import _verify_webhook_signature
from app.models.signup_event import SignupEvent
from app.models.user_plan import UserPlan

SECRET_KEY = b"clerk-webhook-test-key"
SECRET = "whsec_" + base64.b64encode(SECRET_KEY).decode()
IP = "192.0.2.200"


def sign(body: bytes, msg_id="msg_1", timestamp=None, key=SECRET_KEY):
    timestamp = str(int(time.time()) if timestamp is None else timestamp)
    digest = hmac.new(key, f"{msg_id}.{timestamp}.{body.decode()}".encode(), hashlib.sha256).digest()
    return {
        "svix-id": msg_id,
        "svix-timestamp": timestamp,
        "svix-signature": "v1," + base64.b64encode(digest).decode(),
    }


def user_created(user_id, email):
    addresses = [{"email_address": email}] if email else []
    return json.dumps({"type": "user.created", "data": {"id": user_id, "email_addresses": addresses}}).encode()


class TestWebhookSignature:
    """Standard Webhooks signature verification."""

    def test_valid_signature(self):
        body = b'{"type": "user.created"}'
        headers = sign(body)
        assert _verify_webhook_signature(
            body, headers["svix-signature"], headers["svix-id"], headers["svix-timestamp"], SECRET
        )

    def test_any_listed_signature_may_match(self):
        body = b"{}"
        headers = sign(body)
        signature = "v1,bm90LXRoZS1vbmU= " + headers["svix-signature"]
        assert _verify_webhook_signature(body, signature, headers["svix-id"], headers["svix-timestamp"], SECRET)

    def test_tampered_body(self):
        headers = sign(b"{}")
        assert not _verify_webhook_signature(
            b'{"x": 1}', headers["svix-signature"], headers["svix-id"], headers["svix-timestamp"], SECRET
        )

    def test_stale_timestamp(self):
        body = b"{}"
        headers = sign(body, timestamp=int(time.time()) - 3600)
        assert not _verify_webhook_signature(
            body, headers["svix-signature"], headers["svix-id"], headers["svix-timestamp"], SECRET
        )

    def test_missing_headers(self):
        assert not _verify_webhook_signature(b"{}", None, None, None, SECRET)


class TestClerkWebhook:
    """user.created runs the signup checks."""

    @pytest.fixture(autouse=True)
    def webhook_secret(self, monkeypatch):
        monkeypatch.setattr(signup_routes, "CLERK_WEBHOOK_SECRET", SECRET)

    def post(self, client, body, headers=None):
        headers = headers if headers is not None else sign(body)
        headers["x-forwarded-for"] = IP
        return client.post("/webhooks/clerk", content=body, headers=headers)

    def test_allowed_signup_logged(self, test_client, db):
        response = self.post(test_client, user_created("user_1", "one@gmail.com"))
        assert response.status_code == 200
        assert response.json() == {"ok": True, "blocked": False, "message": "Signup logged successfully"}

        row = db.query(SignupEvent).one()
        assert row.user_id == "user_1"
        assert not row.blocked

    def test_temp_email_blocked(self, test_client):
        body = self.post(test_client, user_created("user_1", "x@guerrillamail.com")).json()
        assert body["blocked"] is True
        assert body["reason"] == "Temporary email domain"

    def test_third_signup_from_ip_blocked(self, test_client):
        self.post(test_client, user_created("user_1", "one@gmail.com"))
        self.post(test_client, user_created("user_2", "two@gmail.com"))
        body = self.post(test_client, user_created("user_3", "three@gmail.com")).json()
        assert body["blocked"] is True
        assert body["reason"] == "Maximum 2 signups per 24 hours from this IP"
        assert body["resetTime"].endswith("Z")

    def test_invalid_signature(self, test_client):
        body = user_created("user_1", "one@gmail.com")
        response = self.post(test_client, body, headers=sign(body, key=b"wrong-key"))
        assert response.status_code == 401

    def test_missing_email(self, test_client):
        response = self.post(test_client, user_created("user_1", None))
        assert response.status_code == 400

    def test_other_events_acknowledged(self, test_client, db):
        body = json.dumps({"type": "user.updated", "data": {"id": "user_1"}}).encode()
        response = self.post(test_client, body)
        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert db.query(SignupEvent).count() == 0

    def test_unconfigured_secret(self, test_client, monkeypatch):
        monkeypatch.setattr(signup_routes, "CLERK_WEBHOOK_SECRET", "")
        response = self.post(test_client, user_created("user_1", "one@gmail.com"))
        assert response.status_code == 500


class TestStripeCheckout:
    """Checkout session creation."""

    def test_rejects_unknown_plan(self, test_client):
        response = test_client.post("/create-stripe-session", json={"userId": "user_1", "planType": "gamer"})
        assert response.status_code == 400

    def test_rejects_missing_user(self, test_client):
        response = test_client.post("/create-stripe-session", json={"planType": "monthly"})
        assert response.status_code == 400

    @pytest.mark.parametrize("plan_type,mode", [("monthly", "subscription"), ("lifetime", "payment")])
    def test_creates_session(self, test_client, monkeypatch, plan_type, mode):
        captured = {}

        def fake_create(**kwargs):
            captured.update(kwargs)
            return SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.test/cs_test_1")

        monkeypatch.setenv("STRIPE_PRICE_ID_MONTHLY", "price_monthly")
        monkeypatch.setenv("STRIPE_PRICE_ID_LIFETIME", "price_lifetime")
        monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

        response = test_client.post("/create-stripe-session", json={"userId": "user_1", "planType": plan_type})
        assert response.status_code == 200
        assert response.json() == {"url": "https://checkout.stripe.test/cs_test_1"}
        assert captured["mode"] == mode
        assert captured["line_items"][0]["price"] == f"price_{plan_type}"
        assert captured["metadata"] == {"user_id": "user_1", "plan_type": plan_type}

    def test_stripe_error(self, test_client, monkeypatch):
        def fake_create(**kwargs):
            raise stripe.StripeError("card network down")

        monkeypatch.setenv("STRIPE_PRICE_ID_MONTHLY", "price_monthly")
        monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
        response = test_client.post("/create-stripe-session", json={"userId": "user_1", "planType": "monthly"})
        assert response.status_code == 500


class TestStripeWebhook:
    """checkout.session.completed upgrades the plan."""

    def completed(self, user_id="user_1", plan_type="monthly"):
        return json.dumps({
            "type": "checkout.session.completed",
            "data": {"object": {
                "id": "cs_test_1",
                "customer": "cus_123",
                "metadata": {"user_id": user_id, "plan_type": plan_type},
            }},
        }).encode()

    def test_completed_checkout_sets_plan(self, test_client, db, monkeypatch):
        monkeypatch.setattr(stripe.Webhook, "construct_event", lambda payload, sig, secret: json.loads(payload))
        response = test_client.post(
            "/webhooks/stripe", content=self.completed(), headers={"stripe-signature": "t=1,v1=abc"}
        )
        assert response.status_code == 200
        assert response.json() == {"received": True}

        plan = db.query(UserPlan).filter(UserPlan.user_id == "user_1").one()
        assert plan.plan_type == "monthly"
        assert plan.status == "active"
        assert plan.stripe_customer_id == "cus_123"

    def test_bad_signature(self, test_client, monkeypatch):
        def reject(payload, sig, secret):
            raise stripe.SignatureVerificationError("No signatures found", sig)

        monkeypatch.setattr(stripe.Webhook, "construct_event", reject)
        response = test_client.post("/webhooks/stripe", content=self.completed(), headers={"stripe-signature": "bad"})
        assert response.status_code == 400

    def test_other_events_ignored(self, test_client, db, monkeypatch):
        monkeypatch.setattr(stripe.Webhook, "construct_event", lambda payload, sig, secret: json.loads(payload))
        body = json.dumps({"type": "invoice.paid", "data": {"object": {}}}).encode()
        assert test_client.post("/webhooks/stripe", content=body).status_code == 200
        assert db.query(UserPlan).count() == 0


def test_price_lookup_reads_environment(monkeypatch):
    monkeypatch.setenv("STRIPE_PRICE_ID_LIFETIME", "price_xyz")
    assert stripe_routes.get_price_id("lifetime") == "price_xyz"
