"""Integration tests for POST /check-quota and POST /signup-verify."""

from app.models.signup_event import SignupEvent
from app.services.quota_manager import QuotaManager, QuotaUnavailableError
from app.services.signup_guard import SignupGuard

IP = "198.51.100.77"


class TestCheckQuota:
    """Quota display endpoint."""

    def test_user_id_required(self, test_client):
        response = test_client.post("/check-quota", json={})
        assert response.status_code == 400
        assert response.json() == {"error": "User ID required"}

    def test_new_user_gets_free_plan(self, test_client):
        response = test_client.post("/check-quota", json={"userId": "user_new"})
        assert response.status_code == 200
        assert response.json() == {
            "plan": "free",
            "status": "active",
            "usage": 0,
            "limit": 1,
            "canAnalyze": True,
        }

    def test_used_free_scan_cannot_analyze(self, test_client, db):
        QuotaManager(db).record_plan_scan("user_free", "free")
        body = test_client.post("/check-quota", json={"userId": "user_free"}).json()
        assert body["canAnalyze"] is False

    def test_unlimited_plan(self, test_client, db):
        QuotaManager(db).set_plan("org_1", "wager_org")
        body = test_client.post("/check-quota", json={"userId": "org_1"}).json()
        assert body["plan"] == "wager_org"
        assert body["limit"] == -1
        assert body["canAnalyze"] is True

    def test_unknown_free_scan_status_cannot_analyze(self, test_client, monkeypatch):
        def unavailable(self, user_id):
            raise QuotaUnavailableError(user_id)

        monkeypatch.setattr(QuotaManager, "check_free_scan_consumed", unavailable)
        body = test_client.post("/check-quota", json={"userId": "user_1"}).json()
        assert body["plan"] == "free"
        assert body["canAnalyze"] is False


class TestSignupVerify:
    """Frontend signup pre-check."""

    def verify(self, client, email, ip=IP):
        return client.post("/signup-verify", json={"email": email}, headers={"x-forwarded-for": ip})

    def test_email_required(self, test_client):
        response = test_client.post("/signup-verify", json={})
        assert response.status_code == 400
        assert response.json() == {"allowed": False, "reason": "Email is required"}

    def test_clean_email_allowed(self, test_client):
        response = self.verify(test_client, "player@gmail.com")
        assert response.status_code == 200
        assert response.json() == {
            "allowed": True,
            "message": "Signup check passed",
            "count": 0,
            "remaining": 2,
        }

    def test_temp_email_blocked_and_audited(self, test_client, db):
        body = self.verify(test_client, "throwaway@mailinator.com").json()
        assert body["allowed"] is False
        assert body["blockedDomain"] is True

        row = db.query(SignupEvent).one()
        assert row.blocked
        assert row.user_id is None
        assert row.ip_address == IP

    def test_pre_check_blocks_do_not_consume_throttle(self, test_client):
        for _ in range(3):
            self.verify(test_client, "throwaway@yopmail.com")
        assert self.verify(test_client, "player@gmail.com").json()["allowed"] is True

    def test_ip_throttle(self, test_client, db):
        guard = SignupGuard(db)
        guard.log_signup("u1", IP, "one@gmail.com", None, False)
        guard.log_signup("u2", IP, "two@gmail.com", None, False)

        body = self.verify(test_client, "three@gmail.com").json()
        assert body["allowed"] is False
        assert body["rateLimited"] is True
        assert body["count"] == 2
        assert body["details"] == "Maximum 2 signups per 24 hours from this IP"
        assert body["resetTime"].endswith("Z")

    def test_malformed_email_not_blocked(self, test_client):
        assert self.verify(test_client, "not-an-email").json()["allowed"] is True

    def test_verification_errors_fail_open(self, test_client, monkeypatch):
        def explode(self, *args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(SignupGuard, "check_signup_limit", explode)
        response = self.verify(test_client, "player@gmail.com")
        assert response.status_code == 200
        assert response.json() == {
            "allowed": True,
            "message": "Verification service unavailable",
            "warning": True,
        }
