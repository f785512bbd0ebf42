"""Unit tests for plan resolution, daily quotas and the one-time free scan."""

import logging

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.plan_limits import get_daily_limit, is_paid_plan, is_within_limit
from app.models.daily_usage import DailyUsage
from app.models.free_scan_usage import FreeScanUsage
from app.models.user_plan import UserPlan
from app.services.quota_manager import (
    REASON_DAILY_CAP_REACHED,
    REASON_FREE_PLAN_EXHAUSTED,
    REASON_QUOTA_UNAVAILABLE,
    QuotaManager,
    QuotaUnavailableError,
    UsageConflictError,
    effective_plan_type,
)


class TestPlanLimits:
    """Plan table lookups."""

    def test_daily_limits(self):
        assert get_daily_limit("free") == 1
        assert get_daily_limit("gamer") == 50
        assert get_daily_limit("monthly") == -1
        assert get_daily_limit("lifetime") == -1
        assert get_daily_limit("wager_org") == -1

    def test_unknown_plan_gets_free_limits(self):
        assert get_daily_limit("enterprise-trial") == 1

    def test_within_limit(self):
        assert is_within_limit(0, 1)
        assert not is_within_limit(1, 1)
        assert is_within_limit(10_000, -1)

    def test_paid_plans(self):
        assert is_paid_plan("lifetime")
        assert not is_paid_plan("free")


class TestGetPlan:
    """Lazy plan creation."""

    def test_creates_free_active_plan(self, db, clock):
        plan = QuotaManager(db, clock).get_plan("user_1")
        assert plan.plan_type == "free"
        assert plan.status == "active"
        assert db.query(UserPlan).count() == 1

    def test_second_lookup_reuses_row(self, db, clock):
        quota = QuotaManager(db, clock)
        quota.get_plan("user_1")
        quota.get_plan("user_1")
        assert db.query(UserPlan).count() == 1

    def test_concurrent_creation_rereads(self, db, session_factory, clock, monkeypatch):
        quota = QuotaManager(db, clock)
        real_find = quota._find_plan
        calls = []

        def find_plan(user_id):
            calls.append(user_id)
            if len(calls) == 1:
                # Another request inserts the row between our read and our insert
                other = session_factory()
                other.add(UserPlan(user_id=user_id, plan_type="gamer", status="active"))
                other.commit()
                other.close()
                return None
            return real_find(user_id)

        monkeypatch.setattr(quota, "_find_plan", find_plan)
        plan = quota.get_plan("user_1")
        assert plan.plan_type == "gamer"
        assert len(calls) == 2

    def test_inactive_plan_counts_as_free(self):
        assert effective_plan_type(UserPlan(plan_type="monthly", status="canceled")) == "free"
        assert effective_plan_type(UserPlan(plan_type="monthly", status="active")) == "monthly"


class TestDailyUsage:
    """Atomic per-day counter."""

    def test_increment_creates_then_updates(self, db, clock):
        quota = QuotaManager(db, clock)
        quota.increment_usage("user_1")
        quota.increment_usage("user_1")
        assert quota.get_usage_today("user_1").count == 2
        assert db.query(DailyUsage).count() == 1

    def test_new_day_starts_at_zero(self, db, clock):
        quota = QuotaManager(db, clock)
        quota.increment_usage("user_1")
        clock.advance(days=1)
        usage = quota.get_usage_today("user_1")
        assert usage.count == 0
        assert usage.date == clock.now.date()

    def test_repeated_insert_conflicts_raise(self, db, clock, monkeypatch):
        def conflict():
            raise IntegrityError("INSERT INTO daily_usage", {}, Exception("duplicate key"))

        monkeypatch.setattr(db, "commit", conflict)
        with pytest.raises(UsageConflictError):
            QuotaManager(db, clock).increment_usage("user_1")


class TestCheckQuota:
    """Per-plan daily decisions."""

    def test_free_user_first_scan_allowed(self, db, clock):
        result = QuotaManager(db, clock).check_quota("user_1")
        assert result.allowed
        assert (result.usage, result.limit, result.plan) == (0, 1, "free")

    def test_free_user_exhausted(self, db, clock):
        quota = QuotaManager(db, clock)
        quota.increment_usage("user_1")
        result = quota.check_quota("user_1")
        assert not result.allowed
        assert result.reason == REASON_FREE_PLAN_EXHAUSTED

    def test_paid_user_daily_cap(self, db, clock):
        quota = QuotaManager(db, clock)
        quota.set_plan("user_1", "gamer")
        db.add(DailyUsage(user_id="user_1", usage_date=clock.now.date(), analysis_count=50))
        db.commit()

        result = quota.check_quota("user_1")
        assert not result.allowed
        assert result.reason == REASON_DAILY_CAP_REACHED
        assert (result.usage, result.limit, result.plan) == (50, 50, "gamer")

    def test_unlimited_plan(self, db, clock):
        quota = QuotaManager(db, clock)
        quota.set_plan("org_1", "wager_org")
        db.add(DailyUsage(user_id="org_1", usage_date=clock.now.date(), analysis_count=5000))
        db.commit()
        assert quota.check_quota("org_1").allowed

    @pytest.mark.parametrize("plan_type", ["monthly", "lifetime"])
    def test_checkout_plans_are_unlimited(self, db, clock, plan_type):
        quota = QuotaManager(db, clock)
        quota.set_plan("user_1", plan_type)
        db.add(DailyUsage(user_id="user_1", usage_date=clock.now.date(), analysis_count=200))
        db.commit()

        result = quota.check_quota("user_1")
        assert result.allowed
        assert result.limit == -1

    def test_store_failure_follows_policy(self, db, clock, monkeypatch, store_down, caplog):
        monkeypatch.setattr(db, "query", store_down)
        with caplog.at_level(logging.WARNING):
            assert QuotaManager(db, clock, open_on_error=True).check_quota("user_1").allowed
        assert "[QUOTA] Store unavailable, allowing user user_1" in caplog.text

        closed = QuotaManager(db, clock, open_on_error=False).check_quota("user_1")
        assert not closed.allowed
        assert closed.reason == REASON_QUOTA_UNAVAILABLE


class TestFreeScan:
    """One-time free scan marker."""

    def test_not_consumed_initially(self, db, clock):
        assert not QuotaManager(db, clock).check_free_scan_consumed("user_1")

    def test_free_scan_marker_written_once(self, db, clock):
        quota = QuotaManager(db, clock)
        quota.record_plan_scan("user_1", "free", ip="192.0.2.1")
        quota.record_plan_scan("user_1", "free", ip="192.0.2.1")

        marker = db.query(FreeScanUsage).one()
        assert marker.ip_address == "192.0.2.1"
        assert quota.check_free_scan_consumed("user_1")
        assert quota.get_plan("user_1").last_scan_at == clock.now

    def test_paid_scan_writes_no_marker(self, db, clock):
        quota = QuotaManager(db, clock)
        quota.set_plan("user_1", "monthly")
        quota.record_plan_scan("user_1", "monthly")
        assert db.query(FreeScanUsage).count() == 0

    def test_paid_plan_ignores_marker(self, db, clock):
        quota = QuotaManager(db, clock)
        quota.record_plan_scan("user_1", "free")
        quota.set_plan("user_1", "lifetime", stripe_customer_id="cus_123")
        assert not quota.check_free_scan_consumed("user_1")

    def test_store_failure_follows_policy(self, db, clock, monkeypatch, store_down, caplog):
        monkeypatch.setattr(db, "query", store_down)
        with caplog.at_level(logging.WARNING):
            assert not QuotaManager(db, clock, open_on_error=True).check_free_scan_consumed("user_1")
        assert "[FREE SCAN] Store unavailable, allowing user user_1" in caplog.text

        # Closed: the plan is unknown, so neither "used" nor "not used" can be answered
        with pytest.raises(QuotaUnavailableError):
            QuotaManager(db, clock, open_on_error=False).check_free_scan_consumed("user_1")


class TestSetPlan:
    """Applying a completed checkout."""

    def test_set_plan(self, db, clock):
        plan = QuotaManager(db, clock).set_plan("user_1", "monthly", stripe_customer_id="cus_42")
        assert plan.plan_type == "monthly"
        assert plan.status == "active"
        assert plan.stripe_customer_id == "cus_42"
        assert plan.last_scan_at == clock.now
