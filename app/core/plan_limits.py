from typing import Dict

# Plan limits configuration
# Single source for the quota check and the /check-quota display endpoint.
PLAN_LIMITS: Dict[str, Dict[str, int]] = {
    "free": {
        "max_analyses_per_day": 1,
    },
    "gamer": {
        "max_analyses_per_day": 50,
    },
    # Stripe checkout plans (monthly subscription / one-off lifetime purchase)
    "monthly": {
        "max_analyses_per_day": -1,
    },
    "lifetime": {
        "max_analyses_per_day": -1,
    },
    "wager_org": {
        "max_analyses_per_day": -1,  # -1 means unlimited
    },
}

FREE_PLAN = "free"
UNLIMITED = -1

# Paid tiers skip the one-time free scan gate
PAID_PLANS = frozenset({"gamer", "monthly", "lifetime", "wager_org"})

# Plans sold through Stripe checkout
CHECKOUT_PLANS = ("monthly", "lifetime")


def get_plan_limit(plan_type: str, limit_type: str) -> int:
    """Get the limit value for a specific plan and limit type."""
    return PLAN_LIMITS.get(plan_type, PLAN_LIMITS[FREE_PLAN]).get(limit_type, 0)


def get_daily_limit(plan_type: str) -> int:
    return get_plan_limit(plan_type, "max_analyses_per_day")


def is_paid_plan(plan_type: str) -> bool:
    return plan_type in PAID_PLANS


def is_within_limit(usage: int, limit: int) -> bool:
    """True if one more action fits under `limit` (-1 is unlimited)."""
    return limit == UNLIMITED or usage < limit
