from app.models.client_request_event import ClientRequestEvent
from app.models.signup_event import SignupEvent
from app.models.blocked_email_domain import BlockedEmailDomain
from app.models.user_plan import UserPlan
from app.models.daily_usage import DailyUsage
from app.models.free_scan_usage import FreeScanUsage
from app.models.usage_log import UsageLog
from app.models.analysis import Analysis

__all__ = [
    "ClientRequestEvent",
    "SignupEvent",
    "BlockedEmailDomain",
    "UserPlan",
    "DailyUsage",
    "FreeScanUsage",
    "UsageLog",
    "Analysis"
]
