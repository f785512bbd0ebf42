from pydantic import BaseModel
from typing import Any, Dict, Optional


class RateLimitedResponse(BaseModel):
    error: str = "Rate limit exceeded"
    reason: str = "rate_limited"
    message: str
    remaining: int
    resetTime: Optional[str] = None
    retryAfter: Optional[int] = None


class UsageLimitResponse(BaseModel):
    error: str = "Usage limit reached"
    reason: str = "usage_limit_reached"
    quotaReason: Optional[str] = None
    message: Optional[str] = None
    usage: int
    limit: int
    plan: str
    upgradeUrl: str = "/pricing"


class FreeScanUsedResponse(BaseModel):
    error: str = "Upgrade required"
    reason: str = "free_scan_used"
    message: str


class VerificationUnavailableResponse(BaseModel):
    error: str = "Service temporarily unavailable"
    reason: str
    message: str


class AnalysisErrorResponse(BaseModel):
    error: str = "Failed to analyze video"
    details: Optional[str] = None


class UsageLogEntry(BaseModel):
    id: int
    user_id: Optional[str] = None
    ip_address: str
    video_type: Optional[str] = None
    success: bool
    verdict: Optional[str] = None
    timestamp: Optional[str] = None


class UsageLogsResponse(BaseModel):
    logs: list[UsageLogEntry]


def drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}
