from pydantic import BaseModel
from typing import Optional


class SignupVerifyRequest(BaseModel):
    # Plain str: malformed addresses are answered (and never blocked), not rejected with 422
    email: Optional[str] = None


class SignupVerifyResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    details: Optional[str] = None
    blockedDomain: Optional[bool] = None
    rateLimited: Optional[bool] = None
    resetTime: Optional[str] = None
    count: Optional[int] = None
    remaining: Optional[int] = None
    warning: Optional[bool] = None


class SignupWebhookResponse(BaseModel):
    ok: bool = True
    blocked: Optional[bool] = None
    reason: Optional[str] = None
    resetTime: Optional[str] = None
    message: Optional[str] = None
