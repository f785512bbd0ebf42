from pydantic import BaseModel
from typing import Optional


class QuotaCheckRequest(BaseModel):
    userId: Optional[str] = None


class QuotaCheckResponse(BaseModel):
    plan: str
    status: str
    usage: int
    limit: int  # -1 means unlimited
    canAnalyze: bool


class CheckoutSessionRequest(BaseModel):
    userId: Optional[str] = None
    planType: Optional[str] = None


class CheckoutSessionResponse(BaseModel):
    url: str
