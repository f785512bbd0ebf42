"""
Signup abuse prevention endpoints.
- /signup-verify: frontend pre-check before the user attempts to sign up (fails open).
- /webhooks/clerk: identity provider user.created webhook; decides and logs every new account.
"""
import base64
import hashlib
import hmac
import json
import logging
import os
import time

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.config import AdmissionSettings, get_settings
from app.db.session import get_db
from app.schemas.signup import SignupVerifyRequest, SignupVerifyResponse, SignupWebhookResponse
from app.services.signup_guard import BLOCK_REASON_TEMP_EMAIL, SignupGuard
from app.utils.client_ip import get_client_ip
from app.utils.disposable_email import extract_email_domain

logger = logging.getLogger(__name__)

router = APIRouter()

CLERK_WEBHOOK_SECRET = os.getenv("CLERK_WEBHOOK_SECRET", "")
WEBHOOK_TOLERANCE_SECONDS = 5 * 60


def _verify_webhook_signature(
    payload: bytes,
    signature_header: str | None,
    webhook_id: str | None,
    webhook_timestamp: str | None,
    secret: str,
    now: float | None = None,
) -> bool:
    """
    Verify a Standard Webhooks (svix) signature as sent by the identity provider.

    Signed payload format:
        f"{svix_id}.{svix_timestamp}.{raw_body}"

    The base64 HMAC-SHA256 digest (keyed with the decoded "whsec_" secret) is sent in
    the `svix-signature` header as a space-separated list of "v1,<signature>" entries.
    """
    if not secret or not signature_header or not webhook_id or not webhook_timestamp:
        return False

    try:
        timestamp = int(webhook_timestamp)
    except ValueError:
        return False
    now = time.time() if now is None else now
    if abs(now - timestamp) > WEBHOOK_TOLERANCE_SECONDS:
        return False

    try:
        if secret.startswith("whsec_"):
            key_bytes = base64.b64decode(secret.split("_", 1)[1])
        else:
            key_bytes = secret.encode()
    except (ValueError, TypeError):
        return False

    signed_payload = f"{webhook_id}.{webhook_timestamp}.{payload.decode()}".encode()
    expected = base64.b64encode(hmac.new(key_bytes, signed_payload, hashlib.sha256).digest()).decode()

    for entry in signature_header.split():
        version, _, signature = entry.partition(",")
        if version == "v1" and hmac.compare_digest(signature, expected):
            return True
    return False


@router.post("/signup-verify", response_model=SignupVerifyResponse, response_model_exclude_none=True)
def signup_verify(
    body: SignupVerifyRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: AdmissionSettings = Depends(get_settings),
):
    """Tell the frontend whether a signup from this email and IP will be allowed."""
    email = (body.email or "").strip()
    if not email:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"allowed": False, "reason": "Email is required"},
        )

    try:
        ip = get_client_ip(request, settings.trusted_ip_header)
        logger.info("[SIGNUP VERIFY] Email: %s, IP: %s", email, ip)
        guard = SignupGuard(db, open_on_error=settings.signup_fail_open)

        if settings.block_temp_email_domains and guard.is_blocked_domain(email):
            logger.info("[SIGNUP VERIFY] Blocked - Temp email domain: %s", extract_email_domain(email))
            # Blocked attempts are audited; they never count toward the IP throttle
            guard.log_signup(None, ip, email, request.headers.get("user-agent"), True, BLOCK_REASON_TEMP_EMAIL)
            return SignupVerifyResponse(
                allowed=False,
                reason="Temporary email domains are not allowed. Please use a permanent email address.",
                blockedDomain=True,
            )

        check = guard.check_signup_limit(ip, settings.max_signups_per_ip, settings.signup_window_hours)
        if not check.allowed:
            logger.info("[SIGNUP VERIFY] Blocked - %s", check.reason)
            return SignupVerifyResponse(
                allowed=False,
                reason="Too many accounts created from this IP. Please try again later.",
                details=check.reason,
                rateLimited=True,
                resetTime=check.reset_time.isoformat() + "Z" if check.reset_time else None,
                count=check.count,
            )

        logger.info("[SIGNUP VERIFY] Allowed - Email: %s, IP: %s", email, ip)
        return SignupVerifyResponse(
            allowed=True,
            message="Signup check passed",
            count=check.count,
            remaining=max(0, settings.max_signups_per_ip - check.count),
        )
    except Exception as e:
        # Pre-check is advisory: never block a signup because verification broke
        db.rollback()
        logger.warning("[SIGNUP VERIFY] Verification failed, allowing: %s", e)
        return SignupVerifyResponse(
            allowed=True,
            message="Verification service unavailable",
            warning=True,
        )


@router.post("/webhooks/clerk", response_model=SignupWebhookResponse, response_model_exclude_none=True)
async def clerk_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: AdmissionSettings = Depends(get_settings),
):
    """Handle identity provider events; user.created runs the signup abuse checks."""
    if not CLERK_WEBHOOK_SECRET:
        logger.error("[CLERK WEBHOOK] CLERK_WEBHOOK_SECRET not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook not configured"
        )

    payload = await request.body()
    if not _verify_webhook_signature(
        payload,
        request.headers.get("svix-signature"),
        request.headers.get("svix-id"),
        request.headers.get("svix-timestamp"),
        CLERK_WEBHOOK_SECRET,
    ):
        logger.warning("[CLERK WEBHOOK] Invalid signature")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid signature"
        )

    try:
        event = json.loads(payload)
    except json.JSONDecodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON payload"
        )

    event_type = event.get("type")
    if event_type != "user.created":
        logger.info("[CLERK WEBHOOK] Ignoring event type: %s", event_type)
        return SignupWebhookResponse(ok=True)

    data = event.get("data") or {}
    user_id = data.get("id")
    addresses = data.get("email_addresses") or []
    primary_email = addresses[0].get("email_address") if addresses else None
    ip = get_client_ip(request, settings.trusted_ip_header)
    logger.info("[SIGNUP DETECT] New user: %s, Email: %s, IP: %s", user_id, primary_email, ip)

    if not primary_email:
        logger.warning("[SIGNUP DETECT] No email found for user %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No email provided"
        )

    guard = SignupGuard(db, open_on_error=settings.signup_fail_open)
    decision = guard.evaluate_signup(
        user_id,
        ip,
        primary_email,
        user_agent=request.headers.get("user-agent"),
        block_temp_domains=settings.block_temp_email_domains,
        max_signups=settings.max_signups_per_ip,
        window_hours=settings.signup_window_hours,
    )

    # Acknowledge either way; a blocked account is recorded, not rejected
    if not decision.allowed:
        return SignupWebhookResponse(
            ok=True,
            blocked=True,
            reason=decision.reason,
            resetTime=decision.reset_time.isoformat() + "Z" if decision.reset_time else None,
        )
    return SignupWebhookResponse(ok=True, blocked=False, message="Signup logged successfully")
