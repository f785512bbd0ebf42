"""
Stripe Checkout Session Routes
Creates checkout sessions for plan upgrades and applies completed checkouts to user plans
"""
import json
import logging
import os

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.plan_limits import CHECKOUT_PLANS
from app.db.session import get_db
from app.schemas.quota import CheckoutSessionRequest, CheckoutSessionResponse
from app.services.quota_manager import QuotaManager

logger = logging.getLogger(__name__)

router = APIRouter()

# Initialize Stripe
stripe.api_key = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")


def get_price_id(plan_type: str) -> str:
    env_var = "STRIPE_PRICE_ID_MONTHLY" if plan_type == "monthly" else "STRIPE_PRICE_ID_LIFETIME"
    return os.getenv(env_var, "")


@router.post("/create-stripe-session", response_model=CheckoutSessionResponse)
def create_stripe_session(body: CheckoutSessionRequest):
    """
    Create a Stripe Checkout Session for a plan upgrade.
    Monthly is a subscription, lifetime a one-off payment.
    """
    user_id = (body.userId or "").strip()
    if not user_id or body.planType not in CHECKOUT_PLANS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid request"
        )

    price_id = get_price_id(body.planType)
    if not price_id:
        logger.error("[STRIPE] Price ID not configured for plan %s", body.planType)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Stripe price ID not configured"
        )

    try:
        checkout_session = stripe.checkout.Session.create(
            payment_method_types=["card"],
            mode="subscription" if body.planType == "monthly" else "payment",
            line_items=[
                {
                    "price": price_id,
                    "quantity": 1,
                }
            ],
            success_url=f"{FRONTEND_URL}/upload?success=1",
            cancel_url=f"{FRONTEND_URL}/pricing?canceled=1",
            metadata={
                "user_id": user_id,
                "plan_type": body.planType,
            },
        )
    except stripe.StripeError as e:
        logger.error("[STRIPE] Error creating checkout session for user %s: %s", user_id, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create checkout session: {str(e)}"
        )

    logger.info("[STRIPE] Created checkout session %s for user %s (%s)", checkout_session.id, user_id, body.planType)
    return CheckoutSessionResponse(url=checkout_session.url)


@router.post("/webhooks/stripe")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Handle Stripe webhook events.
    checkout.session.completed moves the user onto the purchased plan.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        stripe.Webhook.construct_event(payload, signature, STRIPE_WEBHOOK_SECRET)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning("[STRIPE WEBHOOK] Rejected event: %s", e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Webhook Error: {str(e)}"
        )

    event = json.loads(payload)
    event_type = event.get("type")
    logger.info("[STRIPE WEBHOOK] Received event: %s", event_type)

    if event_type == "checkout.session.completed":
        session = event.get("data", {}).get("object", {})
        metadata = session.get("metadata") or {}
        user_id = metadata.get("user_id")
        plan_type = metadata.get("plan_type")
        if user_id and plan_type:
            QuotaManager(db).set_plan(user_id, plan_type, stripe_customer_id=session.get("customer"))
        else:
            logger.warning("[STRIPE WEBHOOK] Checkout session %s missing user/plan metadata", session.get("id"))

    return {"received": True}
