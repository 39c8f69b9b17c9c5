"""
Payment routes

- create-payment-intent: places a manual-capture hold before the order exists;
  the returned payment_intent_id is sent back as stripe_payment_id on POST /orders
- status: processor-side state of a hold
- webhook: signed processor events reconciled against local orders
"""
import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_current_user, get_order_workflow
from storefront.core.config import settings
from storefront.core.database import get_db
from storefront.core.rate_limit import get_checkout_limit
from storefront.core.utils import cents_to_dollars
from storefront.models.user import User
from storefront.schemas.payment import PaymentIntentCreate, PaymentIntentResponse, PaymentStatusResponse
from storefront.services.order_workflow import OrderWorkflow
from storefront.services.payment_gateway import PaymentGateway, get_payment_gateway

logger = logging.getLogger(__name__)

router = APIRouter()

HANDLED_EVENTS = {
    "payment_intent.succeeded",
    "payment_intent.payment_failed",
    "payment_intent.canceled",
}


@router.post("/create-payment-intent", response_model=PaymentIntentResponse)
@get_checkout_limit()
async def create_payment_intent(
    request: Request,
    payload: PaymentIntentCreate,
    current_user: User = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Authorize (hold) the amount; capture happens when an admin confirms the order."""
    result = await gateway.authorize(
        payload.amount,
        payload.currency,
        metadata={"user_id": str(current_user.id)},
    )
    return PaymentIntentResponse(
        payment_intent_id=result.reference,
        client_secret=result.client_secret,
        status=result.status,
        amount=cents_to_dollars(result.amount),
        currency=result.currency,
    )


@router.get("/status/{payment_intent_id}", response_model=PaymentStatusResponse)
async def get_payment_status(
    payment_intent_id: str,
    current_user: User = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    result = await gateway.retrieve(payment_intent_id)
    if result.metadata.get("user_id") not in (None, str(current_user.id)) and not current_user.is_admin:
        raise HTTPException(status_code=404, detail="Payment not found")
    return PaymentStatusResponse(
        payment_intent_id=result.reference,
        status=result.status,
        amount=cents_to_dollars(result.amount),
        currency=result.currency,
    )


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    workflow: OrderWorkflow = Depends(get_order_workflow),
):
    """Verify the Stripe signature, then reconcile the order the event refers to."""
    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("Stripe webhook received but STRIPE_WEBHOOK_SECRET not configured")
        raise HTTPException(status_code=503, detail="Webhook not configured")

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    if not sig_header:
        logger.warning("Stripe webhook missing signature header")
        raise HTTPException(status_code=400, detail="Missing signature")

    try:
        event = stripe.Webhook.construct_event(
            payload, sig_header, settings.STRIPE_WEBHOOK_SECRET
        )
    except ValueError as e:
        logger.warning(f"Stripe webhook invalid payload: {e}")
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Stripe webhook signature verification failed: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_type = event["type"]
    logger.info(f"Stripe webhook received: {event_type} (event_id={event['id']})")

    if event_type not in HANDLED_EVENTS:
        return {"status": "ignored"}

    intent = event["data"]["object"]
    order = await workflow.apply_payment_event(db, event_type, intent)
    return {"status": "processed" if order else "no_change"}
