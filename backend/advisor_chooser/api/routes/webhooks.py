"""
Webhook endpoints.

Stripe events drive membership state for recurring subscriptions and
confirm one-off payments the client never reported back.
"""
import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status

from advisor_chooser.core.config import settings
from advisor_chooser.core.rate_limit import limiter
from advisor_chooser.db.base import SessionLocal
from advisor_chooser.services.payments import PaymentService, get_payment_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe")
@limiter.limit("200/minute")
async def stripe_webhook(
    request: Request,
    payments: PaymentService = Depends(get_payment_service),
):
    """
    Handle Stripe webhooks.

    Processes events:
    - payment_intent.succeeded: one-off membership payment or subscription intent
    - customer.subscription.created / updated / deleted: mirror subscription state
    - invoice.payment_succeeded: renewal paid
    - invoice.payment_failed: one retry with the stored card, then past_due + email
    """
    if not settings.stripe_webhook_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stripe webhook secret not configured",
        )

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    if not sig_header:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing stripe-signature header",
        )

    try:
        event = payments.gateway.construct_event(payload, sig_header, settings.stripe_webhook_secret)
    except ValueError as e:
        logger.error(f"Invalid Stripe webhook payload: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid payload",
        ) from e
    except stripe.SignatureVerificationError as e:
        logger.error(f"Invalid Stripe webhook signature: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from e

    event_type = event["type"]
    logger.info(f"Received Stripe webhook: {event_type} ({event.get('id')})")

    with SessionLocal() as db:
        try:
            payments.handle_event(event, db)
        except Exception as e:
            db.rollback()
            logger.error(f"Error processing Stripe webhook {event_type}: {str(e)}", exc_info=True)
            # Acknowledge anyway; a 5xx would make Stripe redeliver the event indefinitely.

    return {"status": "ok"}
