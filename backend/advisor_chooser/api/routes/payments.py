"""
API endpoints for advisor membership payments.

Endpoints:
- POST /payments/create-intent - Start a one-off annual payment
- POST /payments/confirm - Activate membership after a confirmed payment
- POST /payments/redeem-coupon - Activate a free trial
- POST /payments/create-subscription - Start a recurring Stripe subscription
- POST /payments/finalize-subscription - Sync a subscription after client authentication
- POST /payments/setup-intent - Collect a card for later use
- POST /payments/update-payment-method - Replace the renewal card
- POST /payments/cancel - Cancel at period end
- POST /payments/resume - Undo a cancellation
- GET /payments/subscription - Current membership state
- GET /payments/history - Billing history
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from advisor_chooser.core.auth import require_advisor
from advisor_chooser.core.rate_limit import limiter
from advisor_chooser.db.base import get_db
from advisor_chooser.models import User
from advisor_chooser.schemas import (
    ConfirmPaymentRequest,
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    FinalizeSubscriptionRequest,
    PaymentHistoryEntry,
    PaymentIntentRequest,
    PaymentIntentResponse,
    RedeemCouponRequest,
    SetupIntentResponse,
    SubscriptionSnapshot,
    UpdatePaymentMethodRequest,
)
from advisor_chooser.services.payments import PaymentService, get_payment_service
from advisor_chooser.services.subscription import subscription_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/create-intent", response_model=PaymentIntentResponse)
@limiter.limit("10/minute")
def create_payment_intent(
    request: Request,
    payload: PaymentIntentRequest,
    current_user: User = Depends(require_advisor),
    db: Session = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
):
    """Create a payment intent for the annual membership fee."""
    return payments.create_payment_intent(current_user, db, coupon_code=payload.coupon_code)


@router.post("/confirm")
@limiter.limit("10/minute")
def confirm_payment(
    request: Request,
    payload: ConfirmPaymentRequest,
    current_user: User = Depends(require_advisor),
    db: Session = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
):
    """Activate or extend the membership once Stripe reports the payment succeeded."""
    return payments.confirm_payment(current_user, payload.payment_intent_id, db)


@router.post("/redeem-coupon")
@limiter.limit("10/minute")
def redeem_coupon(
    request: Request,
    payload: RedeemCouponRequest,
    current_user: User = Depends(require_advisor),
    db: Session = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
):
    return payments.redeem_coupon(current_user, payload.coupon_code, db)


@router.post("/create-subscription", response_model=CreateSubscriptionResponse)
@limiter.limit("10/minute")
def create_subscription(
    request: Request,
    payload: CreateSubscriptionRequest,
    current_user: User = Depends(require_advisor),
    db: Session = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
):
    return payments.create_subscription(
        current_user,
        payload.payment_method_id,
        db,
        coupon_code=payload.coupon_code,
    )


@router.post("/finalize-subscription")
def finalize_subscription(
    payload: FinalizeSubscriptionRequest,
    current_user: User = Depends(require_advisor),
    db: Session = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
):
    return payments.finalize_subscription(current_user, payload.subscription_id, db)


@router.post("/setup-intent", response_model=SetupIntentResponse)
def create_setup_intent(
    current_user: User = Depends(require_advisor),
    db: Session = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
):
    return payments.create_setup_intent(current_user, db)


@router.post("/update-payment-method")
@limiter.limit("10/minute")
def update_payment_method(
    request: Request,
    payload: UpdatePaymentMethodRequest,
    current_user: User = Depends(require_advisor),
    db: Session = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
):
    return payments.update_payment_method(current_user, payload.payment_method_id, db)


@router.post("/cancel", response_model=SubscriptionSnapshot)
def cancel_subscription(
    current_user: User = Depends(require_advisor),
    db: Session = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
):
    """Stop renewal; access continues until the current period ends."""
    user = payments.cancel(current_user, db)
    return subscription_service.snapshot(user)


@router.post("/resume", response_model=SubscriptionSnapshot)
def resume_subscription(
    current_user: User = Depends(require_advisor),
    db: Session = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
):
    """Undo a cancellation. Has no effect once the period has ended."""
    user = payments.resume(current_user, db)
    return subscription_service.snapshot(user)


@router.get("/subscription", response_model=SubscriptionSnapshot)
def get_subscription(current_user: User = Depends(require_advisor)):
    return subscription_service.snapshot(current_user)


@router.get("/history", response_model=List[PaymentHistoryEntry])
def get_payment_history(
    current_user: User = Depends(require_advisor),
    db: Session = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
):
    """Billing history, newest first."""
    return payments.get_history(current_user, db)
