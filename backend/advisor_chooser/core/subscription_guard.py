"""
Membership enforcement for advisor routes.

`require_active_subscription` is a FastAPI dependency. Sellers pass through.
Advisors need a membership that currently grants access; a lapsed membership
with a card on file gets one inline renewal attempt before the request is
refused with 402.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from advisor_chooser.core.auth import get_current_user
from advisor_chooser.core.config import settings
from advisor_chooser.core.errors import ServiceError
from advisor_chooser.db.base import get_db
from advisor_chooser.models import User
from advisor_chooser.schemas import AccessDenied
from advisor_chooser.services.payments import PaymentService, get_payment_service
from advisor_chooser.services.subscription import subscription_service

logger = logging.getLogger(__name__)

PAYMENTS_PAGE = "/advisor-payments"


class SubscriptionExpiredException(HTTPException):
    """Raised when an advisor's membership no longer grants access."""

    def __init__(self, message: str, has_payment_method: bool):
        super().__init__(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=AccessDenied(
                message=message,
                hasPaymentMethod=has_payment_method,
                redirectTo=PAYMENTS_PAGE,
            ).model_dump(),
        )


def denial_message(user: User) -> str:
    if user.subscription_status == "canceled":
        return "Your subscription has ended. Please reactivate to continue access."
    if user.has_payment_method:
        return "Subscription expired - payment failed. Please update your payment method."
    return "Subscription expired. Please renew to continue access."


def within_inline_cooldown(user: User, now: datetime) -> bool:
    last_attempt = user.subscription_last_auto_renew_attempt
    if last_attempt is None:
        return False
    return now - last_attempt < timedelta(minutes=settings.inline_renewal_cooldown_minutes)


def check_subscription_access(
    user: User,
    db: Session,
    payments: PaymentService,
    now: Optional[datetime] = None,
) -> User:
    """
    Return the (fresh) user when access is allowed.

    Raises:
        SubscriptionExpiredException: membership lapsed and could not be renewed
    """
    if not user.is_advisor:
        return user

    now = now or datetime.utcnow()
    db.refresh(user)

    if user.has_access(now):
        return user

    if (
        user.subscription_status != "canceled"
        and user.has_payment_method
        and not within_inline_cooldown(user, now)
    ):
        # Record the attempt first so concurrent requests do not all charge.
        user.subscription_last_auto_renew_attempt = now
        db.commit()

        try:
            logger.info(f"Attempting inline renewal for user {user.id}")
            payments.renew_subscription(user, db, now=now)
        except ServiceError as e:
            logger.error(f"Inline renewal failed for user {user.id}: {e.message}")
            db.rollback()

        db.refresh(user)
        if user.has_access(now):
            logger.info(f"Inline renewal restored access for user {user.id}")
            return user

    logger.info(
        f"Access denied for user {user.id}: status={user.subscription_status}, "
        f"period_end={user.subscription_current_period_end}"
    )
    raise SubscriptionExpiredException(denial_message(user), user.has_payment_method)


def require_active_subscription(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
) -> User:
    """FastAPI dependency gating advisor routes on an active membership."""
    user = check_subscription_access(current_user, db, payments)
    if user.is_advisor:
        request.state.subscription = subscription_service.snapshot(user)
    return user
