"""
Local membership state machine.

All transitions of the subscription record on `users` go through here:
- Verified payments (new or extended annual window)
- Partial merges of Stripe subscription state
- Cancel at period end / resume
- Expiry marking by the sweepers
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from advisor_chooser.core.errors import InvalidStateError
from advisor_chooser.models import User
from advisor_chooser.schemas import BillingDetails, SubscriptionSnapshot, SubscriptionUpdate

logger = logging.getLogger(__name__)

# Stripe subscription statuses mirrored locally as-is; anything else becomes "none".
STRIPE_STATUSES = {
    "active",
    "trialing",
    "past_due",
    "incomplete",
    "incomplete_expired",
    "unpaid",
    "canceled",
}


def add_years(moment: datetime, years: int = 1) -> datetime:
    """Same calendar day `years` later; Feb 29 falls back to Feb 28."""
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        return moment.replace(year=moment.year + years, day=28)


def normalize_status(status: Optional[str]) -> str:
    if status in STRIPE_STATUSES:
        return status
    return "none"


class SubscriptionService:
    """Transitions of the advisor membership record."""

    def mark_payment_verified(
        self,
        user: User,
        db: Session,
        customer_id: Optional[str] = None,
        billing: Optional[BillingDetails] = None,
        period_days: Optional[int] = None,
        extend: bool = True,
        now: Optional[datetime] = None,
    ) -> User:
        """
        Start or extend the membership window after a successful payment.

        If the current window is still running the new one starts where it
        ends, so paying early never loses time. Otherwise the window starts now.
        The window lasts one calendar year, or `period_days` for trials.
        With extend=False the window always starts now.
        """
        now = now or datetime.utcnow()
        start = user.subscription_current_period_start
        end = user.subscription_current_period_end

        if extend and start is not None and end is not None and start <= now < end:
            new_start = end
        else:
            new_start = now

        if period_days is not None:
            new_end = new_start + timedelta(days=period_days)
        else:
            new_end = add_years(new_start)

        user.subscription_status = "active"
        user.subscription_current_period_start = new_start
        user.subscription_current_period_end = new_end
        user.subscription_cancel_at_period_end = False
        user.subscription_canceled_at = None
        user.subscription_expiry_notified_at = None
        user.subscription_last_auto_renew_attempt = None

        if customer_id:
            user.stripe_customer_id = customer_id
        if billing is not None:
            self.apply_billing(user, billing, now=now)

        db.commit()
        db.refresh(user)

        logger.info(f"Membership verified for user {user.id}: {new_start} -> {new_end}")
        return user

    def update_from_stripe(
        self,
        user: User,
        update: SubscriptionUpdate,
        db: Session,
        billing: Optional[BillingDetails] = None,
    ) -> User:
        """Merge the fields present in `update`; absent fields keep their value."""
        fields = update.model_dump(exclude_unset=True, exclude_none=True)

        subscription_id = fields.pop("subscription_id", None)
        if subscription_id:
            user.stripe_subscription_id = subscription_id

        for key, value in fields.items():
            setattr(user, f"subscription_{key}", value)

        if fields.get("status") in ("active", "trialing"):
            user.subscription_expiry_notified_at = None
            user.subscription_last_auto_renew_attempt = None

        if billing is not None:
            self.apply_billing(user, billing)

        db.commit()
        db.refresh(user)

        logger.info(
            f"Synced subscription for user {user.id}: status={user.subscription_status}, "
            f"period_end={user.subscription_current_period_end}"
        )
        return user

    def apply_billing(self, user: User, billing: BillingDetails, now: Optional[datetime] = None) -> None:
        """Copy card metadata onto the user. Does not commit."""
        if billing.default_payment_method_id:
            user.billing_default_payment_method_id = billing.default_payment_method_id
        user.billing_card_brand = billing.card_brand
        user.billing_card_last4 = billing.card_last4
        user.billing_exp_month = billing.exp_month
        user.billing_exp_year = billing.exp_year
        user.billing_updated_at = now or datetime.utcnow()

    def cancel_at_period_end(self, user: User, db: Session, now: Optional[datetime] = None) -> User:
        """
        Stop renewing. Access continues until the current period ends.

        Raises:
            InvalidStateError: no period to cancel, or already canceled
        """
        now = now or datetime.utcnow()

        if user.subscription_current_period_end is None:
            raise InvalidStateError("No active subscription to cancel")
        if user.subscription_status == "canceled":
            raise InvalidStateError("Subscription is already canceled")

        user.subscription_cancel_at_period_end = True
        user.subscription_status = "canceled"
        user.subscription_canceled_at = now
        db.commit()
        db.refresh(user)

        logger.info(f"Subscription canceled at period end for user {user.id} (ends {user.subscription_current_period_end})")
        return user

    def resume(self, user: User, db: Session, now: Optional[datetime] = None) -> User:
        """Undo a cancellation while the paid period is still running; otherwise a no-op."""
        now = now or datetime.utcnow()
        period_end = user.subscription_current_period_end

        if period_end is None or period_end <= now:
            logger.info(f"Resume ignored for user {user.id}: period already elapsed")
            return user

        user.subscription_status = "active"
        user.subscription_cancel_at_period_end = False
        user.subscription_canceled_at = None
        db.commit()
        db.refresh(user)

        logger.info(f"Subscription resumed for user {user.id}")
        return user

    def mark_expired(self, user: User, db: Session, notified_at: Optional[datetime] = None) -> User:
        """Terminal state once automatic renewal has given up."""
        user.subscription_status = "expired"
        user.subscription_cancel_at_period_end = True
        if notified_at is not None:
            user.subscription_expiry_notified_at = notified_at
        db.commit()
        db.refresh(user)

        logger.info(f"Subscription expired for user {user.id}")
        return user

    def snapshot(self, user: User, now: Optional[datetime] = None) -> SubscriptionSnapshot:
        billing = None
        if user.has_payment_method:
            billing = BillingDetails(
                default_payment_method_id=user.billing_default_payment_method_id,
                card_brand=user.billing_card_brand,
                card_last4=user.billing_card_last4,
                exp_month=user.billing_exp_month,
                exp_year=user.billing_exp_year,
            )
        return SubscriptionSnapshot(
            status=user.subscription_status,
            is_payment_verified=user.has_access(now),
            current_period_start=user.subscription_current_period_start,
            current_period_end=user.subscription_current_period_end,
            cancel_at_period_end=user.subscription_cancel_at_period_end,
            canceled_at=user.subscription_canceled_at,
            stripe_subscription_id=user.stripe_subscription_id,
            has_payment_method=user.has_payment_method,
            billing=billing,
        )


# Global service instance
subscription_service = SubscriptionService()
