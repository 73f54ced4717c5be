"""
Scheduled membership sweeps.

Both sweeps are plain functions over a session and an explicit `now`, so the
Celery tasks that run them stay thin and tests can drive them directly.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from advisor_chooser.core.config import settings
from advisor_chooser.core.errors import ServiceError
from advisor_chooser.models import User
from advisor_chooser.models.user import ROLE_ADVISOR
from advisor_chooser.services.email import EmailService, email_service, format_day
from advisor_chooser.services.payments import PaymentService
from advisor_chooser.services.subscription import subscription_service

logger = logging.getLogger(__name__)

RENEWABLE_STATUSES = ("active", "past_due")
NOTIFIABLE_STATUSES = ("active", "trialing", "past_due")


def find_due_for_renewal(
    db: Session,
    now: datetime,
    cooldown_hours: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[User]:
    """Advisors whose period has elapsed and who can be charged again."""
    cooldown = timedelta(hours=cooldown_hours if cooldown_hours is not None else settings.renewal_cooldown_hours)
    return (
        db.query(User)
        .filter(
            User.role == ROLE_ADVISOR,
            User.subscription_status.in_(RENEWABLE_STATUSES),
            User.subscription_current_period_end <= now,
            User.stripe_customer_id.isnot(None),
            User.billing_default_payment_method_id.isnot(None),
            User.subscription_cancel_at_period_end.is_(False),
            or_(
                User.subscription_last_auto_renew_attempt.is_(None),
                User.subscription_last_auto_renew_attempt <= now - cooldown,
            ),
        )
        .order_by(User.subscription_current_period_end.asc())
        .limit(limit or settings.renewal_batch_limit)
        .all()
    )


def find_expired_unnotified(db: Session, now: datetime, limit: Optional[int] = None) -> List[User]:
    return (
        db.query(User)
        .filter(
            User.role == ROLE_ADVISOR,
            User.subscription_status.in_(NOTIFIABLE_STATUSES),
            User.subscription_current_period_end <= now,
            User.subscription_expiry_notified_at.is_(None),
        )
        .order_by(User.subscription_current_period_end.asc())
        .limit(limit or settings.expiry_notice_batch_limit)
        .all()
    )


def notify_expired(user: User, db: Session, now: datetime, emailer: EmailService) -> None:
    """Send the expiry notice and move the membership to expired."""
    period_end = user.subscription_current_period_end or now
    sent = emailer.send_subscription_expired_email(
        email=user.email,
        advisor_name=user.name,
        expiry_date=format_day(period_end),
    )
    if not sent:
        logger.warning(f"Expiry email for user {user.id} was not delivered")
    subscription_service.mark_expired(user, db, notified_at=now)


def run_renewal_sweep(
    db: Session,
    payments: PaymentService,
    now: Optional[datetime] = None,
    emailer: Optional[EmailService] = None,
) -> Dict[str, int]:
    """
    Try once to renew every lapsed advisor with a card on file.

    A failed renewal expires the membership and notifies the advisor; no
    further automatic attempts are made. One advisor's failure never stops
    the batch.
    """
    now = now or datetime.utcnow()
    emailer = emailer or email_service
    summary = {"checked": 0, "renewed": 0, "expired": 0, "errors": 0}

    candidates = find_due_for_renewal(db, now)
    logger.info(f"Renewal sweep found {len(candidates)} lapsed memberships")

    for user in candidates:
        summary["checked"] += 1
        try:
            user.subscription_last_auto_renew_attempt = now
            db.commit()

            try:
                payments.renew_subscription(user, db, now=now)
            except ServiceError as e:
                db.rollback()
                logger.warning(f"Automatic renewal failed for user {user.id}: {e.message}")

            db.refresh(user)
            if user.has_access(now):
                summary["renewed"] += 1
                logger.info(f"Renewed membership for user {user.id}")
            else:
                notify_expired(user, db, now, emailer)
                summary["expired"] += 1
        except Exception as e:
            db.rollback()
            summary["errors"] += 1
            logger.error(f"Renewal sweep error for user {user.id}: {str(e)}", exc_info=True)

    logger.info(f"Renewal sweep finished: {summary}")
    return summary


def run_expiry_notices(
    db: Session,
    now: Optional[datetime] = None,
    emailer: Optional[EmailService] = None,
) -> Dict[str, int]:
    """Notify each lapsed advisor once and mark the membership expired."""
    now = now or datetime.utcnow()
    emailer = emailer or email_service
    summary = {"checked": 0, "notified": 0, "errors": 0}

    advisors = find_expired_unnotified(db, now)
    logger.info(f"Expiry sweep found {len(advisors)} advisors to notify")

    for user in advisors:
        summary["checked"] += 1
        try:
            notify_expired(user, db, now, emailer)
            summary["notified"] += 1
        except Exception as e:
            db.rollback()
            summary["errors"] += 1
            logger.error(f"Failed to send expiry notice to {user.email}: {str(e)}", exc_info=True)

    logger.info(f"Expiry sweep finished: {summary}")
    return summary
