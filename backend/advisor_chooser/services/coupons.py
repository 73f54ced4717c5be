"""
Coupon engine.

Handles:
- Validation of a redeemable code
- Discount arithmetic for the membership fee
- Atomic usage counting
- Admin create / list / extend / delete, mirrored to Stripe coupons
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from advisor_chooser.core.config import settings
from advisor_chooser.core.errors import ConflictError, InvalidStateError, NotFoundError
from advisor_chooser.models import Coupon
from advisor_chooser.schemas import CouponCreate, CouponUsageUpdate

logger = logging.getLogger(__name__)


def stripe_coupon_id(code: str) -> str:
    return f"advisor_{code.strip().lower()}"


class CouponService:
    """Coupon validation, discounting and administration."""

    def find(self, code: str, db: Session, active_only: bool = True) -> Optional[Coupon]:
        """Case-insensitive exact lookup."""
        query = db.query(Coupon).filter(func.upper(Coupon.code) == code.strip().upper())
        if active_only:
            query = query.filter(Coupon.is_active.is_(True))
        return query.first()

    def validate(self, code: str, db: Session, now: Optional[datetime] = None) -> Coupon:
        """
        Return the coupon if it can be redeemed right now.

        Raises:
            NotFoundError: unknown or inactive code
            InvalidStateError: expired or usage limit reached
        """
        now = now or datetime.utcnow()
        coupon = self.find(code, db)
        if coupon is None:
            raise NotFoundError("Invalid or inactive coupon code")
        if coupon.is_expired(now):
            raise InvalidStateError("Coupon has expired")
        if coupon.is_exhausted:
            raise InvalidStateError("Coupon usage limit reached")
        return coupon

    def apply_discount(self, original_cents: int, coupon: Coupon) -> int:
        """Discounted price in cents. Fixed coupon values are whole currency units."""
        if coupon.type == "free_trial":
            return 0
        if coupon.type == "percentage":
            return int(round(original_cents * (1 - coupon.value / 100)))
        if coupon.type == "fixed":
            return max(0, int(original_cents - round(coupon.value * 100)))
        return original_cents

    def chargeable_amount(self, amount_cents: int) -> int:
        """Stripe rejects charges below its minimum."""
        return max(amount_cents, settings.min_charge_cents)

    def increment_usage(self, code: Optional[str], db: Session) -> bool:
        """
        Count one redemption, refusing to go past the usage limit.

        The check and the increment are one conditional UPDATE, so concurrent
        redemptions of the last remaining use cannot both succeed.
        Returns False when the coupon is unknown or already exhausted.
        """
        if not code:
            return False

        result = db.execute(
            update(Coupon)
            .where(func.upper(Coupon.code) == code.strip().upper())
            .where(or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit))
            .values(used_count=Coupon.used_count + 1, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        db.commit()

        if result.rowcount != 1:
            logger.warning(f"Coupon usage not incremented for {code}: limit reached or unknown code")
            return False

        logger.info(f"Coupon {code.strip().upper()} usage incremented")
        return True

    # Admin

    def create(self, data: CouponCreate, db: Session) -> Coupon:
        if self.find(data.code, db, active_only=False) is not None:
            raise ConflictError("Coupon code already exists")

        coupon = Coupon(
            code=data.code,
            type="percentage",
            value=round(data.value),
            is_active=True,
            usage_limit=data.usage_limit,
            expires_at=data.expires_at,
        )
        db.add(coupon)
        db.commit()
        db.refresh(coupon)

        logger.info(f"Created coupon {coupon.code} ({coupon.value}% off, limit={coupon.usage_limit})")
        return coupon

    def list_coupons(self, db: Session) -> List[Coupon]:
        return db.query(Coupon).order_by(Coupon.created_at.desc()).all()

    def extend_usage(self, code: str, data: CouponUsageUpdate, db: Session) -> Coupon:
        coupon = self.find(code, db, active_only=False)
        if coupon is None:
            raise NotFoundError("Coupon not found")

        if data.new_total_limit is not None:
            if data.new_total_limit <= coupon.used_count:
                raise InvalidStateError(
                    "New total limit must be greater than the number of times "
                    f"already used ({coupon.used_count})."
                )
            coupon.usage_limit = data.new_total_limit
        elif data.additional_uses is not None:
            current_limit = coupon.usage_limit if coupon.usage_limit is not None else coupon.used_count
            coupon.usage_limit = current_limit + data.additional_uses

        if data.expires_at is not None:
            coupon.expires_at = data.expires_at
        if data.clear_expiration:
            coupon.expires_at = None

        db.commit()
        db.refresh(coupon)

        logger.info(f"Updated coupon {coupon.code}: limit={coupon.usage_limit}, expires_at={coupon.expires_at}")
        return coupon

    def delete(self, code: str, db: Session, gateway) -> str:
        coupon = self.find(code, db, active_only=False)
        if coupon is None:
            raise NotFoundError("Coupon not found")

        deleted_code, coupon_type = coupon.code, coupon.type
        db.delete(coupon)
        db.commit()

        if coupon_type != "free_trial":
            if not gateway.delete_coupon(stripe_coupon_id(deleted_code)):
                logger.info(f"No Stripe coupon to delete for {deleted_code}")

        logger.info(f"Deleted coupon {deleted_code}")
        return deleted_code

    def ensure_stripe_coupon(self, coupon: Coupon, gateway) -> dict:
        """
        Mirror a coupon onto a Stripe subscription.

        Free trials become trial days (coupon value, default 30); other types
        become a one-off Stripe coupon named advisor_<code>.
        """
        if coupon.type == "free_trial":
            days = int(coupon.value) if coupon.value and coupon.value > 0 else settings.free_trial_days
            return {"trial_period_days": days}

        coupon_id = stripe_coupon_id(coupon.code)
        if gateway.retrieve_coupon(coupon_id) is None:
            if coupon.type == "percentage":
                gateway.create_coupon(id=coupon_id, percent_off=coupon.value, duration="once")
            else:
                gateway.create_coupon(
                    id=coupon_id,
                    amount_off=int(round(coupon.value * 100)),
                    currency=settings.currency,
                    duration="once",
                )
            logger.info(f"Created Stripe coupon {coupon_id}")
        return {"coupon_id": coupon_id}


# Global service instance
coupon_service = CouponService()
