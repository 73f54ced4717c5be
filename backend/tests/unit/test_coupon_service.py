"""
Unit tests for the coupon engine.

Tests validation, discount arithmetic, usage counting and admin operations.
"""
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from advisor_chooser.core.errors import ConflictError, InvalidStateError, NotFoundError
from advisor_chooser.models import Coupon
from advisor_chooser.schemas import CouponCreate, CouponUsageUpdate
from advisor_chooser.services.coupons import coupon_service, stripe_coupon_id


class TestValidation:
    """validate() returns only coupons redeemable right now."""

    def test_lookup_is_case_insensitive(self, db, make_coupon):
        make_coupon(code="SPRING")

        coupon = coupon_service.validate("  spring ", db)

        assert coupon.code == "SPRING"

    def test_unknown_code(self, db):
        with pytest.raises(NotFoundError, match="Invalid or inactive coupon code"):
            coupon_service.validate("NOPE", db)

    def test_inactive_code(self, db, make_coupon):
        make_coupon(code="OFF", is_active=False)

        with pytest.raises(NotFoundError):
            coupon_service.validate("OFF", db)

    def test_expired_code(self, db, make_coupon, now):
        make_coupon(code="OLD", expires_at=now - timedelta(minutes=1))

        with pytest.raises(InvalidStateError, match="Coupon has expired"):
            coupon_service.validate("OLD", db, now=now)

    def test_exhausted_code(self, db, make_coupon):
        make_coupon(code="FULL", usage_limit=3, used_count=3)

        with pytest.raises(InvalidStateError, match="Coupon usage limit reached"):
            coupon_service.validate("FULL", db)


class TestDiscounts:
    """Discounts are computed in cents with a Stripe minimum charge."""

    def test_percentage(self):
        coupon = Coupon(code="P", type="percentage", value=20)
        assert coupon_service.apply_discount(500000, coupon) == 400000

    def test_percentage_rounds(self):
        coupon = Coupon(code="P", type="percentage", value=33)
        assert coupon_service.apply_discount(999, coupon) == 669

    def test_fixed_is_in_currency_units(self):
        coupon = Coupon(code="F", type="fixed", value=150)
        assert coupon_service.apply_discount(500000, coupon) == 485000

    def test_fixed_never_negative(self):
        coupon = Coupon(code="F", type="fixed", value=10000)
        assert coupon_service.apply_discount(500000, coupon) == 0

    def test_full_discount_charges_minimum(self):
        coupon = Coupon(code="P", type="percentage", value=100)
        amount = coupon_service.apply_discount(500000, coupon)

        assert coupon_service.chargeable_amount(amount) == 50


class TestUsageCounting:
    """increment_usage never goes past the usage limit."""

    def test_increment(self, db, make_coupon):
        make_coupon(code="ONE", usage_limit=2)

        assert coupon_service.increment_usage("one", db) is True

        assert coupon_service.find("ONE", db).used_count == 1

    def test_last_use_can_only_be_claimed_once(self, db, make_coupon):
        """Two redemptions racing for the final use: only one wins."""
        make_coupon(code="LAST", usage_limit=1)

        first = coupon_service.increment_usage("LAST", db)
        second = coupon_service.increment_usage("LAST", db)

        assert (first, second) == (True, False)
        assert coupon_service.find("LAST", db).used_count == 1

    def test_unlimited_coupon(self, db, make_coupon):
        make_coupon(code="MANY", usage_limit=None, used_count=1000)

        assert coupon_service.increment_usage("MANY", db) is True

    def test_missing_code(self, db):
        assert coupon_service.increment_usage(None, db) is False
        assert coupon_service.increment_usage("GHOST", db) is False


class TestAdmin:
    """Admin create / list / extend / delete."""

    def test_create_percentage_coupon(self, db):
        coupon = coupon_service.create(CouponCreate(code="launch", value=25, usage_limit=10), db)

        assert coupon.code == "LAUNCH"
        assert coupon.type == "percentage"
        assert coupon.value == 25
        assert coupon.used_count == 0

    def test_duplicate_code_conflicts(self, db, make_coupon):
        make_coupon(code="DUP")

        with pytest.raises(ConflictError):
            coupon_service.create(CouponCreate(code="dup", value=10), db)

    def test_list_newest_first(self, db):
        older = Coupon(code="A", type="percentage", value=10, created_at=datetime(2026, 1, 1))
        newer = Coupon(code="B", type="percentage", value=10, created_at=datetime(2026, 2, 1))
        db.add_all([older, newer])
        db.commit()

        assert [c.code for c in coupon_service.list_coupons(db)] == ["B", "A"]

    def test_extend_by_additional_uses(self, db, make_coupon):
        make_coupon(code="EXT", usage_limit=5, used_count=5)

        coupon = coupon_service.extend_usage("ext", CouponUsageUpdate(additional_uses=3), db)

        assert coupon.usage_limit == 8

    def test_new_total_must_exceed_used(self, db, make_coupon):
        make_coupon(code="EXT", usage_limit=5, used_count=4)

        with pytest.raises(InvalidStateError, match="already used \\(4\\)"):
            coupon_service.extend_usage("EXT", CouponUsageUpdate(new_total_limit=4), db)

    def test_clear_expiration(self, db, make_coupon, now):
        make_coupon(code="EXP", expires_at=now)

        coupon = coupon_service.extend_usage("EXP", CouponUsageUpdate(clear_expiration=True), db)

        assert coupon.expires_at is None

    def test_extend_unknown_coupon(self, db):
        with pytest.raises(NotFoundError):
            coupon_service.extend_usage("NONE", CouponUsageUpdate(additional_uses=1), db)

    def test_delete_removes_stripe_mirror(self, db, make_coupon):
        make_coupon(code="GONE")
        gateway = MagicMock()
        gateway.delete_coupon.return_value = True

        deleted = coupon_service.delete("gone", db, gateway)

        assert deleted == "GONE"
        assert coupon_service.find("GONE", db, active_only=False) is None
        gateway.delete_coupon.assert_called_once_with("advisor_gone")

    def test_delete_free_trial_skips_stripe(self, db, make_coupon):
        make_coupon(code="TRIAL", type="free_trial", value=30)
        gateway = MagicMock()

        coupon_service.delete("TRIAL", db, gateway)

        gateway.delete_coupon.assert_not_called()


class TestStripeMirror:
    """Coupons applied to Stripe subscriptions."""

    def test_free_trial_becomes_trial_days(self, make_coupon):
        coupon = make_coupon(code="TRY", type="free_trial", value=14)

        assert coupon_service.ensure_stripe_coupon(coupon, MagicMock()) == {"trial_period_days": 14}

    def test_percentage_coupon_created_once(self, make_coupon):
        coupon = make_coupon(code="HALF", type="percentage", value=50)
        gateway = MagicMock()
        gateway.retrieve_coupon.return_value = None

        result = coupon_service.ensure_stripe_coupon(coupon, gateway)

        assert result == {"coupon_id": "advisor_half"}
        gateway.create_coupon.assert_called_once_with(id="advisor_half", percent_off=50, duration="once")

    def test_existing_stripe_coupon_reused(self, make_coupon):
        coupon = make_coupon(code="HALF", type="percentage", value=50)
        gateway = MagicMock()
        gateway.retrieve_coupon.return_value = {"id": "advisor_half"}

        coupon_service.ensure_stripe_coupon(coupon, gateway)

        gateway.create_coupon.assert_not_called()

    def test_stripe_coupon_id(self):
        assert stripe_coupon_id(" Welcome ") == "advisor_welcome"
