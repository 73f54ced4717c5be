"""
Database models package.

All SQLAlchemy models are exported from this module for easy imports.
"""
from advisor_chooser.models.user import User
from advisor_chooser.models.coupon import Coupon
from advisor_chooser.models.payment_history import PaymentHistory
from advisor_chooser.models.advisor import Advisor
from advisor_chooser.models.seller import Seller

__all__ = [
    "User",
    "Coupon",
    "PaymentHistory",
    "Advisor",
    "Seller",
]
