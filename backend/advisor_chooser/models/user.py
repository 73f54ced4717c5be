"""
User model with the embedded advisor subscription record and billing profile.
"""
import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import Column, String, DateTime, Boolean, Integer
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, validates

from advisor_chooser.db.base import Base

ROLE_ADVISOR = "advisor"
ROLE_SELLER = "seller"

ACCESS_STATUSES = ("active", "trialing")


class User(Base):
    """Marketplace account. Advisors carry the annual membership state."""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default=ROLE_ADVISOR)  # advisor, seller
    is_active = Column(Boolean, default=True, nullable=False)
    is_superuser = Column(Boolean, default=False, nullable=False)

    # Stripe references
    stripe_customer_id = Column(String(255), nullable=True, unique=True)
    stripe_subscription_id = Column(String(255), nullable=True, index=True)

    # Subscription record
    # none, active, trialing, past_due, canceled, expired, incomplete, incomplete_expired, unpaid
    subscription_status = Column(String(50), default="none", nullable=False, index=True)
    subscription_current_period_start = Column(DateTime, nullable=True)
    subscription_current_period_end = Column(DateTime, nullable=True, index=True)
    subscription_cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    subscription_canceled_at = Column(DateTime, nullable=True)
    subscription_last_auto_renew_attempt = Column(DateTime, nullable=True)
    subscription_expiry_notified_at = Column(DateTime, nullable=True)

    # Billing profile (card metadata only, never the card itself)
    billing_default_payment_method_id = Column(String(255), nullable=True)
    billing_card_brand = Column(String(50), nullable=True)
    billing_card_last4 = Column(String(4), nullable=True)
    billing_exp_month = Column(Integer, nullable=True)
    billing_exp_year = Column(Integer, nullable=True)
    billing_updated_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    advisor_profile = relationship("Advisor", back_populates="user", uselist=False, cascade="all, delete-orphan")
    seller_profile = relationship("Seller", back_populates="user", uselist=False, cascade="all, delete-orphan")
    payments = relationship("PaymentHistory", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_advisor(self) -> bool:
        return self.role == ROLE_ADVISOR

    @property
    def is_seller(self) -> bool:
        return self.role == ROLE_SELLER

    @property
    def has_payment_method(self) -> bool:
        return bool(self.billing_default_payment_method_id)

    def has_access(self, now: Optional[datetime] = None) -> bool:
        """
        Whether the membership currently grants access.

        active/trialing grant access until the period end (or indefinitely when
        no end is recorded). A canceled membership keeps access until its
        period end and never afterwards.
        """
        now = now or datetime.utcnow()
        status = self.subscription_status
        period_end = self.subscription_current_period_end

        if status in ACCESS_STATUSES:
            return period_end is None or period_end > now
        if status == "canceled":
            return period_end is not None and period_end > now
        return False

    @validates("email")
    def normalize_email(self, key, value):
        return value.strip().lower() if value else value

    @property
    def is_payment_verified(self) -> bool:
        return self.has_access()

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
