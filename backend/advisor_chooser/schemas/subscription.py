"""
Pydantic schemas for the advisor membership record.
"""
from datetime import datetime
from typing import Optional, Literal
from pydantic import BaseModel, Field


SubscriptionStatus = Literal[
    "none",
    "active",
    "trialing",
    "past_due",
    "canceled",
    "expired",
    "incomplete",
    "incomplete_expired",
    "unpaid",
]


class SubscriptionUpdate(BaseModel):
    """Partial update merged onto the local record. Unset fields are left alone."""
    status: Optional[SubscriptionStatus] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: Optional[bool] = None
    canceled_at: Optional[datetime] = None
    subscription_id: Optional[str] = None


class BillingDetails(BaseModel):
    """Card metadata kept alongside the membership."""
    default_payment_method_id: Optional[str] = None
    card_brand: Optional[str] = None
    card_last4: Optional[str] = None
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None


class SubscriptionSnapshot(BaseModel):
    """Membership state as seen by the advisor."""
    status: SubscriptionStatus
    is_payment_verified: bool
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None
    stripe_subscription_id: Optional[str] = None
    has_payment_method: bool = False
    billing: Optional[BillingDetails] = None


class AccessDenied(BaseModel):
    """Body of the 402 returned when membership access has lapsed."""
    statusCode: int = 402
    code: Literal["SUBSCRIPTION_EXPIRED"] = "SUBSCRIPTION_EXPIRED"
    message: str
    hasPaymentMethod: bool
    redirectTo: str = Field("/advisor-payments")
