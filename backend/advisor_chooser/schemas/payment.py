"""
Pydantic schemas for payment operations.
"""
import uuid
from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


class PaymentIntentRequest(BaseModel):
    """Request to start a one-off membership payment."""
    coupon_code: Optional[str] = Field(None, max_length=64)


class PaymentIntentResponse(BaseModel):
    """Client secret and the amounts the advisor will be charged."""
    client_secret: str
    payment_intent_id: str
    amount: int
    original_amount: int
    currency: str
    coupon_code: Optional[str] = None


class ConfirmPaymentRequest(BaseModel):
    payment_intent_id: str = Field(..., min_length=1)


class RedeemCouponRequest(BaseModel):
    coupon_code: str = Field(..., min_length=1, max_length=64)


class CreateSubscriptionRequest(BaseModel):
    """Start a recurring annual subscription with a card collected client-side."""
    payment_method_id: str = Field(..., min_length=1)
    coupon_code: Optional[str] = Field(None, max_length=64)


class CreateSubscriptionResponse(BaseModel):
    subscription_id: str
    status: str
    client_secret: Optional[str] = None
    requires_action: bool = False


class FinalizeSubscriptionRequest(BaseModel):
    subscription_id: str = Field(..., min_length=1)


class SetupIntentResponse(BaseModel):
    client_secret: str
    setup_intent_id: str


class UpdatePaymentMethodRequest(BaseModel):
    payment_method_id: str = Field(..., min_length=1)


class PaymentHistoryEntry(BaseModel):
    """One billing history row."""
    id: uuid.UUID
    provider: str
    payment_id: str
    amount: int
    currency: str
    status: str
    description: Optional[str] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="extra")
    created_at: datetime

    class Config:
        from_attributes = True
