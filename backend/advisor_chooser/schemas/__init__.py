"""
Pydantic schemas for API request/response validation.
"""
from advisor_chooser.schemas.subscription import (
    SubscriptionStatus,
    SubscriptionUpdate,
    BillingDetails,
    SubscriptionSnapshot,
    AccessDenied,
)
from advisor_chooser.schemas.payment import (
    PaymentIntentRequest,
    PaymentIntentResponse,
    ConfirmPaymentRequest,
    RedeemCouponRequest,
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    FinalizeSubscriptionRequest,
    SetupIntentResponse,
    UpdatePaymentMethodRequest,
    PaymentHistoryEntry,
)
from advisor_chooser.schemas.coupon import (
    CouponType,
    CouponCreate,
    CouponUsageUpdate,
    CouponDetail,
)
from advisor_chooser.schemas.matching import (
    SortBy,
    AdvisorCard,
    MatchStats,
)
from advisor_chooser.schemas.profile import (
    AdvisorProfileForm,
    SellerProfileForm,
    LeadsToggle,
)

__all__ = [
    "SubscriptionStatus",
    "SubscriptionUpdate",
    "BillingDetails",
    "SubscriptionSnapshot",
    "AccessDenied",
    "PaymentIntentRequest",
    "PaymentIntentResponse",
    "ConfirmPaymentRequest",
    "RedeemCouponRequest",
    "CreateSubscriptionRequest",
    "CreateSubscriptionResponse",
    "FinalizeSubscriptionRequest",
    "SetupIntentResponse",
    "UpdatePaymentMethodRequest",
    "PaymentHistoryEntry",
    "CouponType",
    "CouponCreate",
    "CouponUsageUpdate",
    "CouponDetail",
    "SortBy",
    "AdvisorCard",
    "MatchStats",
    "AdvisorProfileForm",
    "SellerProfileForm",
    "LeadsToggle",
]
