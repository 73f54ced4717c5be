"""
Thin wrapper around the Stripe SDK.

One gateway is built per process from validated settings. Every call goes
through `_call`, which turns SDK errors into PaymentProviderError so callers
only deal with the service error taxonomy.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import stripe

from advisor_chooser.core.config import settings
from advisor_chooser.core.errors import PaymentProviderError

logger = logging.getLogger(__name__)

INVOICE_EXPAND = ["latest_invoice.payment_intent"]


def from_unix(value: Optional[int]) -> Optional[datetime]:
    """Stripe timestamp (seconds) to naive UTC datetime."""
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)


def object_id(value: Any) -> Optional[str]:
    """Return the id of an expandable field that may be a bare id or an object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.get("id")


class StripeGateway:
    """Process-wide Stripe client."""

    def __init__(self, secret_key: str, price_id: str, api_version: Optional[str] = None):
        if not secret_key:
            raise RuntimeError("STRIPE_SECRET_KEY is not configured")
        if not price_id:
            raise RuntimeError("STRIPE_ANNUAL_PRICE_ID is not configured")

        stripe.api_key = secret_key
        if api_version:
            stripe.api_version = api_version
        self.price_id = price_id

    def _call(self, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except stripe.StripeError as e:
            message = e.user_message or str(e) or "Payment provider error"
            logger.warning(f"Stripe call {getattr(fn, '__qualname__', fn)} failed: {message}")
            raise PaymentProviderError(
                message,
                code=getattr(e, "code", None),
                decline_code=getattr(getattr(e, "error", None), "decline_code", None),
            ) from e

    # Customers

    def create_customer(self, email: str, name: Optional[str], user_id: str):
        return self._call(
            stripe.Customer.create,
            email=email,
            name=name,
            metadata={"userId": user_id},
        )

    def set_default_payment_method(self, customer_id: str, payment_method_id: str):
        return self._call(
            stripe.Customer.modify,
            customer_id,
            invoice_settings={"default_payment_method": payment_method_id},
        )

    # Payment methods

    def attach_payment_method(self, payment_method_id: str, customer_id: str) -> None:
        """Attach a card to the customer. Already-attached cards are fine."""
        try:
            stripe.PaymentMethod.attach(payment_method_id, customer=customer_id)
        except stripe.StripeError as e:
            if getattr(e, "code", None) == "resource_already_exists":
                return
            raise PaymentProviderError(
                e.user_message or str(e),
                code=getattr(e, "code", None),
            ) from e

    def detach_payment_method(self, payment_method_id: str):
        return self._call(stripe.PaymentMethod.detach, payment_method_id)

    def retrieve_payment_method(self, payment_method_id: str):
        return self._call(stripe.PaymentMethod.retrieve, payment_method_id)

    # Payment and setup intents

    def create_payment_intent(self, idempotency_key: Optional[str] = None, **params):
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        return self._call(stripe.PaymentIntent.create, **params)

    def retrieve_payment_intent(self, payment_intent_id: str):
        return self._call(stripe.PaymentIntent.retrieve, payment_intent_id)

    def retrieve_charge(self, charge_id: str):
        return self._call(stripe.Charge.retrieve, charge_id)

    def create_setup_intent(self, customer_id: str, user_id: str):
        return self._call(
            stripe.SetupIntent.create,
            customer=customer_id,
            payment_method_types=["card"],
            usage="off_session",
            metadata={"userId": user_id, "customerId": customer_id},
        )

    # Subscriptions and invoices

    def create_subscription(self, **params):
        params.setdefault("expand", INVOICE_EXPAND)
        return self._call(stripe.Subscription.create, **params)

    def retrieve_subscription(self, subscription_id: str, expand: Optional[List[str]] = None):
        return self._call(
            stripe.Subscription.retrieve,
            subscription_id,
            expand=expand if expand is not None else INVOICE_EXPAND,
        )

    def update_subscription(self, subscription_id: str, **params):
        return self._call(stripe.Subscription.modify, subscription_id, **params)

    def retrieve_invoice(self, invoice_id: str, expand: Optional[List[str]] = None):
        return self._call(stripe.Invoice.retrieve, invoice_id, expand=expand or ["payment_intent"])

    def pay_invoice(self, invoice_id: str, payment_method_id: Optional[str] = None):
        params: Dict[str, Any] = {}
        if payment_method_id:
            params["payment_method"] = payment_method_id
        return self._call(stripe.Invoice.pay, invoice_id, **params)

    # Coupons

    def retrieve_coupon(self, coupon_id: str):
        """Return the Stripe coupon, or None when it does not exist."""
        try:
            return stripe.Coupon.retrieve(coupon_id)
        except stripe.InvalidRequestError as e:
            if getattr(e, "http_status", None) == 404:
                return None
            raise PaymentProviderError(e.user_message or str(e), code=getattr(e, "code", None)) from e
        except stripe.StripeError as e:
            raise PaymentProviderError(e.user_message or str(e), code=getattr(e, "code", None)) from e

    def create_coupon(self, **params):
        return self._call(stripe.Coupon.create, **params)

    def delete_coupon(self, coupon_id: str) -> bool:
        """Delete a Stripe coupon. A missing coupon is not an error."""
        try:
            stripe.Coupon.delete(coupon_id)
            return True
        except stripe.InvalidRequestError as e:
            if getattr(e, "http_status", None) == 404:
                return False
            raise PaymentProviderError(e.user_message or str(e), code=getattr(e, "code", None)) from e
        except stripe.StripeError as e:
            raise PaymentProviderError(e.user_message or str(e), code=getattr(e, "code", None)) from e

    # Webhooks

    def construct_event(self, payload: bytes, sig_header: str, secret: str):
        """
        Verify a webhook payload. Raises ValueError for malformed payloads and
        stripe.SignatureVerificationError for bad signatures.
        """
        return stripe.Webhook.construct_event(payload, sig_header, secret)


_gateway: Optional[StripeGateway] = None


def init_gateway() -> StripeGateway:
    """Build the process-wide gateway from settings. Raises if Stripe is not configured."""
    global _gateway
    _gateway = StripeGateway(
        secret_key=settings.stripe_secret_key,
        price_id=settings.stripe_annual_price_id,
        api_version=settings.stripe_api_version or None,
    )
    logger.info("Stripe gateway initialized")
    return _gateway


def get_gateway() -> StripeGateway:
    """FastAPI dependency (and task helper) returning the shared gateway."""
    if _gateway is None:
        return init_gateway()
    return _gateway
