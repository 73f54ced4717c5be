"""
Membership payments and Stripe reconciliation.

Handles:
- One-off annual payments (payment intents) and free-trial coupons
- Recurring Stripe subscriptions (create / finalize / renew)
- Card management (setup intents, default payment method)
- Cancel / resume
- Webhook event processing

Every path that records money first claims a payment history row keyed by
the Stripe payment or invoice id. A second delivery of the same event finds
the row and changes nothing.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from advisor_chooser.core.config import settings
from advisor_chooser.core.errors import (
    InvalidStateError,
    PaymentProviderError,
    ServiceError,
)
from advisor_chooser.models import PaymentHistory, User
from advisor_chooser.schemas import BillingDetails, SubscriptionUpdate
from advisor_chooser.services.coupons import coupon_service
from advisor_chooser.services.email import email_service, format_day
from advisor_chooser.services.stripe_gateway import (
    INVOICE_EXPAND,
    StripeGateway,
    from_unix,
    get_gateway,
    object_id,
)
from advisor_chooser.services.subscription import normalize_status, subscription_service

logger = logging.getLogger(__name__)

MEMBERSHIP_PURPOSE = "membership"
SUBSCRIPTION_EVENTS = (
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
)


def invoice_paid(invoice: Optional[Dict[str, Any]]) -> bool:
    if not invoice:
        return False
    paid = invoice.get("paid")
    if isinstance(paid, bool):
        return paid
    return invoice.get("status") == "paid"


def requires_action(payment_intent: Optional[Dict[str, Any]]) -> bool:
    if not payment_intent:
        return False
    return payment_intent.get("status") in ("requires_action", "requires_confirmation")


def subscription_period(subscription: Dict[str, Any]):
    """Period bounds live on the subscription, or on its first item in newer API versions."""
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")
    if start is None or end is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            start = start if start is not None else items[0].get("current_period_start")
            end = end if end is not None else items[0].get("current_period_end")
    return from_unix(start), from_unix(end)


class PaymentService:
    """Stripe-facing membership operations for one request or task."""

    def __init__(self, gateway: StripeGateway):
        self.gateway = gateway

    # Helpers

    def ensure_customer(self, user: User, db: Session) -> str:
        if user.stripe_customer_id:
            return user.stripe_customer_id

        customer = self.gateway.create_customer(user.email, user.name, str(user.id))
        user.stripe_customer_id = customer["id"]
        db.commit()
        logger.info(f"Created Stripe customer {customer['id']} for user {user.id}")
        return user.stripe_customer_id

    def billing_from_payment_method(self, payment_method: Optional[Dict[str, Any]]) -> Optional[BillingDetails]:
        if not payment_method or not payment_method.get("card"):
            return None
        card = payment_method["card"]
        return BillingDetails(
            default_payment_method_id=payment_method["id"],
            card_brand=card.get("brand"),
            card_last4=card.get("last4"),
            exp_month=card.get("exp_month"),
            exp_year=card.get("exp_year"),
        )

    def _billing_for(self, payment_method_id: Optional[str]) -> Optional[BillingDetails]:
        """Card metadata for a payment method id; lookup failures are not fatal."""
        if not payment_method_id:
            return None
        try:
            return self.billing_from_payment_method(self.gateway.retrieve_payment_method(payment_method_id))
        except PaymentProviderError as e:
            logger.warning(f"Unable to retrieve payment method {payment_method_id}: {e.message}")
            return BillingDetails(default_payment_method_id=payment_method_id)

    def _attach_as_default(self, payment_method_id: str, customer_id: str) -> None:
        self.gateway.attach_payment_method(payment_method_id, customer_id)
        self.gateway.set_default_payment_method(customer_id, payment_method_id)

    def record_history(
        self,
        db: Session,
        user_id: uuid.UUID,
        payment_id: str,
        status: str,
        amount: int = 0,
        currency: str = None,
        provider: str = "stripe",
        description: Optional[str] = None,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
        commit: bool = True,
    ) -> Optional[PaymentHistory]:
        """
        Insert a history row unless one already exists for `payment_id`.

        With commit=False the row is only flushed, so the caller commits it
        together with the state change it guards.

        Returns the new row, or None when the payment was already recorded.
        """
        if self.history_exists(db, payment_id):
            return None

        entry = PaymentHistory(
            user_id=user_id,
            provider=provider,
            payment_id=payment_id,
            amount=amount or 0,
            currency=currency or settings.currency,
            status=status,
            description=description,
            period_start=period_start,
            period_end=period_end,
            extra=metadata or {},
        )
        db.add(entry)
        try:
            if commit:
                db.commit()
            else:
                db.flush()
        except IntegrityError:
            db.rollback()
            logger.info(f"Payment {payment_id} recorded concurrently; skipping")
            return None
        if commit:
            db.refresh(entry)
        return entry

    def history_exists(self, db: Session, payment_id: str) -> bool:
        return db.query(PaymentHistory.id).filter(PaymentHistory.payment_id == payment_id).first() is not None

    def _find_user(
        self,
        db: Session,
        user_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> Optional[User]:
        if user_id:
            try:
                user = db.query(User).filter(User.id == uuid.UUID(str(user_id))).first()
            except ValueError:
                user = None
            if user:
                return user
        if subscription_id:
            user = db.query(User).filter(User.stripe_subscription_id == subscription_id).first()
            if user:
                return user
        if customer_id:
            return db.query(User).filter(User.stripe_customer_id == customer_id).first()
        return None

    def _expanded_invoice(self, raw: Any) -> Optional[Dict[str, Any]]:
        if not raw:
            return None
        if isinstance(raw, str):
            return self.gateway.retrieve_invoice(raw)
        return raw

    def _invoice_payment_intent(self, invoice: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if not invoice:
            return None
        raw = invoice.get("payment_intent")
        if isinstance(raw, str):
            return self.gateway.retrieve_payment_intent(raw)
        return raw

    # Subscription sync

    def sync_subscription(
        self,
        user: User,
        subscription: Dict[str, Any],
        db: Session,
        billing: Optional[BillingDetails] = None,
    ) -> User:
        """Mirror a Stripe subscription onto the local record."""
        period_start, period_end = subscription_period(subscription)
        update = SubscriptionUpdate(
            subscription_id=subscription["id"],
            status=normalize_status(subscription.get("status")),
            current_period_start=period_start,
            current_period_end=period_end,
            cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
            canceled_at=from_unix(subscription.get("canceled_at")),
        )
        return subscription_service.update_from_stripe(user, update, db, billing=billing)

    def record_subscription_payment(
        self,
        user: User,
        subscription: Dict[str, Any],
        db: Session,
        payment_intent_id: Optional[str] = None,
    ) -> bool:
        """
        Record the subscription's latest invoice. The first invoice of a
        subscription also counts one use of the coupon it was created with.

        Returns True when a new history row was written.
        """
        invoice = self._expanded_invoice(subscription.get("latest_invoice"))
        if not invoice:
            return False

        payment_id = object_id(invoice.get("payment_intent")) or payment_intent_id or invoice["id"]
        billing_reason = invoice.get("billing_reason")
        entry = self.record_history(
            db,
            user_id=user.id,
            payment_id=payment_id,
            amount=invoice.get("amount_paid") or invoice.get("amount_due") or 0,
            currency=invoice.get("currency"),
            status="succeeded" if invoice_paid(invoice) else (invoice.get("status") or "pending"),
            description=(
                "Advisor membership subscription"
                if billing_reason == "subscription_create"
                else "Advisor membership renewal"
            ),
            period_start=from_unix(invoice.get("period_start")),
            period_end=from_unix(invoice.get("period_end")),
            metadata={"invoiceId": invoice["id"], "subscriptionId": subscription["id"]},
        )
        if entry is None:
            return False

        coupon_code = (subscription.get("metadata") or {}).get("couponCode")
        if coupon_code and billing_reason == "subscription_create":
            coupon_service.increment_usage(coupon_code, db)
        return True

    # One-off membership payments

    def create_payment_intent(self, user: User, db: Session, coupon_code: Optional[str] = None) -> Dict[str, Any]:
        """Start a one-off annual payment, optionally discounted by a coupon."""
        customer_id = self.ensure_customer(user, db)

        original_amount = settings.membership_fee_cents
        amount = original_amount
        code = None
        if coupon_code:
            coupon = coupon_service.validate(coupon_code, db)
            if coupon.type == "free_trial":
                raise InvalidStateError(
                    "Free trial coupons should be redeemed instead of creating a payment intent."
                )
            amount = coupon_service.apply_discount(original_amount, coupon)
            code = coupon.code

        charged = coupon_service.chargeable_amount(amount)
        intent = self.gateway.create_payment_intent(
            amount=charged,
            currency=settings.currency,
            customer=customer_id,
            setup_future_usage="off_session",
            automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
            metadata={
                "userId": str(user.id),
                "couponCode": code or "",
                "originalAmount": str(original_amount),
                "actualAmount": str(charged),
                "customerId": customer_id,
                "purpose": MEMBERSHIP_PURPOSE,
            },
        )

        logger.info(f"Created payment intent {intent['id']} for user {user.id}: {charged} cents (coupon={code})")
        return {
            "client_secret": intent["client_secret"],
            "payment_intent_id": intent["id"],
            "amount": charged,
            "original_amount": original_amount,
            "currency": settings.currency,
            "coupon_code": code,
        }

    def confirm_payment(self, user: User, payment_intent_id: str, db: Session) -> Dict[str, Any]:
        """
        Activate or extend the membership after the client confirmed a payment.

        Confirming the same intent twice is a successful no-op.
        """
        try:
            intent = self.gateway.retrieve_payment_intent(payment_intent_id)

            if intent.get("status") != "succeeded":
                raise InvalidStateError("Payment not completed")
            if (intent.get("metadata") or {}).get("userId") != str(user.id):
                raise InvalidStateError("Payment does not belong to this user")

            applied = self.apply_membership_payment(user, intent, db)
        except ServiceError as e:
            logger.error(f"Payment confirmation failed for user {user.id}, intent {payment_intent_id}: {e.message}")
            raise InvalidStateError(f"Payment confirmation failed: {e.message}") from e

        if not applied:
            return {"success": True, "message": "Payment already confirmed."}
        return {
            "success": True,
            "message": "Payment confirmed! You can now create your advisor profile.",
        }

    def apply_membership_payment(
        self,
        user: User,
        intent: Dict[str, Any],
        db: Session,
        description: str = "Advisor membership payment",
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Apply a succeeded one-off payment intent exactly once.

        The history row is claimed before the membership window moves, so a
        replay or a racing confirm cannot extend the window twice. The claim
        commits together with the activation; if activation fails both roll
        back and a later confirm or webhook replay can apply the payment.
        """
        customer_id = object_id(intent.get("customer")) or self.ensure_customer(user, db)

        try:
            entry = self.record_history(
                db,
                user_id=user.id,
                payment_id=intent["id"],
                amount=intent.get("amount_received") or intent.get("amount") or 0,
                currency=intent.get("currency"),
                status=intent.get("status") or "succeeded",
                description=description,
                metadata=dict(intent.get("metadata") or {}),
                commit=False,
            )
            if entry is None:
                logger.info(f"Payment intent {intent['id']} already applied for user {user.id}")
                return False

            billing = self._card_from_intent(intent, customer_id)
            user = subscription_service.mark_payment_verified(
                user, db, customer_id=customer_id, billing=billing, now=now
            )
        except Exception:
            db.rollback()
            raise

        entry.period_start = user.subscription_current_period_start
        entry.period_end = user.subscription_current_period_end
        db.commit()

        coupon_code = (intent.get("metadata") or {}).get("couponCode")
        if coupon_code:
            coupon_service.increment_usage(coupon_code, db)

        logger.info(f"Applied membership payment {intent['id']} for user {user.id}")
        return True

    def _card_from_intent(self, intent: Dict[str, Any], customer_id: str) -> Optional[BillingDetails]:
        """Save the card used for the payment as the customer's default for renewals."""
        payment_method_id = object_id(intent.get("payment_method"))
        card = None

        if not payment_method_id and intent.get("latest_charge"):
            try:
                charge = self.gateway.retrieve_charge(object_id(intent["latest_charge"]))
                payment_method_id = object_id(charge.get("payment_method"))
                card = (charge.get("payment_method_details") or {}).get("card")
            except PaymentProviderError as e:
                logger.warning(f"Unable to retrieve charge for payment intent {intent['id']}: {e.message}")

        if not payment_method_id:
            return None

        try:
            self._attach_as_default(payment_method_id, customer_id)
        except PaymentProviderError as e:
            logger.warning(f"Unable to save card {payment_method_id} for customer {customer_id}: {e.message}")
            return None

        billing = self._billing_for(payment_method_id)
        if billing and billing.card_brand is None and card:
            billing = BillingDetails(
                default_payment_method_id=payment_method_id,
                card_brand=card.get("brand"),
                card_last4=card.get("last4"),
                exp_month=card.get("exp_month"),
                exp_year=card.get("exp_year"),
            )
        return billing

    def redeem_coupon(self, user: User, code: str, db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Activate a free trial without payment."""
        now = now or datetime.utcnow()
        coupon = coupon_service.validate(code, db, now=now)
        if coupon.type != "free_trial":
            raise InvalidStateError("This coupon is not valid for free trial")

        trial_days = int(coupon.value) if coupon.value and coupon.value > 0 else settings.free_trial_days
        coupon_code = coupon.code

        # Claim the use first so the last remaining use cannot be redeemed twice.
        if not coupon_service.increment_usage(coupon_code, db):
            raise InvalidStateError("Coupon usage limit reached")

        user = subscription_service.mark_payment_verified(
            user, db, period_days=trial_days, extend=False, now=now
        )

        self.record_history(
            db,
            user_id=user.id,
            payment_id=f"trial-{user.id}-{int(now.timestamp() * 1000)}",
            provider="coupon",
            amount=0,
            status="succeeded",
            description="Free trial activation",
            period_start=user.subscription_current_period_start,
            period_end=user.subscription_current_period_end,
            metadata={"code": coupon_code},
        )

        logger.info(f"User {user.id} redeemed free trial coupon {coupon_code} ({trial_days} days)")
        return {
            "success": True,
            "message": "Free trial activated successfully. You can now create your profile.",
        }

    # Recurring subscriptions

    def create_subscription(
        self,
        user: User,
        payment_method_id: str,
        db: Session,
        coupon_code: Optional[str] = None,
    ) -> Dict[str, Any]:
        customer_id = self.ensure_customer(user, db)
        self._attach_as_default(payment_method_id, customer_id)
        billing = self._billing_for(payment_method_id)

        params: Dict[str, Any] = {
            "customer": customer_id,
            "items": [{"price": self.gateway.price_id}],
            "payment_behavior": "default_incomplete",
            "payment_settings": {
                "save_default_payment_method": "on_subscription",
                "payment_method_types": ["card"],
            },
            "default_payment_method": payment_method_id,
            "collection_method": "charge_automatically",
            "expand": INVOICE_EXPAND,
            "metadata": {"userId": str(user.id)},
        }

        if coupon_code:
            coupon = coupon_service.validate(coupon_code, db)
            mirrored = coupon_service.ensure_stripe_coupon(coupon, self.gateway)
            params["metadata"]["couponCode"] = coupon.code
            if "trial_period_days" in mirrored:
                params["trial_period_days"] = mirrored["trial_period_days"]
            if "coupon_id" in mirrored:
                params["discounts"] = [{"coupon": mirrored["coupon_id"]}]

        subscription = self.gateway.create_subscription(**params)

        invoice = self._expanded_invoice(subscription.get("latest_invoice"))
        payment_intent = self._invoice_payment_intent(invoice)

        if payment_intent is None and invoice and not invoice_paid(invoice):
            try:
                paid_invoice = self.gateway.pay_invoice(invoice["id"], payment_method_id)
                payment_intent = self._invoice_payment_intent(paid_invoice)
                subscription = self.gateway.retrieve_subscription(subscription["id"])
            except PaymentProviderError as e:
                logger.warning(f"Unable to pay first invoice {invoice['id']} immediately: {e.message}")

        user = self.sync_subscription(user, subscription, db, billing=billing)
        if subscription.get("status") in ("active", "trialing"):
            self.record_subscription_payment(
                user, subscription, db, payment_intent_id=object_id(payment_intent)
            )

        logger.info(
            f"Created subscription {subscription['id']} for user {user.id}: "
            f"status={subscription.get('status')}, requires_action={requires_action(payment_intent)}"
        )
        return {
            "subscription_id": subscription["id"],
            "status": subscription.get("status"),
            "client_secret": (payment_intent or {}).get("client_secret"),
            "requires_action": requires_action(payment_intent),
        }

    def finalize_subscription(self, user: User, subscription_id: str, db: Session) -> Dict[str, Any]:
        """Sync a subscription after the client completed any required authentication."""
        subscription = self.gateway.retrieve_subscription(subscription_id)

        if (subscription.get("metadata") or {}).get("userId") != str(user.id):
            raise InvalidStateError("Subscription does not belong to this user")

        billing = self._billing_for(object_id(subscription.get("default_payment_method")))
        user = self.sync_subscription(user, subscription, db, billing=billing)

        if subscription.get("status") in ("active", "trialing"):
            invoice = self._expanded_invoice(subscription.get("latest_invoice"))
            self.record_subscription_payment(
                user, subscription, db, payment_intent_id=object_id((invoice or {}).get("payment_intent"))
            )

        return {"subscription_id": subscription["id"], "status": subscription.get("status")}

    def renew_subscription(self, user: User, db: Session, now: Optional[datetime] = None) -> User:
        """
        Charge the stored card for another membership year.

        Stripe subscriptions pay their open invoice and stop any pending
        cancellation. One-off members are charged off-session for the fee.

        Raises:
            InvalidStateError: no card on file
            PaymentProviderError: the charge failed
        """
        payment_method_id = user.billing_default_payment_method_id
        if not payment_method_id:
            raise InvalidStateError("No payment method available for renewal")

        if user.stripe_subscription_id:
            subscription = self.gateway.retrieve_subscription(user.stripe_subscription_id)
            invoice = self._expanded_invoice(subscription.get("latest_invoice"))
            if invoice and not invoice_paid(invoice):
                self.gateway.pay_invoice(invoice["id"], payment_method_id)

            updated = self.gateway.update_subscription(
                user.stripe_subscription_id,
                default_payment_method=payment_method_id,
                cancel_at_period_end=False,
                expand=INVOICE_EXPAND,
            )
            user = self.sync_subscription(user, updated, db)
            if updated.get("status") in ("active", "trialing"):
                self.record_subscription_payment(user, updated, db)
            logger.info(f"Renewed subscription {updated['id']} for user {user.id}: status={updated.get('status')}")
            return user

        if not user.stripe_customer_id:
            raise InvalidStateError("No billing customer on file for renewal")

        period_key = (
            user.subscription_current_period_end.isoformat()
            if user.subscription_current_period_end
            else "none"
        )
        intent = self.gateway.create_payment_intent(
            idempotency_key=f"renewal-{user.id}-{period_key}-{payment_method_id}",
            amount=settings.membership_fee_cents,
            currency=settings.currency,
            customer=user.stripe_customer_id,
            payment_method=payment_method_id,
            off_session=True,
            confirm=True,
            metadata={
                "userId": str(user.id),
                "customerId": user.stripe_customer_id,
                "purpose": MEMBERSHIP_PURPOSE,
                "renewal": "true",
            },
        )
        if intent.get("status") != "succeeded":
            raise PaymentProviderError(f"Renewal payment not completed (status: {intent.get('status')})")

        self.apply_membership_payment(user, intent, db, description="Advisor membership renewal", now=now)
        db.refresh(user)
        logger.info(f"Renewed one-off membership for user {user.id} via {intent['id']}")
        return user

    # Cards

    def create_setup_intent(self, user: User, db: Session) -> Dict[str, Any]:
        customer_id = self.ensure_customer(user, db)
        setup_intent = self.gateway.create_setup_intent(customer_id, str(user.id))
        return {"client_secret": setup_intent["client_secret"], "setup_intent_id": setup_intent["id"]}

    def update_payment_method(self, user: User, payment_method_id: str, db: Session) -> Dict[str, Any]:
        """
        Replace the card used for renewals.

        A past-due subscription immediately retries its open invoice with the
        new card.
        """
        customer_id = self.ensure_customer(user, db)
        previous_method_id = user.billing_default_payment_method_id

        self._attach_as_default(payment_method_id, customer_id)
        billing = self._billing_for(payment_method_id) or BillingDetails(default_payment_method_id=payment_method_id)
        subscription_service.apply_billing(user, billing)
        db.commit()

        if previous_method_id and previous_method_id != payment_method_id:
            try:
                self.gateway.detach_payment_method(previous_method_id)
            except PaymentProviderError as e:
                logger.warning(f"Failed to detach previous payment method {previous_method_id}: {e.message}")

        auto_charge_failed = False
        if user.stripe_subscription_id:
            updated = self.gateway.update_subscription(
                user.stripe_subscription_id,
                default_payment_method=payment_method_id,
                payment_settings={"save_default_payment_method": "on_subscription"},
                expand=INVOICE_EXPAND,
            )
            user = self.sync_subscription(user, updated, db)

            if user.subscription_status in ("past_due", "unpaid"):
                auto_charge_failed = True
                invoice = self._expanded_invoice(updated.get("latest_invoice"))
                if invoice and not invoice_paid(invoice):
                    try:
                        self.gateway.pay_invoice(invoice["id"], payment_method_id)
                        refreshed = self.gateway.retrieve_subscription(user.stripe_subscription_id)
                        user = self.sync_subscription(user, refreshed, db)
                        auto_charge_failed = user.subscription_status in ("past_due", "unpaid")
                        if not auto_charge_failed:
                            self.record_subscription_payment(user, refreshed, db)
                    except PaymentProviderError as e:
                        logger.warning(f"Unable to pay open invoice after card update for user {user.id}: {e.message}")

        logger.info(f"Updated payment method for user {user.id}")
        return {
            "success": True,
            "billing": billing.model_dump(),
            "subscription": subscription_service.snapshot(user).model_dump(),
            "auto_charge_failed": auto_charge_failed,
        }

    # Cancel / resume / history

    def cancel(self, user: User, db: Session, now: Optional[datetime] = None) -> User:
        user = subscription_service.cancel_at_period_end(user, db, now=now)
        if user.stripe_subscription_id:
            try:
                self.gateway.update_subscription(user.stripe_subscription_id, cancel_at_period_end=True)
            except PaymentProviderError as e:
                logger.error(f"Failed to cancel Stripe subscription {user.stripe_subscription_id}: {e.message}")
        return user

    def resume(self, user: User, db: Session, now: Optional[datetime] = None) -> User:
        now = now or datetime.utcnow()
        user = subscription_service.resume(user, db, now=now)
        if user.stripe_subscription_id and user.has_access(now) and user.subscription_status == "active":
            try:
                self.gateway.update_subscription(user.stripe_subscription_id, cancel_at_period_end=False)
            except PaymentProviderError as e:
                logger.error(f"Failed to resume Stripe subscription {user.stripe_subscription_id}: {e.message}")
        return user

    def get_history(self, user: User, db: Session) -> List[PaymentHistory]:
        return (
            db.query(PaymentHistory)
            .filter(PaymentHistory.user_id == user.id)
            .order_by(PaymentHistory.created_at.desc())
            .all()
        )

    # Webhooks

    def handle_event(self, event: Dict[str, Any], db: Session) -> None:
        """Apply one verified Stripe event. Replays converge to the same state."""
        event_type = event["type"]
        data = event["data"]["object"]

        if event_type == "payment_intent.succeeded":
            self._on_payment_intent_succeeded(data, db)
        elif event_type in SUBSCRIPTION_EVENTS:
            self._on_subscription_event(data, db)
        elif event_type == "invoice.payment_succeeded":
            self._on_invoice_paid(data, db)
        elif event_type == "invoice.payment_failed":
            self._on_invoice_failed(data, db)
        else:
            logger.debug(f"Unhandled Stripe event type: {event_type}")

    def _on_payment_intent_succeeded(self, intent: Dict[str, Any], db: Session) -> None:
        metadata = intent.get("metadata") or {}
        user = self._find_user(db, user_id=metadata.get("userId"))
        if user is None:
            logger.info(f"Payment intent {intent['id']} has no matching user")
            return

        if metadata.get("subscriptionId"):
            subscription_service.update_from_stripe(
                user,
                SubscriptionUpdate(subscription_id=metadata["subscriptionId"], status="active"),
                db,
            )
        elif metadata.get("purpose") == MEMBERSHIP_PURPOSE:
            self.apply_membership_payment(user, intent, db)

    def _on_subscription_event(self, subscription: Dict[str, Any], db: Session) -> None:
        user = self._find_user(
            db,
            user_id=(subscription.get("metadata") or {}).get("userId"),
            subscription_id=subscription.get("id"),
        )
        if user is None:
            logger.warning(f"No user for Stripe subscription {subscription.get('id')}")
            return

        billing = self._billing_for(object_id(subscription.get("default_payment_method")))
        user = self.sync_subscription(user, subscription, db, billing=billing)

        if subscription.get("status") in ("active", "trialing"):
            self.record_subscription_payment(user, subscription, db)

    def _resolve_invoice_user(self, invoice: Dict[str, Any]):
        """Find the user and failure message for an invoice, via its payment intent if needed."""
        user_id = (invoice.get("metadata") or {}).get("userId")
        failure_reason = None
        payment_intent_id = object_id(invoice.get("payment_intent"))
        if payment_intent_id:
            try:
                intent = self.gateway.retrieve_payment_intent(payment_intent_id)
                user_id = user_id or (intent.get("metadata") or {}).get("userId")
                failure_reason = (intent.get("last_payment_error") or {}).get("message")
            except PaymentProviderError as e:
                logger.warning(f"Unable to retrieve payment intent {payment_intent_id}: {e.message}")
        return user_id, failure_reason

    def _on_invoice_paid(self, invoice: Dict[str, Any], db: Session) -> None:
        subscription_id = object_id(invoice.get("subscription"))
        if not subscription_id:
            return

        user_id, _ = self._resolve_invoice_user(invoice)
        user = self._find_user(
            db,
            user_id=user_id,
            subscription_id=subscription_id,
            customer_id=object_id(invoice.get("customer")),
        )
        if user is None:
            logger.warning(f"No user for paid invoice {invoice.get('id')}")
            return

        subscription = self.gateway.retrieve_subscription(subscription_id)
        user = self.sync_subscription(user, subscription, db)
        self.record_subscription_payment(user, subscription, db)

    def _on_invoice_failed(self, invoice: Dict[str, Any], db: Session) -> None:
        subscription_id = object_id(invoice.get("subscription"))
        user_id, failure_reason = self._resolve_invoice_user(invoice)
        user = self._find_user(
            db,
            user_id=user_id,
            subscription_id=subscription_id,
            customer_id=object_id(invoice.get("customer")),
        )
        if user is None:
            logger.warning(f"No user for failed invoice {invoice.get('id')}")
            return

        # Stripe reuses the invoice PaymentIntent on retry, so failures get their own key.
        failure_payment_id = f"failed-{invoice['id']}"
        if self.history_exists(db, failure_payment_id):
            logger.info(f"Failure for invoice {invoice['id']} already processed")
            return

        if subscription_id and user.billing_default_payment_method_id:
            try:
                logger.info(f"Retrying invoice {invoice['id']} for user {user.id} with stored card")
                self.gateway.pay_invoice(invoice["id"], user.billing_default_payment_method_id)
                logger.info(f"Invoice retry succeeded for user {user.id}")
                return
            except PaymentProviderError as e:
                logger.warning(f"Invoice retry failed for user {user.id}: {e.message}")
                failure_reason = failure_reason or e.message

        subscription_service.update_from_stripe(
            user,
            SubscriptionUpdate(subscription_id=subscription_id or user.stripe_subscription_id, status="past_due"),
            db,
        )

        entry = self.record_history(
            db,
            user_id=user.id,
            payment_id=failure_payment_id,
            amount=invoice.get("amount_due") or 0,
            currency=invoice.get("currency"),
            status="failed",
            description="Automatic renewal failed",
            period_start=from_unix(invoice.get("period_start")),
            period_end=from_unix(invoice.get("period_end")),
            metadata={"invoiceId": invoice["id"], "code": invoice.get("status"), "reason": failure_reason},
        )
        if entry is None:
            return

        attempted = from_unix(invoice.get("created")) or datetime.utcnow()
        email_service.send_payment_failed_email(
            email=user.email,
            advisor_name=user.name,
            attempt_date=format_day(attempted),
            failure_reason=failure_reason,
        )


def get_payment_service(gateway: StripeGateway = Depends(get_gateway)) -> PaymentService:
    """FastAPI dependency."""
    return PaymentService(gateway)
