"""
Unit tests for Stripe webhook event processing.

Every handler must converge to the same state when Stripe redelivers an event.
"""
from datetime import datetime, timedelta
from unittest.mock import patch

from advisor_chooser.core.errors import PaymentProviderError
from advisor_chooser.models import PaymentHistory
from advisor_chooser.services.coupons import coupon_service

PERIOD_START = 1772366400  # 2026-03-01 12:00 UTC
PERIOD_END = 1803902400  # 2027-03-01 12:00 UTC


def event(event_type, obj):
    return {"id": f"evt_{event_type}", "type": event_type, "data": {"object": obj}}


def subscription_object(user, status="active", **extra):
    data = {
        "id": "sub_1",
        "status": status,
        "customer": "cus_1",
        "current_period_start": PERIOD_START,
        "current_period_end": PERIOD_END,
        "cancel_at_period_end": False,
        "canceled_at": None,
        "default_payment_method": "pm_card",
        "metadata": {"userId": str(user.id)},
        "latest_invoice": {
            "id": "in_1",
            "paid": True,
            "payment_intent": "pi_sub",
            "amount_paid": 500000,
            "currency": "usd",
            "billing_reason": "subscription_create",
        },
    }
    data.update(extra)
    return data


class TestPaymentIntentSucceeded:
    """payment_intent.succeeded covers clients that never called confirm."""

    def _intent(self, user):
        return {
            "id": "pi_hook",
            "status": "succeeded",
            "amount_received": 500000,
            "currency": "usd",
            "customer": "cus_1",
            "payment_method": "pm_card",
            "metadata": {"userId": str(user.id), "purpose": "membership", "couponCode": ""},
        }

    def test_membership_payment_applied(self, db, advisor_user, payments):
        payments.handle_event(event("payment_intent.succeeded", self._intent(advisor_user)), db)

        db.refresh(advisor_user)
        assert advisor_user.subscription_status == "active"
        assert advisor_user.has_access() is True

    def test_replay_does_not_extend_twice(self, db, advisor_user, payments):
        payload = event("payment_intent.succeeded", self._intent(advisor_user))

        payments.handle_event(payload, db)
        db.refresh(advisor_user)
        first_end = advisor_user.subscription_current_period_end
        payments.handle_event(payload, db)

        db.refresh(advisor_user)
        assert advisor_user.subscription_current_period_end == first_end
        assert db.query(PaymentHistory).count() == 1

    def test_subscription_intent_marks_active(self, db, advisor_user, payments):
        intent = self._intent(advisor_user)
        intent["metadata"] = {"userId": str(advisor_user.id), "subscriptionId": "sub_9"}

        payments.handle_event(event("payment_intent.succeeded", intent), db)

        db.refresh(advisor_user)
        assert advisor_user.subscription_status == "active"
        assert advisor_user.stripe_subscription_id == "sub_9"

    def test_unknown_user_ignored(self, db, payments):
        intent = {"id": "pi_x", "metadata": {"userId": "not-a-uuid"}}

        payments.handle_event(event("payment_intent.succeeded", intent), db)

        assert db.query(PaymentHistory).count() == 0


class TestSubscriptionEvents:
    """customer.subscription.* mirror Stripe state locally."""

    def test_created_syncs_and_records(self, db, advisor_user, payments, gateway):
        payments.handle_event(event("customer.subscription.created", subscription_object(advisor_user)), db)

        db.refresh(advisor_user)
        assert advisor_user.stripe_subscription_id == "sub_1"
        assert advisor_user.subscription_current_period_end == datetime(2027, 3, 1, 12, 0)
        assert advisor_user.billing_card_last4 == "4242"
        assert db.query(PaymentHistory).filter_by(payment_id="pi_sub").count() == 1

    def test_user_found_by_subscription_id(self, db, advisor_user, payments):
        advisor_user.stripe_subscription_id = "sub_1"
        db.commit()
        sub = subscription_object(advisor_user, status="past_due", metadata={})

        payments.handle_event(event("customer.subscription.updated", sub), db)

        db.refresh(advisor_user)
        assert advisor_user.subscription_status == "past_due"
        assert db.query(PaymentHistory).count() == 0

    def test_deleted_subscription(self, db, advisor_user, payments):
        sub = subscription_object(
            advisor_user, status="canceled", canceled_at=PERIOD_START + 86400, cancel_at_period_end=True
        )

        payments.handle_event(event("customer.subscription.deleted", sub), db)

        db.refresh(advisor_user)
        assert advisor_user.subscription_status == "canceled"
        assert advisor_user.subscription_canceled_at == datetime(2026, 3, 2, 12, 0)

    def test_coupon_counted_only_on_first_invoice(self, db, advisor_user, payments, make_coupon):
        make_coupon(code="SAVE20", usage_limit=10)
        sub = subscription_object(advisor_user, metadata={"userId": str(advisor_user.id), "couponCode": "SAVE20"})

        payments.handle_event(event("customer.subscription.created", sub), db)
        payments.handle_event(event("customer.subscription.updated", sub), db)

        assert coupon_service.find("SAVE20", db).used_count == 1


class TestInvoiceEvents:
    def test_invoice_paid_syncs_subscription(self, db, advisor_user, payments, gateway):
        advisor_user.stripe_subscription_id = "sub_1"
        db.commit()
        gateway.retrieve_payment_intent.return_value = {"id": "pi_sub", "metadata": {}}
        gateway.retrieve_subscription.return_value = subscription_object(advisor_user)
        invoice = {"id": "in_1", "subscription": "sub_1", "customer": "cus_1", "payment_intent": "pi_sub"}

        payments.handle_event(event("invoice.payment_succeeded", invoice), db)

        db.refresh(advisor_user)
        assert advisor_user.subscription_status == "active"
        gateway.retrieve_subscription.assert_called_once_with("sub_1")

    def test_invoice_without_subscription_ignored(self, db, payments, gateway):
        payments.handle_event(event("invoice.payment_succeeded", {"id": "in_2"}), db)

        gateway.retrieve_subscription.assert_not_called()

    def test_paid_invoice_replay_records_once(self, db, advisor_user, payments, gateway, make_coupon):
        make_coupon(code="SAVE20", usage_limit=10)
        advisor_user.stripe_subscription_id = "sub_1"
        db.commit()
        gateway.retrieve_payment_intent.return_value = {"id": "pi_sub", "metadata": {}}
        gateway.retrieve_subscription.return_value = subscription_object(
            advisor_user, metadata={"userId": str(advisor_user.id), "couponCode": "SAVE20"}
        )
        invoice = {"id": "in_1", "subscription": "sub_1", "customer": "cus_1", "payment_intent": "pi_sub"}
        payload = event("invoice.payment_succeeded", invoice)

        payments.handle_event(payload, db)
        payments.handle_event(payload, db)

        assert db.query(PaymentHistory).count() == 1
        assert coupon_service.find("SAVE20", db).used_count == 1

    @patch("advisor_chooser.services.payments.email_service")
    def test_failed_then_paid_invoice(self, mock_email, db, active_advisor, payments, gateway, make_coupon):
        """Stripe retries with the same PaymentIntent; the eventual success still counts."""
        make_coupon(code="SAVE20", usage_limit=10)
        active_advisor.stripe_subscription_id = "sub_1"
        db.commit()
        gateway.retrieve_payment_intent.return_value = {"id": "pi_sub", "metadata": {}}
        gateway.pay_invoice.side_effect = PaymentProviderError("Your card was declined.")
        invoice = {
            "id": "in_1",
            "subscription": "sub_1",
            "customer": "cus_active",
            "payment_intent": "pi_sub",
            "amount_due": 500000,
            "currency": "usd",
            "status": "open",
            "created": PERIOD_START,
        }

        payments.handle_event(event("invoice.payment_failed", invoice), db)
        gateway.retrieve_subscription.return_value = subscription_object(
            active_advisor, metadata={"userId": str(active_advisor.id), "couponCode": "SAVE20"}
        )
        payments.handle_event(event("invoice.payment_succeeded", dict(invoice, status="paid")), db)

        rows = {entry.payment_id: entry.status for entry in db.query(PaymentHistory).all()}
        assert rows == {"failed-in_1": "failed", "pi_sub": "succeeded"}
        assert coupon_service.find("SAVE20", db).used_count == 1
        db.refresh(active_advisor)
        assert active_advisor.subscription_status == "active"

    def _failed_invoice(self):
        return {
            "id": "in_fail",
            "subscription": "sub_1",
            "customer": "cus_active",
            "payment_intent": "pi_fail",
            "amount_due": 500000,
            "currency": "usd",
            "status": "open",
            "created": PERIOD_START,
        }

    @patch("advisor_chooser.services.payments.email_service")
    def test_failed_invoice_retried_with_stored_card(self, mock_email, db, active_advisor, payments, gateway):
        active_advisor.stripe_subscription_id = "sub_1"
        db.commit()
        gateway.retrieve_payment_intent.return_value = {"id": "pi_fail", "metadata": {}}

        payments.handle_event(event("invoice.payment_failed", self._failed_invoice()), db)

        gateway.pay_invoice.assert_called_once_with("in_fail", "pm_card")
        db.refresh(active_advisor)
        assert active_advisor.subscription_status == "active"
        mock_email.send_payment_failed_email.assert_not_called()

    @patch("advisor_chooser.services.payments.email_service")
    def test_failed_retry_marks_past_due_and_emails_once(self, mock_email, db, active_advisor, payments, gateway):
        active_advisor.stripe_subscription_id = "sub_1"
        db.commit()
        gateway.retrieve_payment_intent.return_value = {
            "id": "pi_fail",
            "metadata": {},
            "last_payment_error": {"message": "Your card has insufficient funds."},
        }
        gateway.pay_invoice.side_effect = PaymentProviderError("Your card was declined.")
        payload = event("invoice.payment_failed", self._failed_invoice())

        payments.handle_event(payload, db)
        payments.handle_event(payload, db)

        db.refresh(active_advisor)
        assert active_advisor.subscription_status == "past_due"
        assert gateway.pay_invoice.call_count == 1
        entry = db.query(PaymentHistory).filter_by(payment_id="failed-in_fail").one()
        assert entry.status == "failed"
        mock_email.send_payment_failed_email.assert_called_once()
        kwargs = mock_email.send_payment_failed_email.call_args.kwargs
        assert kwargs["email"] == "advisor@test.com"
        assert kwargs["failure_reason"] == "Your card has insufficient funds."
        assert kwargs["attempt_date"] == "March 1, 2026"

    @patch("advisor_chooser.services.payments.email_service")
    def test_failed_invoice_without_card(self, mock_email, db, advisor_user, payments, gateway):
        advisor_user.stripe_customer_id = "cus_active"
        db.commit()
        gateway.retrieve_payment_intent.return_value = {"id": "pi_fail", "metadata": {}}

        payments.handle_event(event("invoice.payment_failed", self._failed_invoice()), db)

        gateway.pay_invoice.assert_not_called()
        db.refresh(advisor_user)
        assert advisor_user.subscription_status == "past_due"
        mock_email.send_payment_failed_email.assert_called_once()


class TestUnhandled:
    def test_unknown_event_type_is_ignored(self, db, payments, gateway):
        payments.handle_event(event("charge.refunded", {"id": "ch_1"}), db)

        assert db.query(PaymentHistory).count() == 0
        assert gateway.method_calls == []
