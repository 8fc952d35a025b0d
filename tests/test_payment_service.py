"""
Tests for PaymentService (Stripe is mocked)
"""

import json
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from app.core.config import settings
from app.core.exceptions import BadRequestError, PaymentConfigurationError, PaymentError
from app.core.principal import GuestPrincipal, UserPrincipal
from app.models.guest_premium import GuestPremium
from app.models.payment_event import PaymentEvent
from app.services.payment_service import PaymentService, payment_intent_key


@pytest.fixture
def service(email_service):
    return PaymentService(email_service=email_service)


NEXT_PERIOD_END = 1773576000  # 2026-03-15T12:00:00Z, one term after the fixed clock


def _event(event_id, event_type, obj):
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


def _invoice_lines(period_end):
    return {"data": [{"period": {"start": period_end - 365 * 86400, "end": period_end}}]}


class TestPaymentSucceeded:
    """Test payment_intent.succeeded handling"""

    def test_guest_payment_creates_guest_premium(self, db_session, service, now):
        event = _event("evt_1", "payment_intent.succeeded", {
            "id": "pi_guest",
            "customer": None,
            "metadata": {"isGuest": "true", "guestId": "guest-42", "email": "g@example.com"},
        })

        result = service.handle_stripe_event(db_session, event, now=now)

        guest = db_session.query(GuestPremium).filter(GuestPremium.guest_id == "guest-42").first()
        assert result["action"] == "activated"
        assert guest.tier == "premium"
        assert guest.email == "g@example.com"
        assert guest.subscription_expires_at == now + timedelta(days=365)

    def test_user_payment_found_by_intent(self, db_session, make_user, service, now):
        user = make_user(stripe_payment_intent_id="pi_user")
        event = _event("evt_2", "payment_intent.succeeded", {
            "id": "pi_user", "customer": "cus_9", "metadata": {},
        })

        result = service.handle_stripe_event(db_session, event, now=now)

        db_session.refresh(user)
        assert result == {"action": "activated", "principalId": user.id}
        assert user.tier == "premium"
        assert user.stripe_customer_id == "cus_9"

    def test_user_payment_found_by_metadata(self, db_session, make_user, service, now):
        user = make_user()

        service.on_payment_event(db_session, "payment_succeeded", {
            "id": "pi_meta", "metadata": {"userId": user.id},
        }, now=now)

        db_session.refresh(user)
        assert user.tier == "premium"

    def test_unknown_account_is_skipped(self, db_session, service, now):
        result = service.on_payment_event(db_session, "payment_succeeded", {"id": "pi_x", "metadata": {}}, now=now)

        assert result["action"] == "skipped"


class TestIdempotency:
    """Test that repeated provider events are applied once"""

    def test_duplicate_event_id(self, db_session, make_user, service, now):
        expiry = now + timedelta(days=5)
        user = make_user(tier="premium", subscription_status="active",
                         subscription_expires_at=expiry, stripe_subscription_id="sub_1")
        event = _event("evt_dup", "invoice.payment_succeeded", {
            "id": "in_1", "subscription": "sub_1", "lines": _invoice_lines(NEXT_PERIOD_END),
        })

        first = service.handle_stripe_event(db_session, event, now=now)
        second = service.handle_stripe_event(db_session, event, now=now)

        db_session.refresh(user)
        assert first["action"] == "renewed"
        assert second["action"] == "duplicate"
        assert user.subscription_expires_at == datetime(2026, 3, 15, 12, 0, 0)
        assert db_session.query(PaymentEvent).filter(PaymentEvent.id == "evt_dup").count() == 1

    def test_same_intent_in_two_events(self, db_session, make_user, service, now):
        """A retried payment with a new event id does not extend twice"""
        user = make_user(stripe_payment_intent_id="pi_same")
        obj = {"id": "pi_same", "metadata": {}}

        service.handle_stripe_event(db_session, _event("evt_a", "payment_intent.succeeded", obj), now=now)
        later = now + timedelta(days=1)
        result = service.handle_stripe_event(db_session, _event("evt_b", "payment_intent.succeeded", obj), now=later)

        db_session.refresh(user)
        assert result["action"] == "duplicate"
        assert user.subscription_expires_at == now + timedelta(days=365)


class TestSubscriptionEvents:
    """Test subscription and invoice events"""

    def test_subscription_updated_uses_item_period_end(self, db_session, make_user, service, now):
        user = make_user(stripe_customer_id="cus_1")
        period_end = 1767225600  # 2026-01-01T00:00:00Z

        result = service.handle_stripe_event(db_session, _event("evt_s", "customer.subscription.updated", {
            "id": "sub_1",
            "customer": "cus_1",
            "status": "active",
            "items": {"data": [{"current_period_end": period_end}]},
        }), now=now)

        db_session.refresh(user)
        assert result["action"] == "period_updated"
        assert user.subscription_expires_at.isoformat() == "2026-01-01T00:00:00"
        assert user.stripe_subscription_id == "sub_1"

    def test_subscription_updated_inactive_is_noted(self, db_session, make_user, service, now):
        user = make_user(stripe_customer_id="cus_1")

        result = service.on_payment_event(db_session, "subscription_updated", {
            "id": "sub_1", "customer": "cus_1", "status": "past_due", "current_period_end": 1767225600,
        }, now=now)

        db_session.refresh(user)
        assert result["action"] == "noted"
        assert user.tier == "free"

    def test_subscription_deleted_cancels(self, db_session, make_user, service, now):
        user = make_user(tier="premium", subscription_status="active",
                         subscription_expires_at=now + timedelta(days=30), stripe_subscription_id="sub_1")

        result = service.handle_stripe_event(
            db_session, _event("evt_d", "customer.subscription.deleted", {"id": "sub_1"}), now=now)

        db_session.refresh(user)
        assert result["action"] == "cancelled"
        assert user.subscription_status == "cancelled"
        assert user.tier == "premium"

    def test_invoice_with_parent_subscription_details(self, db_session, make_user, service, now):
        user = make_user(tier="premium", subscription_status="active",
                         subscription_expires_at=now + timedelta(days=2), stripe_subscription_id="sub_2")

        result = service.on_payment_event(db_session, "invoice_payment_succeeded", {
            "id": "in_2",
            "parent": {"subscription_details": {"subscription": "sub_2"}},
            "lines": _invoice_lines(NEXT_PERIOD_END),
        }, now=now)

        db_session.refresh(user)
        assert result["action"] == "renewed"
        assert user.subscription_expires_at == now + timedelta(days=365)

    def test_invoice_failed_emails_owner(self, db_session, make_user, service, email_service, now):
        user = make_user(email="owner@example.com", stripe_customer_id="cus_f")

        result = service.on_payment_event(db_session, "invoice_payment_failed", {
            "id": "in_f", "customer": "cus_f",
        }, now=now)

        db_session.refresh(user)
        assert result["action"] == "payment_failed_notified"
        email_service.send_payment_failed.assert_called_once_with("owner@example.com")
        assert user.tier == "free"

    def test_unhandled_event_type(self, db_session, service, now):
        result = service.handle_stripe_event(db_session, _event("evt_u", "charge.refunded", {}), now=now)

        assert result["action"] == "ignored"
        assert db_session.query(PaymentEvent).count() == 0


class TestPaymentIntents:
    """Test the client-driven payment flow"""

    @patch("app.services.payment_service.stripe")
    def test_create_payment_intent_for_user(self, mock_stripe, db_session, make_user, service):
        user = make_user()
        mock_stripe.PaymentIntent.create.return_value = MagicMock(id="pi_new", client_secret="secret_1")

        result = service.create_payment_intent(db_session, UserPrincipal(id=user.id, email=user.email, tier="free"))

        db_session.refresh(user)
        assert result == {"clientSecret": "secret_1", "paymentIntentId": "pi_new"}
        assert user.stripe_payment_intent_id == "pi_new"
        kwargs = mock_stripe.PaymentIntent.create.call_args.kwargs
        assert kwargs["amount"] == settings.premium_price_cents
        assert kwargs["metadata"]["userId"] == user.id

    @patch("app.services.payment_service.stripe")
    def test_create_payment_intent_for_guest(self, mock_stripe, db_session, service):
        mock_stripe.PaymentIntent.create.return_value = MagicMock(id="pi_g", client_secret="secret_g")

        service.create_payment_intent(db_session, GuestPrincipal(id="guest-7", tier="free"), email="g@example.com")

        metadata = mock_stripe.PaymentIntent.create.call_args.kwargs["metadata"]
        assert metadata["isGuest"] == "true"
        assert metadata["guestId"] == "guest-7"
        assert metadata["email"] == "g@example.com"

    def test_missing_configuration(self, db_session, service, monkeypatch):
        monkeypatch.setattr(settings, "stripe_secret_key", None)

        with pytest.raises(PaymentConfigurationError) as exc_info:
            service.create_payment_intent(db_session, GuestPrincipal(id="guest-7", tier="free"))

        assert exc_info.value.status_code == 500

    @patch("app.services.payment_service.stripe")
    def test_confirm_payment_activates_once(self, mock_stripe, db_session, make_user, service, now):
        user = make_user()
        mock_stripe.PaymentIntent.retrieve.return_value = MagicMock(
            status="succeeded", metadata={"userId": user.id}, customer="cus_c")
        principal = UserPrincipal(id=user.id, email=user.email, tier="free")

        info = service.confirm_payment(db_session, principal, "pi_c", now=now)
        again = service.confirm_payment(db_session, principal, "pi_c", now=now + timedelta(days=1))

        db_session.refresh(user)
        assert info.is_active is True
        assert again.expires_at == now + timedelta(days=365)
        assert user.subscription_expires_at == now + timedelta(days=365)
        assert service.already_processed(db_session, payment_intent_key("pi_c"))

    @patch("app.services.payment_service.stripe")
    def test_confirm_payment_for_guest(self, mock_stripe, db_session, service, now):
        mock_stripe.PaymentIntent.retrieve.return_value = MagicMock(
            status="succeeded", metadata={"isGuest": "true", "guestId": "guest-9"}, customer=None)

        info = service.confirm_payment(db_session, GuestPrincipal(id="guest-9", tier="free"), "pi_g9", now=now)

        assert info.is_active is True

    @patch("app.services.payment_service.stripe")
    def test_confirm_payment_of_other_principal(self, mock_stripe, db_session, make_user, service, now):
        user = make_user()
        mock_stripe.PaymentIntent.retrieve.return_value = MagicMock(
            status="succeeded", metadata={"userId": "someone-else"}, customer=None)

        with pytest.raises(PaymentError) as exc_info:
            service.confirm_payment(db_session, UserPrincipal(id=user.id, email=user.email, tier="free"), "pi_o", now=now)

        assert exc_info.value.status_code == 403
        assert user.tier == "free"

    @patch("app.services.payment_service.stripe")
    def test_confirm_unsucceeded_payment(self, mock_stripe, db_session, service, now):
        mock_stripe.PaymentIntent.retrieve.return_value = MagicMock(status="requires_payment_method", metadata={})

        with pytest.raises(PaymentError) as exc_info:
            service.confirm_payment(db_session, GuestPrincipal(id="guest-1", tier="free"), "pi_r", now=now)

        assert exc_info.value.status_code == 400


class TestConstructEvent:
    """Test webhook signature verification"""

    def test_valid_signature_returns_json(self, service):
        payload = json.dumps({"id": "evt_1", "type": "invoice.payment_failed"}).encode()

        with patch("stripe.Webhook.construct_event") as mock_construct:
            event = service.construct_event(payload, "t=1,v1=abc")

        mock_construct.assert_called_once_with(payload, "t=1,v1=abc", settings.stripe_webhook_secret)
        assert event["id"] == "evt_1"

    def test_invalid_payload(self, service):
        with patch("stripe.Webhook.construct_event", side_effect=ValueError("Invalid payload")):
            with pytest.raises(BadRequestError):
                service.construct_event(b"{}", "t=1,v1=abc")

    def test_missing_signature(self, service):
        with pytest.raises(BadRequestError):
            service.construct_event(b"{}", None)


class TestInvoicePeriods:
    """Test that a billing period is granted once across subscription and invoice events"""

    def test_subscription_then_invoice_for_same_period(self, db_session, make_user, service, now):
        # Setup
        user = make_user(stripe_customer_id="cus_1")
        created = _event("evt_sub", "customer.subscription.created", {
            "id": "sub_1", "customer": "cus_1", "status": "active", "current_period_end": NEXT_PERIOD_END,
        })
        paid = _event("evt_inv", "invoice.payment_succeeded", {
            "id": "in_1", "subscription": "sub_1", "lines": _invoice_lines(NEXT_PERIOD_END),
        })

        # Execute
        first = service.handle_stripe_event(db_session, created, now=now)
        second = service.handle_stripe_event(db_session, paid, now=now)

        # Verify
        db_session.refresh(user)
        assert first["action"] == "period_updated"
        assert second["action"] == "covered"
        assert user.subscription_expires_at == datetime(2026, 3, 15, 12, 0, 0)

    def test_invoice_for_next_period_moves_expiry(self, db_session, make_user, service, now):
        user = make_user(tier="premium", subscription_status="active",
                         subscription_expires_at=now + timedelta(days=1), stripe_subscription_id="sub_1")

        result = service.on_payment_event(db_session, "invoice_payment_succeeded", {
            "id": "in_next", "subscription": "sub_1", "lines": _invoice_lines(NEXT_PERIOD_END),
        }, now=now)

        db_session.refresh(user)
        assert result["action"] == "renewed"
        assert user.subscription_expires_at == datetime(2026, 3, 15, 12, 0, 0)
        assert user.last_payment_date == now

    def test_invoice_without_period_while_term_runs(self, db_session, make_user, service, now):
        expiry = now + timedelta(days=20)
        user = make_user(tier="premium", subscription_status="active",
                         subscription_expires_at=expiry, stripe_subscription_id="sub_1")

        result = service.on_payment_event(db_session, "invoice_payment_succeeded", {
            "id": "in_bare", "subscription": "sub_1",
        }, now=now)

        db_session.refresh(user)
        assert result["action"] == "covered"
        assert user.subscription_expires_at == expiry

    def test_invoice_without_period_after_lapse(self, db_session, make_user, service, now):
        user = make_user(tier="premium", subscription_status="active",
                         subscription_expires_at=now - timedelta(days=1), stripe_subscription_id="sub_1")

        result = service.on_payment_event(db_session, "invoice_payment_succeeded", {
            "id": "in_late", "subscription": "sub_1",
        }, now=now)

        db_session.refresh(user)
        assert result["action"] == "renewed"
        assert user.subscription_expires_at == now + timedelta(days=365)
