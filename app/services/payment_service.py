"""
Stripe payments and the translation of provider events into subscription transitions.

Provider events are reduced to five intake types before they touch the
subscription lifecycle:

    payment_intent.succeeded                  -> payment_succeeded
    customer.subscription.created / updated   -> subscription_updated
    customer.subscription.deleted             -> subscription_deleted
    invoice.payment_succeeded                 -> invoice_payment_succeeded
    invoice.payment_failed                    -> invoice_payment_failed

Each applied event id is stored in `payment_events`; a repeated id is
acknowledged without applying the transition again.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

import stripe
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    BadRequestError,
    EmailDeliveryError,
    NotFoundError,
    PaymentConfigurationError,
    PaymentError,
)
from app.core.principal import Principal
from app.models.payment_event import PaymentEvent
from app.models.user import User
from app.services.email_service import EmailService
from app.services.subscription_service import SubscriptionInfo, SubscriptionService, is_entitled

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_succeeded"
SUBSCRIPTION_UPDATED = "subscription_updated"
SUBSCRIPTION_DELETED = "subscription_deleted"
INVOICE_PAYMENT_SUCCEEDED = "invoice_payment_succeeded"
INVOICE_PAYMENT_FAILED = "invoice_payment_failed"

STRIPE_EVENT_TYPES = {
    "payment_intent.succeeded": PAYMENT_SUCCEEDED,
    "customer.subscription.created": SUBSCRIPTION_UPDATED,
    "customer.subscription.updated": SUBSCRIPTION_UPDATED,
    "customer.subscription.deleted": SUBSCRIPTION_DELETED,
    "invoice.payment_succeeded": INVOICE_PAYMENT_SUCCEEDED,
    "invoice.payment_failed": INVOICE_PAYMENT_FAILED,
}


def payment_intent_key(payment_intent_id: str) -> str:
    return f"payment_intent:{payment_intent_id}"


def _from_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


def _period_end(subscription: dict) -> Optional[datetime]:
    """current_period_end moved from the subscription onto its items in newer API versions"""
    if subscription.get("current_period_end"):
        return _from_timestamp(subscription["current_period_end"])
    items = (subscription.get("items") or {}).get("data") or []
    if items:
        return _from_timestamp(items[0].get("current_period_end"))
    return None


def _invoice_subscription_id(invoice: dict) -> Optional[str]:
    if invoice.get("subscription"):
        return invoice["subscription"]
    parent = invoice.get("parent") or {}
    return (parent.get("subscription_details") or {}).get("subscription")


def _invoice_period_end(invoice: dict) -> Optional[datetime]:
    """End of the billing period the invoice pays for"""
    lines = (invoice.get("lines") or {}).get("data") or []
    if not lines:
        return None
    return _from_timestamp((lines[0].get("period") or {}).get("end"))


class PaymentService:
    def __init__(self, subscription_service: SubscriptionService = None, email_service: EmailService = None):
        self.subscription_service = subscription_service or SubscriptionService()
        self.email_service = email_service or EmailService()
        self.logger = logging.getLogger(__name__)

    def _configure_stripe(self):
        if not settings.stripe_secret_key:
            self.logger.error("_configure_stripe: Failure - STRIPE_SECRET_KEY is not set")
            raise PaymentConfigurationError()
        stripe.api_key = settings.stripe_secret_key

    # Client-driven payment flow

    def create_payment_intent(self, db: Session, principal: Principal, email: str = None) -> dict:
        """Create a one-time premium payment for a user or guest"""
        self.logger.info(f"create_payment_intent: Entry - principal: {principal.id}, guest: {principal.is_guest}")
        self._configure_stripe()

        if principal.is_guest:
            metadata = {"isGuest": "true", "guestId": principal.id, "tier": "premium"}
            if email:
                metadata["email"] = email
        else:
            user = db.query(User).filter(User.id == principal.id).first()
            if not user:
                raise NotFoundError("User")
            metadata = {"userId": user.id, "tier": "premium"}
        metadata["duration"] = f"{settings.subscription_term_days}days"

        intent = stripe.PaymentIntent.create(
            amount=settings.premium_price_cents,
            currency=settings.premium_currency,
            metadata=metadata,
        )

        if not principal.is_guest:
            try:
                user.stripe_payment_intent_id = intent.id
                db.commit()
            except Exception as e:
                db.rollback()
                self.logger.error(f"create_payment_intent: Failure - {e}")
                raise

        self.logger.info(f"create_payment_intent: Success - intent: {intent.id}")
        return {"clientSecret": intent.client_secret, "paymentIntentId": intent.id}

    def confirm_payment(
        self,
        db: Session,
        principal: Principal,
        payment_intent_id: str,
        now: datetime = None,
    ) -> SubscriptionInfo:
        """Activate premium once the client reports a payment the provider confirms as succeeded"""
        self.logger.info(f"confirm_payment: Entry - principal: {principal.id}, intent: {payment_intent_id}")
        now = now or datetime.utcnow()
        self._configure_stripe()

        intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        if intent.status != "succeeded":
            self.logger.info(f"confirm_payment: Not succeeded - intent: {payment_intent_id}, status: {intent.status}")
            raise PaymentError(f"Payment has not succeeded (status: {intent.status})", status_code=400)

        metadata = dict(intent.metadata or {})
        owner = metadata.get("guestId") if principal.is_guest else metadata.get("userId")
        if owner != principal.id:
            self.logger.warning(f"confirm_payment: Principal mismatch - intent: {payment_intent_id}")
            raise PaymentError("Payment does not belong to this account", status_code=403)

        key = payment_intent_key(payment_intent_id)
        if self.already_processed(db, key):
            self.logger.info(f"confirm_payment: Already applied - intent: {payment_intent_id}")
            return self.subscription_service.check_status(db, principal.id, now)

        if principal.is_guest:
            self.subscription_service.activate_guest(
                db, principal.id, payment_intent_id,
                email=metadata.get("email"), customer_id=intent.customer, now=now,
            )
        else:
            self.subscription_service.activate(db, principal.id, payment_intent_id, intent.customer, now=now)
        self.record_event(db, key, PAYMENT_SUCCEEDED, principal.id, "activated")

        self.logger.info(f"confirm_payment: Success - principal: {principal.id}")
        return self.subscription_service.check_status(db, principal.id, now)

    # Webhooks

    def construct_event(self, payload: bytes, signature: Optional[str]) -> dict:
        """Verify the webhook signature and return the event as plain JSON data"""
        if not settings.stripe_webhook_secret:
            self.logger.error("construct_event: Failure - STRIPE_WEBHOOK_SECRET is not set")
            raise PaymentConfigurationError("Webhook secret is not configured")
        if not signature:
            raise BadRequestError("Missing Stripe signature")

        try:
            stripe.Webhook.construct_event(payload, signature, settings.stripe_webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            self.logger.warning(f"construct_event: Verification failed - {e}")
            raise BadRequestError(f"Webhook Error: {e}")

        return json.loads(payload)

    def handle_stripe_event(self, db: Session, event: dict, now: datetime = None) -> dict:
        event_id = event.get("id")
        stripe_type = event.get("type", "")
        self.logger.info(f"handle_stripe_event: Entry - event: {event_id}, type: {stripe_type}")

        event_type = STRIPE_EVENT_TYPES.get(stripe_type)
        if event_type is None:
            self.logger.info(f"handle_stripe_event: Unhandled event type - {stripe_type}")
            return {"action": "ignored", "eventType": stripe_type}

        if event_id and self.already_processed(db, event_id):
            self.logger.info(f"handle_stripe_event: Duplicate event - {event_id}")
            return {"action": "duplicate", "eventType": event_type}

        payload = (event.get("data") or {}).get("object") or {}
        result = self.on_payment_event(db, event_type, payload, now=now)
        if event_id:
            self.record_event(db, event_id, event_type, result.get("principalId"), result["action"])

        self.logger.info(f"handle_stripe_event: Success - event: {event_id}, action: {result['action']}")
        return result

    def on_payment_event(self, db: Session, event_type: str, payload: dict, now: datetime = None) -> dict:
        """Apply one intake event to the subscription lifecycle"""
        now = now or datetime.utcnow()
        handlers = {
            PAYMENT_SUCCEEDED: self._payment_succeeded,
            SUBSCRIPTION_UPDATED: self._subscription_updated,
            SUBSCRIPTION_DELETED: self._subscription_deleted,
            INVOICE_PAYMENT_SUCCEEDED: self._invoice_payment_succeeded,
            INVOICE_PAYMENT_FAILED: self._invoice_payment_failed,
        }
        handler = handlers.get(event_type)
        if handler is None:
            raise ValueError(f"Unknown payment event type: {event_type}")
        return handler(db, payload, now)

    def _payment_succeeded(self, db: Session, intent: dict, now: datetime) -> dict:
        intent_id = intent.get("id")
        metadata = intent.get("metadata") or {}
        key = payment_intent_key(intent_id)
        if self.already_processed(db, key):
            self.logger.info(f"_payment_succeeded: Already applied - intent: {intent_id}")
            return {"action": "duplicate"}

        if metadata.get("isGuest") == "true" and metadata.get("guestId"):
            guest_id = metadata["guestId"]
            self.subscription_service.activate_guest(
                db, guest_id, intent_id,
                email=metadata.get("email"), customer_id=intent.get("customer"), now=now,
            )
            self.record_event(db, key, PAYMENT_SUCCEEDED, guest_id, "activated")
            return {"action": "activated", "principalId": guest_id}

        account = self.subscription_service.find_by_provider(db, payment_intent_id=intent_id)
        if account is None and metadata.get("userId"):
            account = db.query(User).filter(User.id == metadata["userId"]).first()
        if account is None:
            self.logger.error(f"_payment_succeeded: No account for intent - {intent_id}")
            return {"action": "skipped"}

        principal_id = self.subscription_service.principal_id_of(account)
        self.subscription_service.activate(db, principal_id, intent_id, intent.get("customer"), now=now)
        self.record_event(db, key, PAYMENT_SUCCEEDED, principal_id, "activated")
        return {"action": "activated", "principalId": principal_id}

    def _subscription_updated(self, db: Session, subscription: dict, now: datetime) -> dict:
        account = self.subscription_service.find_by_provider(db, customer_id=subscription.get("customer"))
        if account is None:
            self.logger.error(f"_subscription_updated: No account for customer - {subscription.get('customer')}")
            return {"action": "skipped"}

        principal_id = self.subscription_service.principal_id_of(account)
        period_end = _period_end(subscription)
        if subscription.get("status") != "active" or period_end is None:
            self.logger.info(
                f"_subscription_updated: Noted - principal: {principal_id}, status: {subscription.get('status')}")
            return {"action": "noted", "principalId": principal_id}

        self.subscription_service.apply_provider_period(db, principal_id, period_end, subscription.get("id"), now=now)
        return {"action": "period_updated", "principalId": principal_id}

    def _subscription_deleted(self, db: Session, subscription: dict, now: datetime) -> dict:
        account = self.subscription_service.find_by_provider(db, subscription_id=subscription.get("id"))
        if account is None:
            self.logger.error(f"_subscription_deleted: No account for subscription - {subscription.get('id')}")
            return {"action": "skipped"}

        principal_id = self.subscription_service.principal_id_of(account)
        try:
            self.subscription_service.cancel(db, principal_id)
        except NotFoundError:
            self.logger.info(f"_subscription_deleted: Nothing to cancel - principal: {principal_id}")
            return {"action": "ignored", "principalId": principal_id}
        return {"action": "cancelled", "principalId": principal_id}

    def _invoice_payment_succeeded(self, db: Session, invoice: dict, now: datetime) -> dict:
        subscription_id = _invoice_subscription_id(invoice)
        account = self.subscription_service.find_by_provider(db, subscription_id=subscription_id) \
            if subscription_id else None
        if account is None:
            self.logger.info(f"_invoice_payment_succeeded: No subscription account - invoice: {invoice.get('id')}")
            return {"action": "skipped"}

        principal_id = self.subscription_service.principal_id_of(account)
        period_end = _invoice_period_end(invoice)
        stored = account.subscription_expires_at
        # subscription_updated may already have stored this period under a different event id
        if period_end is not None:
            if stored is not None and stored >= period_end:
                self.logger.info(
                    f"_invoice_payment_succeeded: Period already covered - principal: {principal_id}, "
                    f"period_end: {period_end.isoformat()}")
                return {"action": "covered", "principalId": principal_id}
            self.subscription_service.apply_provider_period(db, principal_id, period_end, subscription_id, now=now)
            return {"action": "renewed", "principalId": principal_id}

        if is_entitled(account, now):
            self.logger.info(f"_invoice_payment_succeeded: No period on invoice, term still running - {principal_id}")
            return {"action": "covered", "principalId": principal_id}
        self.subscription_service.renew(db, principal_id, now=now)
        return {"action": "renewed", "principalId": principal_id}

    def _invoice_payment_failed(self, db: Session, invoice: dict, now: datetime) -> dict:
        self.logger.warning(f"_invoice_payment_failed: Invoice {invoice.get('id')} failed")
        account = self.subscription_service.find_by_provider(db, customer_id=invoice.get("customer")) \
            if invoice.get("customer") else None
        principal_id = self.subscription_service.principal_id_of(account) if account else None

        email = (account.email if account else None) or invoice.get("customer_email")
        if not email:
            return {"action": "payment_failed", "principalId": principal_id}

        try:
            self.email_service.send_payment_failed(email)
        except EmailDeliveryError as e:
            self.logger.warning(f"_invoice_payment_failed: Email failed - {e}")
        return {"action": "payment_failed_notified", "principalId": principal_id}

    # Idempotency

    def already_processed(self, db: Session, key: str) -> bool:
        return db.query(PaymentEvent).filter(PaymentEvent.id == key).first() is not None

    def record_event(self, db: Session, key: str, event_type: str, principal_id: str = None, action: str = None):
        try:
            db.add(PaymentEvent(id=key, event_type=event_type, principal_id=principal_id, action=action))
            db.commit()
        except IntegrityError:
            db.rollback()
            self.logger.info(f"record_event: Already recorded - {key}")
