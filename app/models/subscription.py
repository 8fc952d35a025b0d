from sqlalchemy import Column, String, DateTime
from datetime import datetime
import enum


class SubscriptionStatus(str, enum.Enum):
    NONE = "none"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Tier(str, enum.Enum):
    FREE = "free"
    PREMIUM = "premium"


def _iso(value: datetime):
    return value.isoformat() if value else None


class SubscriptionMixin:
    """
    Subscription columns shared by registered users and guest premium records.
    `tier` is a cached copy of entitlement and may lag until the next lazy check or sweep.
    """

    tier = Column(String, nullable=False, default=Tier.FREE.value, index=True)
    subscription_status = Column(String, nullable=False, default=SubscriptionStatus.NONE.value, index=True)
    subscription_expires_at = Column(DateTime, nullable=True, index=True)
    stripe_customer_id = Column(String, nullable=True, index=True)
    stripe_payment_intent_id = Column(String, nullable=True, index=True)
    stripe_subscription_id = Column(String, nullable=True, index=True)
    last_payment_date = Column(DateTime, nullable=True)
    upgraded_at = Column(DateTime, nullable=True)

    def subscription_dict(self) -> dict:
        return {
            'tier': self.tier,
            'subscriptionStatus': self.subscription_status,
            'subscriptionExpiresAt': _iso(self.subscription_expires_at),
            'lastPaymentDate': _iso(self.last_payment_date),
            'upgradedAt': _iso(self.upgraded_at),
        }
