from sqlalchemy import Column, String, DateTime
from app.core.database import Base
from app.models.subscription import SubscriptionMixin, Tier, SubscriptionStatus, _iso
from datetime import datetime
import uuid


class GuestPremium(SubscriptionMixin, Base):
    """Premium state purchased by an anonymous guest, keyed by the client-generated guest id"""

    __tablename__ = "guest_premium"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    guest_id = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, nullable=True, index=True)
    linked_user_id = Column(String, nullable=True, index=True)
    magic_link_token = Column(String, nullable=True, index=True)
    magic_link_expires = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, **kwargs):
        kwargs.setdefault('tier', Tier.FREE.value)
        kwargs.setdefault('subscription_status', SubscriptionStatus.NONE.value)
        super().__init__(**kwargs)

    def to_dict(self) -> dict:
        return {
            'guestId': self.guest_id,
            'email': self.email,
            'linkedUserId': self.linked_user_id,
            'createdAt': _iso(self.created_at),
            **self.subscription_dict(),
        }
