from sqlalchemy import Column, String, DateTime, Boolean
from app.core.database import Base
from app.models.subscription import SubscriptionMixin, Tier, SubscriptionStatus, _iso
from datetime import datetime
import uuid


class User(SubscriptionMixin, Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    profile_image_url = Column(String, nullable=True)
    email_verified = Column(Boolean, default=False, nullable=False)
    reset_token = Column(String, nullable=True, index=True)
    reset_token_expires = Column(DateTime, nullable=True)
    magic_link_token = Column(String, nullable=True, index=True)
    magic_link_expires = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, **kwargs):
        kwargs.setdefault('tier', Tier.FREE.value)
        kwargs.setdefault('subscription_status', SubscriptionStatus.NONE.value)
        kwargs.setdefault('email_verified', False)
        super().__init__(**kwargs)

    def to_dict(self) -> dict:
        """Public representation (never includes hashes or tokens)"""
        return {
            'id': self.id,
            'email': self.email,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'profileImageUrl': self.profile_image_url,
            'emailVerified': bool(self.email_verified),
            'createdAt': _iso(self.created_at),
            **self.subscription_dict(),
        }
