from sqlalchemy import Column, String, DateTime
from app.core.database import Base
from datetime import datetime


class PaymentEvent(Base):
    """Provider events already applied, keyed by the provider's event id"""

    __tablename__ = "payment_events"

    id = Column(String, primary_key=True, index=True)  # Stripe event id or 'payment_intent:<id>'
    event_type = Column(String, nullable=False, index=True)
    principal_id = Column(String, nullable=True, index=True)
    action = Column(String, nullable=True)
    processed_at = Column(DateTime, default=datetime.utcnow, index=True)
