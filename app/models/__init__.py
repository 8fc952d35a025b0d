from app.models.user import User
from app.models.guest_premium import GuestPremium
from app.models.subscription import SubscriptionMixin, SubscriptionStatus, Tier
from app.models.question import Question
from app.models.preferences import Preferences
from app.models.template import Template
from app.models.study_session import StudySession
from app.models.contact_message import ContactMessage
from app.models.payment_event import PaymentEvent

__all__ = ["User", "GuestPremium", "SubscriptionMixin", "SubscriptionStatus", "Tier", "Question", "Preferences", "Template", "StudySession", "ContactMessage", "PaymentEvent"]
