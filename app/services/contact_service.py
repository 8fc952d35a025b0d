from sqlalchemy.orm import Session
from app.models.contact_message import ContactMessage
from app.core.config import settings
from app.core.exceptions import EmailDeliveryError
from app.services.email_service import EmailService
import logging

logger = logging.getLogger(__name__)


class ContactService:
    def __init__(self, email_service: EmailService = None):
        self.email_service = email_service or EmailService()
        self.logger = logging.getLogger(__name__)

    def submit_message(self, db: Session, name: str, email: str, message: str) -> ContactMessage:
        """Store a contact message and notify the inbox; notification failures are only logged"""
        self.logger.info(f"submit_message: Entry - from: {email}")

        try:
            contact = ContactMessage(name=name, email=email, message=message, status="new")
            db.add(contact)
            db.commit()
            db.refresh(contact)
        except Exception as e:
            db.rollback()
            self.logger.error(f"submit_message: Failure - {e}")
            raise

        if settings.contact_inbox:
            try:
                self.email_service.send_contact_notification(settings.contact_inbox, name, email, message)
            except EmailDeliveryError as e:
                self.logger.warning(f"submit_message: Notification failed - {e}")

        self.logger.info(f"submit_message: Success - message: {contact.id}")
        return contact
