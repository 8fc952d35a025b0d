from sqlalchemy.orm import Session
from app.models.user import User
from app.models.guest_premium import GuestPremium
from app.core.config import settings
from app.core.exceptions import (
    BadRequestError,
    ConflictError,
    EmailDeliveryError,
    NotFoundError,
    UnauthorizedError,
)
from app.core.security import (
    create_access_token,
    generate_one_time_token,
    get_password_validation_error,
    hash_password,
    is_valid_email,
    verify_password,
)
from app.services import tier_policy
from app.services.email_service import EmailService
from app.services.subscription_service import SubscriptionInfo, SubscriptionService, effective_tier
from datetime import datetime, timedelta
from typing import Optional, Tuple
import logging

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = "If an account exists with that email, a password reset link has been sent."
MAGIC_LINK_SENT_MESSAGE = "If a premium account exists with that email, a magic link has been sent."


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class AuthService:
    """Email/password accounts, password reset and magic-link sign-in"""

    def __init__(self, email_service: EmailService = None, subscription_service: SubscriptionService = None):
        self.email_service = email_service or EmailService()
        self.subscription_service = subscription_service or SubscriptionService()
        self.logger = logging.getLogger(__name__)

    def issue_token(self, user: User, now: datetime = None) -> str:
        now = now or datetime.utcnow()
        return create_access_token(user.id, user.email, effective_tier(user, now))

    def register(
        self,
        db: Session,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        guest_id: Optional[str] = None,
        now: datetime = None,
    ) -> Tuple[User, str]:
        email = _normalize_email(email)
        self.logger.info(f"register: Entry - email: {email}, guest: {guest_id}")

        if not is_valid_email(email):
            raise BadRequestError("Invalid email format")
        password_error = get_password_validation_error(password)
        if password_error:
            raise BadRequestError(password_error)
        if db.query(User).filter(User.email == email).first():
            raise ConflictError("Email already registered")

        try:
            user = User(
                email=email,
                password_hash=hash_password(password),
                first_name=first_name,
                last_name=last_name,
            )
            db.add(user)
            db.commit()
            db.refresh(user)
        except Exception as e:
            db.rollback()
            self.logger.error(f"register: Failure - {e}")
            raise

        if guest_id:
            try:
                user = self.subscription_service.link_guest_to_user(db, guest_id, user.id, now=now)
            except NotFoundError:
                self.logger.info(f"register: No guest premium to link - guest: {guest_id}")
            except ConflictError as e:
                self.logger.warning(f"register: Guest link skipped - {e.detail}")

        try:
            self.email_service.send_welcome(email, first_name or "")
        except EmailDeliveryError as e:
            self.logger.warning(f"register: Welcome email failed - {e}")

        self.logger.info(f"register: Success - user: {user.id}")
        return user, self.issue_token(user, now)

    def login(self, db: Session, email: str, password: str, now: datetime = None) -> Tuple[User, str]:
        email = _normalize_email(email)
        self.logger.info(f"login: Entry - email: {email}")

        user = db.query(User).filter(User.email == email).first()
        if not user or not verify_password(password, user.password_hash):
            self.logger.info(f"login: Rejected - email: {email}")
            raise UnauthorizedError("Invalid email or password")

        self.subscription_service.refresh(db, user, now)
        self.logger.info(f"login: Success - user: {user.id}")
        return user, self.issue_token(user, now)

    def current_user(self, db: Session, user_id: str, now: datetime = None) -> Tuple[User, SubscriptionInfo]:
        """Load the user and apply lazy expiry before reporting subscription info"""
        self.logger.info(f"current_user: Entry - user: {user_id}")

        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User")
        info = self.subscription_service.refresh(db, user, now)

        self.logger.info(f"current_user: Success - user: {user_id}, tier: {user.tier}")
        return user, info

    def forgot_password(self, db: Session, email: str, now: datetime = None) -> str:
        """Store a reset token and email it. The reply never reveals whether the account exists."""
        email = _normalize_email(email)
        now = now or datetime.utcnow()
        self.logger.info(f"forgot_password: Entry - email: {email}")

        user = db.query(User).filter(User.email == email).first()
        if not user:
            self.logger.info(f"forgot_password: Unknown email - {email}")
            return RESET_REQUESTED_MESSAGE

        try:
            user.reset_token = generate_one_time_token()
            user.reset_token_expires = now + timedelta(minutes=settings.reset_token_expire_minutes)
            db.commit()
        except Exception as e:
            db.rollback()
            self.logger.error(f"forgot_password: Failure - {e}")
            return RESET_REQUESTED_MESSAGE

        try:
            self.email_service.send_password_reset(email, user.reset_token)
        except EmailDeliveryError as e:
            self.logger.warning(f"forgot_password: Email failed - {e}")

        self.logger.info(f"forgot_password: Success - user: {user.id}")
        return RESET_REQUESTED_MESSAGE

    def reset_password(self, db: Session, token: str, password: str, now: datetime = None) -> None:
        now = now or datetime.utcnow()
        self.logger.info("reset_password: Entry")

        password_error = get_password_validation_error(password)
        if password_error:
            raise BadRequestError(password_error)

        user = db.query(User).filter(User.reset_token == token).first()
        if not user or not user.reset_token_expires or user.reset_token_expires <= now:
            raise BadRequestError("Invalid or expired reset token")

        try:
            user.password_hash = hash_password(password)
            user.reset_token = None
            user.reset_token_expires = None
            db.commit()
            self.logger.info(f"reset_password: Success - user: {user.id}")
        except Exception as e:
            db.rollback()
            self.logger.error(f"reset_password: Failure - {e}")
            raise

    def send_magic_link(self, db: Session, email: str, now: datetime = None) -> str:
        """Email a one-hour sign-in link to a user, else to a guest premium record with that email"""
        email = _normalize_email(email)
        now = now or datetime.utcnow()
        self.logger.info(f"send_magic_link: Entry - email: {email}")

        account = db.query(User).filter(User.email == email).first()
        if account is None:
            account = db.query(GuestPremium).filter(GuestPremium.email == email).first()
        if account is None:
            self.logger.info(f"send_magic_link: Unknown email - {email}")
            return MAGIC_LINK_SENT_MESSAGE
        if not tier_policy.has_feature(effective_tier(account, now), "magic_link_login"):
            self.logger.info(f"send_magic_link: Not premium - {email}")
            return MAGIC_LINK_SENT_MESSAGE

        try:
            account.magic_link_token = generate_one_time_token()
            account.magic_link_expires = now + timedelta(minutes=settings.magic_link_expire_minutes)
            db.commit()
        except Exception as e:
            db.rollback()
            self.logger.error(f"send_magic_link: Failure - {e}")
            raise

        try:
            self.email_service.send_magic_link(email, account.magic_link_token, is_premium=True)
        except EmailDeliveryError as e:
            self.logger.warning(f"send_magic_link: Email failed - {e}")

        self.logger.info(f"send_magic_link: Success - email: {email}")
        return MAGIC_LINK_SENT_MESSAGE

    def verify_magic_link(self, db: Session, token: str, now: datetime = None) -> dict:
        """Consume a magic-link token. Users get a session token, guests get their premium record."""
        now = now or datetime.utcnow()
        self.logger.info("verify_magic_link: Entry")

        for model in (User, GuestPremium):
            account = db.query(model).filter(model.magic_link_token == token).first()
            if account is None:
                continue
            if not account.magic_link_expires or account.magic_link_expires <= now:
                break

            try:
                account.magic_link_token = None
                account.magic_link_expires = None
                db.commit()
                db.refresh(account)
            except Exception as e:
                db.rollback()
                self.logger.error(f"verify_magic_link: Failure - {e}")
                raise

            if isinstance(account, User):
                self.subscription_service.refresh(db, account, now)
                self.logger.info(f"verify_magic_link: Success - user: {account.id}")
                return {'user': account.to_dict(), 'token': self.issue_token(account, now)}

            self.logger.info(f"verify_magic_link: Success - guest: {account.guest_id}")
            return {
                'guestPremium': {
                    'guestId': account.guest_id,
                    'email': account.email,
                    'tier': effective_tier(account, now),
                    'subscriptionStatus': account.subscription_status,
                }
            }

        self.logger.info("verify_magic_link: Rejected - unknown or expired token")
        raise BadRequestError("Invalid or expired magic link")
