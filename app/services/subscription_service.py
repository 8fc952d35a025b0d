import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ConflictError, NotFoundError
from app.models.guest_premium import GuestPremium
from app.models.subscription import SubscriptionStatus, Tier
from app.models.user import User

logger = logging.getLogger(__name__)

Account = Union[User, GuestPremium]

# Statuses that still grant premium until the expiry date passes
ENTITLED_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.CANCELLED.value)


class SubscriptionInfo(BaseModel):
    """Computed subscription state of one account"""
    model_config = ConfigDict(populate_by_name=True)

    is_active: bool = Field(alias="isActive")
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")
    days_until_expiry: Optional[int] = Field(default=None, alias="daysUntilExpiry")
    status: str
    needs_renewal: bool = Field(alias="needsRenewal")

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def subscription_term() -> timedelta:
    return timedelta(days=settings.subscription_term_days)


def compute_subscription_info(
    expires_at: Optional[datetime],
    status: Optional[str],
    now: datetime,
) -> SubscriptionInfo:
    """Pure function of (expires_at, status, now)"""
    status = status or SubscriptionStatus.NONE.value
    if expires_at is None:
        return SubscriptionInfo(
            is_active=False,
            expires_at=None,
            days_until_expiry=None,
            status=status,
            needs_renewal=False,
        )

    days_until_expiry = math.ceil((expires_at - now).total_seconds() / 86400)
    return SubscriptionInfo(
        is_active=expires_at > now and status == SubscriptionStatus.ACTIVE.value,
        expires_at=expires_at,
        days_until_expiry=days_until_expiry,
        status=status,
        needs_renewal=0 < days_until_expiry <= settings.renewal_reminder_days,
    )


def is_entitled(account: Optional[Account], now: datetime) -> bool:
    """Premium access holds while unexpired and active, or cancelled but still inside the paid term"""
    if account is None or account.subscription_expires_at is None:
        return False
    return (
        account.subscription_status in ENTITLED_STATUSES
        and account.subscription_expires_at > now
    )


def effective_tier(account: Optional[Account], now: datetime) -> str:
    return Tier.PREMIUM.value if is_entitled(account, now) else Tier.FREE.value


class SubscriptionService:
    """
    Subscription lifecycle shared by users and guests.

        none -> active -> cancelled -> expired
                       -> expired -> (activate again)

    Every transition is a single-row update committed on its own. Concurrent
    transitions on one account are last-write-wins.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    # Lookups

    def get_account(self, db: Session, principal_id: str) -> Optional[Account]:
        """Resolve a principal id to its user row, else its guest premium row"""
        user = db.query(User).filter(User.id == principal_id).first()
        if user:
            return user
        return db.query(GuestPremium).filter(GuestPremium.guest_id == principal_id).first()

    def get_guest_account(self, db: Session, guest_id: str) -> Optional[GuestPremium]:
        """Guest premium row only; never resolves to a registered user"""
        return db.query(GuestPremium).filter(GuestPremium.guest_id == guest_id).first()

    def require_account(self, db: Session, principal_id: str) -> Account:
        account = self.get_account(db, principal_id)
        if not account:
            raise NotFoundError("Account")
        return account

    def find_by_provider(
        self,
        db: Session,
        payment_intent_id: str = None,
        customer_id: str = None,
        subscription_id: str = None,
    ) -> Optional[Account]:
        """Find the account linked to a provider id, users first"""
        for model in (User, GuestPremium):
            query = db.query(model)
            if payment_intent_id:
                account = query.filter(model.stripe_payment_intent_id == payment_intent_id).first()
            elif subscription_id:
                account = query.filter(model.stripe_subscription_id == subscription_id).first()
            elif customer_id:
                account = query.filter(model.stripe_customer_id == customer_id).first()
            else:
                return None
            if account:
                return account
        return None

    @staticmethod
    def principal_id_of(account: Account) -> str:
        return account.guest_id if isinstance(account, GuestPremium) else account.id

    # Reads

    def check_status(self, db: Session, principal_id: str, now: datetime = None) -> SubscriptionInfo:
        """Single source of truth for whether a principal is currently entitled"""
        now = now or datetime.utcnow()
        account = self.get_account(db, principal_id)
        if not account:
            return compute_subscription_info(None, SubscriptionStatus.NONE.value, now)
        return compute_subscription_info(
            account.subscription_expires_at,
            account.subscription_status,
            now,
        )

    def refresh(self, db: Session, account: Account, now: datetime = None) -> SubscriptionInfo:
        """Lazily expire an account whose cached premium tier has lapsed"""
        now = now or datetime.utcnow()
        if account.tier == Tier.PREMIUM.value and not is_entitled(account, now):
            self.logger.info(f"refresh: Lazy expiry - principal: {self.principal_id_of(account)}")
            self._expire_account(db, account, now)
        return compute_subscription_info(
            account.subscription_expires_at,
            account.subscription_status,
            now,
        )

    # Transitions

    def activate(
        self,
        db: Session,
        principal_id: str,
        provider_subscription_id: str,
        provider_customer_id: str = None,
        now: datetime = None,
    ) -> Account:
        """Start a fresh premium term from now"""
        self.logger.info(f"activate: Entry - principal: {principal_id}")
        now = now or datetime.utcnow()

        try:
            account = self.require_account(db, principal_id)
            self._apply_activation(account, provider_subscription_id, provider_customer_id, now)
            db.commit()
            db.refresh(account)
            self.logger.info(
                f"activate: Success - principal: {principal_id}, expires: {account.subscription_expires_at.isoformat()}")
            return account
        except Exception as e:
            db.rollback()
            self.logger.error(f"activate: Failure - {e}")
            raise

    def activate_guest(
        self,
        db: Session,
        guest_id: str,
        payment_intent_id: str,
        email: str = None,
        customer_id: str = None,
        now: datetime = None,
    ) -> GuestPremium:
        """Create the guest's premium record if needed, then activate it"""
        self.logger.info(f"activate_guest: Entry - guest: {guest_id}")
        now = now or datetime.utcnow()

        try:
            guest = db.query(GuestPremium).filter(GuestPremium.guest_id == guest_id).first()
            if not guest:
                guest = GuestPremium(guest_id=guest_id, email=email)
                db.add(guest)
            elif email and not guest.email:
                guest.email = email

            guest.stripe_payment_intent_id = payment_intent_id
            self._apply_activation(guest, payment_intent_id, customer_id, now)
            db.commit()
            db.refresh(guest)
            self.logger.info(f"activate_guest: Success - guest: {guest_id}")
            return guest
        except Exception as e:
            db.rollback()
            self.logger.error(f"activate_guest: Failure - {e}")
            raise

    def renew(self, db: Session, principal_id: str, now: datetime = None) -> Account:
        """Extend by one term from the later of the current expiry and now"""
        self.logger.info(f"renew: Entry - principal: {principal_id}")
        now = now or datetime.utcnow()

        try:
            account = self.require_account(db, principal_id)
            current = account.subscription_expires_at or now
            account.subscription_expires_at = max(current, now) + subscription_term()
            account.subscription_status = SubscriptionStatus.ACTIVE.value
            account.tier = Tier.PREMIUM.value
            account.last_payment_date = now
            db.commit()
            db.refresh(account)
            self.logger.info(
                f"renew: Success - principal: {principal_id}, expires: {account.subscription_expires_at.isoformat()}")
            return account
        except Exception as e:
            db.rollback()
            self.logger.error(f"renew: Failure - {e}")
            raise

    def apply_provider_period(
        self,
        db: Session,
        principal_id: str,
        period_end: datetime,
        provider_subscription_id: str,
        now: datetime = None,
    ) -> Account:
        """Provider reports an active subscription with an explicit period end"""
        self.logger.info(f"apply_provider_period: Entry - principal: {principal_id}")
        now = now or datetime.utcnow()

        try:
            account = self.require_account(db, principal_id)
            account.tier = Tier.PREMIUM.value
            account.subscription_status = SubscriptionStatus.ACTIVE.value
            account.subscription_expires_at = period_end
            account.stripe_subscription_id = provider_subscription_id
            account.last_payment_date = now
            db.commit()
            db.refresh(account)
            self.logger.info(
                f"apply_provider_period: Success - principal: {principal_id}, expires: {period_end.isoformat()}")
            return account
        except Exception as e:
            db.rollback()
            self.logger.error(f"apply_provider_period: Failure - {e}")
            raise

    def cancel(self, db: Session, principal_id: str) -> Account:
        """Stop renewal; tier and expiry are untouched so access continues until expiry"""
        self.logger.info(f"cancel: Entry - principal: {principal_id}")

        try:
            account = self.require_account(db, principal_id)
            if account.subscription_status == SubscriptionStatus.CANCELLED.value:
                self.logger.info(f"cancel: Already cancelled - principal: {principal_id}")
                return account
            if account.subscription_status != SubscriptionStatus.ACTIVE.value:
                raise NotFoundError("Active subscription")

            account.subscription_status = SubscriptionStatus.CANCELLED.value
            db.commit()
            db.refresh(account)
            self.logger.info(f"cancel: Success - principal: {principal_id}")
            return account
        except NotFoundError:
            raise
        except Exception as e:
            db.rollback()
            self.logger.error(f"cancel: Failure - {e}")
            raise

    def expire(self, db: Session, principal_id: str, now: datetime = None) -> Account:
        """Downgrade to free. Idempotent."""
        self.logger.info(f"expire: Entry - principal: {principal_id}")
        now = now or datetime.utcnow()

        try:
            account = self.require_account(db, principal_id)
            self._expire_account(db, account, now)
            self.logger.info(f"expire: Success - principal: {principal_id}")
            return account
        except NotFoundError:
            raise
        except Exception as e:
            db.rollback()
            self.logger.error(f"expire: Failure - {e}")
            raise

    def link_guest_to_user(self, db: Session, guest_id: str, user_id: str, now: datetime = None) -> User:
        """
        Carry a guest's premium state onto a registered user.

        One-way and idempotent. The user keeps whichever expiry is later, so
        linking never shortens an existing subscription.
        """
        self.logger.info(f"link_guest_to_user: Entry - guest: {guest_id}, user: {user_id}")
        now = now or datetime.utcnow()

        try:
            guest = db.query(GuestPremium).filter(GuestPremium.guest_id == guest_id).first()
            if not guest:
                raise NotFoundError("Guest premium")
            if guest.linked_user_id and guest.linked_user_id != user_id:
                raise ConflictError("Guest premium is already linked to another account")

            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                raise NotFoundError("User")

            if guest.linked_user_id == user_id:
                self.logger.info(f"link_guest_to_user: Already linked - guest: {guest_id}, user: {user_id}")
                return user

            guest_expiry = guest.subscription_expires_at
            guest_is_better = (
                is_entitled(guest, now)
                and (user.subscription_expires_at is None or guest_expiry > user.subscription_expires_at)
            )
            if guest_is_better:
                user.subscription_expires_at = guest_expiry
                user.subscription_status = guest.subscription_status
                user.stripe_payment_intent_id = guest.stripe_payment_intent_id
                if guest.stripe_customer_id and not user.stripe_customer_id:
                    user.stripe_customer_id = guest.stripe_customer_id
                user.last_payment_date = guest.last_payment_date or user.last_payment_date
                user.upgraded_at = user.upgraded_at or guest.upgraded_at or now
                user.tier = Tier.PREMIUM.value

            guest.linked_user_id = user_id
            db.commit()
            db.refresh(user)
            self.logger.info(
                f"link_guest_to_user: Success - guest: {guest_id}, user: {user_id}, copied: {guest_is_better}")
            return user
        except (NotFoundError, ConflictError):
            raise
        except Exception as e:
            db.rollback()
            self.logger.error(f"link_guest_to_user: Failure - {e}")
            raise

    # Sweep queries

    def find_expired(self, db: Session, now: datetime = None) -> List[Account]:
        """Accounts whose paid term has passed but are not yet marked expired"""
        now = now or datetime.utcnow()
        accounts: List[Account] = []
        for model in (User, GuestPremium):
            accounts.extend(
                db.query(model).filter(
                    model.subscription_expires_at.isnot(None),
                    model.subscription_expires_at < now,
                    or_(
                        model.subscription_status == SubscriptionStatus.ACTIVE.value,
                        model.subscription_status == SubscriptionStatus.CANCELLED.value,
                    ),
                ).all()
            )
        return accounts

    def find_renewal_candidates(self, db: Session, now: datetime = None, days: int = None) -> List[Account]:
        """Active accounts expiring within the reminder window"""
        now = now or datetime.utcnow()
        window_end = now + timedelta(days=days if days is not None else settings.renewal_reminder_days)
        accounts: List[Account] = []
        for model in (User, GuestPremium):
            accounts.extend(
                db.query(model).filter(
                    model.subscription_expires_at.isnot(None),
                    model.subscription_expires_at > now,
                    model.subscription_expires_at <= window_end,
                    model.subscription_status == SubscriptionStatus.ACTIVE.value,
                ).all()
            )
        return accounts

    # Helpers

    def _apply_activation(
        self,
        account: Account,
        provider_subscription_id: str,
        provider_customer_id: Optional[str],
        now: datetime,
    ):
        account.tier = Tier.PREMIUM.value
        account.subscription_status = SubscriptionStatus.ACTIVE.value
        account.subscription_expires_at = now + subscription_term()
        account.stripe_subscription_id = provider_subscription_id
        if provider_customer_id:
            account.stripe_customer_id = provider_customer_id
        account.last_payment_date = now
        account.upgraded_at = now

    def _expire_account(self, db: Session, account: Account, now: datetime):
        account.tier = Tier.FREE.value
        account.subscription_status = SubscriptionStatus.EXPIRED.value
        account.updated_at = now
        db.commit()
        db.refresh(account)
