"""
Tests for guest premium activation and guest-to-user linking
"""

from datetime import timedelta

import pytest

from app.core.exceptions import ConflictError, NotFoundError
from app.services.subscription_service import SubscriptionService


@pytest.fixture
def service():
    return SubscriptionService()


class TestActivateGuest:
    """Test guest premium records"""

    def test_creates_guest_record(self, db_session, service, now):
        guest = service.activate_guest(db_session, "guest-1", "pi_1", email="g@example.com", now=now)

        assert guest.guest_id == "guest-1"
        assert guest.email == "g@example.com"
        assert guest.tier == "premium"
        assert guest.stripe_payment_intent_id == "pi_1"
        assert guest.subscription_expires_at == now + timedelta(days=365)
        assert service.check_status(db_session, "guest-1", now).is_active is True

    def test_reuses_existing_record(self, db_session, make_guest, service, now):
        make_guest("guest-1", email="old@example.com")

        guest = service.activate_guest(db_session, "guest-1", "pi_2", email="new@example.com", now=now)

        assert guest.email == "old@example.com"
        assert guest.tier == "premium"


class TestLinkGuestToUser:
    """Test one-way linking of guest premium onto an account"""

    def test_link_copies_premium(self, db_session, make_user, make_guest, service, now):
        """Guest expiring in 10 days makes the user premium until then"""
        user = make_user()
        expiry = now + timedelta(days=10)
        make_guest("g1", tier="premium", subscription_status="active",
                   subscription_expires_at=expiry, stripe_payment_intent_id="pi_g1")

        linked = service.link_guest_to_user(db_session, "g1", user.id, now=now)

        assert linked.tier == "premium"
        assert linked.subscription_expires_at == expiry
        assert linked.subscription_status == "active"
        assert linked.stripe_payment_intent_id == "pi_g1"

    def test_link_twice_is_idempotent(self, db_session, make_user, make_guest, service, now):
        user = make_user()
        make_guest("g1", tier="premium", subscription_status="active",
                   subscription_expires_at=now + timedelta(days=10))

        service.link_guest_to_user(db_session, "g1", user.id, now=now)
        first = user.subscription_dict()
        service.link_guest_to_user(db_session, "g1", user.id, now=now)

        assert user.subscription_dict() == first

    def test_link_keeps_later_user_expiry(self, db_session, make_user, make_guest, service, now):
        user_expiry = now + timedelta(days=200)
        user = make_user(tier="premium", subscription_status="active", subscription_expires_at=user_expiry)
        guest = make_guest("g1", tier="premium", subscription_status="active",
                           subscription_expires_at=now + timedelta(days=10))

        service.link_guest_to_user(db_session, "g1", user.id, now=now)

        assert user.subscription_expires_at == user_expiry
        assert guest.linked_user_id == user.id

    def test_link_lapsed_guest_does_not_upgrade(self, db_session, make_user, make_guest, service, now):
        user = make_user()
        guest = make_guest("g1", tier="premium", subscription_status="active",
                           subscription_expires_at=now - timedelta(days=1))

        service.link_guest_to_user(db_session, "g1", user.id, now=now)

        assert user.tier == "free"
        assert guest.linked_user_id == user.id

    def test_link_to_second_user_conflicts(self, db_session, make_user, make_guest, service, now):
        first = make_user(email="first@example.com")
        second = make_user(email="second@example.com")
        make_guest("g1", tier="premium", subscription_status="active",
                   subscription_expires_at=now + timedelta(days=10))
        service.link_guest_to_user(db_session, "g1", first.id, now=now)

        with pytest.raises(ConflictError) as exc_info:
            service.link_guest_to_user(db_session, "g1", second.id, now=now)

        assert exc_info.value.status_code == 409
        assert second.tier == "free"

    def test_link_unknown_guest(self, db_session, make_user, service, now):
        user = make_user()

        with pytest.raises(NotFoundError):
            service.link_guest_to_user(db_session, "nope", user.id, now=now)
