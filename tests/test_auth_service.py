"""
Tests for AuthService
"""

from datetime import timedelta

import pytest

from app.core.exceptions import BadRequestError, ConflictError, UnauthorizedError
from app.core.security import decode_access_token
from app.models.user import User
from app.services.auth_service import MAGIC_LINK_SENT_MESSAGE, RESET_REQUESTED_MESSAGE, AuthService


@pytest.fixture
def service(email_service):
    return AuthService(email_service=email_service)


class TestRegister:
    """Test account registration"""

    def test_register(self, db_session, service, email_service):
        user, token = service.register(db_session, "New@Example.com", "password123", first_name="Ada")

        assert user.email == "new@example.com"
        assert user.tier == "free"
        assert user.password_hash != "password123"
        assert decode_access_token(token)["sub"] == user.id
        email_service.send_welcome.assert_called_once_with("new@example.com", "Ada")

    def test_duplicate_email(self, db_session, service, make_user):
        make_user(email="taken@example.com")

        with pytest.raises(ConflictError):
            service.register(db_session, "taken@example.com", "password123")

    @pytest.mark.parametrize("password", ["short1", "allletters", "12345678"])
    def test_weak_password(self, db_session, service, password):
        with pytest.raises(BadRequestError):
            service.register(db_session, "weak@example.com", password)

    def test_invalid_email(self, db_session, service):
        with pytest.raises(BadRequestError) as exc_info:
            service.register(db_session, "not-an-email", "password123")

        assert exc_info.value.detail == "Invalid email format"

    def test_register_links_guest_premium(self, db_session, service, make_guest, now):
        expiry = now + timedelta(days=30)
        make_guest("guest-reg", tier="premium", subscription_status="active", subscription_expires_at=expiry)

        user, token = service.register(db_session, "g@example.com", "password123", guest_id="guest-reg", now=now)

        assert user.tier == "premium"
        assert user.subscription_expires_at == expiry
        assert decode_access_token(token)["tier"] == "premium"

    def test_register_with_unknown_guest(self, db_session, service):
        user, _ = service.register(db_session, "x@example.com", "password123", guest_id="never-paid")

        assert user.tier == "free"

    def test_welcome_email_failure_is_ignored(self, db_session, service, email_service):
        from app.core.exceptions import EmailDeliveryError
        email_service.send_welcome.side_effect = EmailDeliveryError("down")

        user, _ = service.register(db_session, "ok@example.com", "password123")

        assert db_session.query(User).filter(User.id == user.id).first() is not None


class TestLogin:
    """Test password login"""

    def test_login(self, db_session, service, make_user):
        user = make_user(email="me@example.com", password="password123")

        logged_in, token = service.login(db_session, "ME@example.com", "password123")

        assert logged_in.id == user.id
        assert decode_access_token(token)["email"] == "me@example.com"

    def test_wrong_password(self, db_session, service, make_user):
        make_user(email="me@example.com", password="password123")

        with pytest.raises(UnauthorizedError) as exc_info:
            service.login(db_session, "me@example.com", "wrong-password1")

        assert exc_info.value.detail == "Invalid email or password"

    def test_unknown_email(self, db_session, service):
        with pytest.raises(UnauthorizedError):
            service.login(db_session, "ghost@example.com", "password123")


class TestPasswordReset:
    """Test the forgot/reset password flow"""

    def test_reset_flow(self, db_session, service, email_service, make_user, now):
        user = make_user(email="me@example.com", password="password123")

        message = service.forgot_password(db_session, "me@example.com", now=now)
        token = user.reset_token
        service.reset_password(db_session, token, "newpassword456", now=now + timedelta(minutes=10))

        assert message == RESET_REQUESTED_MESSAGE
        email_service.send_password_reset.assert_called_once_with("me@example.com", token)
        assert user.reset_token is None
        service.login(db_session, "me@example.com", "newpassword456")

    def test_unknown_email_same_message(self, db_session, service, email_service):
        assert service.forgot_password(db_session, "ghost@example.com") == RESET_REQUESTED_MESSAGE
        email_service.send_password_reset.assert_not_called()

    def test_expired_reset_token(self, db_session, service, make_user, now):
        user = make_user(email="me@example.com")
        service.forgot_password(db_session, "me@example.com", now=now)

        with pytest.raises(BadRequestError):
            service.reset_password(db_session, user.reset_token, "newpassword456", now=now + timedelta(hours=2))

    def test_reset_rejects_weak_password(self, db_session, service, make_user, now):
        user = make_user(email="me@example.com")
        service.forgot_password(db_session, "me@example.com", now=now)

        with pytest.raises(BadRequestError):
            service.reset_password(db_session, user.reset_token, "weak", now=now)


class TestMagicLink:
    """Test magic-link sign-in"""

    def test_free_user_gets_no_link(self, db_session, service, email_service, make_user, now):
        user = make_user(email="free@example.com")

        assert service.send_magic_link(db_session, "free@example.com", now=now) == MAGIC_LINK_SENT_MESSAGE
        assert user.magic_link_token is None
        email_service.send_magic_link.assert_not_called()

    def test_premium_user_round_trip(self, db_session, service, email_service, make_user, now):
        user = make_user(email="prem@example.com", tier="premium", subscription_status="active",
                         subscription_expires_at=now + timedelta(days=30))

        service.send_magic_link(db_session, "prem@example.com", now=now)
        token = user.magic_link_token
        result = service.verify_magic_link(db_session, token, now=now + timedelta(minutes=5))

        email_service.send_magic_link.assert_called_once()
        assert result["user"]["id"] == user.id
        assert decode_access_token(result["token"])["sub"] == user.id
        with pytest.raises(BadRequestError):
            service.verify_magic_link(db_session, token, now=now)

    def test_guest_premium_link(self, db_session, service, make_guest, now):
        guest = make_guest("guest-m", email="guest@example.com", tier="premium", subscription_status="active",
                           subscription_expires_at=now + timedelta(days=30))

        service.send_magic_link(db_session, "guest@example.com", now=now)
        result = service.verify_magic_link(db_session, guest.magic_link_token, now=now)

        assert result == {
            "guestPremium": {
                "guestId": "guest-m",
                "email": "guest@example.com",
                "tier": "premium",
                "subscriptionStatus": "active",
            }
        }

    def test_expired_link(self, db_session, service, make_user, now):
        user = make_user(email="prem@example.com", tier="premium", subscription_status="active",
                         subscription_expires_at=now + timedelta(days=30))
        service.send_magic_link(db_session, "prem@example.com", now=now)

        with pytest.raises(BadRequestError):
            service.verify_magic_link(db_session, user.magic_link_token, now=now + timedelta(hours=2))


class TestCurrentUser:
    """Test the signed-in user read"""

    def test_lazy_expiry(self, db_session, service, make_user, now):
        user = make_user(tier="premium", subscription_status="active",
                         subscription_expires_at=now - timedelta(days=1))

        loaded, info = service.current_user(db_session, user.id, now=now)

        assert loaded.tier == "free"
        assert info.status == "expired"
        assert info.is_active is False
