"""
Pytest configuration for testing
"""

import os
from datetime import datetime
from unittest.mock import MagicMock

import pytest

# Set up environment variables for testing before any imports
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-jwt-secret-key-for-testing-only-0123456789"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SWEEP_ENABLED"] = "false"
os.environ["EMAIL_BACKEND"] = "log"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_fake"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_fake"
os.environ["CONTACT_INBOX"] = "support@quizbanner.test"


@pytest.fixture
def now():
    """Fixed clock for time-dependent service calls"""
    return datetime(2025, 3, 15, 12, 0, 0)


@pytest.fixture(scope="function")
def database():
    """Fresh in-memory database per test"""
    # Import after env vars are set
    from app.core.database import Database

    database = Database("sqlite://")
    database.create_all()

    yield database

    database.drop_all()
    database.dispose()


@pytest.fixture(scope="function")
def db_session(database):
    """Create a new database session for a test"""
    session = database.session()

    yield session

    session.rollback()
    session.close()


@pytest.fixture
def email_service():
    """Email collaborator that records calls instead of sending"""
    from app.services.email_service import EmailService

    return MagicMock(spec=EmailService)


@pytest.fixture
def app(database):
    from app.main import create_app

    return create_app(database=database, start_scheduler=False)


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)


@pytest.fixture
def make_user(db_session):
    """Factory inserting a user row"""
    from app.models.user import User
    from app.core.security import hash_password

    def _make_user(email="user@example.com", password="password123", **fields):
        user = User(email=email, password_hash=hash_password(password), **fields)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_guest(db_session):
    """Factory inserting a guest premium row"""
    from app.models.guest_premium import GuestPremium

    def _make_guest(guest_id="guest-1", **fields):
        guest = GuestPremium(guest_id=guest_id, **fields)
        db_session.add(guest)
        db_session.commit()
        db_session.refresh(guest)
        return guest

    return _make_guest


@pytest.fixture
def auth_headers():
    """Bearer headers for a user"""
    from app.core.security import create_access_token

    def _auth_headers(user, tier="free"):
        token = create_access_token(user.id, user.email, tier)
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
