"""
Pytest fixtures for storefront backend tests.

Provides the application on an in-memory database, a recording mail
transport, account fixtures and authentication helpers.
"""

import re

import pytest
from storefront import create_app
from storefront.config import TestConfig
from storefront.extensions import db
from storefront.models import User, ROLE_ADMIN, ROLE_USER
from storefront.services import auth_service, secret_service
from storefront.time_utils import utcnow

PASSWORD = "Password123!"


class RecordingTransport:
    """Mail transport that keeps every message instead of sending it."""

    def __init__(self):
        self.messages = []
        self.fail_with = None

    def send(self, to, subject, html):
        if self.fail_with is not None:
            raise self.fail_with
        self.messages.append({"to": to, "subject": subject, "html": html})

    def last_to(self, email):
        for message in reversed(self.messages):
            if message["to"] == email:
                return message
        raise AssertionError(f"No email sent to {email}")

    def link_token(self, email):
        """64-hex token from the last link mailed to `email`."""
        match = re.search(r"token=([0-9a-f]{64})", self.last_to(email)["html"])
        assert match, "no token link in email"
        return match.group(1)

    def otp_code(self, email):
        match = re.search(r">(\d{6})</h1>", self.last_to(email)["html"])
        assert match, "no code in email"
        return match.group(1)


def _test_config() -> dict:
    return {key: getattr(TestConfig, key) for key in dir(TestConfig) if key.isupper()}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(_test_config())

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """Cost 4 keeps the suite fast; production code uses 12."""
    monkeypatch.setattr(auth_service, "BCRYPT_ROUNDS", 4)
    monkeypatch.setattr(secret_service, "BCRYPT_ROUNDS", 4)


@pytest.fixture(scope='function')
def mailbox(app):
    transport = RecordingTransport()
    app.config["MAIL_TRANSPORT"] = transport
    yield transport
    app.config["MAIL_TRANSPORT"] = None


def make_user(email, role=ROLE_USER, verified=True, primary=False, password=PASSWORD):
    user = User(
        email=email,
        name=email.split("@")[0],
        password_hash=auth_service.hash_password(password),
        role=role,
        is_primary_admin=primary,
        email_verified_at=utcnow() if verified else None,
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def customer(db_session):
    """Verified customer account."""
    return make_user("user@example.com")


@pytest.fixture(scope='function')
def unverified_customer(db_session):
    return make_user("new@example.com", verified=False)


@pytest.fixture(scope='function')
def admin_user(db_session, app):
    """The designated admin (ADMIN role and ADMIN_EMAIL)."""
    return make_user(app.config["ADMIN_EMAIL"], role=ROLE_ADMIN, primary=True)


@pytest.fixture(scope='function')
def other_admin(db_session):
    """ADMIN role but not the configured admin email."""
    return make_user("second-admin@example.com", role=ROLE_ADMIN)


def reload(user):
    """Re-read a user after requests changed it in another session."""
    db.session.expire_all()
    return db.session.get(User, user.id)


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def customer_headers(client, customer):
    return auth_headers(get_auth_token(client, customer.email))


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    """Signed-in designated admin, panel NOT yet verified."""
    return auth_headers(get_auth_token(client, admin_user.email))


@pytest.fixture(scope='function')
def verified_admin_headers(client, admin_user, admin_headers, mailbox):
    """Signed-in designated admin with the panel verified."""
    resp = client.post('/api/auth/admin-panel-verify/request', headers=admin_headers)
    assert resp.status_code == 200, resp.json
    token = mailbox.link_token(admin_user.email)
    resp = client.post('/api/auth/admin-panel-verify', json={'token': token}, headers=admin_headers)
    assert resp.status_code == 200, resp.json
    return admin_headers
