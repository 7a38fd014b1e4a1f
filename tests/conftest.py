import pytest

from app import create_app
from models import db
from models.workshop import Workshop
from security.password import hash_password

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "JWT_SECRET_KEY": "test-jwt-secret-key-that-is-long-enough-for-hs256",
    "JWT_ISSUER": "autoclient-tests",
    "SMTP_HOST": None,
    "LOG_LEVEL": "WARNING",
}

BOB_PASSWORD = "Bob-workshop-pass1"


@pytest.fixture
def app():
    app = create_app(TEST_CONFIG)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    # cookies are passed explicitly: the device cookie is Secure and the test client speaks http
    return app.test_client(use_cookies=False)


def make_workshop(username="bob", password=BOB_PASSWORD, subdomain=None, email=None):
    workshop = Workshop(
        workshop_name=f"{username.title()}'s Garage",
        username=username,
        email=email or f"{username}@example.com",
        phone="555-0100",
        subdomain=subdomain or username,
        password_hash=hash_password(password),
    )
    db.session.add(workshop)
    db.session.commit()
    return workshop


@pytest.fixture
def workshop(app):
    return make_workshop()


@pytest.fixture
def outbox(monkeypatch):
    """Captures OTP emails instead of talking to SMTP."""
    sent = []

    def fake_send(to_email, code, workshop_name):
        sent.append({"to": to_email, "code": code, "workshop_name": workshop_name})

    monkeypatch.setattr("security.login_flow.send_otp_email", fake_send)
    return sent


@pytest.fixture
def workshop_factory(app):
    return make_workshop


@pytest.fixture
def password():
    return BOB_PASSWORD
