"""Shared pytest fixtures: application, database and authenticated profiles."""
from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import text
from werkzeug.security import generate_password_hash

# Ensure the project root is available on sys.path so tests can import the app package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from salonbook import create_app  # noqa: E402
from salonbook.extensions import db  # noqa: E402
from salonbook.models import AuthAccount, Profile, Salon  # noqa: E402
from salonbook.routes import _build_token  # noqa: E402

TEST_CONFIG = {
    "TESTING": True,
    "SECRET_KEY": "test-secret",
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "RESEND_API_KEY": "re_test_key",
    "CELERY": {
        "broker_url": "memory://",
        "task_always_eager": True,
        "task_ignore_result": True,
    },
}

PASSWORD = "secret-password"

# 2024-06-01 is a Saturday.
SATURDAY_HOURS = {
    "samedi": {
        "isOpen": True,
        "morning": {"start": "09:00", "end": "10:30"},
    },
    "dimanche": "closed",
}

PRICING = {
    "Coupe": {
        "Femme": {"price": "25 €", "duration": "45 min", "description": ""},
        "Homme": {"price": 18, "duration": "30 min", "description": ""},
    },
    "Couleur": {
        "Balayage": {"price": 30, "duration": "2h", "description": ""},
    },
}


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
    return app.test_client()


@pytest.fixture
def gateway(app):
    return app.extensions["gateway"]


@pytest.fixture
def enforced_foreign_keys(app):
    """Make SQLite check foreign keys the way a server database does."""
    db.session.commit()
    db.session.execute(text("PRAGMA foreign_keys=ON"))
    db.session.commit()
    yield
    db.session.rollback()
    db.session.execute(text("PRAGMA foreign_keys=OFF"))
    db.session.commit()


@pytest.fixture(autouse=True)
def resend_post():
    """Every outbound email call hits this mock instead of the network."""
    response = MagicMock(ok=True, status_code=200)
    response.json.return_value = {"id": "email_123"}
    with patch("salonbook.notifications.requests.post", return_value=response) as mock_post:
        yield mock_post


@pytest.fixture
def make_profile(app):
    counter = {"n": 0}

    def _make(role="client", first_name="Jean", last_name="Dupont", email=None, phone="0600000000"):
        counter["n"] += 1
        profile = Profile(
            first_name=first_name,
            last_name=last_name,
            email=email or f"{role}{counter['n']}@example.com",
            phone=phone,
            role=role,
        )
        db.session.add(profile)
        db.session.flush()
        db.session.add(AuthAccount(
            profile_id=profile.profile_id,
            password_hash=generate_password_hash(PASSWORD),
        ))
        db.session.commit()
        return profile

    return _make


@pytest.fixture
def client_profile(make_profile):
    return make_profile("client", first_name="Alice", last_name="Martin", email="alice@example.com")


@pytest.fixture
def owner(make_profile):
    return make_profile("professional", first_name="Claude", last_name="Bernard", email="claude@example.com")


@pytest.fixture
def admin(make_profile):
    return make_profile("admin", first_name="Ada", last_name="Admin", email="admin@example.com")


@pytest.fixture
def make_salon(app, owner):
    def _make(name="Chez Claude", operating_hours=None, pricing=None, verified=True, **fields):
        salon = Salon(
            owner_id=fields.pop("owner_id", owner.profile_id),
            name=name,
            address="1 rue de la Paix",
            postal_code=fields.pop("postal_code", "75002"),
            city="Paris",
            operating_hours=SATURDAY_HOURS if operating_hours is None else operating_hours,
            pricing=PRICING if pricing is None else pricing,
            is_verified=verified,
            **fields,
        )
        db.session.add(salon)
        db.session.commit()
        return salon

    return _make


@pytest.fixture
def salon(make_salon):
    return make_salon()


@pytest.fixture
def auth_headers(app):
    def _headers(profile):
        token = _build_token({"user_id": profile.profile_id, "role": profile.role})
        return {"Authorization": f"Bearer {token}"}

    return _headers
