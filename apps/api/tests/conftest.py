"""
Pytest configuration and fixtures

Tests run against a single in-memory SQLite database. The schema is
created fresh for every test and dropped afterwards, so nothing leaks
between tests.
"""
import os
import sys

# Must be set before core.config is imported anywhere.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-at-least-32-characters")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("MP_WEBHOOK_SIGNATURE_REQUIRED", "true")

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from core.database import Base, SessionLocal, engine
from core.security import create_access_token, get_password_hash
import models  # noqa: F401
from models import User, UserProfile


@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    from main import app

    return TestClient(app)


@pytest.fixture
def test_user(db_session):
    user = User(
        email=f"test_{uuid4().hex[:8]}@example.com",
        password_hash=get_password_hash("Treino2024x"),
        display_name="Test User",
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def _make_profile(db_session, user, **overrides):
    values = dict(
        user_id=user.id,
        weight_kg=75.0,
        height_cm=175.0,
        age_years=28,
        sex="male",
        goal="hypertrophy",
        training_days=4,
        equipment="full_gym",
        weekly_budget=300.0,
        is_premium=False,
    )
    values.update(overrides)
    profile = UserProfile(**values)
    db_session.add(profile)
    db_session.commit()
    db_session.refresh(profile)
    return profile


@pytest.fixture
def make_profile(db_session):
    """Factory: make_profile(user, **overrides) -> UserProfile."""
    return lambda user, **overrides: _make_profile(db_session, user, **overrides)


@pytest.fixture
def test_profile(db_session, test_user):
    return _make_profile(db_session, test_user)


@pytest.fixture
def auth_headers(test_user):
    token = create_access_token({"sub": str(test_user.id)})
    return {"Authorization": f"Bearer {token}"}
