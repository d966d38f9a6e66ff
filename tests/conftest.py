"""
Shared fixtures: a fresh in-memory database per test and helpers for
creating accounts and bearer tokens
"""

import os

# Must be set before the application modules read their configuration
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ.pop("BOOTSTRAP_ADMIN_EMAIL", None)

import asyncio
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from afyalink.database import Base, get_db
from afyalink.models.profile import Profile, UserRole
from afyalink.auth.auth_handler import auth_handler
from afyalink.services.access_gate import AccessGate
from main import app

PASSWORD = "TestPass123!"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()

@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)

@pytest.fixture
def client(db_session):
    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()

@pytest.fixture
def make_user(db_session):
    """Create a profile with the given roles and status; returns the Profile"""
    hashed = auth_handler.get_password_hash(PASSWORD)

    def _make_user(email, roles=(), status="active", full_name="Test User"):
        profile = Profile(email=email, full_name=full_name, status=status, hashed_password=hashed)
        db_session.add(profile)
        db_session.flush()
        for role in roles:
            db_session.add(UserRole(user_id=profile.id, role=role))
        db_session.commit()
        db_session.refresh(profile)
        return profile

    return _make_user

@pytest.fixture
def headers_for():
    """Bearer headers for a profile, as issued by /auth/login"""
    def _headers_for(profile):
        token = auth_handler.create_access_token({"sub": profile.id, "email": profile.email})
        return {"Authorization": f"Bearer {token}"}

    return _headers_for

@pytest.fixture
def decision_for(db_session):
    """Resolve a profile through the access gate, as the API dependencies do"""
    def _decision_for(profile):
        return asyncio.run(AccessGate(db_session).resolve(profile.id))

    return _decision_for

@pytest.fixture
def session_factory(db_session):
    """Extra sessions on the same in-memory database"""
    return TestingSessionLocal
