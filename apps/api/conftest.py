"""Shared pytest fixtures."""

import os
import tempfile

# Settings are read once at import time, so the test environment must be in
# place before any application module is imported.
_TMP_DIR = tempfile.mkdtemp(prefix="ayurclinic-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "10"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_DIR, "uploads")
os.environ["REDIS_URL"] = ""
os.environ["GOOGLE_CLIENT_ID"] = ""
os.environ["GOOGLE_CLIENT_SECRET"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session

from auth import get_password_hash
from config import get_settings
from database import engine
from main import app
from models import User, UserRole
from services.file_store import LocalFileStore
from services.identity_provider import DisabledIdentityProvider
from services.session_store import InMemorySessionStore

DEFAULT_PASSWORD = "password123"


@pytest.fixture(autouse=True)
def fresh_app_state():
    """Empty database and backends for every test."""
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)

    settings = get_settings()
    app.state.session_store = InMemorySessionStore(settings.SESSION_TTL_SECONDS)
    app.state.identity_provider = DisabledIdentityProvider()
    app.state.file_store = LocalFileStore(settings.UPLOAD_DIR, max_bytes=settings.MAX_UPLOAD_BYTES)
    yield


@pytest.fixture
def session():
    with Session(engine) as db:
        yield db


@pytest.fixture
def store():
    return app.state.session_store


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_user(session):
    """Insert a user directly; returns the refreshed row."""
    def _make_user(username, full_name, role=UserRole.DOCTOR, password=DEFAULT_PASSWORD, is_active=True):
        user = User(
            username=username,
            password_hash=get_password_hash(password),
            email=f"{username}@example.com",
            full_name=full_name,
            role=role,
            is_active=is_active,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user
    return _make_user


def login_client(username, password=DEFAULT_PASSWORD):
    """A fresh TestClient holding a session cookie for ``username``."""
    test_client = TestClient(app)
    response = test_client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return test_client


@pytest.fixture
def admin(make_user):
    return make_user("admin", "Clinic Admin", role=UserRole.ADMIN)


@pytest.fixture
def admin_client(admin):
    return login_client(admin.username)


@pytest.fixture
def doctor(make_user):
    return make_user("sarah", "Dr. Sarah Wilson")


@pytest.fixture
def doctor_client(doctor):
    return login_client(doctor.username)


PATIENT_PAYLOAD = {
    "full_name": "Ravi Menon",
    "age": 42,
    "gender": "male",
    "phone_number": "9876500001",
    "prakriti": "Vata-Pitta",
    "chief_complaints": "Joint pain",
}
