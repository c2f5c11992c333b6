"""
Pytest configuration and shared fixtures.

Environment variables are set here before any app import so that the
cached settings (and the engine built from them) use the test database.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_chat.db")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("WHATSAPP_ACCESS_TOKEN", "test-token")
os.environ.setdefault("PHONE_NUMBER_ID", "1234567890")
os.environ.setdefault("WABA_ID", "9876543210")
os.environ.setdefault("API_VERSION", "v20.0")
os.environ.setdefault("WHATSAPP_VERIFY_TOKEN", "test-verify-token")

import pytest
import requests
from fastapi.testclient import TestClient

# Clear settings cache before any app imports to ensure test env vars are used
from app.config import get_settings
get_settings.cache_clear()

from app.config import settings
from app.main import app, get_whatsapp_client
from app.storage import Base, engine, SessionLocal
from app.whatsapp import WhatsAppCloudClient


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code: int = 200, json_data=None):
        self.status_code = status_code
        self._json = json_data

    @property
    def text(self) -> str:
        return "" if self._json is None else str(self._json)

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class FakeSession:
    """
    Records Cloud API calls and answers them with a queued response.

    Set `error` to a requests exception to simulate a network failure.
    """

    def __init__(self):
        self.calls = []
        self.response = FakeResponse(200, {"messages": [{"id": "wamid.DEFAULT"}]})
        self.error = None
        self.closed = False

    def _handle(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if self.error is not None:
            raise self.error
        return self.response

    def get(self, url, **kwargs):
        return self._handle("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._handle("POST", url, **kwargs)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_session():
    """Fake HTTP session wired into the app's Cloud API client."""
    session = FakeSession()
    app.dependency_overrides[get_whatsapp_client] = lambda: WhatsAppCloudClient(settings, session=session)
    yield session
    app.dependency_overrides.pop(get_whatsapp_client, None)


@pytest.fixture(scope="function")
def client(fake_session):
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    # Cleanup - drop all tables after test
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    """Direct database session for assertions on stored rows."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def network_error():
    return requests.ConnectionError("connection refused")
