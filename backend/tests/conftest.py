"""
Pytest configuration and shared fixtures for SmartHire backend tests.

Everything runs in-process against the in-memory collections from fakes.py;
no MongoDB, Stripe or Gemini access.
"""
import sys
from pathlib import Path

import pytest
backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from fakes import WEBHOOK_SECRET, FakeDatabase  # noqa: E402

from smarthire.config import Settings  # noqa: E402
from smarthire.services.entitlement_store import EntitlementStore  # noqa: E402
from smarthire.services.event_broker import EventBroker  # noqa: E402



@pytest.fixture
def settings():
    return Settings(
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        google_api_key="test-google-key",
        jwt_secret="test-jwt-secret",
        free_limit=50,
    )


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def broker():
    return EventBroker()


@pytest.fixture
def store(db, broker):
    return EntitlementStore(db, broker)
