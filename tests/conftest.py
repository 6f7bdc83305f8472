"""Test configuration and fixtures."""

import hashlib
import hmac
import json
import os
import time
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.settings import Settings
from db.models import Base
from db.sink import SQLAlchemySink
from main import app
from payments.stripe_client import StripeProviderClient
from webhooks import WebhookGateway
from webhooks.verification import SignatureVerifier

TEST_WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Setup test environment variables before each test."""
    original_env = dict(os.environ)

    os.environ.update(
        {
            "DATABASE_URL": "sqlite:///:memory:",
            "STRIPE_SECRET_KEY": "sk_test_dummy",
            "STRIPE_WEBHOOK_SECRET": TEST_WEBHOOK_SECRET,
            "STRIPE_PRICE_STARTER": "price_starter_test",
            "STRIPE_PRICE_PRO": "price_pro_test",
            "CLIENT_URL": "https://app.example.test",
            "BASE_URL": "https://app.example.test",
            "APP_NAME": "Test Rent Control",
            "ENVIRONMENT": "development",
            "DISABLE_TRACING": "1",
        }
    )

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def mock_settings():
    return Settings(
        DATABASE_URL="sqlite:///:memory:",
        STRIPE_SECRET_KEY="sk_test_mock",
        STRIPE_WEBHOOK_SECRET=TEST_WEBHOOK_SECRET,
        STRIPE_PRICE_STARTER="price_starter_test",
        STRIPE_PRICE_PRO="price_pro_test",
        CLIENT_URL="https://app.example.test",
        BASE_URL="https://app.example.test",
        APP_NAME="Test Rent Control",
        ENVIRONMENT="development",
    )


@pytest.fixture
def test_db_engine():
    """In-memory database shared across threads for the duration of a test."""
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)


@pytest.fixture
def test_db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sink(session_factory):
    return SQLAlchemySink(session_factory)


@pytest.fixture
def verifier():
    return SignatureVerifier(TEST_WEBHOOK_SECRET)


@pytest.fixture
def gateway(verifier, sink):
    return WebhookGateway(verifier, sink)


@pytest.fixture
def stripe_sdk():
    """Stand-in for ``stripe.StripeClient``."""
    return MagicMock(name="StripeClient")


@pytest.fixture
def provider(stripe_sdk):
    return StripeProviderClient(stripe_sdk)


@pytest.fixture
def sign_payload():
    """Build a ``stripe-signature`` header the way Stripe does."""

    def _sign(payload: bytes, secret: str = TEST_WEBHOOK_SECRET, timestamp: int | None = None) -> str:
        timestamp = int(time.time()) if timestamp is None else timestamp
        signed = f"{timestamp}.".encode() + payload
        signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={signature}"

    return _sign


@pytest.fixture
def make_event():
    """Serialize a Stripe event envelope around ``obj``."""

    def _make(event_type: str, obj: dict, event_id: str = "evt_test_1", created: int = 1760000000) -> bytes:
        return json.dumps(
            {
                "id": event_id,
                "object": "event",
                "type": event_type,
                "created": created,
                "livemode": False,
                "api_version": "2024-06-20",
                "data": {"object": obj},
            }
        ).encode()

    return _make


@pytest.fixture
def client(gateway, sink, provider):
    """Test client wired to the test sink, gateway and mocked provider."""
    with TestClient(app) as test_client:
        app.state.gateway = gateway
        app.state.sink = sink
        app.state.provider_client = provider
        yield test_client


@pytest.fixture
def post_webhook(client, make_event, sign_payload):
    """Sign and POST an event to the webhook endpoint."""

    def _post(event_type: str, obj: dict, event_id: str = "evt_test_1"):
        payload = make_event(event_type, obj, event_id=event_id)
        return client.post(
            "/webhooks/stripe",
            content=payload,
            headers={
                "stripe-signature": sign_payload(payload),
                "content-type": "application/json",
            },
        )

    return _post
