"""
Test configuration and fixtures for the Email OTP API.

Every test gets its own SQLite database, a fake email sender that records the
codes it would have sent, and a clock the test can move forward.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone

# Configuration is read at import time, so it must be in place first.
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("OTP_PEPPER", "test-pepper")
os.environ.setdefault("OTP_EMAIL_TRANSPORT", "ses")
os.environ.setdefault(
    "DATABASE_URL", f"sqlite:///{os.path.join(tempfile.mkdtemp(), 'otp.db')}"
)

import pytest
from argon2 import PasswordHasher
from fastapi.testclient import TestClient
from sqlmodel import create_engine

from database import init_db
from services.email_service import EmailDeliveryError
from services.otp_service import OTPLedger
from services.otp_store import OTPStore, ProfileStore

PEPPER = "p"


class FakeSender:
    def __init__(self):
        self.sent = []
        self.fail_next = False

    def send_verification_email(self, email, otp):
        if self.fail_next:
            self.fail_next = False
            raise EmailDeliveryError("MessageRejected")
        self.sent.append((email, otp))
        return {"MessageId": f"fake-{len(self.sent)}"}

    @property
    def last_code(self):
        return self.sent[-1][1]


class FakeClock:
    def __init__(self):
        self.now = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def fast_hasher(monkeypatch):
    """Cheap Argon2 parameters; the production defaults make the suite slow."""
    import services.otp_service as otp_service

    monkeypatch.setattr(
        otp_service,
        "ph",
        PasswordHasher(time_cost=1, memory_cost=8, parallelism=1),
    )


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'otp.db'}",
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return OTPStore(engine)


@pytest.fixture
def profiles(engine):
    return ProfileStore(engine)


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(store, sender, clock):
    return OTPLedger(sender=sender, store=store, pepper=PEPPER, clock=clock)


@pytest.fixture
def client(ledger, profiles):
    """Test client wired to the per-test ledger and profile store."""
    from main import app, get_ledger, get_profile_store

    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_profile_store] = lambda: profiles
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    from auth import create_access_token

    def _headers(identity, email=None):
        return {"Authorization": f"Bearer {create_access_token(identity, email)}"}

    return _headers
