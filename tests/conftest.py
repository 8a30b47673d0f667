"""
Pytest configuration file for the MedAccess test suite.

This file defines shared fixtures used across the test modules:
- A fake clock so code expiry can be tested without waiting.
- A real Fernet key per test, so encrypted files never touch the production key.
- Records, session and service instances stored under pytest's `tmp_path`,
  seeded with the demo principals.
"""
from datetime import datetime, timedelta, timezone

import pytest
from cryptography.fernet import Fernet

from medaccess.auth import LoginFlow
from medaccess.authorization import AuthorizationService
from medaccess.codes import SmsSimulator, VerificationCodeIssuer
from medaccess.records import MedicalRecords, seed_demo_data
from medaccess.session_store import SessionStore

DOCTOR_PHONE = "0612345678"
PATIENT_PHONE = "0700000000"
OTHER_PATIENT_PHONE = "0700000001"
UNKNOWN_PHONE = "0699999999"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def encryptor():
    """Provides a Fernet instance with a throwaway key."""
    return Fernet(Fernet.generate_key())


@pytest.fixture
def records(tmp_path, encryptor):
    """Provides a records store in a temporary file, seeded with the demo users."""
    store = MedicalRecords(data_file=str(tmp_path / "records.json"), encryptor=encryptor)
    seed_demo_data(store)
    return store


@pytest.fixture
def notifier():
    return SmsSimulator()


@pytest.fixture
def issuer(notifier, clock):
    """Provides an issuer with random login codes."""
    return VerificationCodeIssuer(notifier, clock=clock, demo_login_code=None)


@pytest.fixture
def demo_issuer(notifier, clock):
    """Provides an issuer that always hands out the demo login code 123456."""
    return VerificationCodeIssuer(notifier, clock=clock, demo_login_code="123456")


@pytest.fixture
def session_store(tmp_path, encryptor):
    """Provides the session store of one browser client."""
    return SessionStore("browser-a", session_dir=str(tmp_path), encryptor=encryptor)


@pytest.fixture
def login_flow(records, issuer, session_store, clock):
    flow = LoginFlow(records, issuer, session_store, clock=clock)
    yield flow
    flow.close()


@pytest.fixture
def authorizations(records, issuer, clock):
    return AuthorizationService(records, issuer, clock=clock)


@pytest.fixture
def signed_in_doctor(login_flow, notifier):
    """Provides a login flow in which the demo doctor D1 has signed in."""
    assert login_flow.initiate_login(DOCTOR_PHONE)
    assert login_flow.verify_code(notifier.last_code_for(DOCTOR_PHONE))
    return login_flow
