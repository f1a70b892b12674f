"""Pytest configuration and fixtures for test suite."""

import os
import sys
from datetime import date
from pathlib import Path

import pytest

# Set test environment BEFORE any other imports
os.environ.setdefault("ENROLL_ENVIRONMENT", "test")
os.environ.setdefault("ENROLL_STORAGE_BACKEND", "memory")

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from database.session_storage import MemorySessionStorage, SQLSessionStorage  # noqa: E402
from enrollment.coordinator import FamilyMemberCoordinator  # noqa: E402
from enrollment.flow import EnrollmentFlow  # noqa: E402
from enrollment.record_store import ApplicantRecordStore  # noqa: E402


TODAY = date(2025, 1, 1)
SESSION_ID = "test-session"
PLAN_ID = "plan-1"


# =============================================================================
# STORAGE AND STORE
# =============================================================================

@pytest.fixture
def today():
    """Fixed 'today' so age checks never drift."""
    return TODAY


@pytest.fixture
def memory_storage():
    return MemorySessionStorage()


@pytest.fixture
def sql_storage(tmp_path):
    """File-backed SQLite storage, disposed after the test."""
    storage = SQLSessionStorage(f"sqlite:///{tmp_path / 'sessions.db'}")
    yield storage
    storage.close()


@pytest.fixture
def store(memory_storage, today):
    return ApplicantRecordStore(SESSION_ID, storage=memory_storage, today_fn=lambda: today)


@pytest.fixture
def coordinator(store):
    return FamilyMemberCoordinator(store)


@pytest.fixture
def flow(store, coordinator):
    """Flow for a session already started from a supported ZIP and a plan."""
    enrollment = EnrollmentFlow(store, coordinator=coordinator)
    enrollment.begin("33101", PLAN_ID)
    return enrollment


# =============================================================================
# FORM VALUES
# =============================================================================

@pytest.fixture
def primary_personal():
    return {
        "first_name": "Jane",
        "last_name": "Doe",
        "date_of_birth": "04/12/1985",
        "gender": "female",
        "tobacco_usage": "non-smoker",
    }


@pytest.fixture
def primary_steps(primary_personal):
    """Valid values for every primary step up to (not including) review."""
    return [
        ("create-account", {
            "email": "jane@example.com",
            "password": "supersecret",
            "confirm_password": "supersecret",
        }),
        ("personal-information", primary_personal),
        ("contact-information", {"email": "jane@example.com", "phone_number": "(305) 555-0100"}),
        ("address-information", {
            "street": "1 Main St", "city": "Miami", "state": "FL", "zip": "33101",
        }),
        ("ssn-information", {"ssn": "123456789"}),
        ("citizenship-information", {"is_us_citizen": "yes"}),
        ("incarceration-status", {"is_incarcerated": "no"}),
        ("demographics", {"hispanic_origin": "no", "race": "white"}),
        ("income", {"income_sources": [{
            "type": "job",
            "amount": 1000,
            "frequency": "weekly",
            "employer_name": "Acme",
            "employer_phone": "305-555-0199",
        }]}),
    ]


@pytest.fixture
def agreement_steps():
    return [
        ("agreements-renewal", {"renewal": "agree"}),
        ("agreements-tax-attestation", {"tax_attestation": {
            "tax-eligibility": "agree",
            "tax-filing": "agree",
            "tax-dependent": "agree",
            "tax-changes": "agree",
        }}),
        ("agreements-sign-submit", {
            "notification": "agree",
            "medicare_option": "allow",
            "signature": "Jane Doe",
        }),
    ]


@pytest.fixture
def family_personal():
    """Factory for family-member personal-information values."""
    def build(first_name: str, dob: str, tobacco: str = "non-smoker") -> dict:
        return {
            "first_name": first_name,
            "last_name": "Doe",
            "date_of_birth": dob,
            "gender": "male",
            "tobacco_usage": tobacco,
        }
    return build
