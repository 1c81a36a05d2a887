"""
Shared test fixtures and helpers for the reservation form engine suite.

The fake_transport fixture is a FakeTransport, which records every payload
it receives and can be held open to test in-flight submissions.
"""

from typing import Any

import pytest

from reservations.core.form_state import FormSession
from reservations.core.registry import get_schema
from reservations.core.schema import FileRef, FormSchema
from reservations.tests.fakes import FakeTransport


# --- Fixtures ---


@pytest.fixture
def sport_schema() -> FormSchema:
    return get_schema("sport_complex")


@pytest.fixture
def youth_schema() -> FormSchema:
    return get_schema("youth_house")


@pytest.fixture
def signup_schema() -> FormSchema:
    return get_schema("signup")


@pytest.fixture
def investment_schema() -> FormSchema:
    return get_schema("investment")


@pytest.fixture
def login_schema() -> FormSchema:
    return get_schema("login")


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def make_file():
    """Factory for uploaded FileRefs. The declared size is independent of the content."""

    def _make_file(
        name: str = "delegation.pdf",
        content_type: str = "application/pdf",
        size: int = 1024,
        content: bytes | None = b"%PDF-1.4",
    ) -> FileRef:
        return FileRef(name=name, size=size, content_type=content_type, content=content)

    return _make_file


@pytest.fixture
def valid_signup_values() -> dict[str, Any]:
    """A complete signup for a Jordanian owner delegate."""
    return {
        "companySector": "private",
        "orgNationalId": "200123456",
        "orgName": "Acme Trading",
        "orgAddress": "Amman, Jordan",
        "orgPhone": "0791234567",
        "orgEmail": "info@acme.jo",
        "delegateRole": "owner",
        "delegateName": "Sami Haddad",
        "nationality": "jordanian",
        "delegateNationalId": "9981234567",
        "phone": "0791234568",
        "email": "sami@acme.jo",
        "password": "secret123",
    }


@pytest.fixture
def valid_sport_values() -> dict[str, Any]:
    return {
        "complexType": "sportComplex",
        "serviceType": "activity",
        "nameOfComplex": "ammanSportsCity",
        "facilityType": "court",
        "facilitys": "tennis",
        "beneficiaries": "12",
        "dateRange": {"from": "2026-01-20", "to": "2026-01-22"},
        "startTime": "09:00",
        "endTime": "11:30",
    }


@pytest.fixture
def signup_session(valid_signup_values) -> FormSession:
    session = FormSession.for_form("signup")
    session.set_values(valid_signup_values)
    return session


@pytest.fixture
def sport_session(valid_sport_values) -> FormSession:
    session = FormSession.for_form("sport_complex")
    session.set_values(valid_sport_values)
    return session

