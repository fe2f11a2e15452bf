"""
Pytest configuration and shared fixtures for Contact Card tests.

Test Categories:
- unit: Fast tests with no external dependencies (< 100ms each)
- slow: Tests that spin up the FastAPI app with TestClient

Run categories:
- pytest -m unit              # Fast unit tests only
- pytest -m "not slow"        # Skip app-level tests
- pytest                      # All tests

Every test runs against a temporary database, a temporary address-book
path and an in-memory keyring, so nothing touches real user data.
"""

import pytest

from tests.helpers import FakeRelay
from tests.reset_singletons import reset_all_singletons


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "slow: Slow tests (TestClient app startup)")


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """
    Point storage settings at a temp directory.

    The settings object is shared by reference, so patching its attributes
    is visible to every module that imported it.
    """
    from config.settings import settings

    monkeypatch.setattr(settings, "db_path", tmp_path / "contactcard.db")
    monkeypatch.setattr(settings, "contacts_csv_path", tmp_path / "contacts.csv")
    monkeypatch.setattr(settings, "anthropic_api_key", "test-server-key")
    monkeypatch.setattr(settings, "auth_mode", "managed")
    return settings


@pytest.fixture(autouse=True)
def fake_keyring(monkeypatch):
    """In-memory replacement for the system keyring."""
    import keyring
    from keyring.errors import PasswordDeleteError

    secrets: dict[tuple[str, str], str] = {}

    def get_password(service, username):
        return secrets.get((service, username))

    def set_password(service, username, password):
        secrets[(service, username)] = password

    def delete_password(service, username):
        if (service, username) not in secrets:
            raise PasswordDeleteError("No such password")
        del secrets[(service, username)]

    monkeypatch.setattr(keyring, "get_password", get_password)
    monkeypatch.setattr(keyring, "set_password", set_password)
    monkeypatch.setattr(keyring, "delete_password", delete_password)
    return secrets


@pytest.fixture(autouse=True)
def reset_singletons_after_test():
    """Drop module singletons so each test gets fresh instances."""
    reset_all_singletons()
    yield
    reset_all_singletons()


@pytest.fixture
def store(tmp_path):
    """ContactStore on a fresh temp database."""
    from api.services.contact_store import ContactStore
    return ContactStore(str(tmp_path / "store.db"))


@pytest.fixture
def ledger(tmp_path):
    """CreditLedger on a fresh temp database."""
    from api.services.credits import CreditLedger
    return CreditLedger(str(tmp_path / "store.db"))


@pytest.fixture
def write_contacts_csv(isolated_settings):
    """Write an address-book CSV to the configured path."""
    def _write(rows: list[dict]):
        import csv
        fields = ["identifier", "first_name", "last_name", "nickname",
                  "organization", "job_title", "emails", "phones"]
        with open(isolated_settings.contacts_csv_path, "w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=fields)
            writer.writeheader()
            for row in rows:
                writer.writerow({k: row.get(k, "") for k in fields})
        return isolated_settings.contacts_csv_path
    return _write


@pytest.fixture
def fake_relay():
    """Factory for FakeRelay instances."""
    def _make(*responses, own_key: bool = False) -> FakeRelay:
        return FakeRelay(*responses, own_key=own_key)
    return _make
