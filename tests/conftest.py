"""
Test fixtures for the booking authentication service.

Every test gets its own SQLite file under ``tmp_path``, a low (but still
legal) bcrypt cost, and a recording mailer in place of SMTP.
"""
import threading
import time
from typing import Dict, List

import pytest
from fastapi.testclient import TestClient

from booking_auth.accounts import SqlAccountStore
from booking_auth.auth import IdentityService
from booking_auth.config import Settings
from booking_auth.database import Database
from booking_auth.dependencies import RequestAuthenticator
from booking_auth.models import UserRole
from booking_auth.notifications import NotificationDispatcher
from booking_auth.security import PasswordManager, PasswordValidator
from booking_auth.store import OneTimeTokenStore, RefreshTokenStore
from booking_auth.token import TokenCodec
from main import create_app

TEST_PASSWORD = "Secret1!"


class RecordingMailer:
    """Stands in for ``EmailService`` and remembers what would have been sent."""

    def __init__(self):
        self.sent: List[Dict] = []
        self._condition = threading.Condition()

    def _record(self, kind: str, **fields) -> None:
        with self._condition:
            self.sent.append({"kind": kind, **fields})
            self._condition.notify_all()

    def send_verification_email(self, to, name, token):
        self._record("verification", to=to, name=name, token=token)

    def send_password_reset_email(self, to, name, token):
        self._record("password_reset", to=to, name=name, token=token)

    def send_welcome_email(self, to, name):
        self._record("welcome", to=to, name=name)

    def of_kind(self, kind: str) -> List[Dict]:
        with self._condition:
            return [message for message in self.sent if message["kind"] == kind]

    def wait_for(self, kind: str, count: int = 1, timeout: float = 5.0) -> List[Dict]:
        """Block until ``count`` messages of ``kind`` were recorded."""
        deadline = time.monotonic() + timeout
        with self._condition:
            while len([m for m in self.sent if m["kind"] == kind]) < count:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise AssertionError(f"Timed out waiting for {count} {kind} email(s)")
                self._condition.wait(remaining)
            return [m for m in self.sent if m["kind"] == kind]


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a fresh SQLite file."""
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite:///{tmp_path / 'auth.db'}",
        BCRYPT_ROUNDS=10,
        JWT_SECRET="test-access-secret",
        JWT_REFRESH_SECRET="test-refresh-secret",
        NOTIFICATION_WORKERS=1,
    )


@pytest.fixture
def database(settings):
    """Database handle with all tables created."""
    db = Database(settings.DATABASE_URL)
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def accounts(database):
    return SqlAccountStore(database)


@pytest.fixture
def refresh_store(database):
    return RefreshTokenStore(database)


@pytest.fixture
def one_time_store(database):
    return OneTimeTokenStore(database)


@pytest.fixture
def codec(settings):
    return TokenCodec.from_settings(settings)


@pytest.fixture(scope="session")
def passwords():
    return PasswordManager(rounds=10)


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def dispatcher():
    dispatcher = NotificationDispatcher(max_workers=1)
    yield dispatcher
    dispatcher.shutdown(wait=True)


@pytest.fixture
def make_service(settings, accounts, refresh_store, one_time_store, codec, passwords, mailer, dispatcher):
    """Build an identity service over the test database, with overrides."""

    def _make(**overrides):
        components = {
            "settings": settings,
            "accounts": accounts,
            "refresh_tokens": refresh_store,
            "one_time_tokens": one_time_store,
            "codec": codec,
            "passwords": passwords,
            "dispatcher": dispatcher,
            "validator": PasswordValidator.from_settings(settings),
            "mailer": mailer,
        }
        components.update(overrides)
        return IdentityService(**components)

    return _make


@pytest.fixture
def service(make_service):
    """Identity service over the test database."""
    return make_service()


@pytest.fixture
def authenticator(codec, accounts):
    return RequestAuthenticator(codec, accounts)


@pytest.fixture
def test_account(accounts, passwords):
    """An active, verified account with password ``TEST_PASSWORD``."""
    return accounts.create({
        "email": "client@example.com",
        "hashed_password": passwords.hash_password(TEST_PASSWORD),
        "first_name": "Asha",
        "last_name": "Rao",
        "role": UserRole.USER,
        "is_email_verified": True,
    })


@pytest.fixture
def inactive_account(accounts, passwords):
    """A disabled account with password ``TEST_PASSWORD``."""
    return accounts.create({
        "email": "disabled@example.com",
        "hashed_password": passwords.hash_password(TEST_PASSWORD),
        "first_name": "Dev",
        "last_name": "Mehta",
        "is_active": False,
    })


@pytest.fixture
def login_result(service, test_account):
    """A fresh session for ``test_account``."""
    return service.login(test_account.email, TEST_PASSWORD)


@pytest.fixture
def app(settings, mailer):
    return create_app(settings, mailer=mailer)


@pytest.fixture
def client(app):
    """FastAPI test client; startup creates the tables."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api_prefix(settings):
    return f"{settings.API_PREFIX}/auth"
