"""
Tests for the identity service: registration, login, refresh rotation,
logout, password change and reset, and email verification.
"""
import logging
import threading
from datetime import timedelta
from unittest.mock import patch

import pytest

from booking_auth.auth import IdentityService
from booking_auth.config.jwt_config import utcnow
from booking_auth.errors import (AccountDisabledError, AccountNotFoundError,
                                 ConflictError, InvalidCredentialsError,
                                 InvalidRequestError, StorageUnavailableError,
                                 TokenInvalidError, WeakPasswordError)
from booking_auth.models import UserRole
from booking_auth.security import PasswordManager
from tests.conftest import TEST_PASSWORD


class TestRegister:
    """Account registration."""

    def test_register_creates_account_and_session(self, service, accounts, refresh_store, codec, mailer):
        result = service.register(
            email="New.Client@Example.com",
            password=TEST_PASSWORD,
            first_name="Kiran",
            last_name="Shah",
            phone="+91 90000 00000",
        )

        assert result.account.id is not None
        assert result.account.email == "new.client@example.com"
        assert result.account.role == UserRole.USER
        assert result.account.is_email_verified is False
        assert accounts.find_by_email("new.client@example.com") is not None

        # Verify the stored hash is not the password
        assert result.account.hashed_password != TEST_PASSWORD

        claims = codec.verify_access(result.tokens.access_token)
        assert claims["sub"] == str(result.account.id)
        assert claims["email"] == "new.client@example.com"
        assert claims["role"] == "USER"
        assert refresh_store.find_active(result.tokens.refresh_token) is not None

        sent = mailer.wait_for("verification")
        assert sent[0]["to"] == "new.client@example.com"
        assert sent[0]["name"] == "Kiran"

    def test_register_lawyer(self, service):
        result = service.register("advocate@example.com", TEST_PASSWORD, "Meera", "Iyer", role=UserRole.LAWYER)

        assert result.account.role == UserRole.LAWYER

    def test_register_admin_refused(self, service, accounts):
        with pytest.raises(InvalidRequestError):
            service.register("boss@example.com", TEST_PASSWORD, "Big", "Boss", role=UserRole.ADMIN)
        assert accounts.find_by_email("boss@example.com") is None

    def test_register_duplicate_email(self, service, test_account):
        """Registration with a taken email fails, regardless of case."""
        with pytest.raises(ConflictError):
            service.register("CLIENT@example.com", TEST_PASSWORD, "Asha", "Rao")

    def test_register_weak_password(self, service, accounts):
        with pytest.raises(WeakPasswordError):
            service.register("weak@example.com", "password", "Weak", "Password")
        assert accounts.find_by_email("weak@example.com") is None

    def test_failing_mailer_does_not_fail_registration(self, make_service, dispatcher, caplog):
        """A send failure is logged and never reaches the caller."""

        class BrokenMailer:
            def send_verification_email(self, to, name, token):
                raise ConnectionRefusedError("smtp down")

        service = make_service(mailer=BrokenMailer())

        with caplog.at_level(logging.ERROR, logger="booking_auth.notifications"):
            result = service.register("unlucky@example.com", TEST_PASSWORD, "Un", "Lucky")
            dispatcher.shutdown(wait=True)

        assert result.account.id is not None
        assert any("Failed to send verification email" in r.getMessage() for r in caplog.records)

    def test_storage_failure_after_account_write(self, service, refresh_store, accounts):
        """The account survives a later failed write and can log in."""
        with patch.object(refresh_store, "create", side_effect=StorageUnavailableError()):
            with pytest.raises(StorageUnavailableError):
                service.register("partial@example.com", TEST_PASSWORD, "Par", "Tial")

        assert accounts.find_by_email("partial@example.com") is not None
        with pytest.raises(ConflictError):
            service.register("partial@example.com", TEST_PASSWORD, "Par", "Tial")
        assert service.login("partial@example.com", TEST_PASSWORD).account.email == "partial@example.com"

    def test_dispatcher_is_required(self, settings, accounts, refresh_store, one_time_store, codec, passwords):
        """The service never creates a thread pool it would not shut down."""
        with pytest.raises(TypeError):
            IdentityService(
                settings=settings,
                accounts=accounts,
                refresh_tokens=refresh_store,
                one_time_tokens=one_time_store,
                codec=codec,
                passwords=passwords,
            )


class TestLogin:
    """Password login."""

    def test_login_success(self, service, test_account, codec, refresh_store):
        result = service.login("client@example.com", TEST_PASSWORD)

        assert result.account.id == test_account.id
        assert result.account.last_login_at is not None
        assert codec.verify_access(result.tokens.access_token)["sub"] == str(test_account.id)
        assert refresh_store.find_active(result.tokens.refresh_token).owner_id == test_account.id

    def test_login_email_is_case_insensitive(self, service, test_account):
        assert service.login("Client@Example.com", TEST_PASSWORD).account.id == test_account.id

    def test_wrong_password_and_unknown_email_look_the_same(self, service, test_account):
        """Both failures raise the same error with the same message."""
        with pytest.raises(InvalidCredentialsError) as wrong_password:
            service.login("client@example.com", "Wrong1!pass")
        with pytest.raises(InvalidCredentialsError) as unknown_email:
            service.login("nobody@example.com", TEST_PASSWORD)

        assert wrong_password.value.message == unknown_email.value.message == "Invalid email or password"
        assert wrong_password.value.code == unknown_email.value.code

    def test_disabled_account(self, service, inactive_account):
        with pytest.raises(AccountDisabledError):
            service.login("disabled@example.com", TEST_PASSWORD)

    def test_disabled_account_wrong_password(self, service, inactive_account):
        """A wrong password on a disabled account does not reveal the account state."""
        with pytest.raises(InvalidCredentialsError):
            service.login("disabled@example.com", "Wrong1!pass")

    def test_each_login_is_a_separate_session(self, service, test_account, refresh_store):
        first = service.login("client@example.com", TEST_PASSWORD)
        second = service.login("client@example.com", TEST_PASSWORD)

        assert first.tokens.refresh_token != second.tokens.refresh_token
        assert len(refresh_store.list_for_owner(test_account.id, active_only=True)) == 2

    def test_login_upgrades_lower_cost_hash(self, make_service, accounts, test_account):
        """After the work factor is raised, a login stores a stronger hash."""
        stronger = PasswordManager(rounds=11)
        service = make_service(passwords=stronger)

        service.login("client@example.com", TEST_PASSWORD)

        upgraded = accounts.find_by_id(test_account.id).hashed_password
        assert upgraded != test_account.hashed_password
        assert upgraded.startswith("$2b$11$")
        assert stronger.verify_password(TEST_PASSWORD, upgraded)

        service.login("client@example.com", TEST_PASSWORD)
        assert accounts.find_by_id(test_account.id).hashed_password == upgraded

    def test_login_keeps_current_hash(self, service, accounts, test_account):
        service.login("client@example.com", TEST_PASSWORD)

        assert accounts.find_by_id(test_account.id).hashed_password == test_account.hashed_password

    def test_remember_me_extends_refresh_lifetime(self, service, test_account):
        default = service.login("client@example.com", TEST_PASSWORD)
        remembered = service.login("client@example.com", TEST_PASSWORD, remember_me=True)

        now = utcnow()
        assert default.tokens.refresh_expires_at - now < timedelta(days=31)
        assert remembered.tokens.refresh_expires_at - now > timedelta(days=89)
        assert remembered.tokens.expires_at - default.tokens.expires_at < timedelta(seconds=5)


class TestRefresh:
    """Refresh token rotation."""

    def test_refresh_rotates(self, service, login_result, refresh_store, codec, test_account):
        old_refresh = login_result.tokens.refresh_token

        tokens = service.refresh(old_refresh)

        assert tokens.refresh_token != old_refresh
        assert codec.verify_access(tokens.access_token)["sub"] == str(test_account.id)
        assert refresh_store.find_active(old_refresh) is None
        assert refresh_store.find_active(tokens.refresh_token) is not None

    def test_reusing_rotated_token_fails(self, service, login_result):
        """A consumed refresh token cannot be used a second time."""
        service.refresh(login_result.tokens.refresh_token)

        with pytest.raises(TokenInvalidError):
            service.refresh(login_result.tokens.refresh_token)

    def test_successor_keeps_working(self, service, login_result):
        second = service.refresh(login_result.tokens.refresh_token)
        third = service.refresh(second.refresh_token)

        assert third.refresh_token not in (login_result.tokens.refresh_token, second.refresh_token)

    def test_access_token_is_not_a_refresh_token(self, service, login_result):
        with pytest.raises(TokenInvalidError):
            service.refresh(login_result.tokens.access_token)

    def test_expired_refresh_token(self, service, codec, refresh_store, test_account):
        past = utcnow() - timedelta(seconds=1)
        token = codec.issue_refresh({"sub": test_account.id}, expires_at=past)
        refresh_store.create(test_account.id, token, past)

        with pytest.raises(TokenInvalidError):
            service.refresh(token)

    def test_signed_but_never_stored(self, service, codec, test_account):
        """A validly signed token with no stored record is rejected."""
        token = codec.issue_refresh({"sub": test_account.id})

        with pytest.raises(TokenInvalidError):
            service.refresh(token)

    def test_garbage_token(self, service):
        with pytest.raises(TokenInvalidError):
            service.refresh("not-a-token")

    def test_disabled_account(self, service, accounts, login_result, test_account):
        accounts.update(test_account.id, {"is_active": False})

        with pytest.raises(AccountDisabledError):
            service.refresh(login_result.tokens.refresh_token)

    def test_concurrent_refresh_has_one_winner(self, service, login_result):
        """Of two simultaneous refreshes with the same token exactly one succeeds."""
        token = login_result.tokens.refresh_token
        barrier = threading.Barrier(2)
        outcomes = []
        lock = threading.Lock()

        def worker():
            barrier.wait()
            try:
                pair = service.refresh(token)
                outcome = ("ok", pair)
            except TokenInvalidError as e:
                outcome = ("invalid", e)
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        kinds = sorted(kind for kind, _ in outcomes)
        assert kinds == ["invalid", "ok"]


class TestLogout:
    """Single-session and all-session logout."""

    def test_logout(self, service, login_result, refresh_store):
        assert service.logout(login_result.tokens.refresh_token) is True
        assert refresh_store.find_active(login_result.tokens.refresh_token) is None

        with pytest.raises(TokenInvalidError):
            service.refresh(login_result.tokens.refresh_token)

    def test_logout_is_idempotent(self, service, login_result):
        service.logout(login_result.tokens.refresh_token)

        assert service.logout(login_result.tokens.refresh_token) is False
        assert service.logout("never-issued") is False

    def test_logout_all(self, service, test_account, refresh_store):
        sessions = [service.login("client@example.com", TEST_PASSWORD) for _ in range(3)]

        assert service.logout_all(test_account.id) == 3
        assert refresh_store.list_for_owner(test_account.id, active_only=True) == []
        for session in sessions:
            with pytest.raises(TokenInvalidError):
                service.refresh(session.tokens.refresh_token)

    def test_logout_all_without_sessions(self, service, test_account):
        assert service.logout_all(test_account.id) == 0


class TestPasswordChange:
    """Password change and reset."""

    def test_change_password_revokes_sessions(self, service, login_result, test_account):
        revoked = service.change_password(test_account.id, TEST_PASSWORD, "N3w-Secret!")

        assert revoked == 1
        with pytest.raises(TokenInvalidError):
            service.refresh(login_result.tokens.refresh_token)
        with pytest.raises(InvalidCredentialsError):
            service.login("client@example.com", TEST_PASSWORD)
        assert service.login("client@example.com", "N3w-Secret!").account.id == test_account.id

    def test_change_password_wrong_current(self, service, test_account):
        with pytest.raises(InvalidRequestError) as exc_info:
            service.change_password(test_account.id, "Wrong1!pass", "N3w-Secret!")

        assert exc_info.value.message == "Current password is incorrect"

    def test_change_password_weak_new(self, service, test_account):
        with pytest.raises(WeakPasswordError):
            service.change_password(test_account.id, TEST_PASSWORD, "short")

    def test_change_password_unknown_account(self, service):
        with pytest.raises(AccountNotFoundError):
            service.change_password(999, TEST_PASSWORD, "N3w-Secret!")

    def test_forgot_and_reset_password(self, service, mailer, login_result, test_account):
        service.forgot_password("client@example.com")
        token = mailer.wait_for("password_reset")[0]["token"]

        assert service.reset_password(token, "N3w-Secret!") == 1
        assert service.login("client@example.com", "N3w-Secret!").account.id == test_account.id
        with pytest.raises(TokenInvalidError):
            service.refresh(login_result.tokens.refresh_token)

    def test_reset_token_is_single_use(self, service, mailer, test_account):
        service.forgot_password("client@example.com")
        token = mailer.wait_for("password_reset")[0]["token"]
        service.reset_password(token, "N3w-Secret!")

        with pytest.raises(InvalidRequestError):
            service.reset_password(token, "An0ther-Secret!")

    def test_reset_with_unknown_token(self, service):
        with pytest.raises(InvalidRequestError) as exc_info:
            service.reset_password("made-up", "N3w-Secret!")

        assert exc_info.value.message == "Invalid or expired reset token"

    def test_forgot_password_unknown_email_is_silent(self, service, mailer, dispatcher):
        service.forgot_password("nobody@example.com")
        dispatcher.shutdown(wait=True)

        assert mailer.of_kind("password_reset") == []


class TestEmailVerification:
    """Email verification and resend."""

    def test_verify_email(self, service, mailer):
        result = service.register("fresh@example.com", TEST_PASSWORD, "Fresh", "Face")
        token = mailer.wait_for("verification")[0]["token"]

        account = service.verify_email(token)

        assert account.id == result.account.id
        assert account.is_email_verified is True
        assert account.email_verified_at is not None
        assert mailer.wait_for("welcome")[0]["to"] == "fresh@example.com"

        with pytest.raises(InvalidRequestError):
            service.verify_email(token)

    def test_verify_email_unknown_token(self, service):
        with pytest.raises(InvalidRequestError):
            service.verify_email("made-up")

    def test_resend_replaces_previous_token(self, service, mailer):
        service.register("fresh@example.com", TEST_PASSWORD, "Fresh", "Face")
        first = mailer.wait_for("verification")[0]["token"]

        service.resend_verification_email("fresh@example.com")
        second = mailer.wait_for("verification", count=2)[1]["token"]

        with pytest.raises(InvalidRequestError):
            service.verify_email(first)
        assert service.verify_email(second).is_email_verified

    def test_resend_is_silent_for_verified_and_unknown(self, service, mailer, dispatcher, test_account):
        service.resend_verification_email(test_account.email)
        service.resend_verification_email("nobody@example.com")
        dispatcher.shutdown(wait=True)

        assert mailer.of_kind("verification") == []


def test_get_current_account(service, test_account):
    assert service.get_current_account(test_account.id).email == "client@example.com"

    with pytest.raises(AccountNotFoundError):
        service.get_current_account(999)
