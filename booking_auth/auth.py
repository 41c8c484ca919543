"""
Identity service for the booking authentication service.

This module orchestrates registration, login, refresh-token rotation,
logout, password changes and resets, and email verification on top of the
credential hasher, the token codec, the token stores and the account store.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from booking_auth.accounts import AccountStore, normalize_email
from booking_auth.config.jwt_config import get_token_expiry_date, utcnow
from booking_auth.errors import (AccountDisabledError, AccountNotFoundError,
                                 ConflictError, InvalidCredentialsError,
                                 InvalidRequestError, TokenError,
                                 TokenInvalidError)
from booking_auth.models import OneTimeTokenPurpose, User, UserRole
from booking_auth.notifications import EmailService, NotificationDispatcher
from booking_auth.security import (PasswordManager, PasswordValidator,
                                   generate_url_safe_token)
from booking_auth.store import OneTimeTokenStore, RefreshTokenStore
from booking_auth.token import TokenCodec

# Configure logging
logger = logging.getLogger(__name__)

SELF_REGISTRATION_ROLES = (UserRole.USER, UserRole.LAWYER)


@dataclass(frozen=True)
class TokenPair:
    """Access/refresh token pair handed to the client."""
    access_token: str
    refresh_token: str
    expires_at: datetime
    refresh_expires_at: datetime
    token_type: str = "bearer"


@dataclass(frozen=True)
class AuthResult:
    """Outcome of register and login."""
    account: User
    tokens: TokenPair


class IdentityService:
    """
    Session lifecycle over an account.

    A refresh token is single-use: ``refresh`` revokes the presented record
    and stores its successor atomically, and a token that was already rotated
    or revoked is rejected with ``TokenInvalidError``.
    """

    def __init__(
        self,
        settings,
        accounts: AccountStore,
        refresh_tokens: RefreshTokenStore,
        one_time_tokens: OneTimeTokenStore,
        codec: TokenCodec,
        passwords: PasswordManager,
        dispatcher: NotificationDispatcher,
        validator: Optional[PasswordValidator] = None,
        mailer: Optional[EmailService] = None,
    ):
        """
        Initialize the identity service.

        Args:
            settings: Application settings, for token lifetimes.
            accounts: External account store.
            refresh_tokens: Refresh token store.
            one_time_tokens: Store for verification and reset tokens.
            codec: Token codec.
            passwords: Credential hasher.
            dispatcher: Fire-and-forget runner for emails. The caller owns it
                and shuts it down.
            validator: Password strength policy.
            mailer: Email sender.
        """
        self.settings = settings
        self.accounts = accounts
        self.refresh_tokens = refresh_tokens
        self.one_time_tokens = one_time_tokens
        self.codec = codec
        self.passwords = passwords
        self.dispatcher = dispatcher
        self.validator = validator or PasswordValidator.from_settings(settings)
        self.mailer = mailer or EmailService()

    # PUBLIC_INTERFACE
    def register(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None,
        role: UserRole = UserRole.USER,
    ) -> AuthResult:
        """
        Register a new account and open its first session.

        Returns:
            The created account and a token pair.

        Raises:
            ConflictError: If the email is already registered.
            WeakPasswordError: If the password fails the policy.
            InvalidRequestError: If the role cannot be self-assigned.
        """
        if role not in SELF_REGISTRATION_ROLES:
            raise InvalidRequestError(f"Role {role.value} cannot be chosen at registration")

        self.validator.validate_or_raise(password)

        email = normalize_email(email)
        if self.accounts.find_by_email(email) is not None:
            raise ConflictError()

        # Each write below commits on its own. If a later one fails the account
        # already exists, and the caller can log in instead of registering again.
        account = self.accounts.create({
            "email": email,
            "hashed_password": self.passwords.hash_password(password),
            "first_name": first_name,
            "last_name": last_name,
            "phone": phone or None,
            "role": role,
        })

        verification_token = self._issue_one_time_token(
            OneTimeTokenPurpose.EMAIL_VERIFICATION,
            account.email,
            self.settings.EMAIL_VERIFICATION_EXPIRES_IN,
        )
        tokens = self._issue_pair(account)

        self.dispatcher.dispatch(
            "verification email",
            self.mailer.send_verification_email,
            to=account.email,
            name=account.first_name,
            token=verification_token,
        )

        logger.info(f"Account registered: id={account.id} role={account.role.value}")
        return AuthResult(account=account, tokens=tokens)

    # PUBLIC_INTERFACE
    def login(self, email: str, password: str, remember_me: bool = False) -> AuthResult:
        """
        Authenticate with email and password.

        An unknown email and a wrong password raise the same error. A hash made
        with a lower work factor than the configured one is replaced.

        Args:
            email: Account email.
            password: Plain text password.
            remember_me: Use the longer refresh-token lifetime.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password.
            AccountDisabledError: Correct password on a disabled account.
        """
        account = self.accounts.find_by_email(email)
        if account is None:
            self.passwords.dummy_verify()
            raise InvalidCredentialsError()

        if not self.passwords.verify_password(password, account.hashed_password):
            raise InvalidCredentialsError()

        if not account.is_active:
            logger.warning(f"Login attempt on disabled account {account.id}")
            raise AccountDisabledError()

        updates = {"last_login_at": utcnow()}
        if self.passwords.needs_rehash(account.hashed_password):
            # Work factor was raised since this hash was made
            updates["hashed_password"] = self.passwords.hash_password(password)
            logger.info(f"Password hash upgraded: account={account.id}")
        account = self.accounts.update(account.id, updates)

        refresh_expires_in = (
            self.settings.JWT_REMEMBER_ME_EXPIRES_IN if remember_me else self.settings.JWT_REFRESH_EXPIRES_IN
        )
        tokens = self._issue_pair(account, refresh_expires_in)

        logger.info(f"Login: account={account.id} remember_me={remember_me}")
        return AuthResult(account=account, tokens=tokens)

    # PUBLIC_INTERFACE
    def refresh(self, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new pair, consuming it.

        Raises:
            TokenInvalidError: Bad, expired, wrong-kind, revoked or already rotated token.
            AccountDisabledError: The owning account has been disabled.
        """
        try:
            claims = self.codec.verify_refresh(refresh_token)
        except TokenError as e:
            raise TokenInvalidError() from e

        record = self.refresh_tokens.find_active(refresh_token)
        if record is None or str(record.owner_id) != claims["sub"]:
            logger.warning(f"Refresh with inactive token for account {claims['sub']}")
            raise TokenInvalidError()

        account = self.accounts.find_by_id(record.owner_id)
        if account is None:
            raise TokenInvalidError()
        if not account.is_active:
            raise AccountDisabledError()

        tokens, token_id = self._sign_pair(account, self.settings.JWT_REFRESH_EXPIRES_IN)
        successor = self.refresh_tokens.rotate(
            presented_value=refresh_token,
            owner_id=account.id,
            successor_value=tokens.refresh_token,
            successor_expires_at=tokens.refresh_expires_at,
            successor_token_id=token_id,
        )
        if successor is None:
            logger.warning(f"Refresh token for account {account.id} was consumed concurrently")
            raise TokenInvalidError()

        logger.info(f"Refresh token rotated: account={account.id} record={record.id}->{successor.id}")
        return tokens

    # PUBLIC_INTERFACE
    def logout(self, refresh_token: str) -> bool:
        """
        Revoke the session behind a refresh token.

        Unknown or already revoked tokens are not an error.

        Returns:
            True if an active session was revoked.
        """
        record = self.refresh_tokens.find_active(refresh_token)
        if record is None:
            return False

        revoked = self.refresh_tokens.revoke(record.id)
        if revoked:
            logger.info(f"Logout: account={record.owner_id} record={record.id}")
        return revoked

    # PUBLIC_INTERFACE
    def logout_all(self, account_id: int) -> int:
        """
        Revoke every session of an account.

        Returns:
            Number of sessions revoked.
        """
        count = self.refresh_tokens.revoke_all_for_owner(account_id)
        logger.info(f"Logout from all devices: account={account_id} revoked={count}")
        return count

    # PUBLIC_INTERFACE
    def change_password(self, account_id: int, current_password: str, new_password: str) -> int:
        """
        Change the password after checking the current one, then end all sessions.

        Returns:
            Number of sessions revoked.

        Raises:
            AccountNotFoundError: If the account does not exist.
            InvalidRequestError: If the current password is wrong.
            WeakPasswordError: If the new password fails the policy.
        """
        account = self.accounts.find_by_id(account_id)
        if account is None:
            raise AccountNotFoundError()

        if not self.passwords.verify_password(current_password, account.hashed_password):
            raise InvalidRequestError("Current password is incorrect")

        self.validator.validate_or_raise(new_password)
        self.accounts.update(account.id, {"hashed_password": self.passwords.hash_password(new_password)})

        logger.info(f"Password changed: account={account.id}")
        return self.logout_all(account.id)

    # PUBLIC_INTERFACE
    def forgot_password(self, email: str) -> None:
        """
        Mail a password-reset link.

        Unknown emails are silently ignored so the caller's response does not
        reveal whether an account exists.
        """
        account = self.accounts.find_by_email(email)
        if account is None:
            return

        token = self._issue_one_time_token(
            OneTimeTokenPurpose.PASSWORD_RESET,
            account.email,
            self.settings.PASSWORD_RESET_EXPIRES_IN,
        )
        self.dispatcher.dispatch(
            "password reset email",
            self.mailer.send_password_reset_email,
            to=account.email,
            name=account.first_name,
            token=token,
        )
        logger.info(f"Password reset requested: account={account.id}")

    # PUBLIC_INTERFACE
    def reset_password(self, token: str, new_password: str) -> int:
        """
        Set a new password with a mailed reset token, then end all sessions.

        Returns:
            Number of sessions revoked.

        Raises:
            WeakPasswordError: If the new password fails the policy.
            InvalidRequestError: If the token is unknown, used or expired.
        """
        self.validator.validate_or_raise(new_password)

        email = self.one_time_tokens.consume(OneTimeTokenPurpose.PASSWORD_RESET, token)
        if email is None:
            raise InvalidRequestError("Invalid or expired reset token")

        account = self.accounts.find_by_email(email)
        if account is None:
            raise InvalidRequestError("Invalid or expired reset token")

        self.accounts.update(account.id, {"hashed_password": self.passwords.hash_password(new_password)})

        logger.info(f"Password reset: account={account.id}")
        return self.logout_all(account.id)

    # PUBLIC_INTERFACE
    def verify_email(self, token: str) -> User:
        """
        Mark the account behind a verification token as verified.

        Raises:
            InvalidRequestError: If the token is unknown, used or expired.
        """
        email = self.one_time_tokens.consume(OneTimeTokenPurpose.EMAIL_VERIFICATION, token)
        account = self.accounts.find_by_email(email) if email else None
        if account is None:
            raise InvalidRequestError("Invalid or expired verification token")

        account = self.accounts.update(account.id, {
            "is_email_verified": True,
            "email_verified_at": utcnow(),
        })
        self.dispatcher.dispatch(
            "welcome email",
            self.mailer.send_welcome_email,
            to=account.email,
            name=account.first_name,
        )

        logger.info(f"Email verified: account={account.id}")
        return account

    # PUBLIC_INTERFACE
    def resend_verification_email(self, email: str) -> None:
        """
        Mail a fresh verification link.

        Unknown and already verified emails are silently ignored.
        """
        account = self.accounts.find_by_email(email)
        if account is None or account.is_email_verified:
            return

        token = self._issue_one_time_token(
            OneTimeTokenPurpose.EMAIL_VERIFICATION,
            account.email,
            self.settings.EMAIL_VERIFICATION_EXPIRES_IN,
        )
        self.dispatcher.dispatch(
            "verification email",
            self.mailer.send_verification_email,
            to=account.email,
            name=account.first_name,
            token=token,
        )
        logger.info(f"Verification email resent: account={account.id}")

    # PUBLIC_INTERFACE
    def get_current_account(self, account_id: int) -> User:
        """
        Load the profile of an authenticated account.

        Raises:
            AccountNotFoundError: If the account does not exist.
        """
        account = self.accounts.find_by_id(account_id)
        if account is None:
            raise AccountNotFoundError()
        return account

    def _sign_pair(self, account: User, refresh_expires_in: str) -> Tuple[TokenPair, str]:
        access_expires_at = self.codec.expiry_date(self.settings.JWT_ACCESS_EXPIRES_IN)
        refresh_expires_at = self.codec.expiry_date(refresh_expires_in)
        token_id = uuid.uuid4().hex

        access_token = self.codec.issue_access(
            {"sub": account.id, "email": account.email, "role": account.role.value},
            expires_at=access_expires_at,
        )
        refresh_token = self.codec.issue_refresh(
            {"sub": account.id, "jti": token_id},
            expires_at=refresh_expires_at,
        )
        tokens = TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=access_expires_at,
            refresh_expires_at=refresh_expires_at,
        )
        return tokens, token_id

    def _issue_pair(self, account: User, refresh_expires_in: Optional[str] = None) -> TokenPair:
        """Sign a pair and persist the refresh record before handing it out."""
        tokens, token_id = self._sign_pair(account, refresh_expires_in or self.settings.JWT_REFRESH_EXPIRES_IN)
        self.refresh_tokens.create(
            owner_id=account.id,
            signed_value=tokens.refresh_token,
            expires_at=tokens.refresh_expires_at,
            token_id=token_id,
        )
        return tokens

    def _issue_one_time_token(self, purpose: OneTimeTokenPurpose, email: str, expires_in: str) -> str:
        token = generate_url_safe_token()
        self.one_time_tokens.issue(purpose, email, token, get_token_expiry_date(expires_in))
        return token
