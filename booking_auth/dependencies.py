"""
Request authentication for the booking authentication service.

``RequestAuthenticator`` turns the token of an ``Authorization: Bearer``
header into an ``AccountContext``, re-loading the account on every request so that a
disabled or demoted account loses access before its access token expires.
The FastAPI dependency functions below expose it to route handlers.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from booking_auth.accounts import AccountStore
from booking_auth.auth import IdentityService
from booking_auth.errors import (AccountDisabledError, AuthError,
                                 ForbiddenError, TokenInvalidError,
                                 UnauthenticatedError)
from booking_auth.models import UserRole
from booking_auth.token import TokenCodec

# Configure logger
logger = logging.getLogger(__name__)

# Security scheme for JWT tokens
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AccountContext:
    """Identity attached to a request."""
    id: Optional[int] = None
    email: Optional[str] = None
    role: Optional[UserRole] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_email_verified: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.id is not None

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


ANONYMOUS = AccountContext()


class RequestAuthenticator:
    """Per-request access-token check."""

    def __init__(self, codec: TokenCodec, accounts: AccountStore):
        self.codec = codec
        self.accounts = accounts

    # PUBLIC_INTERFACE
    def authenticate(self, token: Optional[str]) -> AccountContext:
        """
        Authenticate a request from its bearer token.

        Args:
            token: The credential of the ``Authorization: Bearer`` header.

        Raises:
            UnauthenticatedError: No bearer token was presented.
            TokenExpiredError: Access token expired.
            TokenInvalidError: Bad token, wrong kind, or unknown account.
            AccountDisabledError: Account is no longer active.
        """
        if not token:
            raise UnauthenticatedError()
        claims = self.codec.verify_access(token)

        try:
            account_id = int(claims["sub"])
        except (TypeError, ValueError):
            raise TokenInvalidError()

        account = self.accounts.find_by_id(account_id)
        if account is None:
            raise TokenInvalidError()
        if not account.is_active:
            raise AccountDisabledError()

        return AccountContext(
            id=account.id,
            email=account.email,
            role=account.role,
            first_name=account.first_name,
            last_name=account.last_name,
            is_email_verified=account.is_email_verified,
        )

    # PUBLIC_INTERFACE
    def optional_authenticate(self, token: Optional[str]) -> AccountContext:
        """
        Like ``authenticate`` but degrade to ``ANONYMOUS`` on any auth failure.
        """
        if not token:
            return ANONYMOUS
        try:
            return self.authenticate(token)
        except AuthError as e:
            logger.debug(f"Optional authentication failed: {e.code}")
            return ANONYMOUS


# PUBLIC_INTERFACE
def get_identity_service(request: Request) -> IdentityService:
    """Identity service wired in ``create_app``."""
    return request.app.state.identity_service


# PUBLIC_INTERFACE
def get_authenticator(request: Request) -> RequestAuthenticator:
    """Request authenticator wired in ``create_app``."""
    return request.app.state.authenticator


# PUBLIC_INTERFACE
def get_current_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    authenticator: RequestAuthenticator = Depends(get_authenticator),
) -> AccountContext:
    """
    Get the authenticated account for the request.

    Runs in FastAPI's threadpool since it performs a store lookup.

    Args:
        credentials: HTTP Authorization credentials.

    Raises:
        UnauthenticatedError: If no bearer credential was sent.
    """
    if not credentials:
        raise UnauthenticatedError()
    return authenticator.authenticate(credentials.credentials)


# PUBLIC_INTERFACE
def get_optional_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    authenticator: RequestAuthenticator = Depends(get_authenticator),
) -> AccountContext:
    """Get the authenticated account, or ``ANONYMOUS``."""
    if not credentials:
        return ANONYMOUS
    return authenticator.optional_authenticate(credentials.credentials)


# PUBLIC_INTERFACE
def require_verified_email(
    account: AccountContext = Depends(get_current_account),
) -> AccountContext:
    """Require an authenticated account whose email is verified."""
    if not account.is_email_verified:
        raise UnauthenticatedError("Please verify your email first")
    return account


# PUBLIC_INTERFACE
def require_roles(*roles: UserRole) -> Callable[..., AccountContext]:
    """
    Build a dependency admitting only the given roles.

    Args:
        roles: Allowed roles.
    """
    allowed = frozenset(roles)

    def _check(account: AccountContext = Depends(get_current_account)) -> AccountContext:
        if account.role not in allowed:
            names = " or ".join(sorted(role.value for role in allowed))
            raise ForbiddenError(f"Access denied. Required role: {names}")
        return account

    return _check
