"""
Lawyer booking authentication service.

This package provides the account session lifecycle:
- Password hashing and strength validation
- Access/refresh JWT issuance and verification
- Refresh token persistence, rotation and revocation
- Registration, login, logout, password change/reset and email verification
- Per-request bearer authentication for FastAPI routes
"""

__version__ = "0.1.0"

from booking_auth.errors import (
    AccountDisabledError,
    AccountNotFoundError,
    AuthError,
    ConflictError,
    ForbiddenError,
    InvalidCredentialsError,
    InvalidDurationFormatError,
    InvalidRequestError,
    StorageUnavailableError,
    TokenError,
    TokenExpiredError,
    TokenInvalidError,
    UnauthenticatedError,
    WeakPasswordError,
)

from booking_auth.config import (
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
    Settings,
    get_settings,
)

from booking_auth.database import Base, Database

from booking_auth.models import (
    OneTimeToken,
    OneTimeTokenPurpose,
    RefreshToken,
    User,
    UserRole,
)

from booking_auth.security import PasswordManager, PasswordValidator
from booking_auth.token import TokenCodec
from booking_auth.store import OneTimeTokenStore, RefreshTokenStore
from booking_auth.accounts import AccountStore, SqlAccountStore
from booking_auth.auth import AuthResult, IdentityService, TokenPair

__all__ = [
    "__version__",
    "AccountDisabledError",
    "AccountNotFoundError",
    "AuthError",
    "ConflictError",
    "ForbiddenError",
    "InvalidCredentialsError",
    "InvalidDurationFormatError",
    "InvalidRequestError",
    "StorageUnavailableError",
    "TokenError",
    "TokenExpiredError",
    "TokenInvalidError",
    "UnauthenticatedError",
    "WeakPasswordError",
    "TOKEN_TYPE_ACCESS",
    "TOKEN_TYPE_REFRESH",
    "Settings",
    "get_settings",
    "Base",
    "Database",
    "OneTimeToken",
    "OneTimeTokenPurpose",
    "RefreshToken",
    "User",
    "UserRole",
    "PasswordManager",
    "PasswordValidator",
    "TokenCodec",
    "OneTimeTokenStore",
    "RefreshTokenStore",
    "AccountStore",
    "SqlAccountStore",
    "AuthResult",
    "IdentityService",
    "TokenPair",
]
