"""
Error taxonomy for the booking authentication service.

Every error carries a stable machine ``code``, the HTTP ``status_code`` the
API layer answers with, and a default human readable message. Callers branch
on the exception class, never on message text.
"""
from typing import Optional


class AuthError(Exception):
    """Base exception for authentication-related errors."""
    code = "AUTH_ERROR"
    status_code = 400
    default_message = "Authentication failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentialsError(AuthError):
    """Raised for an unknown email or a wrong password, indistinguishably."""
    code = "INVALID_CREDENTIALS"
    status_code = 401
    default_message = "Invalid email or password"


class AccountDisabledError(AuthError):
    """Raised when the account's active flag is off."""
    code = "ACCOUNT_DISABLED"
    status_code = 403
    default_message = "Account has been disabled"


class ConflictError(AuthError):
    """Raised when the identifying email is already registered."""
    code = "ALREADY_EXISTS"
    status_code = 409
    default_message = "An account with this email already exists"


class AccountNotFoundError(AuthError):
    """Raised when an authenticated operation targets a missing account."""
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Account not found"


class UnauthenticatedError(AuthError):
    """Raised when the bearer header is absent or malformed."""
    code = "UNAUTHORIZED"
    status_code = 401
    default_message = "No authentication token provided"


class ForbiddenError(AuthError):
    """Raised when an authenticated caller lacks the required role."""
    code = "FORBIDDEN"
    status_code = 403
    default_message = "Access denied"


class InvalidRequestError(AuthError):
    """Raised for caller mistakes such as a wrong current password."""
    code = "INVALID_INPUT"
    status_code = 400
    default_message = "Bad request"


class WeakPasswordError(AuthError):
    """Raised when a password does not meet strength requirements."""
    code = "WEAK_PASSWORD"
    status_code = 422
    default_message = "Password does not meet strength requirements"


class TokenError(AuthError):
    """Base exception for token-related errors."""
    code = "TOKEN_INVALID"
    status_code = 401
    default_message = "Invalid token"


class TokenExpiredError(TokenError):
    """Exception raised when a token has expired."""
    code = "TOKEN_EXPIRED"
    default_message = "Token has expired"


class TokenInvalidError(TokenError):
    """Exception raised for a bad signature, wrong kind or unknown record."""
    code = "TOKEN_INVALID"
    default_message = "Invalid token"


class StorageUnavailableError(AuthError):
    """Raised when the backing store cannot complete an operation."""
    code = "STORAGE_UNAVAILABLE"
    status_code = 503
    default_message = "Storage is temporarily unavailable"


class InvalidDurationFormatError(AuthError):
    """Raised for a malformed duration expression such as ``"7x"``."""
    code = "INVALID_DURATION"
    status_code = 500
    default_message = "Invalid duration format"
