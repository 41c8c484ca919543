"""
Security utilities for the booking authentication service.

This module provides password hashing and verification, password strength
validation and random token generation.
"""
import logging
import re
import secrets
from typing import List, Optional, Pattern, Tuple

from passlib.context import CryptContext

from booking_auth.errors import WeakPasswordError

# Configure logging
logger = logging.getLogger(__name__)

# Security constants
MIN_BCRYPT_ROUNDS = 10
DEFAULT_BCRYPT_ROUNDS = 12
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 72  # bcrypt only looks at the first 72 bytes


class PasswordValidator:
    """
    Password strength validator.

    Validates passwords against configurable strength requirements.
    """

    def __init__(
        self,
        min_length: int = MIN_PASSWORD_LENGTH,
        max_length: int = MAX_PASSWORD_LENGTH,
        require_uppercase: bool = True,
        require_lowercase: bool = True,
        require_digit: bool = True,
        require_special: bool = True,
        disallow_common: bool = True
    ):
        """
        Initialize the password validator with configurable requirements.

        Args:
            min_length: Minimum password length.
            max_length: Maximum password length.
            require_uppercase: Whether to require uppercase letters.
            require_lowercase: Whether to require lowercase letters.
            require_digit: Whether to require at least one digit.
            require_special: Whether to require at least one special character.
            disallow_common: Whether to disallow common passwords.
        """
        self.min_length = min_length
        self.max_length = max_length
        self.require_uppercase = require_uppercase
        self.require_lowercase = require_lowercase
        self.require_digit = require_digit
        self.require_special = require_special
        self.disallow_common = disallow_common

        self.common_passwords = {
            "password", "123456", "qwerty", "admin", "welcome",
            "123456789", "12345678", "abc123", "password1", "admin123",
            "password123", "welcome1", "qwerty123",
        }

        self.uppercase_pattern: Pattern = re.compile(r"[A-Z]")
        self.lowercase_pattern: Pattern = re.compile(r"[a-z]")
        self.digit_pattern: Pattern = re.compile(r"\d")
        self.special_pattern: Pattern = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>\/?~`]")

    @classmethod
    def from_settings(cls, settings) -> "PasswordValidator":
        """Build a validator from the password policy settings."""
        return cls(
            min_length=settings.PASSWORD_MIN_LENGTH,
            require_uppercase=settings.PASSWORD_REQUIRE_UPPERCASE,
            require_lowercase=settings.PASSWORD_REQUIRE_LOWERCASE,
            require_digit=settings.PASSWORD_REQUIRE_DIGIT,
            require_special=settings.PASSWORD_REQUIRE_SPECIAL,
        )

    # PUBLIC_INTERFACE
    def validate(self, password: str) -> Tuple[bool, List[str]]:
        """
        Validate a password against the configured requirements.

        Args:
            password: Password to validate.

        Returns:
            Tuple containing:
                - Boolean indicating if the password is valid.
                - List of validation error messages (empty if valid).
        """
        errors = []

        if len(password) < self.min_length:
            errors.append(f"Password must be at least {self.min_length} characters long.")

        if len(password.encode("utf-8")) > self.max_length:
            errors.append(f"Password must be at most {self.max_length} bytes long.")

        if self.require_uppercase and not self.uppercase_pattern.search(password):
            errors.append("Password must contain at least one uppercase letter.")

        if self.require_lowercase and not self.lowercase_pattern.search(password):
            errors.append("Password must contain at least one lowercase letter.")

        if self.require_digit and not self.digit_pattern.search(password):
            errors.append("Password must contain at least one digit.")

        if self.require_special and not self.special_pattern.search(password):
            errors.append("Password must contain at least one special character.")

        if self.disallow_common and password.lower() in self.common_passwords:
            errors.append("Password is too common and easily guessable.")

        return len(errors) == 0, errors

    # PUBLIC_INTERFACE
    def validate_or_raise(self, password: str) -> None:
        """
        Validate a password and raise an exception if it's invalid.

        Args:
            password: Password to validate.

        Raises:
            WeakPasswordError: If the password does not meet the requirements.
        """
        is_valid, errors = self.validate(password)
        if not is_valid:
            raise WeakPasswordError(" ".join(errors))


class PasswordManager:
    """
    Credential hasher.

    Salted bcrypt hashing with a fixed work factor. Hashing and verification
    are deliberately slow; callers on an event loop must run them in a worker
    thread.
    """

    def __init__(self, rounds: int = DEFAULT_BCRYPT_ROUNDS):
        """
        Initialize the password manager.

        Args:
            rounds: bcrypt cost factor, at least ``MIN_BCRYPT_ROUNDS``.
        """
        if rounds < MIN_BCRYPT_ROUNDS:
            raise ValueError(f"bcrypt rounds must be at least {MIN_BCRYPT_ROUNDS}")
        self.rounds = rounds
        self.context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
            bcrypt__min_rounds=rounds,
        )

    # PUBLIC_INTERFACE
    def hash_password(self, password: str) -> str:
        """
        Hash a password using bcrypt with a fresh salt.

        Args:
            password: Plain text password to hash.

        Returns:
            Hashed password string.
        """
        return self.context.hash(password)

    # PUBLIC_INTERFACE
    def verify_password(self, plain_password: str, hashed_password: Optional[str]) -> bool:
        """
        Verify a password against a hash.

        Malformed or missing hashes verify as False instead of raising.

        Args:
            plain_password: Plain text password to verify.
            hashed_password: Hashed password to compare against.

        Returns:
            True if the password matches the hash, False otherwise.
        """
        if not plain_password or not hashed_password:
            return False
        try:
            return self.context.verify(plain_password, hashed_password)
        except (ValueError, TypeError) as e:
            logger.warning(f"Password verification against an unusable hash: {e.__class__.__name__}")
            return False

    # PUBLIC_INTERFACE
    def dummy_verify(self) -> None:
        """Spend the same time as a real verification, for unknown accounts."""
        self.context.dummy_verify()

    # PUBLIC_INTERFACE
    def needs_rehash(self, hashed_password: str) -> bool:
        """
        Check if a password hash needs to be updated.

        Hashes made with a lower cost than the configured one do.

        Args:
            hashed_password: Hashed password to check.

        Returns:
            True if the password should be rehashed, False otherwise.
        """
        return self.context.needs_update(hashed_password)


# PUBLIC_INTERFACE
def generate_url_safe_token(length: int = 32) -> str:
    """
    Generate a secure random URL-safe token.

    Args:
        length: Number of random bytes.

    Returns:
        URL-safe base64 encoded token without padding.
    """
    return secrets.token_urlsafe(length)
