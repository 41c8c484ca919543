"""
JWT token codec for the booking authentication service.

This module signs and verifies the two bearer token kinds. Access and refresh
tokens are signed with separate keys and carry a ``type`` claim; verification
for one kind rejects the other, so a refresh token can never be replayed
against a protected endpoint and vice versa.
"""
import datetime
import logging
import uuid
from typing import Any, Dict, Optional

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from booking_auth.config.jwt_config import (TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH,
                                            get_token_expiry_date, utcnow)
from booking_auth.errors import TokenExpiredError, TokenInvalidError

# Configure logger
logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["exp", "iat", "sub", "type", "iss", "aud"]


class TokenCodec:
    """
    Signs and verifies access and refresh tokens.

    Holds only immutable configuration, so one instance is shared by all
    request handlers.
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        issuer: str = "lawyer-booking",
        audience: str = "lawyer-booking-api",
        access_expires_in: str = "7d",
        refresh_expires_in: str = "30d",
    ):
        if not access_secret or not refresh_secret:
            raise ValueError("Token secrets must not be empty")
        self._secrets = {
            TOKEN_TYPE_ACCESS: access_secret,
            TOKEN_TYPE_REFRESH: refresh_secret,
        }
        self.algorithm = algorithm
        self.issuer = issuer
        self.audience = audience
        self.access_expires_in = access_expires_in
        self.refresh_expires_in = refresh_expires_in

    @classmethod
    def from_settings(cls, settings) -> "TokenCodec":
        """Build a codec from application settings."""
        return cls(
            access_secret=settings.JWT_SECRET,
            refresh_secret=settings.JWT_REFRESH_SECRET,
            algorithm=settings.JWT_ALGORITHM,
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
            access_expires_in=settings.JWT_ACCESS_EXPIRES_IN,
            refresh_expires_in=settings.JWT_REFRESH_EXPIRES_IN,
        )

    # PUBLIC_INTERFACE
    def issue_access(self, claims: Dict[str, Any], expires_at: Optional[datetime.datetime] = None) -> str:
        """
        Create a signed access token.

        Args:
            claims: Must contain ``sub``; ``email`` and ``role`` are carried along.
            expires_at: Absolute expiry, defaults to the configured access lifetime.

        Returns:
            JWT access token string.
        """
        payload = {
            "sub": str(claims["sub"]),
            "email": claims.get("email"),
            "role": claims.get("role"),
        }
        return self._encode(payload, TOKEN_TYPE_ACCESS, expires_at or self.expiry_date(self.access_expires_in))

    # PUBLIC_INTERFACE
    def issue_refresh(self, claims: Dict[str, Any], expires_at: Optional[datetime.datetime] = None) -> str:
        """
        Create a signed refresh token with a unique ``jti``.

        Args:
            claims: Must contain ``sub``; ``jti`` is generated when absent.
            expires_at: Absolute expiry, defaults to the configured refresh lifetime.

        Returns:
            JWT refresh token string.
        """
        payload = {
            "sub": str(claims["sub"]),
            "jti": claims.get("jti") or uuid.uuid4().hex,
        }
        return self._encode(payload, TOKEN_TYPE_REFRESH, expires_at or self.expiry_date(self.refresh_expires_in))

    def _encode(self, payload: Dict[str, Any], token_type: str, expires_at: datetime.datetime) -> str:
        payload.update({
            "type": token_type,
            "iat": utcnow(),
            "exp": expires_at,
            "iss": self.issuer,
            "aud": self.audience,
        })
        return jwt.encode(payload, self._secrets[token_type], algorithm=self.algorithm)

    # PUBLIC_INTERFACE
    def verify_access(self, token: str) -> Dict[str, Any]:
        """
        Verify an access token.

        Raises:
            TokenExpiredError: If the token has expired.
            TokenInvalidError: For a bad signature, issuer, audience or kind.
        """
        return self._verify(token, TOKEN_TYPE_ACCESS)

    # PUBLIC_INTERFACE
    def verify_refresh(self, token: str) -> Dict[str, Any]:
        """
        Verify a refresh token.

        Raises:
            TokenExpiredError: If the token has expired.
            TokenInvalidError: For a bad signature, issuer, audience or kind.
        """
        return self._verify(token, TOKEN_TYPE_REFRESH)

    def _verify(self, token: str, expected_type: str) -> Dict[str, Any]:
        if not token or not isinstance(token, str):
            raise TokenInvalidError()
        try:
            payload = jwt.decode(
                token,
                self._secrets[expected_type],
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"require": REQUIRED_CLAIMS},
            )
        except ExpiredSignatureError:
            raise TokenExpiredError()
        except InvalidTokenError as e:
            logger.debug(f"Rejected {expected_type} token: {e.__class__.__name__}")
            raise TokenInvalidError()

        if payload.get("type") != expected_type:
            logger.warning(f"Token type mismatch: expected {expected_type}, got {payload.get('type')!r}")
            raise TokenInvalidError()

        if expected_type == TOKEN_TYPE_REFRESH and not payload.get("jti"):
            raise TokenInvalidError()

        return payload

    # PUBLIC_INTERFACE
    def decode_unsafe(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Decode a token without verifying its signature or expiry.

        Only for introspection such as deciding when to refresh. Never use the
        result to authorize anything.

        Returns:
            The claims, or None if the token cannot be decoded at all.
        """
        try:
            return jwt.decode(token, options={"verify_signature": False})
        except InvalidTokenError:
            return None

    # PUBLIC_INTERFACE
    def expires_at(self, token: str) -> Optional[datetime.datetime]:
        """
        Read a token's expiry without verifying it.

        Returns:
            Naive UTC expiry, or None if undecodable or without ``exp``.
        """
        claims = self.decode_unsafe(token)
        if not claims or not isinstance(claims.get("exp"), (int, float)):
            return None
        return datetime.datetime.fromtimestamp(claims["exp"], tz=datetime.timezone.utc).replace(tzinfo=None)

    # PUBLIC_INTERFACE
    def expiry_date(self, expires_in: str) -> datetime.datetime:
        """
        Turn a duration expression such as ``"7d"`` into an absolute timestamp.

        Raises:
            InvalidDurationFormatError: If the expression is malformed.
        """
        return get_token_expiry_date(expires_in)
