"""
JWT configuration helpers for the booking authentication service.

This module holds the token type discriminators and the duration parser
shared by the settings validators and the token codec.
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from booking_auth.errors import InvalidDurationFormatError

# Token settings
TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"

_DURATION_PATTERN = re.compile(r"^(\d+)([smhd])$")
_DURATION_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
}


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# PUBLIC_INTERFACE
def parse_duration(expires_in: str) -> timedelta:
    """
    Parse a duration expression such as ``"7d"`` or ``"15m"``.

    Args:
        expires_in: Integer amount followed by one of ``s``, ``m``, ``h``, ``d``.

    Returns:
        Timedelta for the expression.

    Raises:
        InvalidDurationFormatError: If the expression is malformed.
    """
    match = _DURATION_PATTERN.match(expires_in.strip()) if isinstance(expires_in, str) else None
    if not match:
        raise InvalidDurationFormatError(f"Invalid expiry format: {expires_in!r}")

    value, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(value)})


# PUBLIC_INTERFACE
def get_token_expiry_date(expires_in: str, now: Optional[datetime] = None) -> datetime:
    """
    Turn a duration expression into an absolute naive UTC timestamp.

    Args:
        expires_in: Duration expression (see ``parse_duration``).
        now: Reference time, defaults to the current UTC time.

    Returns:
        Datetime at which the duration elapses.
    """
    return (now or utcnow()) + parse_duration(expires_in)
