"""
Configuration package for the booking authentication service.
"""

from booking_auth.config.jwt_config import (
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
    get_token_expiry_date,
    parse_duration,
    utcnow,
)
from booking_auth.config.settings import Settings, get_settings

__all__ = [
    "TOKEN_TYPE_ACCESS",
    "TOKEN_TYPE_REFRESH",
    "get_token_expiry_date",
    "parse_duration",
    "utcnow",
    "Settings",
    "get_settings",
]
