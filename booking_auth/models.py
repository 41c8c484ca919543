"""
SQLAlchemy models for the booking authentication service.

This module defines the account, refresh token and one-time token tables.
All timestamps are naive UTC.
"""
import enum
import uuid

from sqlalchemy import (Boolean, Column, DateTime, Enum, ForeignKey, Integer,
                        String)
from sqlalchemy.orm import relationship

from booking_auth.config.jwt_config import utcnow
from booking_auth.database import Base


class UserRole(enum.Enum):
    """User role enumeration."""
    USER = "USER"
    LAWYER = "LAWYER"
    ADMIN = "ADMIN"


class User(Base):
    """
    Account model.

    Owned by the wider platform; the authentication service reads it and
    writes only the login timestamp, the password hash and the
    email-verification fields.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(32), nullable=True)
    role = Column(Enum(UserRole), default=UserRole.USER, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_email_verified = Column(Boolean, default=False, nullable=False)
    email_verified_at = Column(DateTime, nullable=True)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    refresh_tokens = relationship("RefreshToken", back_populates="owner", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        """String representation of the User object."""
        return f"<User(id={self.id}, email={self.email}, role={self.role.value if self.role else None})>"


class RefreshToken(Base):
    """
    Persisted refresh token record.

    Source of truth for rotation and revocation. Records are revoked, never
    deleted, so the table doubles as an audit trail.
    """
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, index=True)
    token_id = Column(String(64), unique=True, index=True, nullable=False, default=lambda: uuid.uuid4().hex)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    signed_value = Column(String(1024), unique=True, index=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    is_revoked = Column(Boolean, default=False, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    owner = relationship("User", back_populates="refresh_tokens")

    @property
    def is_active(self) -> bool:
        """Check if the token is neither revoked nor expired."""
        return not self.is_revoked and self.expires_at > utcnow()

    def __repr__(self) -> str:
        """String representation of the RefreshToken object."""
        return f"<RefreshToken(id={self.id}, owner_id={self.owner_id}, revoked={self.is_revoked})>"


class OneTimeTokenPurpose(enum.Enum):
    """What a one-time token may be exchanged for."""
    EMAIL_VERIFICATION = "EMAIL_VERIFICATION"
    PASSWORD_RESET = "PASSWORD_RESET"


class OneTimeToken(Base):
    """Single-use token mailed to the account owner."""
    __tablename__ = "one_time_tokens"

    id = Column(Integer, primary_key=True, index=True)
    purpose = Column(Enum(OneTimeTokenPurpose), nullable=False)
    email = Column(String(255), index=True, nullable=False)
    token = Column(String(128), unique=True, index=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<OneTimeToken(id={self.id}, purpose={self.purpose.value}, used={self.used_at is not None})>"
