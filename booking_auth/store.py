"""
Durable token stores for the booking authentication service.

``RefreshTokenStore`` is the source of truth for refresh-token revocation and
rotation. ``OneTimeTokenStore`` keeps the single-use tokens mailed for email
verification and password resets. Both map every storage failure to
``StorageUnavailableError`` through ``Database.session_scope``.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select, update

from booking_auth.config.jwt_config import utcnow
from booking_auth.database import Database
from booking_auth.models import OneTimeToken, OneTimeTokenPurpose, RefreshToken

# Configure logger
logger = logging.getLogger(__name__)


class RefreshTokenStore:
    """SQLAlchemy-backed store of issued refresh tokens."""

    def __init__(self, database: Database):
        self.database = database

    # PUBLIC_INTERFACE
    def create(
        self,
        owner_id: int,
        signed_value: str,
        expires_at: datetime,
        token_id: Optional[str] = None,
    ) -> RefreshToken:
        """
        Persist a freshly issued refresh token.

        Args:
            owner_id: Account that owns the token.
            signed_value: The exact signed token string.
            expires_at: Absolute expiry of the token.
            token_id: The token's ``jti`` claim.

        Returns:
            The stored record.
        """
        with self.database.session_scope() as session:
            record = RefreshToken(
                owner_id=owner_id,
                signed_value=signed_value,
                expires_at=expires_at,
            )
            if token_id:
                record.token_id = token_id
            session.add(record)
            session.flush()
            logger.debug(f"Stored refresh token {record.id} for account {owner_id}")
            return record

    # PUBLIC_INTERFACE
    def find_active(self, signed_value: str) -> Optional[RefreshToken]:
        """
        Find a non-revoked, non-expired record by its exact signed value.

        Returns:
            The record, or None.
        """
        with self.database.session_scope() as session:
            return session.execute(
                select(RefreshToken).where(
                    RefreshToken.signed_value == signed_value,
                    RefreshToken.is_revoked.is_(False),
                    RefreshToken.expires_at > utcnow(),
                )
            ).scalar_one_or_none()

    # PUBLIC_INTERFACE
    def get(self, record_id: int) -> Optional[RefreshToken]:
        """Fetch a record by id regardless of its state."""
        with self.database.session_scope() as session:
            return session.get(RefreshToken, record_id)

    # PUBLIC_INTERFACE
    def list_for_owner(self, owner_id: int, active_only: bool = False) -> List[RefreshToken]:
        """
        List an owner's records, newest first.

        Args:
            owner_id: Account id.
            active_only: Skip revoked and expired records.
        """
        with self.database.session_scope() as session:
            query = select(RefreshToken).where(RefreshToken.owner_id == owner_id)
            if active_only:
                query = query.where(
                    RefreshToken.is_revoked.is_(False),
                    RefreshToken.expires_at > utcnow(),
                )
            query = query.order_by(RefreshToken.created_at.desc(), RefreshToken.id.desc())
            return list(session.execute(query).scalars())

    # PUBLIC_INTERFACE
    def revoke(self, record_id: int) -> bool:
        """
        Revoke a single record.

        Idempotent: revoking an already revoked record changes nothing.

        Returns:
            True if this call flipped the record to revoked.
        """
        with self.database.session_scope() as session:
            result = session.execute(
                update(RefreshToken)
                .where(RefreshToken.id == record_id, RefreshToken.is_revoked.is_(False))
                .values(is_revoked=True, revoked_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    # PUBLIC_INTERFACE
    def revoke_all_for_owner(self, owner_id: int) -> int:
        """
        Revoke every not-yet-revoked record of an owner.

        Returns:
            Number of records revoked by this call.
        """
        with self.database.session_scope() as session:
            result = session.execute(
                update(RefreshToken)
                .where(RefreshToken.owner_id == owner_id, RefreshToken.is_revoked.is_(False))
                .values(is_revoked=True, revoked_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    # PUBLIC_INTERFACE
    def rotate(
        self,
        presented_value: str,
        owner_id: int,
        successor_value: str,
        successor_expires_at: datetime,
        successor_token_id: Optional[str] = None,
    ) -> Optional[RefreshToken]:
        """
        Revoke the presented token and store its successor in one transaction.

        The revocation is a conditional update on the presented value, so of
        several concurrent callers presenting the same token exactly one sees
        a row change and gets the successor stored; the others get None.

        Returns:
            The successor record, or None if the presented token was no longer active.
        """
        now = utcnow()
        with self.database.session_scope() as session:
            result = session.execute(
                update(RefreshToken)
                .where(
                    RefreshToken.signed_value == presented_value,
                    RefreshToken.owner_id == owner_id,
                    RefreshToken.is_revoked.is_(False),
                    RefreshToken.expires_at > now,
                )
                .values(is_revoked=True, revoked_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None

            successor = RefreshToken(
                owner_id=owner_id,
                signed_value=successor_value,
                expires_at=successor_expires_at,
            )
            if successor_token_id:
                successor.token_id = successor_token_id
            session.add(successor)
            session.flush()
            return successor


class OneTimeTokenStore:
    """SQLAlchemy-backed store of single-use mailed tokens."""

    def __init__(self, database: Database):
        self.database = database

    # PUBLIC_INTERFACE
    def issue(self, purpose: OneTimeTokenPurpose, email: str, token: str, expires_at: datetime) -> OneTimeToken:
        """
        Store a new token, dropping any unused ones for the same purpose and email.

        Returns:
            The stored token record.
        """
        with self.database.session_scope() as session:
            session.execute(
                delete(OneTimeToken)
                .where(
                    OneTimeToken.purpose == purpose,
                    OneTimeToken.email == email,
                    OneTimeToken.used_at.is_(None),
                )
                .execution_options(synchronize_session=False)
            )
            record = OneTimeToken(purpose=purpose, email=email, token=token, expires_at=expires_at)
            session.add(record)
            session.flush()
            return record

    # PUBLIC_INTERFACE
    def consume(self, purpose: OneTimeTokenPurpose, token: str) -> Optional[str]:
        """
        Mark a token used if it is still valid.

        Returns:
            The email the token was issued for, or None if unknown, used or expired.
        """
        now = utcnow()
        with self.database.session_scope() as session:
            record = session.execute(
                select(OneTimeToken).where(OneTimeToken.purpose == purpose, OneTimeToken.token == token)
            ).scalar_one_or_none()
            if record is None:
                return None

            result = session.execute(
                update(OneTimeToken)
                .where(
                    OneTimeToken.id == record.id,
                    OneTimeToken.used_at.is_(None),
                    OneTimeToken.expires_at > now,
                )
                .values(used_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None
            return record.email
