"""
Account store for the booking authentication service.

The account entity belongs to the wider platform. The identity service only
relies on the four calls of ``AccountStore``; ``SqlAccountStore`` implements
them on the ``users`` table so the service runs standalone.
"""
import logging
from typing import Any, Dict, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from booking_auth.database import Database
from booking_auth.errors import AccountNotFoundError, ConflictError
from booking_auth.models import User, UserRole

# Configure logger
logger = logging.getLogger(__name__)

ACCOUNT_FIELDS = frozenset({
    "email",
    "hashed_password",
    "first_name",
    "last_name",
    "phone",
    "role",
    "is_active",
    "is_email_verified",
    "email_verified_at",
    "last_login_at",
})


class AccountStore(Protocol):
    """Lookup and update contract the identity service consumes."""

    def find_by_email(self, email: str) -> Optional[User]:
        ...

    def find_by_id(self, account_id: int) -> Optional[User]:
        ...

    def create(self, fields: Dict[str, Any]) -> User:
        ...

    def update(self, account_id: int, fields: Dict[str, Any]) -> User:
        ...


def normalize_email(email: str) -> str:
    return email.strip().lower()


class SqlAccountStore:
    """``AccountStore`` on the SQLAlchemy ``users`` table."""

    def __init__(self, database: Database):
        self.database = database

    # PUBLIC_INTERFACE
    def find_by_email(self, email: str) -> Optional[User]:
        """Look an account up by (case-insensitive) email."""
        with self.database.session_scope() as session:
            return session.execute(
                select(User).where(User.email == normalize_email(email))
            ).scalar_one_or_none()

    # PUBLIC_INTERFACE
    def find_by_id(self, account_id: int) -> Optional[User]:
        """Look an account up by id."""
        with self.database.session_scope() as session:
            return session.get(User, account_id)

    # PUBLIC_INTERFACE
    def create(self, fields: Dict[str, Any]) -> User:
        """
        Create an account.

        Raises:
            ConflictError: If the email is already taken.
        """
        values = self._clean(fields)
        values.setdefault("role", UserRole.USER)
        with self.database.session_scope() as session:
            user = User(**values)
            session.add(user)
            try:
                session.flush()
            except IntegrityError:
                session.rollback()
                raise ConflictError()
            logger.debug(f"Created account {user.id}")
            return user

    # PUBLIC_INTERFACE
    def update(self, account_id: int, fields: Dict[str, Any]) -> User:
        """
        Update an account's fields.

        Raises:
            AccountNotFoundError: If no such account exists.
        """
        values = self._clean(fields)
        with self.database.session_scope() as session:
            user = session.get(User, account_id)
            if user is None:
                raise AccountNotFoundError()
            for key, value in values.items():
                setattr(user, key, value)
            session.flush()
            return user

    @staticmethod
    def _clean(fields: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(fields) - ACCOUNT_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {', '.join(sorted(unknown))}")
        values = dict(fields)
        if "email" in values:
            values["email"] = normalize_email(values["email"])
        if isinstance(values.get("role"), str):
            values["role"] = UserRole(values["role"])
        return values
