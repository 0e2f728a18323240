"""
Token store adapter: the only code that touches persisted token state.

The services see principals as detached, immutable ``Principal`` views and
mutate exactly one field, ``current_refresh_token``. Rotation goes through
``compare_and_set_refresh_token`` so concurrent renewals are serialised by the
database, not by in-process locks.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models.db_storage import DBStorage
from models.user import User
from services.errors import StoreUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    id: str
    email: str
    role: str
    password_hash: str
    current_refresh_token: Optional[str] = None
    name: Optional[str] = None


def normalize_email(email: str) -> str:
    return email.strip().lower() if isinstance(email, str) else email


class TokenStore(Protocol):
    def get_principal_by_id(self, principal_id: str) -> Optional[Principal]: ...

    def get_principal_by_email(self, email: str) -> Optional[Principal]: ...

    def set_refresh_token(self, principal_id: str, token: Optional[str]) -> bool: ...

    def compare_and_set_refresh_token(
        self, principal_id: str, expected: str, new: Optional[str]
    ) -> bool: ...

    def create_principal(
        self, email: str, password_hash: str, role: str = "CLIENT", name: Optional[str] = None
    ) -> Principal: ...


def _to_principal(user: User) -> Principal:
    return Principal(
        id=user.id,
        email=user.email,
        role=user.role,
        password_hash=user.password_hash,
        current_refresh_token=user.current_refresh_token,
        name=user.name,
    )


class SQLTokenStore:
    """TokenStore over the users table through DBStorage's scoped session."""

    def __init__(self, storage: DBStorage):
        self.storage = storage

    @contextmanager
    def _session(self) -> Iterator:
        session = self.storage.get_session()
        try:
            yield session
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("token store call failed: %s", exc.__class__.__name__)
            raise StoreUnavailable() from exc

    def _fetch_one(self, stmt) -> Optional[Principal]:
        with self._session() as session:
            # populate_existing: never answer from a stale identity map
            user = session.execute(
                stmt.execution_options(populate_existing=True)
            ).scalar_one_or_none()
            return _to_principal(user) if user else None

    def get_principal_by_id(self, principal_id: str) -> Optional[Principal]:
        return self._fetch_one(select(User).where(User.id == principal_id))

    def get_principal_by_email(self, email: str) -> Optional[Principal]:
        return self._fetch_one(select(User).where(User.email == normalize_email(email)))

    def set_refresh_token(self, principal_id: str, token: Optional[str]) -> bool:
        """Overwrite the stored token. False when no such principal exists."""
        with self._session() as session:
            result = session.execute(
                update(User)
                .where(User.id == principal_id)
                .values(current_refresh_token=token)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    def compare_and_set_refresh_token(
        self, principal_id: str, expected: str, new: Optional[str]
    ) -> bool:
        """Atomically swap the stored token only if it still equals ``expected``."""
        with self._session() as session:
            result = session.execute(
                update(User)
                .where(User.id == principal_id, User.current_refresh_token == expected)
                .values(current_refresh_token=new)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    def create_principal(
        self, email: str, password_hash: str, role: str = "CLIENT", name: Optional[str] = None
    ) -> Principal:
        user = User(
            email=normalize_email(email),
            password_hash=password_hash,
            role=role,
            name=name,
            current_refresh_token=None,
        )
        try:
            with self._session() as session:
                session.add(user)
        except IntegrityError:
            raise ValueError("Email already registered") from None
        return _to_principal(user)
