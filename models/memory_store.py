from __future__ import annotations

import dataclasses
import threading
import uuid
from typing import Dict, Optional

from models.token_store import Principal, normalize_email


class MemoryTokenStore:
    """In-memory TokenStore for tests and local runs.

    Every operation holds the store lock, which gives compare-and-set the same
    atomicity a conditional UPDATE has in the SQL store.
    """

    def __init__(self) -> None:
        self._principals: Dict[str, Principal] = {}
        self._lock = threading.RLock()

    def get_principal_by_id(self, principal_id: str) -> Optional[Principal]:
        with self._lock:
            return self._principals.get(principal_id)

    def get_principal_by_email(self, email: str) -> Optional[Principal]:
        email = normalize_email(email)
        with self._lock:
            for principal in self._principals.values():
                if principal.email == email:
                    return principal
        return None

    def set_refresh_token(self, principal_id: str, token: Optional[str]) -> bool:
        with self._lock:
            principal = self._principals.get(principal_id)
            if principal is None:
                return False
            self._principals[principal_id] = dataclasses.replace(
                principal, current_refresh_token=token
            )
            return True

    def compare_and_set_refresh_token(
        self, principal_id: str, expected: str, new: Optional[str]
    ) -> bool:
        with self._lock:
            principal = self._principals.get(principal_id)
            if principal is None or principal.current_refresh_token != expected:
                return False
            self._principals[principal_id] = dataclasses.replace(
                principal, current_refresh_token=new
            )
            return True

    def create_principal(
        self, email: str, password_hash: str, role: str = "CLIENT", name: Optional[str] = None
    ) -> Principal:
        email = normalize_email(email)
        with self._lock:
            if self.get_principal_by_email(email) is not None:
                raise ValueError("Email already registered")
            principal = Principal(
                id=str(uuid.uuid4()), email=email, role=role, password_hash=password_hash, name=name
            )
            self._principals[principal.id] = principal
            return principal

    def update_principal(self, principal_id: str, **changes) -> Principal:
        """Change profile fields (role, email, name). Used to simulate edits made elsewhere."""
        with self._lock:
            principal = dataclasses.replace(self._principals[principal_id], **changes)
            self._principals[principal_id] = principal
            return principal
