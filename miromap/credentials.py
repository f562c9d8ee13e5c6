"""Credential storage for Miro access tokens.

Tokens are looked up per user:

1. ``DatabaseCredentialStore``: OAuth tokens saved in ``miro_accounts`` by
   the connect/OAuth endpoints (server use).
2. ``EnvCredentialStore``: a single personal access token from
   ``MIROMAP_MIRO_ACCESS_TOKEN`` or ``MIRO_ACCESS_TOKEN`` (CLI use). Read-only.

Refreshing expired OAuth tokens is not handled here; an expired token is
simply reported as missing.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from miromap.errors import MaterializationError
from miromap.server.models import MiroAccount, utcnow

DEFAULT_TTL_SECONDS = 3600


class CredentialStore(ABC):
    """Abstract base for Miro credential backends, keyed by user id."""

    @abstractmethod
    def get(self, user_id: str) -> str | None:
        """Retrieve a valid access token. Returns None if not found or expired."""
        ...

    @abstractmethod
    def set(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str | None = None,
        *,
        miro_user_id: str | None = None,
        miro_team_id: str | None = None,
    ) -> None:
        """Store a token. Raises NotImplementedError if storage not supported."""
        ...

    @abstractmethod
    def delete(self, user_id: str) -> None:
        """Remove a token. No-op if not found."""
        ...

    def exists(self, user_id: str) -> bool:
        return self.get(user_id) is not None


class EnvCredentialStore(CredentialStore):
    """Read-only store backed by environment variables.

    The same token is returned for every user id.
    """

    ENV_VAR = "MIRO_ACCESS_TOKEN"

    def get(self, user_id: str) -> str | None:
        value = os.environ.get(f"MIROMAP_{self.ENV_VAR}") or os.environ.get(self.ENV_VAR)
        return value or None

    def set(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str | None = None,
        *,
        miro_user_id: str | None = None,
        miro_team_id: str | None = None,
    ) -> None:
        raise NotImplementedError(
            "Cannot store credentials in environment. Use the database store or .env file."
        )

    def delete(self, user_id: str) -> None:
        raise NotImplementedError("Cannot delete credentials from environment.")


class DatabaseCredentialStore(CredentialStore):
    """Per-user tokens in the ``miro_accounts`` table.

    A token last written more than ``ttl_seconds`` ago is treated as expired,
    matching the one-hour lifetime of Miro OAuth access tokens.
    """

    def __init__(self, db: Session, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self.db = db
        self.ttl = timedelta(seconds=ttl_seconds)

    def account(self, user_id: str) -> MiroAccount | None:
        return self.db.scalars(
            select(MiroAccount).where(MiroAccount.user_id == user_id)
        ).first()

    def get(self, user_id: str) -> str | None:
        account = self.account(user_id)
        if account is None or not account.access_token:
            return None
        if self._is_expired(account.updated_at):
            return None
        return account.access_token

    def _is_expired(self, updated_at: datetime) -> bool:
        return updated_at < utcnow() - self.ttl

    def set(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str | None = None,
        *,
        miro_user_id: str | None = None,
        miro_team_id: str | None = None,
    ) -> None:
        account = self.account(user_id)
        if account is None:
            account = MiroAccount(user_id=user_id)
            self.db.add(account)
        account.access_token = access_token
        account.refresh_token = refresh_token
        if miro_user_id is not None:
            account.miro_user_id = miro_user_id
        if miro_team_id is not None:
            account.miro_team_id = miro_team_id
        account.updated_at = utcnow()
        self.db.commit()

    def delete(self, user_id: str) -> None:
        account = self.account(user_id)
        if account is None:
            return
        self.db.delete(account)
        self.db.commit()


def get_miro_credential(store: CredentialStore, user_id: str) -> str:
    """Return the user's Miro token, failing closed when there is none.

    Raises:
        MaterializationError: no valid token is stored for ``user_id``.
    """
    token = store.get(user_id)
    if not token:
        raise MaterializationError("Miro account not connected or token expired")
    return token
