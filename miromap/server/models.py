"""SQLAlchemy ORM models.

- ``api_tokens``: keys that callers send as ``X-API-Key``; each belongs to
  one user. Issued and revoked elsewhere; this app only reads them.
- ``api_token_logs``: one row per authenticated call.
- ``miro_accounts``: a user's connected Miro account and its OAuth tokens.

User ids are opaque strings owned by the identity provider.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from miromap.server.db import Base


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite stores datetimes without a zone)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ApiToken(Base):
    """An API key granting access to the mind-map endpoint."""

    __tablename__ = "api_tokens"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(100), index=True)
    token: Mapped[str] = mapped_column(String(100), unique=True)
    name: Mapped[str] = mapped_column(String(200), default="")
    is_active: Mapped[bool] = mapped_column(default=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    expires_at: Mapped[datetime] = mapped_column()
    revoked_at: Mapped[datetime | None] = mapped_column(default=None)

    logs: Mapped[list[ApiTokenLog]] = relationship(back_populates="api_token")

    def is_valid(self, now: datetime | None = None) -> bool:
        return self.is_active and self.expires_at > (now or utcnow())


class ApiTokenLog(Base):
    """Audit trail of API key usage."""

    __tablename__ = "api_token_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    token_id: Mapped[int] = mapped_column(ForeignKey("api_tokens.id"))
    user_id: Mapped[str] = mapped_column(String(100))
    action: Mapped[str] = mapped_column(String(50))  # "api_call", "verify"
    endpoint: Mapped[str] = mapped_column(String(200), default="")
    ip_address: Mapped[str] = mapped_column(String(100), default="unknown")
    user_agent: Mapped[str] = mapped_column(Text, default="unknown")
    created_at: Mapped[datetime] = mapped_column(default=utcnow)

    api_token: Mapped[ApiToken] = relationship(back_populates="logs")


class MiroAccount(Base):
    """A user's Miro connection. One per user."""

    __tablename__ = "miro_accounts"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(100), unique=True)
    miro_user_id: Mapped[str | None] = mapped_column(String(100), default=None)
    miro_team_id: Mapped[str | None] = mapped_column(String(100), default=None)
    access_token: Mapped[str | None] = mapped_column(Text, default=None)
    refresh_token: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow)
