"""API key authentication for the public endpoints.

Callers send ``X-API-Key: <token>``. The key must be active and unexpired.
Every successful lookup is written to ``api_token_logs``.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from miromap.server.models import ApiToken, ApiTokenLog, utcnow

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"


def get_db(request: Request) -> Session:
    return request.app.state.db_factory()


def find_api_token(db: Session, key: str) -> ApiToken | None:
    """Return the active, unexpired token row for ``key``, if any."""
    return db.scalars(
        select(ApiToken).where(
            ApiToken.token == key,
            ApiToken.is_active.is_(True),
            ApiToken.expires_at > utcnow(),
        )
    ).first()


def log_token_use(
    db: Session,
    token: ApiToken,
    request: Request,
    action: str,
) -> None:
    db.add(
        ApiTokenLog(
            token_id=token.id,
            user_id=token.user_id,
            action=action,
            endpoint=request.url.path,
            ip_address=request.headers.get("x-forwarded-for", "unknown"),
            user_agent=request.headers.get("user-agent", "unknown"),
        )
    )
    db.commit()


def require_api_token(db: Session, request: Request, action: str = "api_call") -> ApiToken:
    """Resolve the request's API key or raise 401/403."""
    key = request.headers.get(API_KEY_HEADER)
    if not key:
        raise HTTPException(status_code=401, detail="API key is required")
    token = find_api_token(db, key)
    if token is None:
        logger.warning("rejected API key on %s", request.url.path)
        raise HTTPException(status_code=403, detail="Invalid or expired API key")
    log_token_use(db, token, request, action)
    return token
