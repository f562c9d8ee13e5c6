"""API key verification endpoint."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from miromap.server.auth import API_KEY_HEADER, find_api_token, get_db, log_token_use

router = APIRouter(prefix="/api")


class TokenInfo(BaseModel):
    id: int
    name: str
    created_at: datetime
    expires_at: datetime


class TokenVerifyResponse(BaseModel):
    valid: bool
    token: TokenInfo | None = None
    error: str | None = None


@router.post("/tokens/verify", response_model=TokenVerifyResponse)
def verify_token(request: Request) -> TokenVerifyResponse | JSONResponse:
    """Report whether the ``X-API-Key`` header holds a usable key."""
    key = request.headers.get(API_KEY_HEADER)
    if not key:
        body = TokenVerifyResponse(valid=False, error="API key is required")
        return JSONResponse(status_code=401, content=body.model_dump(mode="json"))

    db = get_db(request)
    try:
        token = find_api_token(db, key)
        if token is None:
            body = TokenVerifyResponse(valid=False, error="Invalid or expired API key")
            return JSONResponse(status_code=403, content=body.model_dump(mode="json"))
        log_token_use(db, token, request, "verify")
        return TokenVerifyResponse(
            valid=True,
            token=TokenInfo(
                id=token.id,
                name=token.name,
                created_at=token.created_at,
                expires_at=token.expires_at,
            ),
        )
    finally:
        db.close()
