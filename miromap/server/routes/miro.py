"""Miro account endpoints: connection status and OAuth."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from miromap.credentials import DatabaseCredentialStore
from miromap.errors import RemoteServiceError
from miromap.miro_client import exchange_code, get_auth_url, validate_miro_token
from miromap.server.auth import get_db, require_api_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/miro")


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class MiroStatusResponse(BaseModel):
    connected: bool
    miro_user_id: str | None = None


class MiroConnectRequest(BaseModel):
    token: str


class MiroCodeRequest(BaseModel):
    code: str = ""


class MiroAuthUrlResponse(BaseModel):
    url: str


def _store(request: Request, db: Session) -> DatabaseCredentialStore:
    settings = request.app.state.settings
    return DatabaseCredentialStore(db, ttl_seconds=settings.miro_token_ttl_seconds)


# ---------------------------------------------------------------------------
# GET /miro/status: is a usable Miro token stored for this API key's user?
# ---------------------------------------------------------------------------


@router.get("/status")
def miro_status(request: Request) -> MiroStatusResponse:
    db = get_db(request)
    try:
        user_id = require_api_token(db, request, action="miro_status").user_id
        store = _store(request, db)
        if not store.exists(user_id):
            return MiroStatusResponse(connected=False)
        account = store.account(user_id)
        return MiroStatusResponse(
            connected=True,
            miro_user_id=account.miro_user_id if account else None,
        )
    finally:
        db.close()


# ---------------------------------------------------------------------------
# POST /miro/connect: store a personal access token after validating it
# ---------------------------------------------------------------------------


@router.post("/connect")
def miro_connect(body: MiroConnectRequest, request: Request) -> MiroStatusResponse:
    """Validate a Miro access token and store it for the API key's user."""
    token = body.token.strip()
    if not token:
        raise HTTPException(status_code=400, detail="Token is required")

    db = get_db(request)
    try:
        user_id = require_api_token(db, request, action="miro_connect").user_id

        is_valid, error = validate_miro_token(
            token, base_url=request.app.state.settings.miro_api_base
        )
        if is_valid is False:
            raise HTTPException(status_code=401, detail=f"Invalid Miro token: {error}")
        if is_valid is None:
            raise HTTPException(
                status_code=502, detail=f"Could not validate Miro token: {error}"
            )

        _store(request, db).set(user_id, token)
    finally:
        db.close()

    logger.info("stored Miro token for user %s", user_id)
    return MiroStatusResponse(connected=True)


# ---------------------------------------------------------------------------
# POST /miro/disconnect: remove the stored token
# ---------------------------------------------------------------------------


@router.post("/disconnect")
def miro_disconnect(request: Request) -> MiroStatusResponse:
    db = get_db(request)
    try:
        user_id = require_api_token(db, request, action="miro_disconnect").user_id
        _store(request, db).delete(user_id)
    finally:
        db.close()
    return MiroStatusResponse(connected=False)


# ---------------------------------------------------------------------------
# OAuth: consent URL and authorization-code exchange
# ---------------------------------------------------------------------------


@router.get("/auth-url")
def miro_auth_url(request: Request, state: str | None = None) -> MiroAuthUrlResponse:
    settings = request.app.state.settings
    try:
        url = get_auth_url(settings.miro_client_id, settings.miro_redirect_uri, state)
    except ValueError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return MiroAuthUrlResponse(url=url)


@router.post("/token")
def miro_token(body: MiroCodeRequest, request: Request) -> MiroStatusResponse:
    """Exchange an OAuth code for tokens and store them for the API key's user.

    Called by the OAuth redirect page once Miro sends the user back.
    """
    if not body.code:
        raise HTTPException(status_code=400, detail="Authorization code is required")

    settings = request.app.state.settings
    if not settings.miro_client_id or not settings.miro_client_secret:
        raise HTTPException(status_code=503, detail="Miro OAuth is not configured")

    db = get_db(request)
    try:
        user_id = require_api_token(db, request, action="miro_token").user_id

        try:
            token_data = exchange_code(
                body.code,
                client_id=settings.miro_client_id,
                client_secret=settings.miro_client_secret,
                redirect_uri=settings.miro_redirect_uri,
            )
        except RemoteServiceError as exc:
            logger.error("Miro OAuth exchange failed for user %s: %s", user_id, exc)
            raise HTTPException(
                status_code=502, detail=f"Failed to obtain Miro token: {exc}"
            ) from exc

        _store(request, db).set(
            user_id,
            token_data.access_token,
            token_data.refresh_token,
            miro_user_id=token_data.user_id,
            miro_team_id=token_data.team_id,
        )
    finally:
        db.close()

    logger.info("stored Miro OAuth token for user %s", user_id)
    return MiroStatusResponse(connected=True, miro_user_id=token_data.user_id)
