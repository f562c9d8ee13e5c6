"""Mind-map creation endpoint.

``POST /api/mindmap`` takes ``{name, root_node}``, creates a board in the
caller's Miro account and builds the tree on it. Errors are turned into
``{error}`` / ``{error, details}`` bodies by the handlers in ``app.py``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request

from miromap.credentials import DatabaseCredentialStore, get_miro_credential
from miromap.mindmap import materialize_mind_map, validate_request
from miromap.models import MindMapCreateRequest, MindMapResult
from miromap.server.auth import get_db, require_api_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.post("/mindmap")
def create_mindmap(body: MindMapCreateRequest, request: Request) -> MindMapResult:
    """Create a Miro board holding the given tree."""
    settings = request.app.state.settings
    db = get_db(request)
    try:
        user_id = require_api_token(db, request).user_id
        validate_request(body)
        store = DatabaseCredentialStore(db, ttl_seconds=settings.miro_token_ttl_seconds)
        access_token = get_miro_credential(store, user_id)
    finally:
        db.close()

    with request.app.state.miro_client_factory(access_token) as client:
        result = materialize_mind_map(client, body)
    logger.info("mind map %r -> board %s for user %s", body.name, result.board_id, user_id)
    return result
