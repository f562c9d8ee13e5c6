"""Board provisioning and the end-to-end "create a mind map" operation."""

from __future__ import annotations

import logging
from typing import Protocol

from miromap.errors import MaterializationError, RemoteServiceError, ValidationError
from miromap.logging import board_context
from miromap.materialize import DedupPolicy, NodeClient, ParentLinking, TreeMaterializer, validate_tree
from miromap.models import MindMapCreateRequest, MindMapResult, RemoteBoard

logger = logging.getLogger(__name__)


class BoardClient(NodeClient, Protocol):
    def create_board(self, name: str) -> RemoteBoard: ...


def provision_board(client: BoardClient, name: str | None) -> RemoteBoard:
    """Create the board a mind map will live on.

    A blank name is rejected before any request is sent, so no unnamed
    boards are ever created.
    """
    if not name or not name.strip():
        raise MaterializationError("Board name is required")
    try:
        board = client.create_board(name)
    except RemoteServiceError as exc:
        raise MaterializationError(f"Failed to create board {name!r}") from exc
    logger.info("created board %s (%s)", board.id, name)
    return board


def validate_request(request: MindMapCreateRequest) -> None:
    """Local precondition check. Never touches the network."""
    if not request.name or not request.name.strip():
        raise ValidationError("Invalid request body: name is required")
    if request.root_node is None:
        raise ValidationError("Invalid request body: root_node is required")
    validate_tree(request.root_node)


def materialize_mind_map(
    client: BoardClient,
    request: MindMapCreateRequest,
    *,
    dedup: DedupPolicy = DedupPolicy.NONE,
    linking: ParentLinking = ParentLinking.AT_CREATION,
) -> MindMapResult:
    """Validate ``request``, create a board, and build the tree on it.

    Nothing is retried and nothing is cleaned up: if a node fails, the board
    and the nodes created before it remain in Miro.
    """
    validate_request(request)

    board = provision_board(client, request.name)
    materializer = TreeMaterializer(client, board.id, dedup=dedup, linking=linking)
    with board_context(board.id):
        materializer.materialize(request.root_node)

    return MindMapResult(board_id=board.id, board_url=board.view_url)
