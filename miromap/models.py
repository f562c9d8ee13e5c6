"""Pydantic models for input trees, Miro API results, and API responses."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------


class InputNode(BaseModel):
    """One labelled node of a client-supplied tree.

    ``text`` defaults to "" so that a missing label reaches the orchestrator's
    validation (HTTP 400) instead of failing request parsing.
    """

    text: str = ""
    children: list[InputNode] = Field(default_factory=list)

    @field_validator("children", mode="before")
    @classmethod
    def _null_children(cls, v: Any) -> Any:
        return [] if v is None else v

    def count(self) -> int:
        """Total number of nodes in this subtree, including self."""
        return 1 + sum(child.count() for child in self.children)


class MindMapCreateRequest(BaseModel):
    """Body of ``POST /api/mindmap``."""

    name: str | None = None
    root_node: InputNode | None = None


# ---------------------------------------------------------------------------
# Miro results
# ---------------------------------------------------------------------------


class RemoteNode(BaseModel):
    """A mind-map node that exists on a Miro board."""

    id: str
    content: str = ""
    parent_id: str | None = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> RemoteNode:
        """Build from a Miro ``mindmap_nodes`` response.

        The node text lives at ``data.nodeView.data.content``; the parent
        link, when present, at ``parent.id``.
        """
        data = payload.get("data") or {}
        node_view = data.get("nodeView") or {}
        content = (node_view.get("data") or {}).get("content", "")
        parent = payload.get("parent") or {}
        return cls(
            id=str(payload["id"]),
            content=content,
            parent_id=str(parent["id"]) if parent.get("id") else None,
        )


class RemoteBoard(BaseModel):
    """A Miro board created to hold one mind map."""

    id: str
    name: str
    view_url: str = ""

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> RemoteBoard:
        return cls(
            id=str(payload["id"]),
            name=payload.get("name", ""),
            view_url=payload.get("viewLink", ""),
        )


class MiroToken(BaseModel):
    """Result of an OAuth authorization-code exchange."""

    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"
    expires_in: int | None = None
    scope: str | None = None
    user_id: str | None = None
    team_id: str | None = None


class MaterializedNode(BaseModel):
    """A created remote node together with its created children, in order."""

    remote: RemoteNode
    children: list[MaterializedNode] = Field(default_factory=list)

    def walk(self) -> list[RemoteNode]:
        """All remote nodes of this subtree in pre-order."""
        nodes = [self.remote]
        for child in self.children:
            nodes.extend(child.walk())
        return nodes


class MindMapResult(BaseModel):
    """Successful response of ``POST /api/mindmap``."""

    board_id: str
    board_url: str
