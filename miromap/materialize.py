"""Turn an input tree into a Miro mind map, one remote node per tree node.

The walk is depth-first and pre-order: a node is created, its id is read
back, and only then are its children created with that id as their parent.
Calls are issued one at a time because every child depends on its parent's
freshly assigned id.

Two policies control how the input is read before anything is created:

- ``DedupPolicy.NONE``: one remote node per input node. Used by the
  server endpoint.
- ``DedupPolicy.PATH``: nodes are memoised by their label path from the
  root, so two branches with the same labels all the way down collapse
  into one. The first occurrence wins; a later duplicate contributes
  nothing, including its children.

Failures abort the walk immediately. Nodes already created stay on the
board; there is no rollback.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from miromap.errors import MaterializationError, RemoteServiceError, ValidationError
from miromap.models import InputNode, MaterializedNode, RemoteNode

logger = logging.getLogger(__name__)

PATH_SEPARATOR = " > "


class DedupPolicy(str, Enum):
    NONE = "none"
    PATH = "path"


class ParentLinking(str, Enum):
    """How a child gets attached to its parent."""

    AT_CREATION = "at-creation"  # parent id sent with the create call
    REPARENT = "reparent"  # created parentless, then moved with a PATCH


class NodeClient(Protocol):
    """The subset of MiroClient the materializer needs."""

    def create_node(
        self, board_id: str, text: str, parent_id: str | None = None
    ) -> RemoteNode: ...

    def update_node_parent(
        self, board_id: str, node_id: str, parent_id: str
    ) -> RemoteNode: ...


def path_key(labels: Iterable[str]) -> str:
    """Memo key for a node: its labels from the root, joined."""
    return PATH_SEPARATOR.join(labels)


# ---------------------------------------------------------------------------
# Intermediate graph
# ---------------------------------------------------------------------------


@dataclass
class GraphNode:
    """A node of the tree that will actually be created."""

    text: str
    path: tuple[str, ...]
    children: list[GraphNode] = field(default_factory=list)

    def count(self) -> int:
        return 1 + sum(child.count() for child in self.children)


def build_graph(root: InputNode, dedup: DedupPolicy = DedupPolicy.NONE) -> GraphNode:
    """Build the tree to create from ``root`` under the given dedup policy."""
    visited: dict[str, GraphNode] = {}

    def walk(node: InputNode, parent_path: tuple[str, ...]) -> tuple[GraphNode, bool]:
        path = (*parent_path, node.text)
        if dedup is DedupPolicy.PATH:
            key = path_key(path)
            if key in visited:
                return visited[key], False
        graph_node = GraphNode(text=node.text, path=path)
        if dedup is DedupPolicy.PATH:
            visited[path_key(path)] = graph_node
        for child in node.children:
            child_node, is_new = walk(child, path)
            if is_new:
                graph_node.children.append(child_node)
        return graph_node, True

    graph, _ = walk(root, ())
    return graph


def validate_tree(root: InputNode | None) -> None:
    """Reject a tree that is missing or has any empty label.

    Raises:
        ValidationError: naming the path of the first offending node.
    """
    if root is None:
        raise ValidationError("root_node is required")
    stack: list[tuple[InputNode, tuple[str, ...]]] = [(root, ())]
    while stack:
        node, parent_path = stack.pop()
        if not node.text:
            if not parent_path:
                raise ValidationError("root_node.text is required")
            where = path_key(parent_path)
            raise ValidationError(f"Node text is required (child of {where!r})")
        path = (*parent_path, node.text)
        stack.extend((child, path) for child in reversed(node.children))


# ---------------------------------------------------------------------------
# Materializer
# ---------------------------------------------------------------------------


class TreeMaterializer:
    """Create a mind map on one board.

    ``created`` records every remote node made so far, in creation order.
    After a failure it is exactly what was left on the board.
    """

    def __init__(
        self,
        client: NodeClient,
        board_id: str,
        *,
        dedup: DedupPolicy = DedupPolicy.NONE,
        linking: ParentLinking = ParentLinking.AT_CREATION,
    ) -> None:
        self.client = client
        self.board_id = board_id
        self.dedup = dedup
        self.linking = linking
        self.created: list[RemoteNode] = []

    def materialize(self, root: InputNode | None) -> MaterializedNode:
        """Create every node of ``root`` and return the resulting remote tree.

        Raises:
            ValidationError: root missing or root label empty. No calls made.
            MaterializationError: a create/update call failed; wraps the
                RemoteServiceError and names the node being created.
        """
        if root is None:
            raise ValidationError("Node is required")
        if not root.text:
            raise ValidationError("Node text is required")

        graph = build_graph(root, self.dedup)
        logger.debug(
            "materializing %d nodes on board %s (dedup=%s, linking=%s)",
            graph.count(), self.board_id, self.dedup.value, self.linking.value,
        )
        tree = self._create_subtree(graph, None)
        logger.info("created %d mind-map nodes on board %s", len(self.created), self.board_id)
        return tree

    def _create_subtree(self, node: GraphNode, parent_id: str | None) -> MaterializedNode:
        remote = self._create_node(node, parent_id)
        result = MaterializedNode(remote=remote)
        for child in node.children:
            result.children.append(self._create_subtree(child, remote.id))
        return result

    def _create_node(self, node: GraphNode, parent_id: str | None) -> RemoteNode:
        try:
            if parent_id is not None and self.linking is ParentLinking.REPARENT:
                remote = self.client.create_node(self.board_id, node.text)
                self.created.append(remote)
                remote = self.client.update_node_parent(self.board_id, remote.id, parent_id)
                self.created[-1] = remote
            else:
                remote = self.client.create_node(self.board_id, node.text, parent_id)
                self.created.append(remote)
        except RemoteServiceError as exc:
            logger.error(
                "node %r failed after %d created on board %s: %s",
                node.text, len(self.created), self.board_id, exc,
            )
            raise MaterializationError(
                f"Failed to create node {node.text!r}",
                text=node.text,
                path=node.path,
                created=len(self.created),
            ) from exc
        logger.debug("node %s %r (parent %s)", remote.id, node.text, parent_id)
        return remote


def materialize(
    client: NodeClient,
    board_id: str,
    root: InputNode | None,
    *,
    dedup: DedupPolicy = DedupPolicy.NONE,
    linking: ParentLinking = ParentLinking.AT_CREATION,
) -> MaterializedNode:
    """Create ``root`` on ``board_id``. See ``TreeMaterializer.materialize``."""
    return TreeMaterializer(client, board_id, dedup=dedup, linking=linking).materialize(root)
