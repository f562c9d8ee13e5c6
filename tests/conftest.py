"""Shared test fixtures for Miromap tests."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from miromap.config import MiromapSettings
from miromap.errors import RemoteServiceError
from miromap.models import InputNode, RemoteBoard, RemoteNode
from miromap.server.app import create_app
from miromap.server.models import ApiToken, MiroAccount, utcnow

TEST_API_KEY = "ct_test-key"
TEST_USER = "user-1"


def node(text: str, *children: InputNode) -> InputNode:
    """Shorthand for building input trees in tests."""
    return InputNode(text=text, children=list(children))


class FakeMiroClient:
    """In-memory stand-in for MiroClient that records every call.

    ``fail_on_create`` makes the k-th create_node call (1-based) raise;
    ``fail_on_update`` does the same for update_node_parent.
    """

    def __init__(
        self,
        *,
        fail_on_create: int | None = None,
        fail_on_update: int | None = None,
        fail_board: bool = False,
    ) -> None:
        self.fail_on_create = fail_on_create
        self.fail_on_update = fail_on_update
        self.fail_board = fail_board
        self.calls: list[tuple[str, ...]] = []
        self.boards: list[RemoteBoard] = []
        self.nodes: dict[str, RemoteNode] = {}
        self._creates = 0
        self._updates = 0
        self.closed = False

    def __enter__(self) -> FakeMiroClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self.closed = True

    @property
    def network_calls(self) -> int:
        return len(self.calls)

    def create_board(self, name: str) -> RemoteBoard:
        self.calls.append(("create_board", name))
        if self.fail_board:
            raise RemoteServiceError(403, '{"message": "forbidden"}')
        board = RemoteBoard(
            id=f"board-{len(self.boards) + 1}",
            name=name,
            view_url=f"https://miro.com/app/board/board-{len(self.boards) + 1}/",
        )
        self.boards.append(board)
        return board

    def create_node(self, board_id: str, text: str, parent_id: str | None = None) -> RemoteNode:
        self._creates += 1
        self.calls.append(("create_node", text, parent_id or ""))
        if self._creates == self.fail_on_create:
            raise RemoteServiceError(500, '{"message": "internal error"}')
        created = RemoteNode(id=f"node-{len(self.nodes) + 1}", content=text, parent_id=parent_id)
        self.nodes[created.id] = created
        return created

    def update_node_parent(self, board_id: str, node_id: str, parent_id: str) -> RemoteNode:
        self._updates += 1
        self.calls.append(("update_node_parent", node_id, parent_id))
        if self._updates == self.fail_on_update:
            raise RemoteServiceError(404, '{"message": "parent not found"}')
        moved = self.nodes[node_id].model_copy(update={"parent_id": parent_id})
        self.nodes[node_id] = moved
        return moved

    def created_texts(self) -> list[str]:
        return [n.content for n in self.nodes.values()]


@pytest.fixture()
def fake_miro() -> FakeMiroClient:
    return FakeMiroClient()


@pytest.fixture()
def settings() -> MiromapSettings:
    """Settings isolated from the developer's environment and .env files."""
    return MiromapSettings(
        _env_file=None,  # type: ignore[call-arg]
        miro_client_id="client-123",
        miro_client_secret="secret-456",
        miro_redirect_uri="http://localhost:3000/dashboard/integrations/miro/callback",
        miro_access_token="",
        output_dir=None,
    )


@pytest.fixture()
def app(settings: MiromapSettings, fake_miro: FakeMiroClient):  # type: ignore[no-untyped-def]
    """App on an in-memory DB whose Miro client is ``fake_miro``."""
    factory_calls: list[str] = []

    def factory(access_token: str) -> FakeMiroClient:
        factory_calls.append(access_token)
        return fake_miro

    application = create_app(db_url="sqlite://", settings=settings, miro_client_factory=factory)
    application.state.factory_calls = factory_calls
    return application


@pytest.fixture()
def db(app) -> Iterator[Session]:  # type: ignore[no-untyped-def]
    session = app.state.db_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(app) -> TestClient:  # type: ignore[no-untyped-def]
    return TestClient(app)


@pytest.fixture()
def api_token(db: Session) -> ApiToken:
    """An active API key for TEST_USER, valid for a year."""
    token = ApiToken(
        user_id=TEST_USER,
        token=TEST_API_KEY,
        name="test",
        expires_at=utcnow() + timedelta(days=365),
    )
    db.add(token)
    db.commit()
    return token


@pytest.fixture()
def miro_account(db: Session) -> MiroAccount:
    """A fresh Miro OAuth token stored for TEST_USER."""
    account = MiroAccount(
        user_id=TEST_USER,
        miro_user_id="3458764500000000001",
        access_token="miro-access",
        refresh_token="miro-refresh",
    )
    db.add(account)
    db.commit()
    return account
