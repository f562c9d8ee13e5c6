"""Tests for the Miro API client: boards, mind-map nodes and OAuth."""

from __future__ import annotations

import json
from collections.abc import Callable
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from miromap.errors import RemoteServiceError
from miromap.miro_client import MiroClient, exchange_code, get_auth_url, validate_miro_token


def _client(
    handler: Callable[[httpx.Request], httpx.Response],
    seen: list[httpx.Request],
) -> MiroClient:
    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    return MiroClient("secret-token", transport=httpx.MockTransport(record))


def _node_response(node_id: str, content: str, parent_id: str | None = None) -> httpx.Response:
    body: dict = {
        "id": node_id,
        "type": "mindmap_node",
        "data": {"nodeView": {"type": "text", "data": {"type": "text", "content": content}}},
    }
    if parent_id:
        body["parent"] = {"id": parent_id}
    return httpx.Response(201, json=body)


class TestCreateBoard:
    def test_posts_name_and_parses_board(self) -> None:
        seen: list[httpx.Request] = []
        client = _client(
            lambda r: httpx.Response(
                201,
                json={
                    "id": "uXjVK123=",
                    "name": "Plan",
                    "viewLink": "https://miro.com/app/board/uXjVK123=",
                },
            ),
            seen,
        )
        board = client.create_board("Plan")

        assert board.id == "uXjVK123="
        assert board.view_url == "https://miro.com/app/board/uXjVK123="
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/v2/boards"
        assert json.loads(seen[0].content) == {"name": "Plan"}

    def test_sends_bearer_token(self) -> None:
        seen: list[httpx.Request] = []
        client = _client(lambda r: httpx.Response(201, json={"id": "b", "name": "x"}), seen)
        client.create_board("x")
        assert seen[0].headers["Authorization"] == "Bearer secret-token"

    def test_error_status_raises(self) -> None:
        seen: list[httpx.Request] = []
        client = _client(lambda r: httpx.Response(401, text='{"message":"Unauthorized"}'), seen)
        with pytest.raises(RemoteServiceError) as exc_info:
            client.create_board("x")
        assert exc_info.value.status_code == 401
        assert "Unauthorized" in exc_info.value.body


class TestCreateNode:
    def test_root_node_has_no_parent(self) -> None:
        seen: list[httpx.Request] = []
        client = _client(lambda r: _node_response("100", "Root"), seen)
        result = client.create_node("b1", "Root")

        assert result.id == "100"
        assert result.content == "Root"
        assert result.parent_id is None
        assert seen[0].url.path == "/v2-experimental/boards/b1/mindmap_nodes"
        assert json.loads(seen[0].content) == {
            "data": {"nodeView": {"data": {"type": "text", "content": "Root"}}}
        }

    def test_child_node_carries_parent(self) -> None:
        seen: list[httpx.Request] = []
        client = _client(lambda r: _node_response("101", "A", "100"), seen)
        result = client.create_node("b1", "A", parent_id="100")

        assert result.parent_id == "100"
        assert json.loads(seen[0].content)["parent"] == {"id": "100"}

    def test_parent_falls_back_to_request(self) -> None:
        """A response without a parent still reports the link that was asked for."""
        seen: list[httpx.Request] = []
        client = _client(lambda r: httpx.Response(201, json={"id": "101"}), seen)
        result = client.create_node("b1", "A", parent_id="100")
        assert result.parent_id == "100"
        assert result.content == "A"

    def test_text_sent_unmodified(self) -> None:
        seen: list[httpx.Request] = []
        label = '<p>"quoted" & ünïcode</p>'
        client = _client(lambda r: _node_response("1", label), seen)
        client.create_node("b1", label)
        sent = json.loads(seen[0].content)
        assert sent["data"]["nodeView"]["data"]["content"] == label

    def test_server_error_raises_with_body(self) -> None:
        seen: list[httpx.Request] = []
        client = _client(lambda r: httpx.Response(500, text="upstream exploded"), seen)
        with pytest.raises(RemoteServiceError) as exc_info:
            client.create_node("b1", "Root")
        err = exc_info.value
        assert err.status_code == 500
        assert err.body == "upstream exploded"
        assert err.method == "POST"
        assert "500" in str(err)

    def test_network_error_raises(self) -> None:
        def boom(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused")

        client = MiroClient("t", transport=httpx.MockTransport(boom))
        with pytest.raises(RemoteServiceError) as exc_info:
            client.create_node("b1", "Root")
        assert exc_info.value.status_code == 0
        assert "Connection refused" in exc_info.value.body

    def test_custom_base_url(self) -> None:
        seen: list[httpx.Request] = []
        client = MiroClient(
            "t",
            base_url="http://miro.test/v2/",
            transport=httpx.MockTransport(lambda r: (seen.append(r), _node_response("1", "x"))[1]),
        )
        client.create_node("b9", "x")
        assert str(seen[0].url) == "http://miro.test/v2-experimental/boards/b9/mindmap_nodes"


class TestUpdateNodeParent:
    def test_patches_parent(self) -> None:
        seen: list[httpx.Request] = []
        client = _client(lambda r: _node_response("101", "A", "100"), seen)
        result = client.update_node_parent("b1", "101", "100")

        assert seen[0].method == "PATCH"
        assert seen[0].url.path == "/v2-experimental/boards/b1/mindmap_nodes/101"
        assert json.loads(seen[0].content) == {"data": {"parent": {"id": "100"}}}
        assert result.parent_id == "100"

    def test_error_raises(self) -> None:
        seen: list[httpx.Request] = []
        client = _client(lambda r: httpx.Response(404, text="not found"), seen)
        with pytest.raises(RemoteServiceError) as exc_info:
            client.update_node_parent("b1", "101", "100")
        assert exc_info.value.status_code == 404
        assert exc_info.value.method == "PATCH"


class TestClientLifecycle:
    def test_context_manager_closes(self) -> None:
        with MiroClient("t", transport=httpx.MockTransport(lambda r: httpx.Response(200))) as c:
            assert not c._http.is_closed
        assert c._http.is_closed


class TestValidateMiroToken:
    """Tests for validate_miro_token."""

    def test_valid_token(self) -> None:
        mock_response = httpx.Response(200, json={"data": []})
        with patch("miromap.miro_client.httpx.get", return_value=mock_response):
            is_valid, error = validate_miro_token("valid-token")
            assert is_valid is True
            assert error is None

    def test_invalid_token_401(self) -> None:
        mock_response = httpx.Response(401, json={"message": "Unauthorized"})
        with patch("miromap.miro_client.httpx.get", return_value=mock_response):
            is_valid, error = validate_miro_token("bad-token")
            assert is_valid is False
            assert "invalid or expired" in error

    def test_forbidden_token_403(self) -> None:
        mock_response = httpx.Response(403, json={"message": "Forbidden"})
        with patch("miromap.miro_client.httpx.get", return_value=mock_response):
            is_valid, error = validate_miro_token("no-scope-token")
            assert is_valid is False
            assert "scopes" in error

    def test_unexpected_status(self) -> None:
        mock_response = httpx.Response(500, json={})
        with patch("miromap.miro_client.httpx.get", return_value=mock_response):
            is_valid, error = validate_miro_token("some-token")
            assert is_valid is None
            assert "500" in error

    def test_network_error(self) -> None:
        with patch(
            "miromap.miro_client.httpx.get",
            side_effect=httpx.ConnectError("Connection refused"),
        ):
            is_valid, error = validate_miro_token("some-token")
            assert is_valid is None
            assert "network error" in error

    def test_sends_bearer_token(self) -> None:
        mock_response = httpx.Response(200, json={"data": []})
        with patch("miromap.miro_client.httpx.get", return_value=mock_response) as mock_get:
            validate_miro_token("my-secret-token")
            assert mock_get.call_args[1]["headers"]["Authorization"] == "Bearer my-secret-token"

    def test_calls_boards_endpoint(self) -> None:
        mock_response = httpx.Response(200, json={"data": []})
        with patch("miromap.miro_client.httpx.get", return_value=mock_response) as mock_get:
            validate_miro_token("token")
            assert "/v2/boards" in mock_get.call_args[0][0]


class TestOAuth:
    def test_auth_url_params(self) -> None:
        url = get_auth_url("cid", "http://localhost:3000/cb", state="xyz")
        parsed = urlparse(url)
        params = parse_qs(parsed.query)

        assert parsed.netloc == "miro.com"
        assert parsed.path == "/oauth/authorize"
        assert params["client_id"] == ["cid"]
        assert params["redirect_uri"] == ["http://localhost:3000/cb"]
        assert params["response_type"] == ["code"]
        assert params["scope"] == ["boards:read boards:write"]
        assert params["state"] == ["xyz"]

    def test_auth_url_requires_config(self) -> None:
        with pytest.raises(ValueError):
            get_auth_url("", "http://localhost/cb")

    def test_exchange_code_success(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "access_token": "at",
                    "refresh_token": "rt",
                    "token_type": "bearer",
                    "expires_in": 3599,
                    "scope": "boards:read boards:write",
                    "user_id": 3458764500000000001,
                    "team_id": 3458764500000000002,
                },
            )

        token = exchange_code(
            "the-code",
            client_id="cid",
            client_secret="shh",
            redirect_uri="http://localhost/cb",
            transport=httpx.MockTransport(handler),
        )

        assert token.access_token == "at"
        assert token.refresh_token == "rt"
        assert token.user_id == "3458764500000000001"
        form = parse_qs(seen[0].content.decode())
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["the-code"]
        assert form["client_secret"] == ["shh"]
        assert seen[0].url.path == "/v1/oauth/token"

    def test_exchange_code_rejected(self) -> None:
        transport = httpx.MockTransport(
            lambda r: httpx.Response(400, json={"error": "invalid_grant"})
        )
        with pytest.raises(RemoteServiceError) as exc_info:
            exchange_code(
                "bad",
                client_id="cid",
                client_secret="shh",
                redirect_uri="http://localhost/cb",
                transport=transport,
            )
        assert exc_info.value.status_code == 400
        assert "invalid_grant" in exc_info.value.body

    def test_exchange_code_without_token(self) -> None:
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"error": "weird"}))
        with pytest.raises(RemoteServiceError, match="no access_token"):
            exchange_code(
                "c",
                client_id="cid",
                client_secret="shh",
                redirect_uri="http://localhost/cb",
                transport=transport,
            )
