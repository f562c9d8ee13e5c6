"""Miro REST API v2 client.

Handles board creation, mind-map node creation and re-parenting, token
validation, and the OAuth authorization-code exchange. Uses httpx for HTTP.
Every call is a single request: no retries, no batching.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from miromap.errors import RemoteServiceError
from miromap.models import MiroToken, RemoteBoard, RemoteNode

logger = logging.getLogger(__name__)

BASE_URL = "https://api.miro.com/v2"
AUTH_URL = "https://miro.com/oauth/authorize"
TOKEN_URL = "https://api.miro.com/v1/oauth/token"
SCOPES = ("boards:read", "boards:write")

DEFAULT_TIMEOUT = 30.0


def _experimental(base_url: str) -> str:
    """Mind-map endpoints live under ``/v2-experimental``, not ``/v2``."""
    return base_url.rstrip("/") + "-experimental"


class MiroClient:
    """Thin synchronous wrapper around the Miro REST API.

    Args:
        access_token: Bearer credential for the Miro user.
        base_url: API root, normally ``https://api.miro.com/v2``.
        timeout: Per-request timeout in seconds. This is the only bound on a
            slow Miro response; nothing above it cancels a materialization.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = httpx.Client(
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> MiroClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        logger.debug("miro %s %s", method, url)
        try:
            resp = self._http.request(method, url, json=payload)
        except httpx.HTTPError as exc:
            raise RemoteServiceError(0, str(exc), method=method, url=url) from exc

        if not resp.is_success:
            logger.debug("miro %s %s -> %d %s", method, url, resp.status_code, resp.text)
            raise RemoteServiceError(resp.status_code, resp.text, method=method, url=url)
        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteServiceError(
                resp.status_code, resp.text, method=method, url=url
            ) from exc

    # ------------------------------------------------------------------
    # Boards
    # ------------------------------------------------------------------

    def create_board(self, name: str) -> RemoteBoard:
        """Create an empty board. ``POST /v2/boards``."""
        payload = self._request("POST", f"{self.base_url}/boards", {"name": name})
        return RemoteBoard.from_api(payload)

    # ------------------------------------------------------------------
    # Mind-map nodes
    # ------------------------------------------------------------------

    def create_node(
        self,
        board_id: str,
        text: str,
        parent_id: str | None = None,
    ) -> RemoteNode:
        """Create a text mind-map node, as a root or as a child of ``parent_id``.

        ``text`` is sent exactly as given.
        """
        body: dict[str, Any] = {
            "data": {"nodeView": {"data": {"type": "text", "content": text}}},
        }
        if parent_id is not None:
            body["parent"] = {"id": parent_id}
        url = f"{_experimental(self.base_url)}/boards/{board_id}/mindmap_nodes"
        node = RemoteNode.from_api(self._request("POST", url, body))
        # Fall back to what was sent when the response omits it
        if not node.content:
            node.content = text
        if node.parent_id is None:
            node.parent_id = parent_id
        return node

    def update_node_parent(
        self,
        board_id: str,
        node_id: str,
        parent_id: str,
    ) -> RemoteNode:
        """Move an existing node under ``parent_id``."""
        url = f"{_experimental(self.base_url)}/boards/{board_id}/mindmap_nodes/{node_id}"
        body = {"data": {"parent": {"id": parent_id}}}
        node = RemoteNode.from_api(self._request("PATCH", url, body))
        node.parent_id = parent_id
        return node


# ---------------------------------------------------------------------------
# Token validation
# ---------------------------------------------------------------------------


def validate_miro_token(
    token: str,
    *,
    base_url: str = BASE_URL,
) -> tuple[bool | None, str | None]:
    """Validate a Miro access token by calling GET /v2/boards?limit=1.

    Returns:
        (True, None) if valid
        (False, error_message) if invalid
        (None, error_message) if network/other error
    """
    try:
        resp = httpx.get(
            f"{base_url.rstrip('/')}/boards",
            params={"limit": "1"},
            headers={"Authorization": f"Bearer {token}"},
            timeout=10,
        )
        if resp.status_code == 200:
            return True, None
        if resp.status_code == 401:
            return False, "invalid or expired token"
        if resp.status_code == 403:
            return False, "token lacks required scopes (needs boards:write)"
        return None, f"unexpected status {resp.status_code}"
    except httpx.HTTPError as exc:
        return None, f"network error: {exc}"


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


def get_auth_url(client_id: str, redirect_uri: str, state: str | None = None) -> str:
    """Build the Miro consent-screen URL for the authorization-code flow."""
    if not client_id or not redirect_uri:
        raise ValueError("Miro OAuth is not configured (client id and redirect URI required)")
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": " ".join(SCOPES),
        "access_type": "offline",
        "prompt": "consent",
    }
    if state:
        params["state"] = state
    return f"{AUTH_URL}?{urlencode(params)}"


def exchange_code(
    code: str,
    *,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    token_url: str = TOKEN_URL,
    transport: httpx.BaseTransport | None = None,
) -> MiroToken:
    """Swap an authorization code for an access token.

    Raises:
        RemoteServiceError: Miro rejected the code or could not be reached.
    """
    form = {
        "grant_type": "authorization_code",
        "client_id": client_id,
        "client_secret": client_secret,
        "code": code,
        "redirect_uri": redirect_uri,
    }
    with httpx.Client(timeout=DEFAULT_TIMEOUT, transport=transport) as http:
        try:
            resp = http.post(token_url, data=form)
        except httpx.HTTPError as exc:
            raise RemoteServiceError(0, str(exc), method="POST", url=token_url) from exc

    if not resp.is_success:
        raise RemoteServiceError(resp.status_code, resp.text, method="POST", url=token_url)

    data = resp.json()
    if "access_token" not in data:
        raise RemoteServiceError(
            resp.status_code,
            f"no access_token in response: {data.get('error', resp.text)}",
            method="POST",
            url=token_url,
        )
    logger.info("Miro OAuth exchange succeeded for Miro user %s", data.get("user_id"))
    return MiroToken(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        token_type=data.get("token_type", "bearer"),
        expires_in=data.get("expires_in"),
        scope=data.get("scope"),
        user_id=str(data["user_id"]) if data.get("user_id") is not None else None,
        team_id=str(data["team_id"]) if data.get("team_id") is not None else None,
    )
