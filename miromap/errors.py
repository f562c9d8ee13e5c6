"""Error taxonomy for mind-map materialization.

Three kinds, all propagated unchanged to the HTTP/CLI boundary:

- ``ValidationError``: bad input, detected locally before any network call.
- ``RemoteServiceError``: Miro answered a single request with a non-2xx
  status (or the request never completed).
- ``MaterializationError``: a failure part-way through building a board,
  carrying enough context to locate it in the input tree.
"""

from __future__ import annotations

# Longest response body included in str(RemoteServiceError)
_BODY_PREVIEW = 300


class MiromapError(Exception):
    """Base class for all miromap errors."""


class ValidationError(MiromapError):
    """Malformed or missing input (empty name, missing root, empty label)."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class RemoteServiceError(MiromapError):
    """The Miro REST API returned a non-success response.

    ``status_code`` is 0 when the request failed at the transport level
    (connection refused, timeout) and no HTTP status exists.
    """

    def __init__(
        self,
        status_code: int,
        body: str,
        *,
        method: str = "",
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.method = method
        self.url = url
        super().__init__(self._describe())

    def _describe(self) -> str:
        target = f"{self.method} {self.url}".strip()
        preview = self.body
        if len(preview) > _BODY_PREVIEW:
            preview = preview[:_BODY_PREVIEW] + "…"
        if self.status_code:
            head = f"Miro API error {self.status_code}"
        else:
            head = "Miro API request failed"
        if target:
            head = f"{head} ({target})"
        return f"{head}: {preview}" if preview else head


class MaterializationError(MiromapError):
    """A board could not be fully built.

    Attributes:
        text: Label of the node whose creation failed, or None when the
            failure was not tied to a node (board creation, credentials).
        path: Labels from the root down to the failing node.
        created: Number of remote nodes that already exist on the board.
            Nothing is rolled back, so these stay behind.
    """

    def __init__(
        self,
        message: str,
        *,
        text: str | None = None,
        path: tuple[str, ...] = (),
        created: int = 0,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.text = text
        self.path = path
        self.created = created

    @property
    def cause(self) -> BaseException | None:
        """The underlying error (usually a RemoteServiceError), if any."""
        return self.__cause__

    @property
    def details(self) -> str:
        """Human-readable description of the underlying failure."""
        if self.__cause__ is not None:
            return f"{self.message}: {self.__cause__}"
        return self.message
