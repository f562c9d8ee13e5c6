"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import Callable
from functools import partial

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from miromap.config import MiromapSettings, load_settings
from miromap.errors import MaterializationError, RemoteServiceError, ValidationError
from miromap.miro_client import MiroClient
from miromap.server.db import create_session_factory, get_engine, init_db
from miromap.server.routes.health import router as health_router
from miromap.server.routes.mindmap import router as mindmap_router
from miromap.server.routes.miro import router as miro_router
from miromap.server.routes.tokens import router as tokens_router

logger = logging.getLogger(__name__)

# Approximate nesting depth at which pydantic stops validating InputNode
MAX_TREE_DEPTH = 250


def create_app(
    db_url: str | None = None,
    verbose: bool = False,
    settings: MiromapSettings | None = None,
    miro_client_factory: Callable[[str], MiroClient] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        db_url: Override database URL (e.g. "sqlite://" for in-memory tests).
        verbose: When True, terminal handler shows DEBUG-level messages.
        settings: Explicit settings; loaded from env/.env when omitted.
        miro_client_factory: Builds a Miro client from an access token.
            Tests inject a fake here instead of reaching Miro.
    """
    if settings is None:
        settings = load_settings()

    if settings.output_dir is not None:
        from miromap.logging import setup_logging

        setup_logging(output_dir=settings.output_dir, verbose=verbose)

    app = FastAPI(title="Miromap", docs_url="/api/docs", redoc_url=None)

    engine = get_engine(db_url or settings.db_url or None)
    init_db(engine)

    app.state.db_factory = create_session_factory(engine)
    app.state.settings = settings
    app.state.miro_client_factory = miro_client_factory or partial(
        MiroClient,
        base_url=settings.miro_api_base,
        timeout=settings.miro_timeout,
    )

    app.include_router(health_router)
    app.include_router(mindmap_router)
    app.include_router(tokens_router)
    app.include_router(miro_router)

    _register_error_handlers(app)
    return app


def _register_error_handlers(app: FastAPI) -> None:
    """Map the error taxonomy onto HTTP: 400 for bad input, 500 for Miro failures."""

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": exc.message})

    @app.exception_handler(MaterializationError)
    async def _materialization_error(
        request: Request, exc: MaterializationError
    ) -> JSONResponse:
        logger.error("materialization failed on %s: %s", request.url.path, exc.details)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to create mindmap", "details": exc.details},
        )

    @app.exception_handler(RemoteServiceError)
    async def _remote_error(request: Request, exc: RemoteServiceError) -> JSONResponse:
        logger.error("Miro request failed on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Miro request failed", "details": str(exc)},
        )

    @app.exception_handler(RequestValidationError)
    async def _body_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        if any(e.get("type") == "recursion_loop" for e in errors):
            message = (
                "Invalid request body: root_node is nested too deeply "
                f"(at most about {MAX_TREE_DEPTH} levels are accepted)"
            )
        elif errors:
            first = errors[0]
            where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
            msg = first.get("msg", "invalid")
            message = f"Invalid request body: {where}: {msg}" if where else f"Invalid request body: {msg}"
        else:
            message = "Invalid request body"
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )
