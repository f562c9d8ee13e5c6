"""Command-line interface for Miromap."""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from miromap import __version__
from miromap.config import load_settings
from miromap.models import InputNode, MindMapCreateRequest

app = typer.Typer(
    name="miromap",
    help="Build Miro mind maps from JSON trees.",
    no_args_is_help=True,
)
console = Console(width=min(80, Console().width))


class DedupOption(str, Enum):
    none = "none"
    path = "path"


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"miromap {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version", "-V",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Build Miro mind maps from JSON trees."""


# ---------------------------------------------------------------------------
# Create command
# ---------------------------------------------------------------------------


def _load_request(path: Path, name: str | None) -> MindMapCreateRequest:
    """Read a tree file into a MindMapCreateRequest.

    Accepts either ``{"name": ..., "root_node": {...}}`` or a bare root node
    ``{"text": ..., "children": [...]}``; a bare node's board is named after
    ``--name`` or the file stem.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict) and "root_node" in data:
        request = MindMapCreateRequest.model_validate(data)
        if name:
            request.name = name
        return request
    return MindMapCreateRequest(
        name=name or path.stem,
        root_node=InputNode.model_validate(data),
    )


@app.command()
def create(
    tree_file: Annotated[
        Path,
        typer.Argument(help="JSON file holding the mind-map tree.", exists=True, dir_okay=False),
    ],
    name: Annotated[
        str | None,
        typer.Option("--name", "-n", help="Board name (overrides the file's name)."),
    ] = None,
    dedup: Annotated[
        DedupOption,
        typer.Option("--dedup", help="Collapse branches with identical label paths ('path')."),
    ] = DedupOption.none,
    reparent: Annotated[
        bool,
        typer.Option("--reparent", help="Create nodes detached, then attach them to their parent."),
    ] = False,
    token: Annotated[
        str | None,
        typer.Option("--token", help="Miro access token (default: MIROMAP_MIRO_ACCESS_TOKEN)."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose logging."),
    ] = False,
) -> None:
    """Create a Miro board and build the mind map from TREE_FILE on it."""
    from miromap.credentials import EnvCredentialStore
    from miromap.errors import MaterializationError, ValidationError
    from miromap.logging import setup_logging
    from miromap.materialize import DedupPolicy, ParentLinking
    from miromap.mindmap import materialize_mind_map
    from miromap.miro_client import MiroClient

    settings = load_settings()
    setup_logging(output_dir=settings.output_dir, verbose=verbose)

    access_token = token or settings.miro_access_token or EnvCredentialStore().get("cli")
    if not access_token:
        console.print("[red]No Miro access token.[/red]")
        console.print("Pass [bold]--token[/bold] or set [bold]MIROMAP_MIRO_ACCESS_TOKEN[/bold].")
        raise typer.Exit(1)

    try:
        request = _load_request(tree_file, name)
    except (ValueError, OSError) as exc:
        console.print(f"[red]Could not read {tree_file}:[/red] {exc}")
        raise typer.Exit(1)

    linking = ParentLinking.REPARENT if reparent else ParentLinking.AT_CREATION
    try:
        with MiroClient(
            access_token,
            base_url=settings.miro_api_base,
            timeout=settings.miro_timeout,
        ) as client:
            result = materialize_mind_map(
                client,
                request,
                dedup=DedupPolicy(dedup.value),
                linking=linking,
            )
    except ValidationError as exc:
        console.print(f"[red]Invalid tree:[/red] {exc.message}")
        raise typer.Exit(1)
    except MaterializationError as exc:
        console.print(f"[red]Failed:[/red] {exc.details}")
        if exc.created:
            console.print(
                f"[yellow]{exc.created} node(s) were already created and remain on the board.[/yellow]"
            )
        raise typer.Exit(1)

    console.print(f"[green]Created board[/green] {result.board_id}")
    console.print(f"  [bold cyan]{result.board_url}[/bold cyan]")


# ---------------------------------------------------------------------------
# OAuth helper
# ---------------------------------------------------------------------------


@app.command(name="auth-url")
def auth_url(
    state: Annotated[
        str | None,
        typer.Option("--state", help="Opaque value echoed back on the redirect."),
    ] = None,
) -> None:
    """Print the Miro consent URL for the configured OAuth app."""
    from miromap.miro_client import get_auth_url

    settings = load_settings()
    try:
        url = get_auth_url(settings.miro_client_id, settings.miro_redirect_uri, state)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        console.print(
            "Set [bold]MIROMAP_MIRO_CLIENT_ID[/bold] and [bold]MIROMAP_MIRO_REDIRECT_URI[/bold]."
        )
        raise typer.Exit(1)
    console.print(url, soft_wrap=True)


# ---------------------------------------------------------------------------
# Serve command (FastAPI web server)
# ---------------------------------------------------------------------------


@app.command()
def serve(
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Port to serve on."),
    ] = None,
    host: Annotated[
        str | None,
        typer.Option("--host", help="Interface to bind."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose logging."),
    ] = False,
) -> None:
    """Launch the Miromap web server."""
    try:
        import uvicorn
    except ImportError:
        console.print("[red]Server dependencies not installed.[/red]")
        console.print("Install with: [bold]pip install miromap[serve][/bold]")
        raise typer.Exit(1)

    from miromap.logging import setup_logging
    from miromap.server.app import create_app

    settings = load_settings(host=host, port=port)
    log_path = setup_logging(output_dir=settings.output_dir, verbose=verbose)
    app_instance = create_app(settings=settings, verbose=verbose)

    console.print(
        f"\n  API docs: [bold cyan]http://{settings.host}:{settings.port}/api/docs[/bold cyan]\n"
    )
    if log_path is not None:
        console.print(f"  Log file: {log_path}\n")
    uvicorn.run(
        app_instance,
        host=settings.host,
        port=settings.port,
        log_level="info" if verbose else "warning",
    )
