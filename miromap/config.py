"""Application settings loaded from environment variables or .env."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_env_files() -> list[Path]:
    """Find .env files to load, searching upward from CWD and in the package dir.

    Checks (in priority order, last wins in pydantic-settings):
    1. The directory above the miromap package
    2. The current working directory, or the nearest parent holding a .env
    """
    candidates: list[Path] = []

    pkg_env = Path(__file__).resolve().parent.parent / ".env"
    if pkg_env.is_file():
        candidates.append(pkg_env)

    cwd = Path.cwd().resolve()
    for parent in [cwd, *cwd.parents]:
        env_path = parent / ".env"
        if env_path.is_file() and env_path not in candidates:
            candidates.append(env_path)
            break  # stop at first match going upward

    return candidates


class MiromapSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MIROMAP_",
        env_file=_find_env_files(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Miro API
    miro_api_base: str = "https://api.miro.com/v2"
    miro_timeout: float = 30.0

    # Miro OAuth app
    miro_client_id: str = ""
    miro_client_secret: str = ""
    miro_redirect_uri: str = ""

    # Personal access token for CLI use (server requests use stored tokens)
    miro_access_token: str = ""

    # Stored OAuth tokens older than this are treated as expired
    miro_token_ttl_seconds: int = 3600

    # Server
    db_url: str = ""  # empty → ~/.config/miromap/miromap.db
    host: str = "127.0.0.1"
    port: int = 8160
    output_dir: Path | None = None  # log file lives under <output_dir>/.miromap/


def load_settings(**overrides: object) -> MiromapSettings:
    """Load settings with optional CLI overrides (``None`` values are ignored)."""
    clean = {k: v for k, v in overrides.items() if v is not None}
    return MiromapSettings(**clean)  # type: ignore[arg-type]
