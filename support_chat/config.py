from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from sqlalchemy.engine import URL

BASE_DIR = Path(__file__).resolve().parent

DEFAULT_CONTENT_URLS: Tuple[str, ...] = (
    "https://jprifles.com",
    "https://jprifles.com/2.1.php",
    "https://jprifles.com/1.4.7.2_os.php",
    "https://jprifles.com/1.4.6_gs.php",
)
DEFAULT_BRAND_NAMES: Tuple[str, ...] = ("JP Rifles", "JP Enterprises")


@dataclass(frozen=True)
class Settings:
    """Configuration container for the model, content cache, storage, and server."""
    gemini_api_key: str
    gemini_model: str
    max_output_tokens: int
    temperature: float
    database_url: str
    content_urls: Tuple[str, ...]
    cache_refresh_hours: int
    snippet_chars: int
    fetch_timeout: int
    brand_names: Tuple[str, ...]
    max_sessions: Optional[int]
    max_history_messages: Optional[int]
    rollback_failed_turns: bool
    data_dir: Path
    sessions_path: Optional[Path]
    prompts_dir: Path
    port: int
    log_level: str
    cors_origins: Tuple[str, ...]


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables and filesystem paths.
    Dependencies: Uses os.getenv, BASE_DIR, and the helpers below.
    Failure Modes: Invalid integer env values raise ValueError.
    If Removed: App cannot configure the model, cache, or database and fails at startup.
    Testing Notes: Verify defaults and overrides via monkeypatched environment.
    """
    # Resolve data and prompt paths, then build Settings.
    data_path = os.getenv("DATA_DIR")
    data_dir = Path(data_path) if data_path else (BASE_DIR / "data").resolve()

    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        max_output_tokens=int(os.getenv("MAX_OUTPUT_TOKENS", "512")),
        temperature=float(os.getenv("TEMPERATURE", "0.2")),
        database_url=_resolve_database_url(data_dir),
        content_urls=_split_list(os.getenv("CONTENT_URLS")) or DEFAULT_CONTENT_URLS,
        cache_refresh_hours=int(os.getenv("CACHE_REFRESH_HOURS", "24")),
        snippet_chars=int(os.getenv("SNIPPET_CHARS", "300")),
        fetch_timeout=int(os.getenv("FETCH_TIMEOUT", "20")),
        brand_names=_split_list(os.getenv("BRAND_NAMES")) or DEFAULT_BRAND_NAMES,
        max_sessions=_optional_int(os.getenv("MAX_SESSIONS")),
        max_history_messages=_optional_int(os.getenv("MAX_HISTORY_MESSAGES")),
        rollback_failed_turns=_flag(os.getenv("ROLLBACK_FAILED_TURNS")),
        data_dir=data_dir,
        sessions_path=_resolve_sessions_path(data_dir),
        prompts_dir=(BASE_DIR / "prompts").resolve(),
        port=int(os.getenv("PORT", "3000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=_split_list(os.getenv("CORS_ORIGINS")) or ("*",),
    )


def _resolve_database_url(data_dir: Path) -> str:
    """Purpose: Pick the catalog database URL from the environment.
    Inputs/Outputs: Input is the data directory; output is a SQLAlchemy URL string.
    Side Effects / State: None.
    Dependencies: Uses sqlalchemy URL.create for the DB_* parameters.
    Failure Modes: Invalid DB_PORT raises ValueError.
    If Removed: Catalog and feedback storage cannot connect.
    Testing Notes: DATABASE_URL wins; DB_HOST builds a mysql+pymysql URL; else sqlite.
    """
    # Explicit URL first, then discrete MySQL parameters, then a local sqlite file.
    explicit = os.getenv("DATABASE_URL")
    if explicit:
        return explicit
    host = os.getenv("DB_HOST")
    if host:
        port = os.getenv("DB_PORT")
        url = URL.create(
            "mysql+pymysql",
            username=os.getenv("DB_USER") or None,
            password=os.getenv("DB_PASSWORD") or None,
            host=host,
            port=int(port) if port else None,
            database=os.getenv("DB_NAME") or None,
        )
        return url.render_as_string(hide_password=False)
    return f"sqlite:///{data_dir / 'support_chat.db'}"


def _resolve_sessions_path(data_dir: Path) -> Optional[Path]:
    """Sessions file from SESSIONS_PATH; unset means data_dir/sessions.json, "none" disables saving."""
    raw = os.getenv("SESSIONS_PATH")
    if raw is None or not raw.strip():
        return data_dir / "sessions.json"
    if raw.strip().lower() == "none":
        return None
    return Path(raw.strip())


def _split_list(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _optional_int(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    value = int(raw)
    return value if value > 0 else None


def _flag(raw: Optional[str]) -> bool:
    return (raw or "").strip().lower() in {"1", "true", "yes", "on"}
