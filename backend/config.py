import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

# Get the directory where this config file is located.
_BACKEND_DIR = Path(__file__).parent.resolve()


def _detect_project_root(backend_dir: Path) -> Path:
    """Resolve project root from the backend directory in the repo layout."""
    return backend_dir.parent.resolve()


_PROJECT_ROOT = _detect_project_root(_BACKEND_DIR)
_DATA_DIR = (_PROJECT_ROOT / "data").resolve()
_DEFAULT_DB_PATH = (_DATA_DIR / "whale_room.db").resolve()
_DEFAULT_CREDENTIALS_PATH = Path.home() / ".allium" / "credentials"
_SQLITE_ASYNC_PREFIX = "sqlite+aiosqlite:///"
_SQLITE_SYNC_PREFIX = "sqlite:///"
_LOGGER = logging.getLogger(__name__)

_CREDENTIAL_LINE = re.compile(r"^\s*(API_KEY|QUERY_ID)\s*=\s*(.+?)\s*$")


class ConfigurationError(RuntimeError):
    """Startup configuration is missing or invalid. Fatal before warm-up."""


class Settings(BaseSettings):
    # Data provider
    ALLIUM_API_URL: str = "https://api.allium.so"
    ALLIUM_API_KEY: Optional[str] = None
    ALLIUM_QUERY_ID: Optional[str] = None
    ALLIUM_CREDENTIALS_PATH: str = str(_DEFAULT_CREDENTIALS_PATH)
    CHAIN: str = "base"
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Request queue (provider limit is 1 req/s; keep a safety margin)
    RATE_LIMIT_MIN_INTERVAL_SECONDS: float = 1.1
    RATE_LIMIT_MAX_RETRIES: int = 3

    # Polling
    POLL_INTERVAL_SECONDS: float = 60.0
    FIRST_POLL_DELAY_SECONDS: float = 5.0

    # Explorer SQL runs
    QUERY_POLL_INTERVAL_SECONDS: float = 3.0
    QUERY_MAX_ATTEMPTS: int = 30

    # Static configuration files
    WALLETS_PATH: str = str(_DATA_DIR / "tracked_wallets.json")
    CONTRACTS_PATH: str = str(_DATA_DIR / "contracts.json")
    SOCIAL_PATH: str = str(_DATA_DIR / "social_identities.json")
    WATCHLIST_PATH: str = str(_DATA_DIR / "watchlist.json")

    # Notifications
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_CHAT_ID: Optional[str] = None
    DASHBOARD_URL: str = "http://localhost:3000"

    # Database - canonical path under project-root data directory
    DATABASE_URL: str = f"sqlite+aiosqlite:///{_DEFAULT_DB_PATH}"

    # Production Settings
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    CORS_ORIGINS: list[str] = ["*"]
    API_PORT: int = 3000

    @field_validator("ALLIUM_API_URL", "DASHBOARD_URL", mode="before")
    @classmethod
    def _normalize_url_field(cls, value: object) -> object:
        """Trim accidental quotes/whitespace from URL env vars."""
        if value is None:
            return value
        text = str(value).strip().strip('"').strip("'")
        if not text:
            return text
        return text.rstrip("/")

    @field_validator("ALLIUM_API_KEY", "ALLIUM_QUERY_ID", "TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID", mode="before")
    @classmethod
    def _blank_secret_is_none(cls, value: object) -> object:
        if value is None:
            return None
        text = str(value).strip().strip('"').strip("'")
        return text or None

    @field_validator("CHAIN", mode="before")
    @classmethod
    def _normalize_chain(cls, value: object) -> object:
        if value is None:
            return value
        return str(value).strip().lower()

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def _normalize_database_url(cls, value: object) -> object:
        """Normalize DB URL so worker cwd changes never split databases."""
        if value is None:
            return value

        text = str(value).strip().strip('"').strip("'")
        if not text:
            return text

        # Convert relative SQLite paths to absolute project-root paths.
        for prefix in (_SQLITE_ASYNC_PREFIX, _SQLITE_SYNC_PREFIX):
            if not text.startswith(prefix):
                continue
            path_part = text[len(prefix) :]
            if not path_part:
                return text
            if path_part in {":memory:", "/:memory:"}:
                return f"{prefix}:memory:"
            absolute = Path(path_part).resolve() if path_part.startswith("/") else (_PROJECT_ROOT / path_part).resolve()
            return f"{prefix}{absolute}"

        return text

    class Config:
        # Load project-root .env first (common workflow), then backend/.env
        # as an override if present.
        env_file = (
            str(_PROJECT_ROOT / ".env"),
            str(_BACKEND_DIR / ".env"),
        )
        env_file_encoding = "utf-8"


settings = Settings()


@dataclass(frozen=True)
class AlliumCredentials:
    api_key: str
    query_id: str


def _read_credentials_file(path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        _LOGGER.debug("Credentials file unreadable", extra={"path": str(path), "error": str(exc)})
        return values
    for line in text.splitlines():
        match = _CREDENTIAL_LINE.match(line)
        if match:
            values[match.group(1)] = match.group(2)
    return values


def resolve_allium_credentials(config: Optional[Settings] = None) -> AlliumCredentials:
    """Return provider credentials from settings, falling back to the credentials file.

    Environment values win; missing pieces are filled from the
    ``API_KEY=`` / ``QUERY_ID=`` lines of ``ALLIUM_CREDENTIALS_PATH``.
    Raises ``ConfigurationError`` when either value is still missing.
    """
    config = config or settings
    api_key = config.ALLIUM_API_KEY
    query_id = config.ALLIUM_QUERY_ID

    if not api_key or not query_id:
        path = Path(config.ALLIUM_CREDENTIALS_PATH).expanduser()
        if path.exists():
            file_values = _read_credentials_file(path)
            api_key = api_key or file_values.get("API_KEY")
            query_id = query_id or file_values.get("QUERY_ID")

    if not api_key or not query_id:
        raise ConfigurationError(
            "Allium credentials not configured. Set ALLIUM_API_KEY and ALLIUM_QUERY_ID "
            f"or provide API_KEY=... and QUERY_ID=... lines in {config.ALLIUM_CREDENTIALS_PATH}"
        )
    return AlliumCredentials(api_key=api_key, query_id=query_id)
