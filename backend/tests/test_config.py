import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from config import ConfigurationError, Settings, resolve_allium_credentials  # noqa: E402


def _settings(tmp_path, **overrides):
    values = {
        "ALLIUM_API_KEY": None,
        "ALLIUM_QUERY_ID": None,
        "ALLIUM_CREDENTIALS_PATH": str(tmp_path / "credentials"),
    }
    values.update(overrides)
    return Settings(**values)


def test_environment_credentials_win(tmp_path):
    (tmp_path / "credentials").write_text("API_KEY=file-key\nQUERY_ID=file-query\n", encoding="utf-8")
    config = _settings(tmp_path, ALLIUM_API_KEY="env-key", ALLIUM_QUERY_ID="env-query")

    credentials = resolve_allium_credentials(config)

    assert credentials.api_key == "env-key"
    assert credentials.query_id == "env-query"


def test_credentials_file_fills_missing_values(tmp_path):
    (tmp_path / "credentials").write_text(
        "# allium\nAPI_KEY = file-key\nQUERY_ID=file-query\nOTHER=1\n",
        encoding="utf-8",
    )
    config = _settings(tmp_path, ALLIUM_API_KEY="env-key")

    credentials = resolve_allium_credentials(config)

    assert credentials.api_key == "env-key"
    assert credentials.query_id == "file-query"


def test_missing_credentials_are_fatal(tmp_path):
    with pytest.raises(ConfigurationError, match="ALLIUM_API_KEY"):
        resolve_allium_credentials(_settings(tmp_path))


def test_blank_secrets_are_treated_as_missing(tmp_path):
    config = _settings(tmp_path, ALLIUM_API_KEY="  ", TELEGRAM_BOT_TOKEN='""')

    assert config.ALLIUM_API_KEY is None
    assert config.TELEGRAM_BOT_TOKEN is None


def test_urls_and_chain_are_normalized(tmp_path):
    config = _settings(tmp_path, ALLIUM_API_URL=' "https://api.allium.so/" ', CHAIN=" Base ")

    assert config.ALLIUM_API_URL == "https://api.allium.so"
    assert config.CHAIN == "base"


def test_relative_sqlite_path_resolves_under_project_root(tmp_path):
    config = _settings(tmp_path, DATABASE_URL="sqlite+aiosqlite:///data/test.db")

    expected = (BACKEND_ROOT.parent / "data" / "test.db").resolve()
    assert config.DATABASE_URL == f"sqlite+aiosqlite:///{expected}"


def test_defaults_match_provider_limits(tmp_path):
    config = _settings(tmp_path)

    assert config.RATE_LIMIT_MIN_INTERVAL_SECONDS == pytest.approx(1.1)
    assert config.RATE_LIMIT_MAX_RETRIES == 3
    assert config.POLL_INTERVAL_SECONDS == 60
    assert config.FIRST_POLL_DELAY_SECONDS == 5
    assert config.QUERY_POLL_INTERVAL_SECONDS == 3
    assert config.QUERY_MAX_ATTEMPTS == 30
