"""Tests for plansync.toml loading, env resolution and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from plansync.config import (
    DEFAULT_PORT,
    DEFAULT_PROVIDER_SCOPES,
    ConfigError,
    load_config,
    parse_config,
    resolve_env_vars,
)

pytestmark = pytest.mark.unit

_ENV_NAMES = (
    "DATABASE_URL",
    "GEMINI_API_KEY",
    "OUTLOOK_CLIENT_ID",
    "OUTLOOK_CLIENT_SECRET",
    "OUTLOOK_REDIRECT_URI",
    "GOOGLE_OAUTH_CLIENT_ID",
    "GOOGLE_OAUTH_CLIENT_SECRET",
    "GOOGLE_OAUTH_REDIRECT_URI",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "plansync.toml"
    path.write_text(text)
    return path


# ============================================================================
# Defaults and environment fallbacks
# ============================================================================


class TestDefaults:
    def test_no_file_gives_defaults(self):
        config = load_config()
        assert config.server.port == DEFAULT_PORT
        assert config.logging.format == "text"
        assert config.database.dsn is None
        assert config.planning.api_key is None
        assert config.planning.weekly_span_days == 7
        assert config.sync.refresh_margin_seconds == 300
        assert config.sync.default_provider == "outlook"
        assert sorted(config.providers) == ["google", "outlook"]
        assert config.providers["outlook"].is_configured is False
        assert config.providers["outlook"].scopes == DEFAULT_PROVIDER_SCOPES["outlook"]

    def test_env_fallbacks(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/plansync")
        monkeypatch.setenv("GEMINI_API_KEY", "gemini-key")
        monkeypatch.setenv("OUTLOOK_CLIENT_ID", "ms-id")
        monkeypatch.setenv("OUTLOOK_CLIENT_SECRET", "ms-secret")

        config = load_config()

        assert config.database.dsn == "postgresql://localhost/plansync"
        assert config.planning.api_key == "gemini-key"
        assert config.providers["outlook"].is_configured is True
        assert config.providers["google"].is_configured is False

    def test_file_values_win_over_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "from-env")
        path = _write(tmp_path, '[planning]\napi_key = "from-file"\n')
        assert load_config(path).planning.api_key == "from-file"


# ============================================================================
# File parsing
# ============================================================================


class TestLoadConfig:
    def test_full_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OUTLOOK_SECRET_VALUE", "s3cret")
        path = _write(
            tmp_path,
            """
[server]
host = "0.0.0.0"
port = 8080
cors_origins = ["https://app.example.com"]

[logging]
level = "debug"
format = "JSON"

[planning]
model = "gemini-test"
weekly_span_days = 5

[sync]
refresh_margin_seconds = 120
default_provider = "Google"

[providers.outlook]
client_id = "ms-id"
client_secret = "${OUTLOOK_SECRET_VALUE}"
tenant = "contoso"
""",
        )

        config = load_config(path)

        assert config.server.host == "0.0.0.0"
        assert config.server.port == 8080
        assert config.server.cors_origins == ["https://app.example.com"]
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "json"
        assert config.planning.model == "gemini-test"
        assert config.planning.weekly_span_days == 5
        assert config.sync.refresh_margin_seconds == 120
        assert config.sync.default_provider == "google"
        outlook = config.providers["outlook"]
        assert outlook.client_secret == "s3cret"
        assert outlook.tenant == "contoso"
        assert outlook.is_configured is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.toml")

    def test_invalid_toml(self, tmp_path):
        path = _write(tmp_path, "[server\nport = 1")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(path)

    def test_unresolved_env_var(self, tmp_path):
        path = _write(tmp_path, '[database]\ndsn = "${PLANSYNC_TEST_UNSET_DSN}"\n')
        with pytest.raises(ConfigError, match="PLANSYNC_TEST_UNSET_DSN"):
            load_config(path)


# ============================================================================
# Validation
# ============================================================================


class TestValidation:
    def test_bad_log_format(self):
        with pytest.raises(ConfigError, match="logging.format"):
            parse_config({"logging": {"format": "xml"}})

    def test_unknown_provider_section(self):
        with pytest.raises(ConfigError, match="icloud"):
            parse_config({"providers": {"icloud": {"client_id": "x"}}})

    def test_unknown_default_provider(self):
        with pytest.raises(ConfigError, match="default_provider"):
            parse_config({"sync": {"default_provider": "icloud"}})

    def test_non_integer_port(self):
        with pytest.raises(ConfigError, match="server.port"):
            parse_config({"server": {"port": "80"}})

    def test_negative_refresh_margin(self):
        with pytest.raises(ConfigError, match="refresh_margin_seconds"):
            parse_config({"sync": {"refresh_margin_seconds": -1}})

    def test_pool_bounds(self):
        with pytest.raises(ConfigError, match="min_pool_size"):
            parse_config({"database": {"min_pool_size": 5, "max_pool_size": 2}})

    def test_section_must_be_table(self):
        with pytest.raises(ConfigError, match=r"\[server\]"):
            parse_config({"server": "localhost"})

    def test_scopes_must_be_strings(self):
        with pytest.raises(ConfigError, match="scopes"):
            parse_config({"providers": {"google": {"scopes": [1, 2]}}})


class TestResolveEnvVars:
    def test_nested_values(self, monkeypatch):
        monkeypatch.setenv("PLANSYNC_TEST_HOST", "db.internal")
        data = {"a": ["${PLANSYNC_TEST_HOST}", 3], "b": {"c": "x-${PLANSYNC_TEST_HOST}"}}
        assert resolve_env_vars(data) == {
            "a": ["db.internal", 3],
            "b": {"c": "x-db.internal"},
        }

    def test_reports_every_missing_name(self):
        with pytest.raises(ConfigError) as exc_info:
            resolve_env_vars("${PLANSYNC_MISSING_A}/${PLANSYNC_MISSING_B}")
        assert "PLANSYNC_MISSING_A, PLANSYNC_MISSING_B" in str(exc_info.value)
