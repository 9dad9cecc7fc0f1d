"""Service configuration loading and validation.

Reads ``plansync.toml``, resolves ``${VAR}`` references against the
environment, and returns a validated ``PlanSyncConfig`` dataclass.  When no
file is given, ``load_config()`` builds the defaults and fills provider and
planner secrets from well-known environment variables.

Example ``plansync.toml``::

    [server]
    port = 40300

    [logging]
    level = "DEBUG"
    format = "json"

    [database]
    dsn = "${DATABASE_URL}"

    [planning]
    model = "gemini-2.0-flash"
    api_key = "${GEMINI_API_KEY}"

    [sync]
    refresh_margin_seconds = 300
    default_provider = "outlook"

    [providers.outlook]
    client_id = "${OUTLOOK_CLIENT_ID}"
    client_secret = "${OUTLOOK_CLIENT_SECRET}"
    redirect_uri = "http://localhost:5173/calendar/outlook/callback"
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_FILENAME = "plansync.toml"
DEFAULT_PORT = 40300
DEFAULT_REFRESH_MARGIN_SECONDS = 300
DEFAULT_PLANNING_MODEL = "gemini-2.0-flash"
DEFAULT_WEEKLY_SPAN_DAYS = 7

KNOWN_PROVIDERS = ("outlook", "google")

DEFAULT_PROVIDER_SCOPES: dict[str, list[str]] = {
    "outlook": ["Calendars.ReadWrite", "User.Read", "offline_access"],
    "google": [
        "https://www.googleapis.com/auth/calendar.events",
        "https://www.googleapis.com/auth/userinfo.email",
    ],
}

# Environment fallbacks used when no config file supplies a value.
_PROVIDER_ENV_KEYS: dict[str, dict[str, str]] = {
    "outlook": {
        "client_id": "OUTLOOK_CLIENT_ID",
        "client_secret": "OUTLOOK_CLIENT_SECRET",
        "redirect_uri": "OUTLOOK_REDIRECT_URI",
    },
    "google": {
        "client_id": "GOOGLE_OAUTH_CLIENT_ID",
        "client_secret": "GOOGLE_OAUTH_CLIENT_SECRET",
        "redirect_uri": "GOOGLE_OAUTH_REDIRECT_URI",
    },
}

_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_VALID_LOG_FORMATS = {"text", "json"}


class ConfigError(Exception):
    """Raised when service configuration is missing, malformed, or invalid."""


@dataclass
class ServerConfig:
    """HTTP server settings from [server]."""

    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:5173"])


@dataclass
class LoggingConfig:
    """Logging configuration from [logging]."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class DatabaseConfig:
    """asyncpg pool settings from [database]."""

    dsn: str | None = None
    min_pool_size: int = 1
    max_pool_size: int = 10


@dataclass
class PlanningConfig:
    """Planning collaborator settings from [planning]."""

    provider: str = "gemini"
    model: str = DEFAULT_PLANNING_MODEL
    api_key: str | None = None
    timeout_seconds: float = 60.0
    weekly_span_days: int = DEFAULT_WEEKLY_SPAN_DAYS


@dataclass
class SyncConfig:
    """Calendar sync behaviour from [sync]."""

    refresh_margin_seconds: int = DEFAULT_REFRESH_MARGIN_SECONDS
    default_provider: str = "outlook"
    http_timeout_seconds: float = 30.0


@dataclass
class ProviderConfig:
    """OAuth client settings for one calendar provider from [providers.<name>]."""

    name: str
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str | None = None
    scopes: list[str] = field(default_factory=list)
    tenant: str = "common"

    @property
    def is_configured(self) -> bool:
        """True when the OAuth client id and secret are both present."""
        return bool(self.client_id) and bool(self.client_secret)


@dataclass
class PlanSyncConfig:
    """Top-level service configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    planning: PlanningConfig = field(default_factory=PlanningConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    providers: dict[str, ProviderConfig] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings.  Non-string leaves pass through unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s*, reporting every missing name."""
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {vars_str} (original: {s!r})"
        )

    return result


# ---------------------------------------------------------------------------
# Section parsers
# ---------------------------------------------------------------------------


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a TOML table")
    return section


def _int_field(section: dict[str, Any], path: str, key: str, default: int, *, minimum: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{path}.{key} must be an integer")
    if value < minimum:
        raise ConfigError(f"{path}.{key} must be >= {minimum}, got {value}")
    return value


def _float_field(section: dict[str, Any], path: str, key: str, default: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ConfigError(f"{path}.{key} must be a number")
    if value <= 0:
        raise ConfigError(f"{path}.{key} must be positive, got {value}")
    return float(value)


def _optional_str(section: dict[str, Any], path: str, key: str) -> str | None:
    value = section.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"{path}.{key} must be a string when set")
    return value.strip() or None


def _str_list(section: dict[str, Any], path: str, key: str, default: list[str]) -> list[str]:
    value = section.get(key)
    if value is None:
        return list(default)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"{path}.{key} must be a list of strings")
    return [item.strip() for item in value if item.strip()]


def _parse_server(data: dict[str, Any]) -> ServerConfig:
    section = _section(data, "server")
    defaults = ServerConfig()
    return ServerConfig(
        host=_optional_str(section, "server", "host") or defaults.host,
        port=_int_field(section, "server", "port", defaults.port, minimum=1),
        cors_origins=_str_list(section, "server", "cors_origins", defaults.cors_origins),
    )


def _parse_logging(data: dict[str, Any]) -> LoggingConfig:
    section = _section(data, "logging")
    level = str(section.get("level", "INFO")).upper()
    fmt = str(section.get("format", "text")).lower()
    if fmt not in _VALID_LOG_FORMATS:
        raise ConfigError(
            f"logging.format must be one of {sorted(_VALID_LOG_FORMATS)}, got {fmt!r}"
        )
    return LoggingConfig(
        level=level,
        format=fmt,
        log_root=_optional_str(section, "logging", "log_root"),
    )


def _parse_database(data: dict[str, Any]) -> DatabaseConfig:
    section = _section(data, "database")
    min_size = _int_field(section, "database", "min_pool_size", 1, minimum=0)
    max_size = _int_field(section, "database", "max_pool_size", 10, minimum=1)
    if min_size > max_size:
        raise ConfigError("database.min_pool_size must not exceed database.max_pool_size")
    return DatabaseConfig(
        dsn=_optional_str(section, "database", "dsn") or os.environ.get("DATABASE_URL"),
        min_pool_size=min_size,
        max_pool_size=max_size,
    )


def _parse_planning(data: dict[str, Any]) -> PlanningConfig:
    section = _section(data, "planning")
    defaults = PlanningConfig()
    span = _int_field(
        section, "planning", "weekly_span_days", defaults.weekly_span_days, minimum=1
    )
    return PlanningConfig(
        provider=_optional_str(section, "planning", "provider") or defaults.provider,
        model=_optional_str(section, "planning", "model") or defaults.model,
        api_key=_optional_str(section, "planning", "api_key") or os.environ.get("GEMINI_API_KEY"),
        timeout_seconds=_float_field(
            section, "planning", "timeout_seconds", defaults.timeout_seconds
        ),
        weekly_span_days=span,
    )


def _parse_sync(data: dict[str, Any]) -> SyncConfig:
    section = _section(data, "sync")
    defaults = SyncConfig()
    default_provider = (
        _optional_str(section, "sync", "default_provider") or defaults.default_provider
    ).lower()
    if default_provider not in KNOWN_PROVIDERS:
        raise ConfigError(
            f"sync.default_provider must be one of {list(KNOWN_PROVIDERS)}, "
            f"got {default_provider!r}"
        )
    return SyncConfig(
        refresh_margin_seconds=_int_field(
            section,
            "sync",
            "refresh_margin_seconds",
            defaults.refresh_margin_seconds,
            minimum=0,
        ),
        default_provider=default_provider,
        http_timeout_seconds=_float_field(
            section, "sync", "http_timeout_seconds", defaults.http_timeout_seconds
        ),
    )


def _parse_providers(data: dict[str, Any]) -> dict[str, ProviderConfig]:
    section = _section(data, "providers")
    unknown = sorted(set(section) - set(KNOWN_PROVIDERS))
    if unknown:
        raise ConfigError(f"Unknown calendar provider section(s): {', '.join(unknown)}")

    providers: dict[str, ProviderConfig] = {}
    for name in KNOWN_PROVIDERS:
        raw = section.get(name, {})
        if not isinstance(raw, dict):
            raise ConfigError(f"[providers.{name}] must be a TOML table")
        path = f"providers.{name}"
        env_keys = _PROVIDER_ENV_KEYS[name]
        providers[name] = ProviderConfig(
            name=name,
            client_id=_optional_str(raw, path, "client_id")
            or os.environ.get(env_keys["client_id"]),
            client_secret=_optional_str(raw, path, "client_secret")
            or os.environ.get(env_keys["client_secret"]),
            redirect_uri=_optional_str(raw, path, "redirect_uri")
            or os.environ.get(env_keys["redirect_uri"]),
            scopes=_str_list(raw, path, "scopes", DEFAULT_PROVIDER_SCOPES[name]),
            tenant=_optional_str(raw, path, "tenant") or "common",
        )
    return providers


def parse_config(data: dict[str, Any]) -> PlanSyncConfig:
    """Validate an already-decoded config mapping."""
    data = resolve_env_vars(data)
    return PlanSyncConfig(
        server=_parse_server(data),
        logging=_parse_logging(data),
        database=_parse_database(data),
        planning=_parse_planning(data),
        sync=_parse_sync(data),
        providers=_parse_providers(data),
    )


def load_config(config_path: Path | None = None) -> PlanSyncConfig:
    """Load and validate ``plansync.toml``.

    Parameters
    ----------
    config_path:
        Path to the TOML file.  ``None`` builds the default configuration
        from environment variables only.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or fails validation.
    """
    if config_path is None:
        return parse_config({})

    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        data = tomllib.loads(config_path.read_bytes().decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {config_path}: {exc}") from exc

    return parse_config(data)
