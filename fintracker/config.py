"""Runtime configuration for the finance tracking backend.

Settings are resolved once at process start and then handed to the app
factory, the engine factory and the auth helpers. Values come from an optional
YAML file (``FINTRACKER_CONFIG``) and are overridden by environment variables.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Final

import yaml

__all__ = ["ConfigurationError", "Settings", "load_settings", "read_yaml"]

CONFIG_ENV_FLAG: Final[str] = "FINTRACKER_CONFIG"
DEFAULT_TOKEN_TTL: Final[timedelta] = timedelta(hours=24)
DEFAULT_LOG_DIR: Final[Path] = Path("artifacts") / "logs"
HMAC_ALGORITHMS: Final[tuple[str, ...]] = ("HS256", "HS384", "HS512")

_TRUTHY = {"1", "true", "yes", "on"}


class ConfigurationError(RuntimeError):
    """Raised when required settings are missing or invalid."""


@dataclass(frozen=True, slots=True)
class Settings:
    """Immutable configuration consumed by the application.

    Attributes:
      database_url: SQLAlchemy URL of the relational store.
      jwt_secret: Shared secret used to sign and verify bearer tokens.
      token_ttl: Lifetime of tokens minted at login.
      jwt_algorithm: HMAC algorithm used when signing tokens.
      log_level: Name of the logging level for ``fintracker`` loggers.
      json_logs: Mirror logs to a JSON-lines file under ``log_dir``.
      log_dir: Directory receiving the JSON log file.
      cors_origins: Origins allowed by the CORS middleware.
    """

    database_url: str
    jwt_secret: str
    token_ttl: timedelta = DEFAULT_TOKEN_TTL
    jwt_algorithm: str = "HS256"
    log_level: str = "INFO"
    json_logs: bool = False
    log_dir: Path = DEFAULT_LOG_DIR
    cors_origins: tuple[str, ...] = field(default=("*",))

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ConfigurationError("database URL is required (set DATABASE_URL)")
        if not self.jwt_secret:
            raise ConfigurationError("JWT secret is required (set JWT_SECRET)")
        if self.jwt_algorithm not in HMAC_ALGORITHMS:
            raise ConfigurationError(
                f"jwt_algorithm must be one of {', '.join(HMAC_ALGORITHMS)}"
            )
        if self.token_ttl <= timedelta(0):
            raise ConfigurationError("token_ttl must be positive")


def read_yaml(path: Path | str) -> object:
    """Read a YAML file and return the corresponding Python object."""

    with Path(path).open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def _as_hours(value: Any) -> timedelta:
    try:
        hours = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"token TTL must be a number of hours, got {value!r}") from exc
    return timedelta(hours=hours)


def _as_origins(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value or [])
    return tuple(str(item).strip() for item in items if str(item).strip())


def _file_values(config_path: Path | str | None) -> dict[str, Any]:
    if config_path is None:
        return {}
    payload = read_yaml(config_path)
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise ConfigurationError(f"{config_path} must contain a mapping at the top level")
    return dict(payload)


def load_settings(
    environ: Mapping[str, str] | None = None,
    config_path: Path | str | None = None,
) -> Settings:
    """Build :class:`Settings` from a YAML file and environment variables.

    Environment variables win over the file. ``DATABASE_URL`` falls back to
    ``POSTGRES_URL``. A missing secret or database URL raises
    :class:`ConfigurationError`.
    """

    env = os.environ if environ is None else environ
    path = config_path if config_path is not None else env.get(CONFIG_ENV_FLAG)
    values = _file_values(path)

    database_url = env.get("DATABASE_URL") or env.get("POSTGRES_URL") or values.get("database_url")
    jwt_secret = env.get("JWT_SECRET") or values.get("jwt_secret")
    kwargs: dict[str, Any] = {
        "database_url": str(database_url or ""),
        "jwt_secret": str(jwt_secret or ""),
    }

    ttl = env.get("FINTRACKER_TOKEN_TTL_HOURS", values.get("token_ttl_hours"))
    if ttl is not None:
        kwargs["token_ttl"] = _as_hours(ttl)
    algorithm = values.get("jwt_algorithm")
    if algorithm:
        kwargs["jwt_algorithm"] = str(algorithm).upper()
    level = env.get("FINTRACKER_LOG_LEVEL", values.get("log_level"))
    if level:
        kwargs["log_level"] = str(level).strip().upper()
    json_logs = env.get("FINTRACKER_JSON_LOGS", values.get("json_logs"))
    if json_logs is not None:
        kwargs["json_logs"] = _as_bool(json_logs)
    log_dir = env.get("FINTRACKER_LOG_DIR", values.get("log_dir"))
    if log_dir:
        kwargs["log_dir"] = Path(log_dir)
    origins = env.get("CORS_ORIGINS", values.get("cors_origins"))
    if origins:
        kwargs["cors_origins"] = _as_origins(origins)

    return Settings(**kwargs)
