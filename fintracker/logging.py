"""Structured logging helpers for the finance tracking backend."""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:  # pragma: no cover - typing only
    from fintracker.config import Settings

CONSOLE_FORMAT: Final[str] = "[%(levelname)s] %(name)s: %(message)s"
DEFAULT_LEVEL: Final[str] = "INFO"
DEFAULT_LOG_DIR: Final[Path] = Path("artifacts") / "logs"
LOG_FILENAME: Final[str] = "fintracker.log"
JSON_ENV_FLAG: Final[str] = "FINTRACKER_JSON_LOGS"
LEVEL_ENV_FLAG: Final[str] = "FINTRACKER_LOG_LEVEL"
ROOT_LOGGER: Final[str] = "fintracker"

_log_dir: Path = DEFAULT_LOG_DIR


class JsonLogFormatter(logging.Formatter):
    """Render log records as single-line JSON payloads."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=UTC).isoformat()
        payload = {
            "timestamp": timestamp,
            "level": record.levelname,
            "source": record.name,
            "message": record.getMessage(),
            "method": getattr(record, "method", None),
            "path": getattr(record, "path", None),
            "status_code": _coerce_int(getattr(record, "status_code", None)),
            "duration_ms": _coerce_number(getattr(record, "duration_ms", None)),
            "user_id": _coerce_int(getattr(record, "user_id", None)),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _coerce_number(value: object) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _coerce_int(value: object) -> int | None:
    number = _coerce_number(value)
    return None if number is None else int(number)


def _resolve_level(level: str | int | None) -> int:
    """Pick the level from ``FINTRACKER_LOG_LEVEL`` first, then the argument."""

    env_level = os.environ.get(LEVEL_ENV_FLAG)
    if env_level:
        candidate = env_level.strip().upper()
    elif isinstance(level, str):
        candidate = level.strip().upper()
    elif isinstance(level, int):
        return int(level)
    else:
        candidate = DEFAULT_LEVEL
    resolved = logging.getLevelName(candidate)
    return int(resolved) if isinstance(resolved, int) else logging.INFO


def _json_logging_enabled(explicit: bool) -> bool:
    if explicit:
        return True
    value = os.environ.get(JSON_ENV_FLAG)
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _ensure_console_handler(logger: logging.Logger, level: int) -> None:
    for handler in logger.handlers:
        if getattr(handler, "_fintracker_console", False):
            handler.setLevel(level)
            return
    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    stream_handler._fintracker_console = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)


def _ensure_json_handler(logger: logging.Logger, level: int) -> None:
    for handler in logger.handlers:
        if getattr(handler, "_fintracker_json", False):
            handler.setLevel(level)
            return
    _log_dir.mkdir(parents=True, exist_ok=True)
    json_handler = logging.FileHandler(_log_dir / LOG_FILENAME, encoding="utf-8")
    json_handler.setLevel(level)
    json_handler.setFormatter(JsonLogFormatter())
    json_handler._fintracker_json = True  # type: ignore[attr-defined]
    logger.addHandler(json_handler)


def setup_logger(
    name: str,
    json_format: bool = False,
    level: str | int | None = None,
) -> logging.Logger:
    """Configure and return a logger for ``fintracker`` modules.

    Calling it twice for the same name never attaches duplicate handlers.
    """

    resolved_level = _resolve_level(level)
    logger = logging.getLogger(name)
    logger.setLevel(resolved_level)
    # Propagate so capture handlers (pytest ``caplog``) still see the records.
    logger.propagate = True
    _ensure_console_handler(logger, resolved_level)
    if _json_logging_enabled(json_format):
        _ensure_json_handler(logger, resolved_level)
    return logger


def configure_logging(settings: Settings) -> logging.Logger:
    """Apply ``settings`` to every ``fintracker`` logger created so far."""

    global _log_dir
    _log_dir = Path(settings.log_dir)
    for name, logger in logging.Logger.manager.loggerDict.items():
        if not isinstance(logger, logging.Logger):
            continue
        if name.startswith(f"{ROOT_LOGGER}."):
            logger.setLevel(_resolve_level(settings.log_level))
    return setup_logger(ROOT_LOGGER, json_format=settings.json_logs, level=settings.log_level)


__all__ = ["JsonLogFormatter", "configure_logging", "setup_logger"]
