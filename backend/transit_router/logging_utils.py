from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

from .settings import settings

LOGGER_NAME = "transit_router"
LOG_FILE_NAME = "transit_router.log.jsonl"


def _parse_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _resolve_log_dir(configured_dir: str) -> Path | None:
    """Return the log directory only if it exists (or can be created) and accepts writes."""
    if not configured_dir.strip():
        return None
    log_dir = Path(configured_dir)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        probe = log_dir / ".writetest"
        probe.touch(exist_ok=True)
        probe.unlink(missing_ok=True)
    except OSError:
        return None
    return log_dir


def _file_handler(formatter: logging.Formatter) -> logging.Handler | None:
    log_dir = _resolve_log_dir(settings.log_dir)
    if log_dir is None:
        return None
    try:
        handler = logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8")
    except OSError:
        return None
    handler.setFormatter(formatter)
    return handler


def get_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)

    # Handlers are attached once per process.
    if getattr(logger, "_configured", False):
        return logger

    logger.setLevel(_parse_level(settings.log_level))
    logger.propagate = False

    formatter = jsonlogger.JsonFormatter()
    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    file_handler = _file_handler(formatter)
    if file_handler is not None:
        logger.addHandler(file_handler)

    logger._configured = True  # type: ignore[attr-defined]
    return logger


_logger: logging.Logger | None = None


def log_event(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Emit one JSON record whose message and `event` key are both the event name."""
    global _logger
    if _logger is None:
        _logger = get_logger()
    _logger.log(level, event, extra={"event": event, **fields})
