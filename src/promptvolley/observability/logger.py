"""
observability/logger.py — Structured logging

structlog rendered through stdlib handlers. The rotating file under log_dir
always gets JSON lines; the optional stdout handler gets JSON or the
coloured dev renderer. Every line emitted during a turn carries user_id and
turn_id from the bound context vars, including lines from the concurrent
detector tasks.

    setup_logging(level="INFO", log_dir="./data/logs", console_output=False)
    log = get_logger(__name__)
    log.info("generation.request", model_id="ByteDance/SDXL-Lightning", steps=20)
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Optional

import structlog

LOG_FILE_NAME = "promptvolley.log"

# Rewritten prompts and history context can run to several KB.
MAX_FIELD_CHARS = 2000

# These log every HTTP request at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "openai", "aiosqlite")


def _clip_long_strings(_logger: Any, _method: str, event_dict: dict) -> dict:
    for key, value in event_dict.items():
        if key != "exception" and isinstance(value, str) and len(value) > MAX_FIELD_CHARS:
            event_dict[key] = f"{value[:MAX_FIELD_CHARS]}... [{len(value)} chars]"
    return event_dict


_PRE_CHAIN: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.format_exc_info,
    _clip_long_strings,
]


def _formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=_PRE_CHAIN,
    )


def setup_logging(
    level: str = "INFO",
    log_dir: str | Path = "./data/logs",
    json_format: Optional[bool] = None,
    console_output: bool = True,
    max_bytes: int = 100 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Configure logging once at startup.

    json_format only affects stdout; None means pretty on a TTY and JSON
    when piped.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    handlers: list[logging.Handler] = [file_handler]

    if console_output:
        if json_format is None:
            json_format = not sys.stdout.isatty()
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(
            _formatter(
                structlog.processors.JSONRenderer()
                if json_format
                else structlog.dev.ConsoleRenderer(colors=True)
            )
        )
        handlers.append(console)

    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=_PRE_CHAIN + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "promptvolley", **initial_values: Any) -> structlog.stdlib.BoundLogger:
    logger = structlog.get_logger(name)
    return logger.bind(**initial_values) if initial_values else logger


def bind_turn(user_id: str, turn_id: str) -> None:
    """Attach user_id / turn_id to every log line for the rest of this turn."""
    structlog.contextvars.bind_contextvars(user_id=user_id, turn_id=turn_id)


def clear_turn() -> None:
    structlog.contextvars.clear_contextvars()
