"""
Structured Logging - structlog over stdlib logging.

Console output on stderr (colored, or JSON when requested); a log
directory adds a rotating file plus an errors-only file.
"""

from __future__ import annotations

import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, List, Optional

import structlog


class PerformanceTimer:
    """
    Times a block and logs its outcome.

    When a `bars` count is passed, the completion event also carries
    the ingest rate so replay runs can be compared.
    """

    def __init__(self, logger: Any, operation: str, **kwargs):
        self.logger = logger
        self.operation = operation
        self.kwargs = kwargs
        self.start_time: float = 0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.perf_counter() - self.start_time
        fields = dict(self.kwargs, duration_ms=round(elapsed * 1000, 2))
        if exc_type:
            self.logger.error(f"{self.operation} failed", error=str(exc_val), **fields)
            return False

        bars = self.kwargs.get("bars")
        if bars and elapsed > 0:
            fields["bars_per_sec"] = round(bars / elapsed, 1)
        self.logger.info(f"{self.operation} completed", **fields)
        return False


def _file_handlers(log_dir: str, level: int) -> List[logging.Handler]:
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    main_handler = RotatingFileHandler(
        log_path / "bar_window.log", encoding="utf-8",
        maxBytes=10 * 1024 * 1024, backupCount=5,
    )
    main_handler.setLevel(level)

    # Rejected bars and failed replays only
    error_handler = RotatingFileHandler(
        log_path / "errors.log", encoding="utf-8",
        maxBytes=5 * 1024 * 1024, backupCount=3,
    )
    error_handler.setLevel(logging.WARNING)
    return [main_handler, error_handler]


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    json_output: bool = False
) -> None:
    """Route stdlib and structlog records through one formatter."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    handlers: List[logging.Handler] = [console_handler]
    if log_dir:
        handlers.extend(_file_handlers(log_dir, level))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    # Close and remove existing handlers to avoid duplicates and FD leaks
    for h in root_logger.handlers[:]:
        h.close()
        root_logger.removeHandler(h)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)


def get_logger(name: str = "bar_window") -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance with the given name."""
    return structlog.get_logger(name)


def log_performance(logger: Any, operation: str, **kwargs) -> PerformanceTimer:
    """Create a performance timing context manager."""
    return PerformanceTimer(logger, operation, **kwargs)
