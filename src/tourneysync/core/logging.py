"""
TourneySync structured logging.

Provides structured output for sync cycles, queue bookkeeping and
conflict resolution so a replica's history can be reconstructed.
"""

from __future__ import annotations

import logging
import sys
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, WrappedLogger

if TYPE_CHECKING:
    from tourneysync.core.config import LoggingConfig


_configured = False

# Client libraries that log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore")


def add_timestamp(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add UTC ISO timestamp to log events, matching server timestamps."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def add_log_level(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict["level"] = method_name.upper()
    return event_dict


def setup_logging(config: LoggingConfig) -> None:
    """Configure structured logging for TourneySync."""
    global _configured

    if _configured:
        return

    handlers: list[logging.Handler] = []

    if config.console_enabled:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, config.level))
        handlers.append(console_handler)

    if config.file_enabled:
        config.log_directory.mkdir(parents=True, exist_ok=True)
        log_file = config.log_directory / f"tourneysync_{datetime.now().strftime('%Y%m%d')}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)  # Sync history is reconstructed from the file
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG,
        handlers=handlers,
        format="%(message)s",
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    shared_processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_logger_name,
        add_timestamp,
        add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if config.json_format:
        renderers: list[structlog.types.Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        ]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]

    structlog.configure(
        processors=shared_processors + renderers,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name or "tourneysync")


class OperationLogger:
    """Times a sync step and logs its outcome.

    ``duration_ms`` is available once the block exits, so callers can put
    the timing into their own reports. Successful steps are logged at
    ``level``; failures are always logged as errors.
    """

    def __init__(
        self,
        operation: str,
        logger: structlog.stdlib.BoundLogger | None = None,
        level: str = "info",
        **context: Any,
    ):
        self.operation = operation
        self.logger = logger or get_logger()
        self.level = level
        self.context = context
        self.duration_ms: float | None = None
        self._started: float | None = None

    def __enter__(self) -> OperationLogger:
        self._started = time.monotonic()
        self.logger.debug(
            f"Starting {self.operation}",
            operation=self.operation,
            **self.context,
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        started = self._started if self._started is not None else time.monotonic()
        self.duration_ms = round((time.monotonic() - started) * 1000, 3)

        if exc_type is not None:
            self.logger.error(
                f"Failed {self.operation}",
                operation=self.operation,
                duration_ms=self.duration_ms,
                error_type=exc_type.__name__,
                error=str(exc_val),
                **self.context,
            )
            return

        log = getattr(self.logger, self.level)
        log(
            f"Completed {self.operation}",
            operation=self.operation,
            duration_ms=self.duration_ms,
            **self.context,
        )

    def update(self, **additional_context: Any) -> None:
        """Add fields to the completion log line."""
        self.context.update(additional_context)
