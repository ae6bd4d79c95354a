"""
Async queue-based logging system.

Provides non-blocking logging so file and console I/O never stall the
event loop that runs scans and executions.
"""

import logging
import sys
from datetime import datetime
from logging.handlers import QueueHandler, QueueListener
from pathlib import Path
from queue import Queue

from defi_arbitrage.config.constants import LOG_DATE_FORMAT, LOG_FORMAT, MAX_LOG_QUEUE_SIZE


# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = ("aiohttp", "asyncio", "urllib3", "web3", "uvicorn.access")


class MillisecondFormatter(logging.Formatter):
    """Formatter with millisecond precision timestamps."""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        """Format time without the default comma separator."""
        ct = datetime.fromtimestamp(record.created)
        return ct.strftime(datefmt or LOG_DATE_FORMAT)


class AsyncLogger:
    """
    Async-friendly logger with queue-based output.

    All logging calls are non-blocking - messages are queued
    and written by a background thread.
    """

    def __init__(
        self,
        name: str,
        level: int = logging.INFO,
        log_file: Path | None = None,
    ) -> None:
        """
        Initialize async logger.

        Args:
            name: Logger name ("" for the root logger).
            level: Logging level.
            log_file: Optional file path for logging.
        """
        self._name = name
        self._level = level
        self._log_file = log_file
        self._queue: Queue[logging.LogRecord] = Queue(maxsize=MAX_LOG_QUEUE_SIZE)
        self._listener: QueueListener | None = None
        self._queue_handler: QueueHandler | None = None
        self._logger = logging.getLogger(name)

    def start(self) -> None:
        """Start the async logging system."""
        formatter = MillisecondFormatter(LOG_FORMAT, LOG_DATE_FORMAT)
        handlers: list[logging.Handler] = []

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler.setLevel(self._level)
        handlers.append(console_handler)

        if self._log_file:
            self._log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(self._log_file)
            file_handler.setFormatter(formatter)
            file_handler.setLevel(logging.DEBUG)  # Log everything to file
            handlers.append(file_handler)

        self._queue_handler = QueueHandler(self._queue)
        self._logger.addHandler(self._queue_handler)
        self._logger.setLevel(logging.DEBUG if self._log_file else self._level)

        self._listener = QueueListener(
            self._queue,
            *handlers,
            respect_handler_level=True,
        )
        self._listener.start()

    def stop(self) -> None:
        """Stop the async logging system, flushing queued records."""
        if self._listener:
            self._listener.stop()
            self._listener = None
        if self._queue_handler:
            self._logger.removeHandler(self._queue_handler)
            self._queue_handler = None

    @property
    def logger(self) -> logging.Logger:
        """Get the underlying logger."""
        return self._logger

    def __enter__(self) -> "AsyncLogger":
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.stop()


def setup_logging(
    level: str = "INFO",
    log_file: Path | str | None = None,
) -> AsyncLogger:
    """
    Set up application-wide logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional log file path.

    Returns:
        Started AsyncLogger attached to the root logger.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    async_logger = AsyncLogger(
        name="",
        level=numeric_level,
        log_file=Path(log_file) if log_file else None,
    )
    async_logger.start()

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return async_logger
