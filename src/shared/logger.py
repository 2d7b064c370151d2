"""
Structured Diagnostic Logging

This module provides structured logging for the verifiable producer.

WHY STDERR?
- stdout belongs to the status stream: one JSON event per line that test
  harnesses parse (producer_send_success, producer_send_error, tool_data)
- Diagnostic lines must never be mistaken for status events, so every
  handler created here writes to stderr
- Harnesses that merge both streams can still tell them apart: status lines
  always carry a "name" field, log lines never do

EXAMPLE OUTPUT (stderr):
{
  "timestamp": "2025-01-10T14:30:00.123Z",
  "level": "INFO",
  "service": "verifiable-producer",
  "logger": "src.verifiable_producer.producer",
  "message": "Flushing producer",
  "extra": {"timeout": 10}
}
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any, Dict, Optional


# ==============================================================================
# JSON FORMATTER
# ==============================================================================

class JSONFormatter(logging.Formatter):
    """
    Log formatter that outputs one JSON object per record.

    Fields:
    - timestamp: ISO 8601 format (UTC)
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - service: Service name
    - logger: Logger name
    - message: Log message
    - exception: Formatted traceback (if any)
    - extra: Any additional context passed to the logger
    """

    # Attributes every LogRecord carries; anything else came in via extra=
    STANDARD_ATTRS = frozenset({
        'name', 'msg', 'args', 'created', 'filename', 'funcName',
        'levelname', 'levelno', 'lineno', 'module', 'msecs',
        'message', 'pathname', 'process', 'processName', 'relativeCreated',
        'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info',
        'taskName',
    })

    def __init__(
        self,
        service_name: str = "verifiable-producer",
        include_extra: bool = True
    ):
        super().__init__()
        self.service_name = service_name
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self._format_timestamp(record.created),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        if self.include_extra:
            extra_fields = {
                k: v for k, v in record.__dict__.items()
                if k not in self.STANDARD_ATTRS and not k.startswith('_')
            }
            if extra_fields:
                log_data['extra'] = extra_fields

        # One line per record
        return json.dumps(log_data, default=str)

    @staticmethod
    def _format_timestamp(created: float) -> str:
        """
        Format timestamp as ISO 8601 string.

        Args:
            created: Unix timestamp from log record

        Returns:
            ISO 8601 formatted timestamp (e.g., "2025-01-10T14:30:00.123Z")
        """
        dt = datetime.fromtimestamp(created, tz=timezone.utc)
        return dt.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'


# ==============================================================================
# PLAIN TEXT FORMATTER (for development)
# ==============================================================================

class PlainTextFormatter(logging.Formatter):
    """
    Human-readable log formatter for local runs.

    Format: [2025-01-10 14:30:00] INFO [verifiable-producer] Flushing producer
    """

    def __init__(self, service_name: str = "verifiable-producer"):
        super().__init__(
            fmt=f'[%(asctime)s] %(levelname)s [{service_name}] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


# ==============================================================================
# STDERR HANDLER
# ==============================================================================

class StderrHandler(logging.StreamHandler):
    """StreamHandler that writes to whatever sys.stderr is at emit time."""

    def __init__(self):
        super().__init__(sys.stderr)

    def emit(self, record):
        self.stream = sys.stderr
        super().emit(record)

    def flush(self):
        self.stream = sys.stderr
        super().flush()


# ==============================================================================
# LOGGER SETUP
# ==============================================================================

def setup_logger(
    name: str,
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
    stream: Optional[IO[str]] = None,
) -> logging.Logger:
    """
    Set up a structured logger that writes to stderr.

    Calling this again for an already configured logger only updates its
    level, so each component can call it with the configured level
    without stacking duplicate handlers.

    Args:
        name: Logger name (usually __name__ of module)
        service_name: Service identifier (e.g., "verifiable-producer")
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format ("json" or "text")
        stream: Output stream (default: sys.stderr)

    Returns:
        Configured logging.Logger instance

    Example:
        >>> logger = setup_logger(__name__, "verifiable-producer")
        >>> logger.info("Producer started", extra={"topic": "test"})
    """
    logger = logging.getLogger(name)
    level = getattr(logging, log_level.upper(), logging.INFO)
    logger.setLevel(level)
    # Keep records away from the root logger (which may point at stdout)
    logger.propagate = False

    if logger.handlers:
        for existing in logger.handlers:
            existing.setLevel(level)
        return logger

    handler: logging.Handler = (
        logging.StreamHandler(stream) if stream is not None else StderrHandler()
    )
    handler.setLevel(level)

    if log_format.lower() == "json":
        formatter: logging.Formatter = JSONFormatter(service_name=service_name)
    else:
        formatter = PlainTextFormatter(service_name=service_name)

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger
