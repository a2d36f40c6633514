"""
Structured logging for engine events.

Provides JSON-formatted logs with timestamps and structured fields, plus a
human-readable formatter for interactive use.
"""
import json
import logging
import sys
from datetime import datetime
from typing import Any, Optional


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter."""

    EXCLUDED_ATTRS = {
        'name', 'msg', 'args', 'levelname', 'levelno',
        'pathname', 'filename', 'module', 'exc_info',
        'exc_text', 'stack_info', 'lineno', 'funcName',
        'created', 'msecs', 'relativeCreated', 'thread',
        'threadName', 'processName', 'process', 'message',
        'asctime', 'taskName'
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON formatted string
        """
        log_data = {
            "timestamp": datetime.now().isoformat(),
            "level": record.levelname,
            "event": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields
        for key, value in record.__dict__.items():
            if key not in self.EXCLUDED_ATTRS:
                try:
                    json.dumps(value)
                    log_data[key] = value
                except (TypeError, ValueError):
                    log_data[key] = str(value)

        return json.dumps(log_data)


class ReadableFormatter(logging.Formatter):
    """Human-readable colored formatter for terminals."""

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        duration = getattr(record, "duration_ms", None)
        dur_str = f" [{duration:.0f}ms]" if duration is not None else ""
        run_id = getattr(record, "run_id", None)
        run_str = f" run={run_id}" if run_id else ""
        base = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}{run_str}{dur_str}"
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Set up root logging for the engine.

    Args:
        level: Level name (DEBUG, INFO, ...)
        json_output: StructuredFormatter when True, ReadableFormatter otherwise
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter = StructuredFormatter() if json_output else ReadableFormatter()

    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(log_level)
    root.addHandler(handler)
    root.setLevel(log_level)

    # Quieten noisy libraries
    for noisy in ("urllib3", "requests"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


class StructuredLogger:
    """Structured logger wrapper with convenience methods."""

    def __init__(
        self,
        name: str = "qa_engine.metrics",
        level: int = logging.INFO,
        enable_console: bool = False,
        enable_file: bool = False,
        log_file: Optional[str] = None
    ):
        """Initialize structured logger.

        Args:
            name: Logger name
            level: Logging level
            enable_console: Attach a dedicated stdout handler
            enable_file: Output to file
            log_file: Path to log file
        """
        self._logger = logging.getLogger(name)
        self._logger.setLevel(level)

        formatter = StructuredFormatter()

        if enable_console:
            self._logger.handlers = []
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            self._logger.addHandler(console_handler)

        if enable_file and log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            self._logger.addHandler(file_handler)

    def info(self, event: str, **kwargs: Any) -> None:
        self._logger.info(event, extra=kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._logger.warning(event, extra=kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        self._logger.error(event, extra=kwargs)

    def debug(self, event: str, **kwargs: Any) -> None:
        self._logger.debug(event, extra=kwargs)

    def log_flush(
        self,
        run_id: str,
        batch_size: int,
        skipped: int,
        duration_ms: float,
        success: bool = True,
        triggered_by: str = "timer",
        error: Optional[str] = None
    ) -> None:
        """Log a result flush.

        Args:
            run_id: Run identifier
            batch_size: Number of results sent
            skipped: Number of pending entries that could not be sent
            duration_ms: Round trip in milliseconds
            success: Whether the backend accepted the batch
            triggered_by: 'timer' or 'explicit'
            error: Error message if failed
        """
        level = logging.INFO if success else logging.ERROR
        self._logger.log(
            level,
            "results_flushed",
            extra={
                "run_id": run_id,
                "batch_size": batch_size,
                "skipped": skipped,
                "duration_ms": round(duration_ms, 2),
                "success": success,
                "triggered_by": triggered_by,
                "error": error
            }
        )

    def log_transition(self, run_id: str, transition: str, success: bool = True) -> None:
        """Log a run lifecycle transition."""
        level = logging.INFO if success else logging.WARNING
        self._logger.log(
            level,
            "run_transition",
            extra={
                "run_id": run_id,
                "transition": transition,
                "success": success
            }
        )
