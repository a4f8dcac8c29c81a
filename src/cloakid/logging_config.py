"""
Logging configuration.

Structured JSON logging plus an audit logger that records engine events.
Only non-secret event fields ever reach the log.
"""
import dataclasses
import json
import logging
import sys
import time
from typing import Optional


class StructuredFormatter(logging.Formatter):
    """JSON formatter, one object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Records published engine events.

    Attach with engine.subscribe(audit_log) so every committed event is
    logged with its fields.
    """

    def __init__(self, name: str = "cloakid.audit"):
        self._logger = logging.getLogger(name)

    def __call__(self, event: object) -> None:
        event_type = type(event).__name__
        fields = dataclasses.asdict(event) if dataclasses.is_dataclass(event) else {}
        self._logger.info(
            "%s", event_type,
            extra={"extra_fields": {"event_type": event_type, **fields}},
        )

    def security_event(self, event: str, severity: str = "medium", **details) -> None:
        """Log a rejected or otherwise security-relevant request."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
        }.get(severity, logging.WARNING)
        self._logger.log(
            level, "Security event: %s", event,
            extra={"extra_fields": {"security_event": event, "severity": severity, **details}},
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure root logging for the service.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


audit_log = AuditLogger()
