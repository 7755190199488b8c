"""
Logging Utility.

Configures process-wide logging and provides structured (JSON line) logging
for the background scheduler.
"""

import json
import logging
import sys
from datetime import datetime, timezone


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once, at application startup."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Prevent adding handlers multiple times
    if any(getattr(h, "_chronotask", False) for h in root.handlers):
        return

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    console_handler._chronotask = True
    root.addHandler(console_handler)


class StructuredLogger:
    """Structured logger emitting one JSON document per record."""

    def __init__(self, name: str):
        """
        Initialize structured logger.

        Args:
            name: Logger name
        """
        self.logger = logging.getLogger(name)

    def _log_structured(self, level: int, message: str, **kwargs):
        """
        Log a structured message.

        Args:
            level: Logging level
            message: Log message
            **kwargs: Additional structured data
        """
        if self.logger.isEnabledFor(level):
            log_data = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "level": logging.getLevelName(level),
                "message": message,
                "service": self.logger.name
            }
            log_data.update(kwargs)

            self.logger.log(level, json.dumps(log_data, default=str))

    def debug(self, message: str, **kwargs):
        """Log debug message."""
        self._log_structured(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        """Log info message."""
        self._log_structured(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message."""
        self._log_structured(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        """Log error message."""
        self._log_structured(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs):
        """Log exception with traceback."""
        if self.logger.isEnabledFor(logging.ERROR):
            log_data = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "level": "ERROR",
                "message": message,
                "service": self.logger.name,
                "exception": True
            }
            log_data.update(kwargs)

            self.logger.exception(json.dumps(log_data, default=str))


def get_logger(service_name: str) -> StructuredLogger:
    """
    Get a structured logger for the specified component.

    Args:
        service_name: Name of the component

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(service_name)
