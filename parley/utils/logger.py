"""Structured logging configuration"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# Extra fields copied from ``logger.x(..., extra={...})`` into the JSON payload
_EXTRA_FIELDS = ("user_id", "request_id", "action", "token_id", "reason", "revoked_count", "path", "method")


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in _EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """Setup structured JSON logging"""
    logger = logging.getLogger("parley")
    logger.setLevel(log_level)

    # Remove existing handlers
    logger.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)

    return logger


# Global logger instance
logger = setup_logging()
