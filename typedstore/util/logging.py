"""
Structured logging for store, connection and migration operations.
Every message goes through log_operation so the log format stays uniform.
"""

import logging
from typing import Any, Dict, List, Optional

from ..core.config import LOG_LEVEL

SENSITIVE_FIELDS = ['value', 'data', 'payload', 'content', 'secret', 'password']


class StructuredLogger:
    """Structured logger for typedstore operations."""

    def __init__(self, name: str = "typedstore"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Optional[Dict[str, Any]] = None,
                      level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {sanitize_payload(details)}"

        self.logger.log(level, message)

    def log_store_operation(self, store: str, operation: str, status: str = "success",
                            details: Optional[Dict[str, Any]] = None):
        """Log an operation against one object store."""
        log_details = {"store": store}
        if details:
            log_details.update(details)

        level = logging.INFO if status == "success" else logging.ERROR
        self.log_operation(f"store.{operation}", status, log_details, level)

    def log_connection(self, database: str, version: int, state: str, details: Optional[Dict[str, Any]] = None):
        """Log a connection state transition."""
        log_details = {"database": database, "version": version}
        if details:
            log_details.update(details)

        level = logging.ERROR if state == "failed" else logging.INFO
        self.log_operation("connection", state, log_details, level)

    def log_migration(self, database: str, old_version: int, new_version: int, handler_count: int,
                      status: str = "success", details: Optional[Dict[str, Any]] = None):
        """Log an upgrade run."""
        log_details = {
            "database": database,
            "old_version": old_version,
            "new_version": new_version,
            "handler_count": handler_count
        }
        if details:
            log_details.update(details)

        level = logging.INFO if status == "success" else logging.ERROR
        self.log_operation("migration", status, log_details, level)

    def log_schema_validation_error(self, operation: str, errors: List[Any], source_record: Any = None):
        """Log schema validation errors with sanitized details."""
        # Field values may hold record contents; only keep locations and messages
        sanitized_errors = []
        for error in errors:
            if isinstance(error, dict):
                sanitized_error = error.copy()
                for field in ['input', 'value']:
                    if field in sanitized_error:
                        sanitized_error[field] = "[REDACTED]"
                sanitized_errors.append(sanitized_error)
            else:
                sanitized_errors.append(str(error)[:100])

        log_details = {
            "operation": operation,
            "errors": sanitized_errors,
            "error_count": len(sanitized_errors)
        }

        if isinstance(source_record, dict):
            log_details["fields"] = sorted(str(k) for k in source_record.keys())

        self.log_operation("schema_validation.error", "rejected", log_details, logging.WARNING)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: Optional[List[str]] = None) -> Any:
    """Sanitize payloads before they reach a log line."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
