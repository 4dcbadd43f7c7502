"""
Structured JSON logger for operator-facing catalog events.

Each log entry is a single JSON line with:
- timestamp (ISO 8601)
- level (DEBUG/INFO/WARNING/ERROR/CRITICAL)
- event_type (aggregate_sync_failure, backfill, ...)
- message (human-readable)
- context (structured data: product_id, namespaces, errors, ...)
"""

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class LogLevel(str, Enum):
    """Log levels matching Python logging."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StructuredLogger:
    """JSON structured logger for catalog maintenance events."""

    def __init__(self, name: str = "catalog.events", log_level: str = "INFO"):
        self.name = name
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, log_level))
        self.logger.propagate = False

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(getattr(logging, log_level))
        handler.setFormatter(logging.Formatter('%(message)s'))

        self.logger.handlers = []
        self.logger.addHandler(handler)

    def _log(
        self,
        level: LogLevel,
        event_type: str,
        message: str,
        context: Optional[Dict[str, Any]] = None
    ):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level.value,
            "logger": self.name,
            "event_type": event_type,
            "message": message,
        }

        if context:
            log_entry["context"] = context

        # Emit as single-line JSON
        log_line = json.dumps(log_entry, default=str)

        self.logger.log(getattr(logging, level.value), log_line)

    def info(self, event_type: str, message: str, context: Optional[Dict[str, Any]] = None):
        """Log an INFO event."""
        self._log(LogLevel.INFO, event_type, message, context)

    def warning(self, event_type: str, message: str, context: Optional[Dict[str, Any]] = None):
        """Log a WARNING event."""
        self._log(LogLevel.WARNING, event_type, message, context)

    def error(self, event_type: str, message: str, context: Optional[Dict[str, Any]] = None):
        """Log an ERROR event."""
        self._log(LogLevel.ERROR, event_type, message, context)

    def log_aggregate_step_failure(self, step: str, mutation: str, product_id: str, error: str):
        """Log one counter step that failed; a later fallback step may still succeed."""
        self.warning(
            "aggregate_step_failure",
            f"Count aggregate {step} failed during {mutation} of {product_id}",
            {"step": step, "mutation": mutation, "product_id": product_id, "error": error}
        )

    def log_aggregate_sync_failure(
        self,
        mutation: str,
        product_id: str,
        namespaces: List[str],
        errors: List[str],
    ):
        """Log a counter update that could not be applied alongside its product write."""
        self.error(
            "aggregate_sync_failure",
            f"Count aggregate out of sync after {mutation} of {product_id}; run backfill",
            {
                "mutation": mutation,
                "product_id": product_id,
                "namespaces": namespaces,
                "errors": errors,
            }
        )

    def log_backfill(self, report: Dict[str, Any], latency_ms: float):
        """Log the outcome of a counter backfill."""
        self.info(
            "backfill",
            "Count aggregate backfill finished",
            {**report, "latency_ms": round(latency_ms, 2)}
        )


# Global structured logger instance
structured_logger = StructuredLogger()
