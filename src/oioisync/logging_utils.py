"""Structured JSON logging utilities for event-based logging."""

import json
import logging
from datetime import datetime, timezone
from typing import Any


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "event_type"):
            log_data["event_type"] = record.event_type
        if hasattr(record, "event_data"):
            log_data.update(record.event_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def _event_data(base: dict[str, Any], kwargs: dict[str, Any]) -> dict[str, Any]:
    for key, value in kwargs.items():
        if value is not None:
            base[key] = value
    return base


def log_oioi_message(
    logger: logging.Logger,
    direction: str,
    operation: str,
    event_tracking_id: str | None = None,
    payload: dict[str, Any] | None = None,
    **kwargs: Any,
) -> None:
    """
    Log a request to or a response from the partner backend.

    Args:
        logger: Logger instance
        direction: "sent" or "received"
        operation: OIOI operation name (e.g., "station-post")
        event_tracking_id: Id shared by the request and its response
        payload: JSON body
        **kwargs: Additional fields to include (None values are dropped)
    """
    event_data = {
        "direction": direction,
        "operation": operation,
    }
    if event_tracking_id is not None:
        event_data["event_tracking_id"] = event_tracking_id
    if payload is not None:
        event_data["payload"] = payload

    extra = {
        "event_type": "oioi_message",
        "event_data": _event_data(event_data, kwargs),
    }
    logger.info(f"OIOI {direction}: {operation}", extra=extra)


def log_sync_event(
    logger: logging.Logger,
    event: str,
    stream: str | None = None,
    **kwargs: Any,
) -> None:
    """
    Log a synchronization lifecycle event.

    Args:
        logger: Logger instance
        event: Event name (e.g., "run_started", "run_finished", "backoff")
        stream: Stream name (if applicable)
        **kwargs: Additional fields to include
    """
    event_data = {"event": event}
    if stream is not None:
        event_data["stream"] = stream

    extra = {
        "event_type": "sync_event",
        "event_data": _event_data(event_data, kwargs),
    }
    logger.info(f"Sync {event}", extra=extra)


def log_error(
    logger: logging.Logger,
    error_type: str,
    message: str,
    stream: str | None = None,
    exc_info: BaseException | None = None,
    **kwargs: Any,
) -> None:
    """
    Log an error event.

    Args:
        logger: Logger instance
        error_type: Type of error (e.g., "transport_error", "plugin_error")
        message: Error message
        stream: Stream name (if applicable)
        exc_info: Exception object (will extract traceback)
        **kwargs: Additional fields to include
    """
    event_data = {"error_type": error_type}
    if stream is not None:
        event_data["stream"] = stream

    extra = {
        "event_type": "error",
        "event_data": _event_data(event_data, kwargs),
    }
    logger.error(message, extra=extra, exc_info=exc_info)
