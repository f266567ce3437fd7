"""Plugin for structured audit logging to Fluentd."""

import asyncio
from typing import Any

from fluent import sender

from .base import PluginContext, PluginHook, SyncPlugin


class FluentdAuditPlugin(SyncPlugin):
    """
    Sends structured audit logs of partner requests and sync runs to Fluentd.

    Every request produces one event when it is sent and one when its result
    is known, sharing the same event tracking id. Every completed sync run
    produces a summary event.

    Example log entry:
    {
        "type": "oioi",
        "op": "station-post",
        "dir": "send",
        "id": "1b4e28ba-2fa1-11d2-883f-0016d3cca427",
        "msg": {"station-post": {"station": {...}, "partner-identifier": "P1"}}
    }
    """

    def __init__(
        self,
        tag_prefix: str = "oioi",
        host: str = "localhost",
        port: int = 24224,
        timeout: float = 3.0,
        buffer_overflow_handler: Any = None,
        nanosecond_precision: bool = False,
    ):
        """
        Initialize the Fluentd audit plugin.

        Args:
            tag_prefix: Prefix for Fluentd tags (default: "oioi")
                       Tags will be: oioi.station-post, oioi.sync.topology, etc.
            host: Fluentd server hostname (default: "localhost")
            port: Fluentd server port (default: 24224)
            timeout: Connection timeout in seconds (default: 3.0)
            buffer_overflow_handler: Handler for buffer overflow (default: None)
            nanosecond_precision: Use nanosecond precision timestamps (default: False)
        """
        super().__init__()
        self.tag_prefix = tag_prefix
        self.host = host
        self.port = port
        self.timeout = timeout
        self.buffer_overflow_handler = buffer_overflow_handler
        self.nanosecond_precision = nanosecond_precision
        self.sender = None
        self._owners = 0

    def hooks(self) -> dict[PluginHook, str]:
        """Register hooks for every partner operation and sync run."""
        return {
            PluginHook.BEFORE_STATION_POST: "log_request",
            PluginHook.AFTER_STATION_POST: "log_response",
            PluginHook.BEFORE_CONNECTOR_POST_STATUS: "log_request",
            PluginHook.AFTER_CONNECTOR_POST_STATUS: "log_response",
            PluginHook.BEFORE_SESSION_POST: "log_request",
            PluginHook.AFTER_SESSION_POST: "log_response",
            PluginHook.BEFORE_RFID_VERIFY: "log_request",
            PluginHook.AFTER_RFID_VERIFY: "log_response",
            PluginHook.AFTER_SYNC_RUN: "log_sync_run",
        }

    async def initialize(self, owner):
        """Create the Fluentd sender when the first client or scheduler attaches."""
        self._owners += 1
        if self.sender is not None:
            return
        try:
            self.sender = sender.FluentSender(
                self.tag_prefix,
                host=self.host,
                port=self.port,
                timeout=self.timeout,
                buffer_overflow_handler=self.buffer_overflow_handler,
                nanosecond_precision=self.nanosecond_precision,
            )
        except Exception as e:
            self.logger.error(f"Failed to initialize Fluentd sender: {e}", exc_info=True)
            self.sender = None

    async def cleanup(self, owner):
        """Close the Fluentd sender when the last client or scheduler detaches."""
        self._owners = max(0, self._owners - 1)
        if self._owners or not self.sender:
            return
        try:
            await asyncio.to_thread(self.sender.close)
        except Exception as e:
            self.logger.error(f"Error closing Fluentd sender: {e}", exc_info=True)
        finally:
            self.sender = None

    async def _send_event(self, tag: str, data: dict):
        """
        Send an event to Fluentd without blocking the event loop.

        Args:
            tag: Event tag (e.g., "station-post", "sync.status")
            data: Event data dictionary
        """
        if not self.sender:
            return

        try:
            await asyncio.to_thread(self.sender.emit, tag, data)
        except Exception as e:
            self.logger.error(f"Failed to send event to Fluentd (tag={tag}): {e}")

    def _base_event_data(self, context: PluginContext, direction: str, message: Any) -> dict:
        return {
            "type": "oioi",
            "op": context.operation,
            "dir": direction,
            "id": context.event_tracking_id,
            "msg": message,
        }

    async def log_request(self, context: PluginContext):
        """Log the request body before it is sent."""
        data = self._base_event_data(context, "send", context.request)
        if context.request_timestamp is not None:
            data["ts"] = context.request_timestamp.isoformat()
        await self._send_event(context.operation, data)

    async def log_response(self, context: PluginContext):
        """Log the result of a request."""
        result = context.result
        message = None
        if result is not None:
            message = {
                "code": result.code,
                "message": result.message,
                "outcome": result.outcome.value,
            }
            if result.http_status is not None:
                message["http_status"] = result.http_status
        data = self._base_event_data(context, "recv", message)
        if context.duration is not None:
            data["duration"] = context.duration
        await self._send_event(f"{context.operation}.response", data)

    async def log_sync_run(self, context: PluginContext):
        """Log a summary of a completed sync run."""
        report = context.report
        data = {
            "type": "sync",
            "stream": context.stream,
            "summary": report.summary() if report is not None else None,
        }
        if report is not None and report.failed:
            data["failed"] = {entity_id: r.code for entity_id, r in report.failed.items()}
        await self._send_event(f"sync.{context.stream}", data)
