"""Base plugin infrastructure for OIOI clients and sync schedulers."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from ..logging_utils import log_error

if TYPE_CHECKING:
    from ..protocol.results import Result
    from ..sync.scheduler import SyncReport

logger = logging.getLogger(__name__)


class PluginHook(str, Enum):
    """
    Available plugin hooks in the request and synchronization lifecycle.

    - BEFORE_*: Called once per attempt, right before a request is sent
    - AFTER_*: Called once per attempt with the Result, whatever its outcome
    - *_SYNC_RUN: Called around every run of a sync stream
    """

    # Station hooks
    BEFORE_STATION_POST = "before_station_post"
    AFTER_STATION_POST = "after_station_post"

    # Connector status hooks
    BEFORE_CONNECTOR_POST_STATUS = "before_connector_post_status"
    AFTER_CONNECTOR_POST_STATUS = "after_connector_post_status"

    # Session hooks
    BEFORE_SESSION_POST = "before_session_post"
    AFTER_SESSION_POST = "after_session_post"

    # Authorization hooks
    BEFORE_RFID_VERIFY = "before_rfid_verify"
    AFTER_RFID_VERIFY = "after_rfid_verify"

    # Scheduler hooks
    BEFORE_SYNC_RUN = "before_sync_run"
    AFTER_SYNC_RUN = "after_sync_run"


@dataclass
class PluginContext:
    """
    Context provided to plugin hooks.

    Contains:
    - owner: The CPOClient or SyncScheduler firing the event
    - operation: The OIOI operation name (request hooks only)
    - event_tracking_id: Id shared by the BEFORE and AFTER event of one attempt
    - request: The JSON body that is (or was) sent
    - request_timestamp: When the request was started
    - result: The Result of the attempt (only available in AFTER hooks)
    - response_timestamp / duration: When the attempt finished and how long it took
    - stream / report: The stream name and its SyncReport (sync run hooks only)
    """

    owner: Any
    operation: Optional[str] = None
    event_tracking_id: Optional[str] = None
    request: Optional[dict[str, Any]] = None
    request_timestamp: Optional[datetime] = None
    result: Optional["Result"] = None
    response_timestamp: Optional[datetime] = None
    duration: Optional[float] = None
    stream: Optional[str] = None
    report: Optional["SyncReport"] = None


class SyncPlugin(ABC):
    """
    Base class for plugins observing OIOI requests and sync runs.

    Plugins can register hooks to execute custom logic at various points in
    the request and synchronization lifecycle. They observe only: an
    exception raised by a hook is logged and never changes a Result.

    To create a plugin:
    1. Subclass SyncPlugin
    2. Implement the `hooks()` method to register your hook handlers
    3. Implement async methods for each hook you want to handle

    Example:
        class MyPlugin(SyncPlugin):
            def hooks(self) -> dict[PluginHook, str]:
                return {
                    PluginHook.AFTER_STATION_POST: "on_station_posted"
                }

            async def on_station_posted(self, context: PluginContext):
                logger.info(f"Station posted: {context.result}")
    """

    def __init__(self):
        """Initialize the plugin."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def hooks(self) -> dict[PluginHook, str]:
        """
        Return a mapping of hooks to handler method names.

        Returns:
            Dictionary mapping PluginHook enum values to method names on this class.
        """

    async def initialize(self, owner: Any):
        """
        Called once when the plugin is attached to a client or scheduler.

        Args:
            owner: The client or scheduler this plugin is attached to
        """
        _ = owner

    async def cleanup(self, owner: Any):
        """
        Called when the client or scheduler shuts down.

        Args:
            owner: The client or scheduler this plugin is attached to
        """
        _ = owner


class PluginManager:
    """
    Hook registry shared by any number of clients and schedulers.

    Every adapter instance that should report through the same plugins calls
    ``attach()`` with itself; events are then delivered to every plugin
    registered for the hook, in registration order.
    """

    def __init__(self, plugins: list[SyncPlugin] | None = None):
        self.plugins: list[SyncPlugin] = []
        self._plugin_hooks: dict[PluginHook, list[tuple[SyncPlugin, str]]] = {}
        for plugin in plugins or []:
            self.register(plugin)

    def register(self, plugin: SyncPlugin):
        """Register a plugin and add its handlers to the hook mapping."""
        try:
            hooks = plugin.hooks()
            for hook, method_name in hooks.items():
                self._plugin_hooks.setdefault(hook, []).append((plugin, method_name))
        except Exception as e:
            log_error(
                logger,
                "plugin_registration_error",
                f"Failed to register plugin {plugin.__class__.__name__}: {e}",
                plugin=plugin.__class__.__name__,
                exc_info=e,
            )
            return
        self.plugins.append(plugin)

    def has_hook(self, hook: PluginHook) -> bool:
        return bool(self._plugin_hooks.get(hook))

    async def attach(self, owner: Any):
        """Initialize every plugin for a new client or scheduler."""
        for plugin in self.plugins:
            try:
                await plugin.initialize(owner)
            except Exception as e:
                log_error(
                    logger,
                    "plugin_initialization_error",
                    f"Failed to initialize plugin {plugin.__class__.__name__}: {e}",
                    plugin=plugin.__class__.__name__,
                    exc_info=e,
                )

    async def detach(self, owner: Any):
        """Let every plugin release what it holds for a client or scheduler."""
        for plugin in self.plugins:
            try:
                await plugin.cleanup(owner)
            except Exception as e:
                log_error(
                    logger,
                    "plugin_cleanup_error",
                    f"Failed to clean up plugin {plugin.__class__.__name__}: {e}",
                    plugin=plugin.__class__.__name__,
                    exc_info=e,
                )

    async def execute(self, hook: PluginHook, context: PluginContext):
        """
        Execute all registered plugin hooks for a given lifecycle point.

        Args:
            hook: The hook point to execute
            context: Context handed to every handler
        """
        if hook not in self._plugin_hooks:
            return

        for plugin, method_name in self._plugin_hooks[hook]:
            try:
                method = getattr(plugin, method_name)
                await method(context)
            except Exception as e:
                log_error(
                    logger,
                    "plugin_execution_error",
                    f"Error executing {plugin.__class__.__name__}.{method_name} for hook {hook.value}: {e}",
                    stream=context.stream,
                    plugin=plugin.__class__.__name__,
                    hook=hook.value,
                    method=method_name,
                    operation=context.operation,
                    exc_info=e,
                )
