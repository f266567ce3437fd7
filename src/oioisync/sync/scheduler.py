"""Periodic push of topology, connector status and sessions to the partner."""

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Optional

from ..config import StreamSettings, SyncSettings
from ..hooks import CustomizationHooks
from ..logging_utils import log_error, log_sync_event
from ..models.domain import ConnectorStatus
from ..plugins.base import PluginContext, PluginHook, PluginManager
from ..protocol.client import CPOClient
from ..protocol.results import Result
from .mapper import IdentityMapper
from .snapshot import SnapshotProvider
from .tracker import diff, status_updates

logger = logging.getLogger(__name__)


class StreamName(str, Enum):
    """The independent sync streams, one periodic timer each."""

    TOPOLOGY = "topology"
    STATUS = "status"
    SESSIONS = "sessions"


class StreamState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DISABLED = "disabled"


@dataclass
class SyncReport:
    """
    Outcome of one run of one stream.

    Entity ids are partner ids. ``failed`` holds the partner Result of every
    rejected submission, ``skipped`` the reason an entity was never sent.
    ``vanished`` lists acknowledged ids missing from the live snapshot; they
    are forgotten at the end of the run, never deleted at the partner.
    """

    stream: StreamName
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: Optional[datetime] = None
    pushed: list[str] = field(default_factory=list)
    failed: dict[str, Result] = field(default_factory=dict)
    skipped: dict[str, str] = field(default_factory=dict)
    unchanged: list[str] = field(default_factory=list)
    vanished: list[str] = field(default_factory=list)
    backoff: Optional[float] = None

    @property
    def success(self) -> bool:
        return not self.failed

    @property
    def retryable(self) -> bool:
        return any(result.is_retryable for result in self.failed.values())

    @property
    def retry_after(self) -> Optional[float]:
        delays = [r.retry_after for r in self.failed.values() if r.retry_after is not None]
        return max(delays) if delays else None

    @property
    def duration(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def summary(self) -> dict[str, Any]:
        return {
            "pushed": len(self.pushed),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
            "unchanged": len(self.unchanged),
            "vanished": len(self.vanished),
            "backoff": self.backoff,
            "duration": self.duration,
        }


@dataclass
class _Stream:
    name: StreamName
    settings: StreamSettings
    state: StreamState = StreamState.IDLE
    acknowledged: dict[str, Any] = field(default_factory=dict)
    failures: int = 0
    delay: Optional[float] = None
    task: Optional[asyncio.Task] = None


class SyncScheduler:
    """
    Drives the three sync streams against one CPOClient.

    Each stream runs on its own timer. A run reads the live snapshot, diffs
    it against what the partner last acknowledged, submits every changed
    entity sequentially and records per-entity failures in a SyncReport.
    Only successfully pushed entities become acknowledged, at the end of the
    run. A stream never runs twice at the same time; a run with retryable
    failures delays the next cycle (exponential backoff, honouring
    ``Retry-After``) instead of retrying inside the run.
    """

    def __init__(
        self,
        client: CPOClient,
        snapshots: SnapshotProvider,
        settings: Optional[SyncSettings] = None,
        hooks: Optional[CustomizationHooks] = None,
        mapper: Optional[IdentityMapper] = None,
        plugins: Optional[PluginManager] = None,
    ):
        self.client = client
        self.snapshots = snapshots
        self.settings = settings or SyncSettings()
        self.hooks = hooks or client.hooks
        self.mapper = mapper or IdentityMapper(self.hooks)
        self.plugins = plugins if plugins is not None else client.plugins

        self._streams = {
            StreamName.TOPOLOGY: _Stream(StreamName.TOPOLOGY, self.settings.topology),
            StreamName.STATUS: _Stream(StreamName.STATUS, self.settings.status),
            StreamName.SESSIONS: _Stream(StreamName.SESSIONS, self.settings.sessions),
        }
        for stream in self._streams.values():
            if not stream.settings.enabled:
                stream.state = StreamState.DISABLED

        self._runners: dict[StreamName, Callable[[SyncReport, dict[str, Any]], Any]] = {
            StreamName.TOPOLOGY: self._run_topology,
            StreamName.STATUS: self._run_status,
            StreamName.SESSIONS: self._run_sessions,
        }
        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        """Attach the plugins and start one periodic task per stream."""
        if self._started:
            return
        self._started = True
        await self.plugins.attach(self)
        for stream in self._streams.values():
            stream.task = asyncio.create_task(self._loop(stream), name=f"oioisync-{stream.name.value}")
        log_sync_event(logger, "scheduler_started", streams=[s.value for s in self._streams])

    async def stop(self):
        """Cancel the periodic tasks and wait for running submissions to unwind."""
        if not self._started:
            return
        self._started = False
        tasks = [s.task for s in self._streams.values() if s.task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for stream in self._streams.values():
            stream.task = None
        await self.plugins.detach(self)
        log_sync_event(logger, "scheduler_stopped")

    async def __aenter__(self) -> "SyncScheduler":
        await self.start()
        return self

    async def __aexit__(self, *exc_info):
        await self.stop()

    async def _loop(self, stream: _Stream):
        while True:
            try:
                await self.trigger(stream.name)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log_error(
                    logger,
                    "sync_run_error",
                    f"Sync run of {stream.name.value} failed: {e}",
                    stream=stream.name.value,
                    exc_info=e,
                )
            await asyncio.sleep(self._next_delay(stream))

    def _next_delay(self, stream: _Stream) -> float:
        if stream.delay is None:
            return stream.settings.interval
        return max(stream.settings.interval, stream.delay)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def state(self, stream: StreamName) -> StreamState:
        return self._streams[StreamName(stream)].state

    def acknowledged(self, stream: StreamName) -> Mapping[str, Any]:
        """Read-only view of what the partner last acknowledged for a stream."""
        return MappingProxyType(self._streams[StreamName(stream)].acknowledged)

    def enable(self, stream: StreamName):
        s = self._streams[StreamName(stream)]
        s.settings.enabled = True
        if s.state is StreamState.DISABLED:
            s.state = StreamState.IDLE
        log_sync_event(logger, "stream_enabled", stream=s.name.value)

    def disable(self, stream: StreamName):
        """Disable a stream; a run in progress finishes, later runs are skipped."""
        s = self._streams[StreamName(stream)]
        s.settings.enabled = False
        if s.state is StreamState.IDLE:
            s.state = StreamState.DISABLED
        log_sync_event(logger, "stream_disabled", stream=s.name.value)

    async def trigger(self, stream: StreamName) -> Optional[SyncReport]:
        """
        Run one stream now.

        Returns None without doing anything when the stream is disabled or
        already running.
        """
        s = self._streams[StreamName(stream)]

        if not s.settings.enabled:
            s.state = StreamState.DISABLED
            logger.debug(f"Stream {s.name.value} is disabled, skipping run")
            return None
        if s.state is StreamState.RUNNING:
            logger.debug(f"Stream {s.name.value} is already running, skipping run")
            return None

        s.state = StreamState.RUNNING
        try:
            return await self._run(s)
        finally:
            s.state = StreamState.IDLE if s.settings.enabled else StreamState.DISABLED

    async def _run(self, stream: _Stream) -> SyncReport:
        report = SyncReport(stream.name)
        await self.plugins.execute(
            PluginHook.BEFORE_SYNC_RUN, PluginContext(owner=self, stream=stream.name.value, report=report)
        )
        log_sync_event(logger, "run_started", stream=stream.name.value)

        acknowledged: dict[str, Any] = {}
        try:
            await self._runners[stream.name](report, acknowledged)
        finally:
            for key in report.vanished:
                stream.acknowledged.pop(key, None)
            stream.acknowledged.update(acknowledged)
            report.finished_at = datetime.now(UTC)
            self._update_backoff(stream, report)

            log_sync_event(logger, "run_finished", stream=stream.name.value, **report.summary())
            await self.plugins.execute(
                PluginHook.AFTER_SYNC_RUN,
                PluginContext(owner=self, stream=stream.name.value, report=report),
            )
        return report

    def _update_backoff(self, stream: _Stream, report: SyncReport):
        if not report.retryable:
            stream.failures = 0
            stream.delay = None
            return
        stream.failures += 1
        report.backoff = max(self.settings.backoff(stream.failures), report.retry_after or 0.0)
        stream.delay = report.backoff
        log_sync_event(
            logger,
            "backoff",
            stream=stream.name.value,
            failures=stream.failures,
            delay=report.backoff,
        )

    def _record(self, report: SyncReport, entity_id: str, result: Result) -> bool:
        if result.is_success:
            report.pushed.append(entity_id)
            return True
        report.failed[entity_id] = result
        log_error(
            logger,
            "push_failed",
            f"{result.operation} of {entity_id} failed: {result.code} {result.message}",
            stream=report.stream.value,
            entity_id=entity_id,
            code=result.code,
            outcome=result.outcome.value,
        )
        return False

    def _skip(self, report: SyncReport, entity_id: str, reason: str | Exception):
        """
        Record an entity that was never sent.

        A ValueError is an invalid entity; any other exception comes from a
        customization hook and is logged with its traceback.
        """
        if isinstance(reason, Exception) and not isinstance(reason, ValueError):
            log_error(
                logger,
                "entity_error",
                f"Processing {report.stream.value} entity {entity_id} failed: {reason!r}",
                stream=report.stream.value,
                entity_id=entity_id,
                exc_info=reason,
            )
            reason = f"{type(reason).__name__}: {reason}"
        report.skipped[entity_id] = str(reason)
        logger.warning(f"Skipping {report.stream.value} entity {entity_id}: {reason}")

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    async def _included_stations(self, report: SyncReport):
        included = []
        for station in await self.snapshots.charging_stations():
            try:
                if self.hooks.station_included(station):
                    included.append(station)
            except Exception as e:
                self._skip(report, station.id, e)
        return included

    async def _run_topology(self, report: SyncReport, acknowledged: dict[str, Any]):
        current = {}
        for charging_station in await self._included_stations(report):
            try:
                station = self.mapper.to_station(charging_station)
            except Exception as e:
                self._skip(report, charging_station.id, e)
                continue
            current[station.id] = station

        changes = diff(current, self._streams[StreamName.TOPOLOGY].acknowledged)
        report.unchanged.extend(changes.unchanged)
        report.vanished.extend(changes.vanished)

        for station_id, station in changes.to_push.items():
            try:
                result = await self.client.station_post(station, timeout=self.settings.request_timeout)
            except Exception as e:
                self._skip(report, station_id, e)
                continue
            if self._record(report, station_id, result):
                acknowledged[station_id] = station

    async def _run_status(self, report: SyncReport, acknowledged: dict[str, Any]):
        current = {}
        for charging_station in await self._included_stations(report):
            for evse in charging_station.evses:
                try:
                    if not self.hooks.evse_included(evse):
                        continue
                    connector_id = self.mapper.evse_id_to_connector_id(evse.id)
                except Exception as e:
                    self._skip(report, evse.id, e)
                    continue
                if not connector_id:
                    continue
                current[connector_id] = ConnectorStatus(
                    connector_id,
                    self.mapper.evse_status_to_connector_status(evse.status),
                    evse.status_since,
                )

        previous = self._streams[StreamName.STATUS].acknowledged
        updates = status_updates(current, previous)
        pending = {u.id for u in updates}
        report.unchanged.extend(cid for cid in current if cid not in pending)
        report.vanished.extend(cid for cid in previous if cid not in current)

        for update in updates:
            if not update.new.status.is_known:
                self._skip(report, update.id, "Unknown connector status")
                continue
            status = update.as_status()
            try:
                result = await self.client.connector_post_status(
                    status, timeout=self.settings.request_timeout
                )
            except Exception as e:
                self._skip(report, update.id, e)
                continue
            if self._record(report, update.id, result):
                acknowledged[update.id] = status

    async def _run_sessions(self, report: SyncReport, acknowledged: dict[str, Any]):
        current = {}
        for cdr in await self.snapshots.charge_detail_records():
            try:
                if not cdr.is_finalized or not self.hooks.cdr_included(cdr):
                    continue
                session = self.mapper.to_session(cdr, self.client.default_partner_id)
            except Exception as e:
                self._skip(report, cdr.session_id, e)
                continue
            if session is None:
                self._skip(report, cdr.session_id, f"EVSE {cdr.evse_id} has no connector id")
                continue
            current[session.id] = session

        changes = diff(current, self._streams[StreamName.SESSIONS].acknowledged)
        report.unchanged.extend(changes.unchanged)
        report.vanished.extend(changes.vanished)

        for session_id, session in changes.to_push.items():
            try:
                result = await self.client.session_post(session, timeout=self.settings.request_timeout)
            except Exception as e:
                self._skip(report, session_id, e)
                continue
            if self._record(report, session_id, result):
                acknowledged[session_id] = session
