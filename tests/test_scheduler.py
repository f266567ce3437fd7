"""Tests for the sync scheduler against an in-process fake partner."""

import asyncio
from datetime import UTC, datetime

import pytest
from conftest import make_cdr, make_charging_station

from oioisync.config import StreamSettings, SyncSettings
from oioisync.hooks import CustomizationHooks
from oioisync.models import EVSE, EVSEStatusTypes, PlugTypes
from oioisync.plugins import PluginContext, PluginHook, SyncPlugin
from oioisync.protocol import ResponseCodes
from oioisync.sync import StaticSnapshotProvider, StreamName, StreamState, SyncScheduler

T0 = datetime(2024, 1, 1, 10, 0, tzinfo=UTC)
T1 = datetime(2024, 1, 1, 10, 5, tzinfo=UTC)

EVSE_NOT_FOUND = {"result": {"code": 181, "message": "EVSE not found"}}
SYSTEM_ERROR = {"result": {"code": 100, "message": "System error"}}


def evse(status=EVSEStatusTypes.AVAILABLE, since=T0, plug=PlugTypes.TYPE2_OUTLET, evse_id="ST-1*E1"):
    return EVSE(evse_id, plug, 22.0, status, since)


class RunRecorder(SyncPlugin):
    """Records the sync run events it sees."""

    def __init__(self):
        super().__init__()
        self.runs: list[tuple[str, str, PluginContext]] = []

    def hooks(self):
        return {PluginHook.BEFORE_SYNC_RUN: "before", PluginHook.AFTER_SYNC_RUN: "after"}

    async def before(self, context: PluginContext):
        self.runs.append(("before", context.stream, context))

    async def after(self, context: PluginContext):
        self.runs.append(("after", context.stream, context))


@pytest.fixture
def snapshots():
    return StaticSnapshotProvider([make_charging_station()], [make_cdr()])


@pytest.fixture
def settings():
    return SyncSettings(request_timeout=5)


@pytest.fixture
def scheduler(client, snapshots, settings):
    return SyncScheduler(client, snapshots, settings)


class TestTopology:
    """Test the station push stream."""

    @pytest.mark.asyncio
    async def test_first_run_pushes_every_station(self, partner, scheduler):
        report = await scheduler.trigger(StreamName.TOPOLOGY)

        assert report.success
        assert report.pushed == ["ST-1"]
        assert partner.operations() == ["station-post"]
        assert partner.bodies[0]["station-post"]["station"]["connectors"] == [
            {"id": "ST-1*E1", "name": "Type2", "speed": 22.0}
        ]
        assert "ST-1" in scheduler.acknowledged(StreamName.TOPOLOGY)

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(self, partner, scheduler):
        """Test that an unchanged snapshot is not pushed again."""
        await scheduler.trigger(StreamName.TOPOLOGY)
        report = await scheduler.trigger(StreamName.TOPOLOGY)

        assert report.pushed == []
        assert report.unchanged == ["ST-1"]
        assert len(partner.requests) == 1

    @pytest.mark.asyncio
    async def test_changed_station_pushed(self, partner, scheduler, snapshots):
        await scheduler.trigger(StreamName.TOPOLOGY)
        snapshots.update(stations=[make_charging_station(name="Market Square North")])

        report = await scheduler.trigger(StreamName.TOPOLOGY)

        assert report.pushed == ["ST-1"]
        assert partner.bodies[-1]["station-post"]["station"]["name"] == "Market Square North"

    @pytest.mark.asyncio
    async def test_soft_delete_pushed_as_update(self, partner, scheduler, snapshots):
        """Test that a deleted station is sent again with the deleted flag set."""
        await scheduler.trigger(StreamName.TOPOLOGY)
        snapshots.update(stations=[make_charging_station(deleted=True)])

        report = await scheduler.trigger(StreamName.TOPOLOGY)

        assert report.pushed == ["ST-1"]
        assert partner.bodies[-1]["station-post"]["station"]["deleted"] is True

    @pytest.mark.asyncio
    async def test_vanished_station_not_sent(self, partner, scheduler, snapshots):
        await scheduler.trigger(StreamName.TOPOLOGY)
        snapshots.update(stations=[])

        report = await scheduler.trigger(StreamName.TOPOLOGY)

        assert report.pushed == []
        assert len(partner.requests) == 1

    @pytest.mark.asyncio
    async def test_failed_station_not_acknowledged(self, partner, scheduler):
        """Test that a rejected station is pushed again on the next run."""
        partner.respond(EVSE_NOT_FOUND)

        report = await scheduler.trigger(StreamName.TOPOLOGY)

        assert not report.success
        assert report.failed["ST-1"].code == ResponseCodes.EVSE_NOT_FOUND
        assert report.backoff is None
        assert "ST-1" not in scheduler.acknowledged(StreamName.TOPOLOGY)

        report = await scheduler.trigger(StreamName.TOPOLOGY)
        assert report.pushed == ["ST-1"]
        assert len(partner.requests) == 2

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_run(self, partner, scheduler, snapshots):
        snapshots.update(stations=[make_charging_station("ST-1"), make_charging_station("ST-2")])
        partner.respond(EVSE_NOT_FOUND)

        report = await scheduler.trigger(StreamName.TOPOLOGY)

        assert list(report.failed) == ["ST-1"]
        assert report.pushed == ["ST-2"]

    @pytest.mark.asyncio
    async def test_unsupported_plug_skipped(self, partner, scheduler, snapshots):
        """Test that a station that cannot be encoded is skipped, not sent."""
        snapshots.update(
            stations=[make_charging_station(evses=(evse(plug=PlugTypes.CCS_COMBO2_PLUG_CABLE_ATTACHED),))]
        )

        report = await scheduler.trigger(StreamName.TOPOLOGY)

        assert "ST-1" in report.skipped
        assert partner.requests == []

    @pytest.mark.asyncio
    async def test_excluded_station_not_sent(self, partner, client, snapshots, settings):
        hooks = CustomizationHooks(include_station=lambda station: station.id != "ST-1")
        scheduler = SyncScheduler(client, snapshots, settings, hooks=hooks)

        report = await scheduler.trigger(StreamName.TOPOLOGY)

        assert report.pushed == []
        assert partner.requests == []


class TestStatus:
    """Test the connector status stream."""

    @pytest.mark.asyncio
    async def test_status_change_pushed(self, partner, scheduler, snapshots):
        """Test that Available -> Charging is reported as Occupied."""
        await scheduler.trigger(StreamName.STATUS)
        assert partner.bodies[0]["connector-post-status"] == {
            "connector-id": "ST-1*E1",
            "partner-identifier": "partner-1",
            "status": "Available",
        }

        snapshots.update(stations=[make_charging_station(evses=(evse(EVSEStatusTypes.CHARGING, T1),))])
        report = await scheduler.trigger(StreamName.STATUS)

        assert report.pushed == ["ST-1*E1"]
        assert partner.bodies[1]["connector-post-status"]["status"] == "Occupied"

    @pytest.mark.asyncio
    async def test_unchanged_status_not_pushed(self, partner, scheduler):
        await scheduler.trigger(StreamName.STATUS)
        report = await scheduler.trigger(StreamName.STATUS)

        assert report.pushed == []
        assert report.unchanged == ["ST-1*E1"]
        assert len(partner.requests) == 1

    @pytest.mark.asyncio
    async def test_unknown_status_skipped(self, partner, scheduler, snapshots):
        snapshots.update(stations=[make_charging_station(evses=(evse(EVSEStatusTypes.FAULTED),))])

        report = await scheduler.trigger(StreamName.STATUS)

        assert report.skipped == {"ST-1*E1": "Unknown connector status"}
        assert partner.requests == []

    @pytest.mark.asyncio
    async def test_partner_id_selector(self, partner, client, snapshots, settings):
        client.hooks = CustomizationHooks(connector_partner_id_selector=lambda connector_id: "partner-2")
        scheduler = SyncScheduler(client, snapshots, settings)

        await scheduler.trigger(StreamName.STATUS)

        assert partner.bodies[0]["connector-post-status"]["partner-identifier"] == "partner-2"


class TestSessions:
    """Test the session upload stream."""

    @pytest.mark.asyncio
    async def test_only_finalized_sessions_sent(self, partner, scheduler, snapshots):
        snapshots.update(charge_detail_records=[make_cdr("S-1"), make_cdr("S-2", finalized=False)])

        report = await scheduler.trigger(StreamName.SESSIONS)

        assert report.pushed == ["S-1"]
        session = partner.bodies[0]["session-post"]["session"]
        assert session["session-id"] == "S-1"
        assert session["user"] == {"identifier": "CAFEBABE", "identifier-type": "rfid"}
        assert session["energy-consumed"] == 12.5

    @pytest.mark.asyncio
    async def test_session_sent_once(self, partner, scheduler):
        await scheduler.trigger(StreamName.SESSIONS)
        await scheduler.trigger(StreamName.SESSIONS)

        assert partner.operations() == ["session-post"]

    @pytest.mark.asyncio
    async def test_excluded_cdr_not_sent(self, partner, client, snapshots, settings):
        hooks = CustomizationHooks(include_cdr=lambda cdr: False)
        scheduler = SyncScheduler(client, snapshots, settings, hooks=hooks)

        report = await scheduler.trigger(StreamName.SESSIONS)

        assert report.pushed == []
        assert partner.requests == []


class TestBackoff:
    """Test delaying of the next cycle after retryable failures."""

    @pytest.mark.asyncio
    async def test_exponential_backoff(self, partner, scheduler):
        partner.respond(SYSTEM_ERROR)
        partner.respond(SYSTEM_ERROR)

        first = await scheduler.trigger(StreamName.TOPOLOGY)
        second = await scheduler.trigger(StreamName.TOPOLOGY)
        third = await scheduler.trigger(StreamName.TOPOLOGY)

        assert first.retryable and first.backoff == 10
        assert second.backoff == 20
        assert third.success and third.backoff is None

    @pytest.mark.asyncio
    async def test_retry_after_honoured(self, partner, scheduler):
        """Test that a Retry-After header longer than the backoff wins."""
        partner.respond(SYSTEM_ERROR, headers={"Retry-After": "120"})

        report = await scheduler.trigger(StreamName.TOPOLOGY)

        assert report.retry_after == 120
        assert report.backoff == 120

    def test_backoff_capped(self):
        settings = SyncSettings(backoff_base=10, backoff_max=60)

        assert settings.backoff(0) == 0
        assert settings.backoff(1) == 10
        assert settings.backoff(3) == 40
        assert settings.backoff(10) == 60

    def test_backoff_after_long_outage(self):
        """Test that thousands of failed runs keep the capped delay."""
        settings = SyncSettings(backoff_base=10, backoff_max=900)

        assert settings.backoff(1025) == 900
        assert settings.backoff(10**6) == 900


class TestControl:
    """Test single-flight runs, runtime enable/disable and the periodic loop."""

    @pytest.mark.asyncio
    async def test_single_flight(self, partner, scheduler):
        """Test that a trigger during a run of the same stream does nothing."""
        partner.respond(delay=0.3)

        first, second = await asyncio.gather(
            scheduler.trigger(StreamName.TOPOLOGY), scheduler.trigger(StreamName.TOPOLOGY)
        )

        assert first is not None and first.pushed == ["ST-1"]
        assert second is None
        assert len(partner.requests) == 1
        assert scheduler.state(StreamName.TOPOLOGY) is StreamState.IDLE

    @pytest.mark.asyncio
    async def test_streams_run_independently(self, partner, scheduler):
        partner.respond(delay=0.2)

        topology, status = await asyncio.gather(
            scheduler.trigger(StreamName.TOPOLOGY), scheduler.trigger(StreamName.STATUS)
        )

        assert topology.pushed == ["ST-1"]
        assert status.pushed == ["ST-1*E1"]

    @pytest.mark.asyncio
    async def test_disable_and_enable(self, partner, scheduler):
        scheduler.disable(StreamName.STATUS)

        assert scheduler.state(StreamName.STATUS) is StreamState.DISABLED
        assert await scheduler.trigger(StreamName.STATUS) is None
        assert partner.requests == []

        scheduler.enable(StreamName.STATUS)

        assert scheduler.state(StreamName.STATUS) is StreamState.IDLE
        report = await scheduler.trigger(StreamName.STATUS)
        assert report.pushed == ["ST-1*E1"]

    @pytest.mark.asyncio
    async def test_disabled_by_settings(self, partner, client, snapshots):
        settings = SyncSettings(sessions=StreamSettings(60, enabled=False))
        scheduler = SyncScheduler(client, snapshots, settings)

        assert scheduler.state(StreamName.SESSIONS) is StreamState.DISABLED
        assert await scheduler.trigger(StreamName.SESSIONS) is None

    @pytest.mark.asyncio
    async def test_periodic_loop(self, partner, client, snapshots):
        """Test that started streams push on their own and stop cleanly."""
        settings = SyncSettings(
            topology=StreamSettings(0.05),
            status=StreamSettings(0.05),
            sessions=StreamSettings(0.05),
            request_timeout=5,
        )

        async with SyncScheduler(client, snapshots, settings) as scheduler:
            await asyncio.sleep(0.3)

        assert sorted(partner.operations()) == ["connector-post-status", "session-post", "station-post"]
        assert "S-1" in scheduler.acknowledged(StreamName.SESSIONS)

    def test_invalid_interval_rejected(self):
        with pytest.raises(ValueError):
            StreamSettings(0)


class TestRunEvents:
    """Test the plugin events fired around sync runs."""

    @pytest.mark.asyncio
    async def test_run_events(self, partner, client, scheduler):
        recorder = RunRecorder()
        client.plugins.register(recorder)

        await scheduler.trigger(StreamName.TOPOLOGY)

        assert [(when, stream) for when, stream, _ in recorder.runs] == [
            ("before", "topology"),
            ("after", "topology"),
        ]
        report = recorder.runs[-1][2].report
        assert report.pushed == ["ST-1"]
        assert report.finished_at is not None


class TestHookErrors:
    """Test that a failing customization hook only affects its own entity."""

    @pytest.mark.asyncio
    async def test_hook_error_skips_one_station(self, partner, client, snapshots, settings):
        recorder = RunRecorder()
        client.plugins.register(recorder)
        partner_ids = {"ST-2": "partner-2"}
        client.hooks = CustomizationHooks(
            station_partner_id_selector=lambda station: partner_ids[station.id]
        )
        snapshots.update(stations=[make_charging_station("ST-1"), make_charging_station("ST-2")])
        scheduler = SyncScheduler(client, snapshots, settings)

        report = await scheduler.trigger(StreamName.TOPOLOGY)

        assert report.pushed == ["ST-2"]
        assert report.skipped["ST-1"].startswith("KeyError")
        assert list(scheduler.acknowledged(StreamName.TOPOLOGY)) == ["ST-2"]
        assert partner.bodies[0]["station-post"]["partner-identifier"] == "partner-2"
        assert [when for when, _, _ in recorder.runs] == ["before", "after"]

    @pytest.mark.asyncio
    async def test_mapping_hook_error_skips_one_session(self, partner, client, snapshots, settings):
        def rewrite(cdr, session):
            if cdr.session_id == "S-1":
                raise RuntimeError("no tariff")
            return session

        hooks = CustomizationHooks(cdr_to_session=rewrite)
        snapshots.update(charge_detail_records=[make_cdr("S-1"), make_cdr("S-2")])
        scheduler = SyncScheduler(client, snapshots, settings, hooks=hooks)

        report = await scheduler.trigger(StreamName.SESSIONS)

        assert report.pushed == ["S-2"]
        assert "S-1" in report.skipped

    @pytest.mark.asyncio
    async def test_snapshot_error_still_ends_run(self, partner, client, settings):
        """Test that the run-finished event fires when the snapshot cannot be read."""

        class BrokenSnapshots(StaticSnapshotProvider):
            async def charging_stations(self):
                raise OSError("snapshot unavailable")

        recorder = RunRecorder()
        client.plugins.register(recorder)
        scheduler = SyncScheduler(client, BrokenSnapshots(), settings)

        with pytest.raises(OSError):
            await scheduler.trigger(StreamName.TOPOLOGY)

        assert [when for when, _, _ in recorder.runs] == ["before", "after"]
        assert scheduler.state(StreamName.TOPOLOGY) is StreamState.IDLE


class TestVanished:
    """Test that entities gone from the live snapshot are forgotten."""

    @pytest.mark.asyncio
    async def test_finished_session_forgotten(self, partner, scheduler, snapshots):
        await scheduler.trigger(StreamName.SESSIONS)
        assert "S-1" in scheduler.acknowledged(StreamName.SESSIONS)

        snapshots.update(charge_detail_records=[make_cdr("S-2")])
        report = await scheduler.trigger(StreamName.SESSIONS)

        assert report.vanished == ["S-1"]
        assert report.pushed == ["S-2"]
        assert list(scheduler.acknowledged(StreamName.SESSIONS)) == ["S-2"]
        assert partner.operations() == ["session-post", "session-post"]

    @pytest.mark.asyncio
    async def test_removed_connector_forgotten(self, partner, scheduler, snapshots):
        await scheduler.trigger(StreamName.STATUS)
        snapshots.update(stations=[])

        report = await scheduler.trigger(StreamName.STATUS)

        assert report.vanished == ["ST-1*E1"]
        assert dict(scheduler.acknowledged(StreamName.STATUS)) == {}
        assert len(partner.requests) == 1
