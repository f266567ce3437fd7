"""Tests for the partner-side domain models."""

from datetime import UTC, datetime, timedelta

import pytest

from oioisync.exceptions import UnknownValueError
from oioisync.models import (
    Connector,
    ConnectorStatusTypes,
    ConnectorStatusUpdate,
    ConnectorTypes,
    CustomData,
    IdentifierTypes,
    Session,
    TimestampedStatus,
    User,
)

T0 = datetime(2024, 1, 1, 10, 0, tzinfo=UTC)


class TestStation:
    """Test Station construction and equality."""

    def test_empty_name_rejected(self, sample_station):
        """Test that a station without a name cannot be built."""
        with pytest.raises(ValueError):
            sample_station.replace(name="")

    def test_empty_connectors_rejected(self, sample_station):
        """Test that a station without connectors cannot be built."""
        with pytest.raises(ValueError):
            sample_station.replace(connectors=())

    def test_coordinates_rounded(self, sample_station):
        """Test that coordinates keep six decimal places."""
        assert sample_station.latitude == 50.927123
        assert sample_station.longitude == 11.589235

    def test_custom_data_not_compared(self, sample_station):
        """Test that custom data does not take part in equality."""
        tagged = sample_station.add_custom_data("source", "import")

        assert tagged == sample_station
        assert tagged.custom_data["source"] == "import"
        assert "source" not in sample_station.custom_data

    def test_soft_delete_changes_equality(self, sample_station):
        """Test that a soft-deleted station differs from the live one."""
        assert sample_station.replace(deleted=True) != sample_station

    def test_none_contact_fields_become_empty(self, sample_station):
        """Test that contact fields are never None."""
        assert sample_station.contact.fax == ""
        assert sample_station.contact.email == ""


class TestEnums:
    """Test wire enum parsing and serialization."""

    def test_parse_is_case_insensitive(self):
        assert ConnectorTypes.parse("type2") is ConnectorTypes.TYPE2
        assert ConnectorStatusTypes.parse("OCCUPIED") is ConnectorStatusTypes.OCCUPIED
        assert IdentifierTypes.parse("EVCO-ID") is IdentifierTypes.EVCO_ID

    def test_parse_unknown_falls_back(self):
        assert ConnectorTypes.parse("Wireless") is ConnectorTypes.UNSPECIFIED
        assert ConnectorStatusTypes.parse(None) is ConnectorStatusTypes.UNKNOWN
        assert IdentifierTypes.parse("") is IdentifierTypes.UNKNOWN

    def test_fallback_cannot_be_serialized(self):
        """Test that Unknown members are never put on the wire."""
        with pytest.raises(UnknownValueError):
            ConnectorTypes.UNSPECIFIED.as_text()
        with pytest.raises(ValueError):
            ConnectorStatusTypes.UNKNOWN.as_text()

    def test_token_identifier_type(self):
        assert IdentifierTypes.TOKEN.as_text() == "token"


class TestCustomData:
    """Test the immutable custom data map."""

    def test_add_returns_copy(self):
        data = CustomData({"a": 1})
        extended = data.add("b", 2)

        assert dict(data) == {"a": 1}
        assert list(extended) == ["a", "b"]

    def test_empty_keys_ignored(self):
        data = CustomData({"": 1}).add("", 2).extend({"x": 3, "": 4})
        assert data.to_dict() == {"x": 3}


class TestConnectorStatusUpdate:
    """Test status updates and their ordering."""

    def test_new_must_not_precede_old(self):
        """Test that an update cannot go back in time."""
        old = TimestampedStatus(ConnectorStatusTypes.AVAILABLE, T0)
        new = TimestampedStatus(ConnectorStatusTypes.OCCUPIED, T0 - timedelta(seconds=1))

        with pytest.raises(ValueError):
            ConnectorStatusUpdate("E1", old, new)

    def test_ordering_by_id_then_new_then_old(self):
        available = TimestampedStatus(ConnectorStatusTypes.AVAILABLE, T0)
        occupied = TimestampedStatus(ConnectorStatusTypes.OCCUPIED, T0 + timedelta(minutes=1))
        later = TimestampedStatus(ConnectorStatusTypes.AVAILABLE, T0 + timedelta(minutes=2))

        a = ConnectorStatusUpdate("E1", available, later)
        b = ConnectorStatusUpdate("E1", available, occupied)
        c = ConnectorStatusUpdate("E0", occupied, later)

        assert sorted([a, b, c]) == [c, b, a]

    def test_as_status(self):
        old = TimestampedStatus(ConnectorStatusTypes.AVAILABLE, T0)
        new = TimestampedStatus(ConnectorStatusTypes.OCCUPIED, T0 + timedelta(minutes=1))
        update = ConnectorStatusUpdate("E1", old, new)

        assert update.changed
        status = update.as_status()
        assert status.id == "E1"
        assert status.status is ConnectorStatusTypes.OCCUPIED


class TestSession:
    """Test session invariants."""

    def _session(self, **kwargs):
        defaults = dict(
            id="S-1",
            user=User("CAFEBABE", IdentifierTypes.RFID),
            connector_id="E1",
            session_start=T0,
        )
        defaults.update(kwargs)
        return Session(**defaults)

    def test_charging_interval_inside_session(self):
        with pytest.raises(ValueError):
            self._session(charging_start=T0 - timedelta(minutes=1))
        with pytest.raises(ValueError):
            self._session(session_end=T0 + timedelta(hours=1), charging_start=T0 + timedelta(hours=2))
        with pytest.raises(ValueError):
            self._session(
                session_end=T0 + timedelta(hours=1),
                charging_start=T0,
                charging_end=T0 + timedelta(hours=2),
            )

    def test_negative_energy_rejected(self):
        with pytest.raises(ValueError):
            self._session(energy_consumed=-1)

    def test_finalize(self):
        """Test that a running session can be finalized exactly once."""
        session = self._session(charging_start=T0)
        assert not session.is_finalized

        done = session.finalize(T0 + timedelta(hours=1), energy_consumed=12.5)
        assert done.is_finalized
        assert done.energy_consumed == 12.5
        assert not session.is_finalized

        with pytest.raises(ValueError):
            done.finalize(T0 + timedelta(hours=2))

    def test_connector_speed_is_float(self):
        assert Connector("E1", ConnectorTypes.TYPE2, 22).speed == 22.0
