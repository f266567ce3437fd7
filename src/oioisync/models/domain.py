"""Partner-side domain models exchanged with the OIOI backend."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from functools import total_ordering
from typing import Any, Optional

from .custom_data import EMPTY, CustomData
from .enums import ConnectorStatusTypes, ConnectorTypes, IdentifierTypes

COORDINATE_PRECISION = 6


@dataclass(frozen=True)
class Address:
    """Postal address of a station."""

    street: str
    street_number: str
    city: str
    zip: str
    country: str


@dataclass(frozen=True)
class Contact:
    """Contact block of a station. Every field is text, never None."""

    phone: str = ""
    fax: str = ""
    web: str = ""
    email: str = ""

    def __post_init__(self):
        for name in ("phone", "fax", "web", "email"):
            if getattr(self, name) is None:
                object.__setattr__(self, name, "")


@dataclass(frozen=True)
class Connector:
    """A single charging port of a station."""

    id: str
    type: ConnectorTypes
    speed: float

    def __post_init__(self):
        if not self.id:
            raise ValueError("The given connector identification must not be empty!")
        object.__setattr__(self, "speed", float(self.speed))


@dataclass(frozen=True)
class Station:
    """
    A charging station as announced to the partner.

    Stations are immutable values: an update replaces the previous station.
    Equality covers every field the partner sees; ``custom_data`` is
    local metadata and is not compared.
    """

    id: str
    name: str
    latitude: float
    longitude: float
    address: Address
    contact: Contact
    cpo_id: str
    connectors: tuple[Connector, ...]
    description: Optional[str] = None
    is_open_24: bool = False
    open_hour_notes: tuple[str, ...] = ()
    notes: str = ""
    is_reservable: bool = False
    floor_level: Optional[int] = None
    is_free_charge: bool = False
    total_parking: Optional[int] = None
    is_green_power_available: bool = False
    is_plugin_charge: bool = False
    is_roofed: bool = False
    is_private: bool = False
    deleted: bool = False
    custom_data: CustomData = field(default=EMPTY, compare=False)

    def __post_init__(self):
        if not self.id:
            raise ValueError("The given station identification must not be empty!")
        if not self.name:
            raise ValueError("The given charging station name must not be null or empty!")
        if self.address is None:
            raise ValueError("The given address must not be null!")
        if not self.cpo_id:
            raise ValueError("The given charging station operator identification must not be empty!")
        connectors = tuple(self.connectors or ())
        if not connectors:
            raise ValueError("The given connectors must not be null or empty!")

        object.__setattr__(self, "connectors", connectors)
        object.__setattr__(self, "contact", self.contact or Contact())
        object.__setattr__(self, "notes", self.notes or "")
        object.__setattr__(self, "open_hour_notes", tuple(self.open_hour_notes or ()))
        object.__setattr__(self, "latitude", round(float(self.latitude), COORDINATE_PRECISION))
        object.__setattr__(self, "longitude", round(float(self.longitude), COORDINATE_PRECISION))
        if not isinstance(self.custom_data, CustomData):
            object.__setattr__(self, "custom_data", CustomData(self.custom_data))

    def replace(self, **changes: Any) -> "Station":
        return replace(self, **changes)

    def add_custom_data(self, key: str, value: Any) -> "Station":
        return replace(self, custom_data=self.custom_data.add(key, value))

    def __str__(self) -> str:
        return f"{self.id} / {self.name}"


@dataclass(frozen=True)
class ConnectorStatus:
    """Current status of one connector."""

    id: str
    status: ConnectorStatusTypes
    timestamp: Optional[datetime] = None


@total_ordering
@dataclass(frozen=True)
class TimestampedStatus:
    """A connector status value together with the time it was observed."""

    status: ConnectorStatusTypes
    timestamp: datetime

    def _key(self):
        return (self.timestamp, self.status.value)

    def __lt__(self, other: "TimestampedStatus") -> bool:
        if not isinstance(other, TimestampedStatus):
            return NotImplemented
        return self._key() < other._key()

    def __str__(self) -> str:
        return f"{self.status.value}@{self.timestamp.isoformat()}"


@total_ordering
@dataclass(frozen=True)
class ConnectorStatusUpdate:
    """
    A connector status change carrying the previous and the new value.

    Ordered by connector id, then the new status, then the old status.
    """

    id: str
    old: TimestampedStatus
    new: TimestampedStatus

    def __post_init__(self):
        if not self.id:
            raise ValueError("The given connector identification must not be empty!")
        if self.new.timestamp < self.old.timestamp:
            raise ValueError(
                f"Status update for {self.id} goes back in time ({self.old} -> {self.new})"
            )

    @property
    def changed(self) -> bool:
        return self.old.status is not self.new.status

    def as_status(self) -> ConnectorStatus:
        return ConnectorStatus(self.id, self.new.status, self.new.timestamp)

    def _key(self):
        return (self.id, self.new, self.old)

    def __lt__(self, other: "ConnectorStatusUpdate") -> bool:
        if not isinstance(other, ConnectorStatusUpdate):
            return NotImplemented
        return self._key() < other._key()

    def __str__(self) -> str:
        return f"{self.id}: {self.old} -> {self.new}"


@dataclass(frozen=True)
class User:
    """User identification attached to a session."""

    identifier: str
    identifier_type: IdentifierTypes
    token: Optional[str] = None

    def __post_init__(self):
        if not self.identifier:
            raise ValueError("The given user identifier must not be empty!")


@dataclass(frozen=True)
class Session:
    """
    A charging session (charge detail record) reported to the partner.

    ``session_end`` is set once the session is finalized; a finalized session
    never changes again.
    """

    id: str
    user: User
    connector_id: str
    session_start: datetime
    session_end: Optional[datetime] = None
    charging_start: Optional[datetime] = None
    charging_end: Optional[datetime] = None
    energy_consumed: Optional[float] = None
    partner_identifier: Optional[str] = None
    custom_data: CustomData = field(default=EMPTY, compare=False)

    def __post_init__(self):
        if not self.id:
            raise ValueError("The given session identification must not be empty!")
        if not self.connector_id:
            raise ValueError("The given connector identification must not be empty!")
        if self.session_end is not None and self.session_end < self.session_start:
            raise ValueError("The session must not end before it starts!")
        if self.charging_start is None and self.charging_end is not None:
            raise ValueError("A charging interval needs a start time!")
        if self.charging_start is not None:
            if self.charging_start < self.session_start:
                raise ValueError("The charging interval must lie within the session interval!")
            if self.session_end is not None and self.charging_start > self.session_end:
                raise ValueError("The charging interval must lie within the session interval!")
            if self.charging_end is not None:
                if self.charging_end < self.charging_start:
                    raise ValueError("The charging must not end before it starts!")
                if self.session_end is not None and self.charging_end > self.session_end:
                    raise ValueError("The charging interval must lie within the session interval!")
        if self.energy_consumed is not None:
            if self.energy_consumed < 0:
                raise ValueError("The consumed energy must not be negative!")
            object.__setattr__(self, "energy_consumed", float(self.energy_consumed))
        if not isinstance(self.custom_data, CustomData):
            object.__setattr__(self, "custom_data", CustomData(self.custom_data))

    @property
    def is_finalized(self) -> bool:
        return self.session_end is not None

    def finalize(
        self,
        session_end: datetime,
        charging_end: Optional[datetime] = None,
        energy_consumed: Optional[float] = None,
    ) -> "Session":
        """Return the finalized copy of this session."""
        if self.is_finalized:
            raise ValueError(f"Session {self.id} is already finalized!")
        return replace(
            self,
            session_end=session_end,
            charging_end=charging_end if charging_end is not None else self.charging_end,
            energy_consumed=energy_consumed if energy_consumed is not None else self.energy_consumed,
        )

    def replace(self, **changes: Any) -> "Session":
        return replace(self, **changes)

    def add_custom_data(self, key: str, value: Any) -> "Session":
        return replace(self, custom_data=self.custom_data.add(key, value))
