"""
Local roaming-network model.

These are the entities the rest of the charging backend hands to the
adapter. Only the fields the adapter reads are modelled; bookkeeping
fields such as ``last_change`` and ``internal_data`` are excluded from
equality so that they never trigger a push on their own.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from .domain import Address


class PlugTypes(str, Enum):
    """Plug types of the local charging infrastructure."""

    UNKNOWN = "Unknown"
    TYPE1_CONNECTOR_CABLE_ATTACHED = "Type1Connector_CableAttached"
    TYPE2_OUTLET = "Type2Outlet"
    TYPE2_CONNECTOR_CABLE_ATTACHED = "Type2Connector_CableAttached"
    TYPE3_OUTLET = "Type3Outlet"
    TYPE_F_SCHUKO = "TypeFSchuko"
    TYPE_E_FRENCH_STANDARD = "TypeEFrenchStandard"
    CHADEMO = "CHAdeMO"
    CCS_COMBO2_PLUG_CABLE_ATTACHED = "CCSCombo2Plug_CableAttached"
    TESLA_CONNECTOR = "TeslaConnector"
    TESLA_ROADSTER = "TESLA_Roadster"
    TESLA_MODEL_S = "TESLA_ModelS"
    IEC_60309_SINGLE_PHASE = "IEC60309SinglePhase"
    IEC_60309_THREE_PHASE = "IEC60309ThreePhase"

    @classmethod
    def parse(cls, text: str | None) -> "PlugTypes":
        for member in cls:
            if text and member.value.lower() == text.lower():
                return member
        return cls.UNKNOWN


class EVSEStatusTypes(str, Enum):
    """Operational status of a local EVSE."""

    UNKNOWN = "Unknown"
    AVAILABLE = "Available"
    CHARGING = "Charging"
    RESERVED = "Reserved"
    OFFLINE = "Offline"
    OUT_OF_SERVICE = "OutOfService"
    FAULTED = "Faulted"

    @classmethod
    def parse(cls, text: str | None) -> "EVSEStatusTypes":
        for member in cls:
            if text and member.value.lower() == text.lower():
                return member
        return cls.UNKNOWN


@dataclass(frozen=True)
class EVSE:
    """A local EVSE (one connector of a charging station)."""

    id: str
    plug: PlugTypes = PlugTypes.UNKNOWN
    max_power: Optional[float] = None
    status: EVSEStatusTypes = EVSEStatusTypes.UNKNOWN
    status_since: Optional[datetime] = field(default=None, compare=False)


@dataclass(frozen=True)
class Operator:
    """The charging station operator owning a station."""

    id: str
    hotline_phone: str = ""
    homepage: str = ""
    email: str = ""


@dataclass(frozen=True)
class ChargingStation:
    """A local charging station and its EVSEs."""

    id: str
    name: str
    operator: Operator
    latitude: float
    longitude: float
    address: Address
    evses: tuple[EVSE, ...] = ()
    description: Optional[str] = None
    open_24h: bool = True
    opening_notes: tuple[str, ...] = ()
    is_reservable: bool = False
    is_free_charge: bool = False
    is_green_power_available: bool = False
    is_private: bool = False
    floor_level: Optional[int] = None
    total_parking: Optional[int] = None
    deleted: bool = False
    last_change: Optional[datetime] = field(default=None, compare=False)
    internal_data: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "evses", tuple(self.evses))
        object.__setattr__(self, "opening_notes", tuple(self.opening_notes))


@dataclass(frozen=True)
class MeterValue:
    """An energy meter reading in kWh."""

    timestamp: datetime
    value: float


@dataclass(frozen=True)
class ChargeDetailRecord:
    """A finished (or running) local charging session."""

    session_id: str
    evse_id: str
    session_start: datetime
    session_end: Optional[datetime] = None
    auth_token: Optional[str] = None
    remote_identification: Optional[str] = None
    meter_values: tuple[MeterValue, ...] = ()
    internal_data: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "meter_values", tuple(self.meter_values))

    @property
    def is_finalized(self) -> bool:
        return self.session_end is not None
