"""Domain models for the OIOI synchronization adapter."""

from .custom_data import CustomData
from .domain import (
    Address,
    Connector,
    ConnectorStatus,
    ConnectorStatusUpdate,
    Contact,
    Session,
    Station,
    TimestampedStatus,
    User,
)
from .enums import ConnectorStatusTypes, ConnectorTypes, IdentifierTypes
from .local import (
    EVSE,
    ChargeDetailRecord,
    ChargingStation,
    EVSEStatusTypes,
    MeterValue,
    Operator,
    PlugTypes,
)

__all__ = [
    "Address",
    "ChargeDetailRecord",
    "ChargingStation",
    "Connector",
    "ConnectorStatus",
    "ConnectorStatusTypes",
    "ConnectorStatusUpdate",
    "ConnectorTypes",
    "Contact",
    "CustomData",
    "EVSE",
    "EVSEStatusTypes",
    "IdentifierTypes",
    "MeterValue",
    "Operator",
    "PlugTypes",
    "Session",
    "Station",
    "TimestampedStatus",
    "User",
]
