"""Sources of the live local snapshot handed to the scheduler."""

import asyncio
import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol

from ..models.domain import Address
from ..models.local import (
    EVSE,
    ChargeDetailRecord,
    ChargingStation,
    EVSEStatusTypes,
    MeterValue,
    Operator,
    PlugTypes,
)
from ..protocol.codec import parse_timestamp

logger = logging.getLogger(__name__)


class SnapshotProvider(Protocol):
    """Read-only view on the local charging infrastructure."""

    async def charging_stations(self) -> Iterable[ChargingStation]: ...

    async def charge_detail_records(self) -> Iterable[ChargeDetailRecord]: ...


class StaticSnapshotProvider:
    """In-memory snapshot, replaced wholesale with ``update()``."""

    def __init__(
        self,
        stations: Iterable[ChargingStation] = (),
        charge_detail_records: Iterable[ChargeDetailRecord] = (),
    ):
        self.stations = list(stations)
        self.cdrs = list(charge_detail_records)

    def update(self, stations=None, charge_detail_records=None):
        if stations is not None:
            self.stations = list(stations)
        if charge_detail_records is not None:
            self.cdrs = list(charge_detail_records)

    async def charging_stations(self) -> list[ChargingStation]:
        return list(self.stations)

    async def charge_detail_records(self) -> list[ChargeDetailRecord]:
        return list(self.cdrs)


def _timestamp(value: Any):
    return parse_timestamp(value) if value else None


def station_from_dict(data: dict[str, Any]) -> ChargingStation:
    operator = data.get("operator") or {}
    address = data.get("address") or {}
    return ChargingStation(
        id=str(data["id"]),
        name=data["name"],
        operator=Operator(
            id=str(operator.get("id", "")),
            hotline_phone=operator.get("hotline_phone", ""),
            homepage=operator.get("homepage", ""),
            email=operator.get("email", ""),
        ),
        latitude=float(data["latitude"]),
        longitude=float(data["longitude"]),
        address=Address(
            street=address.get("street", ""),
            street_number=str(address.get("street_number", "")),
            city=address.get("city", ""),
            zip=str(address.get("zip", "")),
            country=address.get("country", ""),
        ),
        evses=tuple(
            EVSE(
                id=str(evse["id"]),
                plug=PlugTypes.parse(evse.get("plug")),
                max_power=evse.get("max_power"),
                status=EVSEStatusTypes.parse(evse.get("status")),
                status_since=_timestamp(evse.get("status_since")),
            )
            for evse in data.get("evses", [])
        ),
        description=data.get("description"),
        open_24h=data.get("open_24h", True),
        opening_notes=tuple(data.get("opening_notes", ())),
        is_reservable=data.get("is_reservable", False),
        is_free_charge=data.get("is_free_charge", False),
        is_green_power_available=data.get("is_green_power_available", False),
        is_private=data.get("is_private", False),
        floor_level=data.get("floor_level"),
        total_parking=data.get("total_parking"),
        deleted=data.get("deleted", False),
        last_change=_timestamp(data.get("last_change")),
    )


def cdr_from_dict(data: dict[str, Any]) -> ChargeDetailRecord:
    return ChargeDetailRecord(
        session_id=str(data["session_id"]),
        evse_id=str(data["evse_id"]),
        session_start=parse_timestamp(data["session_start"]),
        session_end=_timestamp(data.get("session_end")),
        auth_token=data.get("auth_token"),
        remote_identification=data.get("remote_identification"),
        meter_values=tuple(
            MeterValue(parse_timestamp(mv["timestamp"]), float(mv["value"]))
            for mv in data.get("meter_values", [])
        ),
    )


class JSONFileSnapshotProvider:
    """
    Snapshot read from a JSON file on every call.

    The file holds ``{"stations": [...], "charge_detail_records": [...]}``;
    it is re-read each time so that an external process can rewrite it
    between sync runs.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        with self.path.open(encoding="utf-8") as f:
            return json.load(f)

    async def _read(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._load)

    async def charging_stations(self) -> list[ChargingStation]:
        data = await self._read()
        return [station_from_dict(s) for s in data.get("stations", [])]

    async def charge_detail_records(self) -> list[ChargeDetailRecord]:
        data = await self._read()
        return [cdr_from_dict(c) for c in data.get("charge_detail_records", [])]
