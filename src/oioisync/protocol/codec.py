"""
JSON wire codec for the OIOI v4 protocol.

Encoders turn domain values into plain ``dict`` objects ready for
``json.dumps``; optional properties without a value are left out instead of
being sent as ``null``. Decoders are total over enum values (unknown strings
map to the fallback member) and raise :class:`MalformedMessage` naming the
offending property when a required one is missing or unusable.
"""

from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any, TypeVar

from ..exceptions import MalformedMessage
from ..models.domain import (
    Address,
    Connector,
    ConnectorStatus,
    Contact,
    Session,
    Station,
    User,
)
from ..models.enums import ConnectorStatusTypes, ConnectorTypes, IdentifierTypes
from .results import ResponseCodes, ResultDraft

T = TypeVar("T")


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def format_timestamp(value: datetime) -> str:
    """ISO 8601 in UTC with a trailing ``Z``; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def parse_timestamp(text: str) -> datetime:
    parsed = datetime.fromisoformat(str(text).strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _object(value: Any, name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise MalformedMessage(name, f"JSON property '{name}' must be an object")
    return value


def _required(obj: Mapping[str, Any], name: str, convert: Callable[[Any], T] = lambda v: v) -> T:
    value = obj.get(name)
    if value is None or value == "":
        raise MalformedMessage(name)
    try:
        return convert(value)
    except (TypeError, ValueError) as e:
        raise MalformedMessage(name, f"Invalid JSON property '{name}': {e}") from e


def _optional(obj: Mapping[str, Any], name: str, convert: Callable[[Any], T] = lambda v: v) -> T | None:
    value = obj.get(name)
    if value is None or value == "":
        return None
    try:
        return convert(value)
    except (TypeError, ValueError) as e:
        raise MalformedMessage(name, f"Invalid JSON property '{name}': {e}") from e


def _text(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


def _uint(value: Any) -> int:
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(f"{value!r} is not an unsigned integer")
    number = int(value)
    if number < 0:
        raise ValueError(f"{value!r} is not an unsigned integer")
    return number


def _flag(obj: Mapping[str, Any], name: str) -> bool:
    value = obj.get(name, False)
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


# ---------------------------------------------------------------------------
# station
# ---------------------------------------------------------------------------


def encode_address(address: Address) -> dict[str, Any]:
    return {
        "street": address.street,
        "street-number": address.street_number,
        "city": address.city,
        "zip": address.zip,
        "country": address.country,
    }


def decode_address(obj: Any) -> Address:
    obj = _object(obj, "address")
    return Address(
        street=_optional(obj, "street", _text) or "",
        street_number=_optional(obj, "street-number", _text) or "",
        city=_optional(obj, "city", _text) or "",
        zip=_optional(obj, "zip", _text) or "",
        country=_optional(obj, "country", _text) or "",
    )


def encode_contact(contact: Contact) -> dict[str, Any]:
    json = {"phone": contact.phone}
    if contact.fax:
        json["fax"] = contact.fax
    if contact.web:
        json["web"] = contact.web
    if contact.email:
        json["email"] = contact.email
    return json


def decode_contact(obj: Any) -> Contact:
    if obj is None:
        return Contact()
    obj = _object(obj, "contact")
    return Contact(
        phone=_text(obj.get("phone") or ""),
        fax=_text(obj.get("fax") or ""),
        web=_text(obj.get("web") or ""),
        email=_text(obj.get("email") or ""),
    )


def encode_connector(connector: Connector) -> dict[str, Any]:
    return {
        "id": connector.id,
        "name": connector.type.as_text(),
        "speed": connector.speed,
    }


def decode_connector(obj: Any) -> Connector:
    obj = _object(obj, "connectors")
    return Connector(
        id=_required(obj, "id", _text),
        type=ConnectorTypes.parse(obj.get("name")),
        speed=_required(obj, "speed", float),
    )


def encode_station(station: Station) -> dict[str, Any]:
    json: dict[str, Any] = {
        "id": station.id,
        "name": station.name,
    }
    if station.description:
        json["description"] = station.description
    json.update(
        {
            "latitude": station.latitude,
            "longitude": station.longitude,
            "address": encode_address(station.address),
            "contact": encode_contact(station.contact),
            "cpo-id": station.cpo_id,
            "is-open-24": station.is_open_24,
            "connectors": [encode_connector(c) for c in station.connectors],
            "open-hour-notes": list(station.open_hour_notes),
            "notes": station.notes,
            "is-reservable": station.is_reservable,
        }
    )
    if station.floor_level is not None:
        json["floor-level"] = station.floor_level
    json["is-free-charge"] = station.is_free_charge
    if station.total_parking is not None:
        json["total-parking"] = station.total_parking
    json.update(
        {
            "is-green-power-available": station.is_green_power_available,
            "is-plugin-charge": station.is_plugin_charge,
            "is-roofed": station.is_roofed,
            "is-private": station.is_private,
            "deleted": station.deleted,
        }
    )
    return json


def decode_station(obj: Any) -> Station:
    obj = _object(obj, "station")
    connectors = obj.get("connectors")
    if not isinstance(connectors, list) or not connectors:
        raise MalformedMessage("connectors")
    notes = obj.get("open-hour-notes") or []
    if not isinstance(notes, list):
        notes = [notes]

    try:
        return Station(
            id=_required(obj, "id", _text),
            name=_required(obj, "name", _text),
            description=_optional(obj, "description", _text),
            latitude=_required(obj, "latitude", float),
            longitude=_required(obj, "longitude", float),
            address=decode_address(obj.get("address")),
            contact=decode_contact(obj.get("contact")),
            cpo_id=_required(obj, "cpo-id", _text),
            is_open_24=_flag(obj, "is-open-24"),
            connectors=tuple(decode_connector(c) for c in connectors),
            open_hour_notes=tuple(_text(n) for n in notes),
            notes=_text(obj.get("notes") or ""),
            is_reservable=_flag(obj, "is-reservable"),
            floor_level=_optional(obj, "floor-level", int),
            is_free_charge=_flag(obj, "is-free-charge"),
            total_parking=_optional(obj, "total-parking", int),
            is_green_power_available=_flag(obj, "is-green-power-available"),
            is_plugin_charge=_flag(obj, "is-plugin-charge"),
            is_roofed=_flag(obj, "is-roofed"),
            is_private=_flag(obj, "is-private"),
            deleted=_flag(obj, "deleted"),
        )
    except MalformedMessage:
        raise
    except ValueError as e:
        raise MalformedMessage("station", str(e)) from e


# ---------------------------------------------------------------------------
# connector status
# ---------------------------------------------------------------------------


def encode_connector_status(status: ConnectorStatus, partner_id: str) -> dict[str, Any]:
    return {
        "connector-id": status.id,
        "partner-identifier": partner_id,
        "status": status.status.as_text(),
    }


def decode_connector_status(obj: Any) -> tuple[ConnectorStatus, str]:
    obj = _object(obj, "connector-post-status")
    status = ConnectorStatus(
        id=_required(obj, "connector-id", _text),
        status=ConnectorStatusTypes.parse(obj.get("status")),
    )
    return status, _required(obj, "partner-identifier", _text)


# ---------------------------------------------------------------------------
# session
# ---------------------------------------------------------------------------


def encode_user(user: User) -> dict[str, Any]:
    json = {
        "identifier": user.identifier,
        "identifier-type": user.identifier_type.as_text(),
    }
    if user.token:
        json["token"] = user.token
    return json


def decode_user(obj: Any) -> User:
    obj = _object(obj, "user")
    return User(
        identifier=_required(obj, "identifier", _text),
        identifier_type=IdentifierTypes.parse(obj.get("identifier-type")),
        token=_optional(obj, "token", _text),
    )


def _encode_interval(start: datetime, stop: datetime | None) -> dict[str, str]:
    json = {"start": format_timestamp(start)}
    if stop is not None:
        json["stop"] = format_timestamp(stop)
    return json


def encode_session(session: Session) -> dict[str, Any]:
    json: dict[str, Any] = {
        "user": encode_user(session.user),
        "session-id": session.id,
        "connector-id": session.connector_id,
        "session-interval": _encode_interval(session.session_start, session.session_end),
    }
    if session.charging_start is not None:
        json["charging-interval"] = _encode_interval(session.charging_start, session.charging_end)
    if session.energy_consumed is not None:
        json["energy-consumed"] = session.energy_consumed
    if session.partner_identifier:
        json["partner-identifier"] = session.partner_identifier
    return json


def decode_session(obj: Any) -> Session:
    obj = _object(obj, "session")
    interval = _object(obj.get("session-interval"), "session-interval")
    charging = obj.get("charging-interval")
    if charging is not None:
        charging = _object(charging, "charging-interval")

    try:
        return Session(
            id=_required(obj, "session-id", _text),
            user=decode_user(obj.get("user")),
            connector_id=_required(obj, "connector-id", _text),
            session_start=_required(interval, "start", parse_timestamp),
            session_end=_optional(interval, "stop", parse_timestamp),
            charging_start=_required(charging, "start", parse_timestamp) if charging else None,
            charging_end=_optional(charging, "stop", parse_timestamp) if charging else None,
            energy_consumed=_optional(obj, "energy-consumed", float),
            partner_identifier=_optional(obj, "partner-identifier", _text),
        )
    except MalformedMessage:
        raise
    except ValueError as e:
        raise MalformedMessage("session", str(e)) from e


# ---------------------------------------------------------------------------
# results
# ---------------------------------------------------------------------------


def decode_result(operation: str, body: Any) -> ResultDraft:
    """
    Decode a partner response envelope.

    Accepts ``{"result": {"code": .., "message": ..}}`` and the legacy
    ``{"<operation>": {"success": true|false}}`` acknowledgement shape.
    """
    body = _object(body, "result")
    result = body.get("result")

    if result is not None:
        result = _object(result, "result")
        draft = ResultDraft(
            operation=operation,
            code=_required(result, "code", _uint),
            message=_text(result.get("message") or ""),
            timestamp=_optional(result, "timestamp", parse_timestamp),
            custom_data={
                k: v for k, v in result.items() if k not in ("code", "message", "timestamp")
            },
        )
        success = result.get("success")
        if isinstance(success, bool):
            draft.success = success
        return draft

    legacy = body.get(operation)
    if isinstance(legacy, Mapping) and isinstance(legacy.get("success"), bool):
        success = legacy["success"]
        return ResultDraft(
            operation=operation,
            code=ResponseCodes.SUCCESS if success else ResponseCodes.SYSTEM_ERROR,
            message="Success" if success else "The partner did not acknowledge the request",
            success=success,
            custom_data={k: v for k, v in legacy.items() if k != "success"},
        )

    raise MalformedMessage("result")
