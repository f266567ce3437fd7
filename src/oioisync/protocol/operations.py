"""
Generic description of an OIOI request/response pair.

Every partner operation is a POST whose body has exactly one top-level key
naming the operation. An Operation bundles that wire key with the payload
encoder, the result decoder and the plugin hooks fired around each attempt.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from ..models.domain import ConnectorStatus, Session, Station
from ..plugins.base import PluginHook
from .codec import decode_result, encode_connector_status, encode_session, encode_station
from .results import ResultDraft

P = TypeVar("P")


@dataclass(frozen=True)
class Operation(Generic[P]):
    """A partner operation parameterized by its wire key, encoder and decoder."""

    name: str
    encode: Callable[[P, Optional[str]], dict[str, Any]]
    before: PluginHook
    after: PluginHook
    requires_partner_id: bool = False
    decode: Callable[[str, Any], ResultDraft] = decode_result

    def request_body(self, payload: P, partner_id: Optional[str] = None) -> dict[str, Any]:
        """Build the request envelope ``{name: <encoded payload>}``."""
        if self.requires_partner_id and not partner_id:
            raise ValueError(f"The partner identifier for {self.name} must not be null or empty!")
        return {self.name: self.encode(payload, partner_id)}

    def decode_response(self, body: Any) -> ResultDraft:
        return self.decode(self.name, body)

    def __str__(self) -> str:
        return self.name


def _station(station: Station, partner_id: Optional[str]) -> dict[str, Any]:
    return {"station": encode_station(station), "partner-identifier": partner_id}


def _connector_status(status: ConnectorStatus, partner_id: Optional[str]) -> dict[str, Any]:
    return encode_connector_status(status, partner_id)


def _session(session: Session, partner_id: Optional[str]) -> dict[str, Any]:
    _ = partner_id
    return {"session": encode_session(session)}


def _rfid(rfid: str, partner_id: Optional[str]) -> dict[str, Any]:
    _ = partner_id
    return {"rfid": rfid}


STATION_POST: Operation[Station] = Operation(
    "station-post",
    _station,
    PluginHook.BEFORE_STATION_POST,
    PluginHook.AFTER_STATION_POST,
    requires_partner_id=True,
)

CONNECTOR_POST_STATUS: Operation[ConnectorStatus] = Operation(
    "connector-post-status",
    _connector_status,
    PluginHook.BEFORE_CONNECTOR_POST_STATUS,
    PluginHook.AFTER_CONNECTOR_POST_STATUS,
    requires_partner_id=True,
)

SESSION_POST: Operation[Session] = Operation(
    "session-post",
    _session,
    PluginHook.BEFORE_SESSION_POST,
    PluginHook.AFTER_SESSION_POST,
)

RFID_VERIFY: Operation[str] = Operation(
    "rfid-verify",
    _rfid,
    PluginHook.BEFORE_RFID_VERIFY,
    PluginHook.AFTER_RFID_VERIFY,
)

OPERATIONS = {op.name: op for op in (STATION_POST, CONNECTOR_POST_STATUS, SESSION_POST, RFID_VERIFY)}
