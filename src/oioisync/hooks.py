"""User-supplied customization hooks for the synchronization pipeline."""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from .models.domain import Session, Station
from .models.local import EVSE, ChargeDetailRecord, ChargingStation

if TYPE_CHECKING:
    from .protocol.results import ResultDraft

RequestMapper = Callable[[Any, dict[str, Any]], dict[str, Any]]
ResponseMapper = Callable[[Mapping[str, Any], "ResultDraft"], "ResultDraft"]


@dataclass(frozen=True)
class CustomizationHooks:
    """
    Pure functions injected into the mapper, the scheduler and the client.

    Every hook is optional. Hooks run synchronously inside the pipeline and
    must not perform I/O:

    - operator_id_mapper: local operator id -> partner ``cpo-id``
    - evse_id_mapper / connector_id_mapper: local EVSE id <-> partner connector id
    - charging_station_to_station: rewrite the Station built for a ChargingStation
    - cdr_to_session: rewrite the Session built for a ChargeDetailRecord
    - station_partner_id_selector: pick the partner identifier for a Station
    - connector_partner_id_selector: pick the partner identifier for a connector id
    - include_station / include_evse / include_cdr: filter what gets synchronized
    - request_mappers: operation name -> (payload, json) -> json, applied to the
      request body right before it is sent
    - response_mappers: operation name -> (json, draft) -> draft, applied to the
      decoded result before it is returned
    """

    operator_id_mapper: Optional[Callable[[str], str]] = None
    evse_id_mapper: Optional[Callable[[str], str]] = None
    connector_id_mapper: Optional[Callable[[str], str]] = None
    charging_station_to_station: Optional[Callable[[ChargingStation, Station], Station]] = None
    cdr_to_session: Optional[Callable[[ChargeDetailRecord, Session], Session]] = None
    station_partner_id_selector: Optional[Callable[[Station], Optional[str]]] = None
    connector_partner_id_selector: Optional[Callable[[str], Optional[str]]] = None
    include_station: Optional[Callable[[ChargingStation], bool]] = None
    include_evse: Optional[Callable[[EVSE], bool]] = None
    include_cdr: Optional[Callable[[ChargeDetailRecord], bool]] = None
    request_mappers: Mapping[str, RequestMapper] = field(default_factory=dict)
    response_mappers: Mapping[str, ResponseMapper] = field(default_factory=dict)

    def station_included(self, station: ChargingStation) -> bool:
        return self.include_station is None or bool(self.include_station(station))

    def evse_included(self, evse: EVSE) -> bool:
        return self.include_evse is None or bool(self.include_evse(evse))

    def cdr_included(self, cdr: ChargeDetailRecord) -> bool:
        return self.include_cdr is None or bool(self.include_cdr(cdr))

    def map_request(self, operation: str, payload: Any, json: dict[str, Any]) -> dict[str, Any]:
        mapper = self.request_mappers.get(operation)
        if mapper is None:
            return json
        mapped = mapper(payload, json)
        if mapped is None:
            raise ValueError(f"The mapped {operation} request must not be None!")
        return mapped

    def map_response(
        self, operation: str, json: Mapping[str, Any], draft: "ResultDraft"
    ) -> "ResultDraft":
        mapper = self.response_mappers.get(operation)
        if mapper is None:
            return draft
        return mapper(json, draft) or draft


NO_HOOKS = CustomizationHooks()
