"""Translation between the local roaming-network model and OIOI entities."""

import logging
from typing import Optional

from ..hooks import NO_HOOKS, CustomizationHooks
from ..models.domain import Connector, Contact, Session, Station, User
from ..models.enums import ConnectorStatusTypes, ConnectorTypes, IdentifierTypes
from ..models.local import EVSE, ChargeDetailRecord, ChargingStation, EVSEStatusTypes, PlugTypes

logger = logging.getLogger(__name__)

# Plugs without a partner counterpart (CCS, IEC 60309, ...) fall through to
# UNSPECIFIED and are rejected by the codec; the scheduler reports them as
# skipped instead of pushing a wrong plug type.
_PLUG_TYPES = {
    PlugTypes.TESLA_CONNECTOR: ConnectorTypes.TESLA,
    PlugTypes.TESLA_ROADSTER: ConnectorTypes.TESLA,
    PlugTypes.TESLA_MODEL_S: ConnectorTypes.TESLA,
    PlugTypes.TYPE_E_FRENCH_STANDARD: ConnectorTypes.TYPE_E,
    PlugTypes.TYPE_F_SCHUKO: ConnectorTypes.SCHUKO,
    PlugTypes.TYPE1_CONNECTOR_CABLE_ATTACHED: ConnectorTypes.TYPE1,
    PlugTypes.TYPE2_OUTLET: ConnectorTypes.TYPE2,
    PlugTypes.TYPE2_CONNECTOR_CABLE_ATTACHED: ConnectorTypes.TYPE2,
    PlugTypes.TYPE3_OUTLET: ConnectorTypes.TYPE3,
    PlugTypes.CHADEMO: ConnectorTypes.CHADEMO,
}

_STATUS_TYPES = {
    EVSEStatusTypes.OFFLINE: ConnectorStatusTypes.OFFLINE,
    EVSEStatusTypes.AVAILABLE: ConnectorStatusTypes.AVAILABLE,
    EVSEStatusTypes.RESERVED: ConnectorStatusTypes.RESERVED,
    EVSEStatusTypes.CHARGING: ConnectorStatusTypes.OCCUPIED,
}


def plug_to_connector_type(plug: PlugTypes) -> ConnectorTypes:
    return _PLUG_TYPES.get(plug, ConnectorTypes.UNSPECIFIED)


def evse_status_to_connector_status(status: EVSEStatusTypes) -> ConnectorStatusTypes:
    return _STATUS_TYPES.get(status, ConnectorStatusTypes.UNKNOWN)


class IdentityMapper:
    """
    Maps local identifiers and entities onto their partner counterparts.

    Identifiers map one-to-one unless a custom mapper is configured in the
    hooks. An EVSE whose id maps to None (or that is filtered out by
    ``include_evse``) is not announced.
    """

    def __init__(self, hooks: Optional[CustomizationHooks] = None):
        self.hooks = hooks or NO_HOOKS

    # Identifiers

    def station_id_to_partner(self, station_id: str) -> str:
        return str(station_id)

    def station_id_from_partner(self, station_id: str) -> str:
        return str(station_id)

    def operator_id_to_partner(self, operator_id: str) -> str:
        if self.hooks.operator_id_mapper is not None:
            return self.hooks.operator_id_mapper(operator_id)
        return str(operator_id)

    def evse_id_to_connector_id(self, evse_id: str) -> Optional[str]:
        if self.hooks.evse_id_mapper is not None:
            return self.hooks.evse_id_mapper(evse_id)
        return str(evse_id)

    def connector_id_to_evse_id(self, connector_id: str) -> Optional[str]:
        if self.hooks.connector_id_mapper is not None:
            return self.hooks.connector_id_mapper(connector_id)
        return str(connector_id)

    # Enumerations

    plug_to_connector_type = staticmethod(plug_to_connector_type)
    evse_status_to_connector_status = staticmethod(evse_status_to_connector_status)

    # Entities

    def to_connector(self, evse: EVSE) -> Optional[Connector]:
        connector_id = self.evse_id_to_connector_id(evse.id)
        if not connector_id:
            return None
        return Connector(
            id=connector_id,
            type=plug_to_connector_type(evse.plug),
            speed=evse.max_power or 0.0,
        )

    def to_station(self, station: ChargingStation) -> Station:
        """
        Build the partner Station for a local charging station.

        Raises ValueError when the result is not a valid Station, e.g. when
        no EVSE is left to announce.
        """
        connectors = []
        for evse in station.evses:
            if not self.hooks.evse_included(evse):
                continue
            connector = self.to_connector(evse)
            if connector is not None:
                connectors.append(connector)

        result = Station(
            id=self.station_id_to_partner(station.id),
            name=station.name,
            latitude=station.latitude,
            longitude=station.longitude,
            address=station.address,
            contact=Contact(
                phone=station.operator.hotline_phone,
                web=station.operator.homepage,
                email=station.operator.email,
            ),
            cpo_id=self.operator_id_to_partner(station.operator.id),
            connectors=tuple(connectors),
            description=station.description,
            is_open_24=station.open_24h,
            open_hour_notes=station.opening_notes,
            is_reservable=station.is_reservable,
            floor_level=station.floor_level,
            is_free_charge=station.is_free_charge,
            total_parking=station.total_parking,
            is_green_power_available=station.is_green_power_available,
            is_private=station.is_private,
            deleted=station.deleted,
        )

        if self.hooks.charging_station_to_station is not None:
            result = self.hooks.charging_station_to_station(station, result)
        return result

    def to_user(self, cdr: ChargeDetailRecord) -> User:
        if cdr.auth_token:
            return User(cdr.auth_token, IdentifierTypes.RFID)
        if cdr.remote_identification:
            return User(cdr.remote_identification, IdentifierTypes.EVCO_ID)
        raise ValueError(f"Charge detail record {cdr.session_id} has no user identification!")

    def to_session(self, cdr: ChargeDetailRecord, partner_id: Optional[str]) -> Optional[Session]:
        """
        Build the partner Session for a charge detail record.

        The charging interval and consumed energy are taken from the first
        and last meter value. Returns None when the EVSE id does not map to
        a connector id.
        """
        connector_id = self.evse_id_to_connector_id(cdr.evse_id)
        if not connector_id:
            return None

        charging_start = charging_end = energy = None
        if cdr.meter_values:
            first, last = cdr.meter_values[0], cdr.meter_values[-1]
            charging_start = first.timestamp
            charging_end = last.timestamp if len(cdr.meter_values) > 1 else None
            energy = last.value - first.value

        session = Session(
            id=str(cdr.session_id),
            user=self.to_user(cdr),
            connector_id=connector_id,
            session_start=cdr.session_start,
            session_end=cdr.session_end,
            charging_start=charging_start,
            charging_end=charging_end,
            energy_consumed=energy,
            partner_identifier=partner_id,
        )

        if self.hooks.cdr_to_session is not None:
            session = self.hooks.cdr_to_session(cdr, session)
        return session
