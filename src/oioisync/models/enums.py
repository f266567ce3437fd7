"""Closed enumerations of the OIOI wire protocol."""

from enum import Enum

from ..exceptions import UnknownValueError


class _WireEnum(str, Enum):
    """
    String enum with a designated fallback member.

    Parsing is total: any text that is not a known wire value maps to the
    fallback. Serializing the fallback is a caller error.
    """

    @classmethod
    def _fallback(cls) -> "_WireEnum":
        raise NotImplementedError

    @classmethod
    def parse(cls, text: str | None):
        if not text:
            return cls._fallback()
        lowered = text.strip().lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        return cls._fallback()

    @property
    def is_known(self) -> bool:
        return self is not self._fallback()

    def as_text(self) -> str:
        if not self.is_known:
            raise UnknownValueError(
                f"{self.__class__.__name__}.{self.name} must not be sent to the partner"
            )
        return self.value


class ConnectorTypes(_WireEnum):
    """Plug types known to the partner."""

    UNSPECIFIED = "UNKNOWN"
    TYPE1 = "Type1"
    TYPE2 = "Type2"
    TYPE3 = "Type3"
    SCHUKO = "Schuko"
    CHADEMO = "Chademo"
    COMBO = "Combo"
    TESLA = "Tesla"
    CEE_BLUE = "CeeBlue"
    CEE_RED = "CeeRed"
    CEE_PLUS = "CeePlus"
    CEE_2_POLES = "Cee2Poles"
    THREE_PIN_SQUARE = "ThreePinSquare"
    SCAME = "Scame"
    NEMA5 = "Nema5"
    T13 = "T13"
    T15 = "T15"
    T23 = "T23"
    MARECHAL = "Marechal"
    TYPE_E = "TypeE"

    @classmethod
    def _fallback(cls):
        return cls.UNSPECIFIED


class ConnectorStatusTypes(_WireEnum):
    """Connector availability as reported to the partner."""

    UNKNOWN = "Unknown"
    AVAILABLE = "Available"
    OCCUPIED = "Occupied"
    OFFLINE = "Offline"
    RESERVED = "Reserved"

    @classmethod
    def _fallback(cls):
        return cls.UNKNOWN


class IdentifierTypes(_WireEnum):
    """Kind of user identification attached to a session."""

    UNKNOWN = "unknown"
    EVCO_ID = "evco-id"
    RFID = "rfid"
    USERNAME = "username"
    TOKEN = "token"

    @classmethod
    def _fallback(cls):
        return cls.UNKNOWN
