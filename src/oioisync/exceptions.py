"""Exception types raised by the OIOI protocol layer."""


class OIOIError(Exception):
    """Base class for all oioisync errors."""


class MalformedMessage(OIOIError):
    """A wire object is missing a required property or has the wrong shape."""

    def __init__(self, property_name: str, message: str | None = None):
        self.property_name = property_name
        super().__init__(message or f"Invalid or missing JSON property '{property_name}'")


class UnknownValueError(OIOIError, ValueError):
    """An Unknown/Unspecified enum member was about to be put on the wire."""
