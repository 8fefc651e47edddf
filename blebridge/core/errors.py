"""Domain-specific errors for blebridge."""


class BlebridgeError(Exception):
    """Base error for blebridge."""


class ConfigValidationError(BlebridgeError):
    """Raised when a configuration file does not conform to schema or semantics."""


class ConfigLoadError(BlebridgeError):
    """Raised when reading configuration sources fails."""


class AttributeAccessError(BlebridgeError):
    """Base error for faults raised by the remote attribute link."""


class AttributeAuthorizationError(AttributeAccessError):
    """Raised when a descriptor write is rejected as unauthorized."""


class TransportError(BlebridgeError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on BLE or TCP connect failures."""


class TransportTimeoutError(TransportError):
    """Raised when a link operation times out."""
