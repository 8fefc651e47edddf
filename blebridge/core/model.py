"""Core data models used across decoder, service, transports, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum


class DisplayType(str, Enum):
    UNSET = "unset"
    BOOL = "bool"
    DECIMAL = "decimal"
    HEX = "hex"
    UTF8 = "utf8"
    UTF16 = "utf16"
    STREAM = "stream"
    UNSUPPORTED = "unsupported"


class PresentationFormat(IntEnum):
    """Bluetooth SIG characteristic presentation format codes (descriptor 0x2904)."""

    BOOLEAN = 0x01
    BIT2 = 0x02
    NIBBLE = 0x03
    UINT8 = 0x04
    UINT12 = 0x05
    UINT16 = 0x06
    UINT24 = 0x07
    UINT32 = 0x08
    UINT48 = 0x09
    UINT64 = 0x0A
    UINT128 = 0x0B
    SINT8 = 0x0C
    SINT12 = 0x0D
    SINT16 = 0x0E
    SINT24 = 0x0F
    SINT32 = 0x10
    SINT48 = 0x11
    SINT64 = 0x12
    SINT128 = 0x13
    FLOAT32 = 0x14
    FLOAT64 = 0x15
    SFLOAT = 0x16
    FLOAT = 0x17
    DUINT16 = 0x18
    UTF8S = 0x19
    UTF16S = 0x1A
    STRUCT = 0x1B

    @classmethod
    def from_name(cls, name: str) -> PresentationFormat:
        return cls[name.strip().upper()]


class GattStatus(str, Enum):
    SUCCESS = "success"
    PROTOCOL_ERROR = "protocol_error"
    UNREACHABLE = "unreachable"


class SubscriptionState(str, Enum):
    OFF = "off"
    NOTIFY = "notify"
    INDICATE = "indicate"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"


@dataclass(frozen=True)
class DecodeResult:
    display_type: DisplayType
    value: str
    samples: tuple[int, ...] = ()


@dataclass(frozen=True)
class ReadResult:
    status: GattStatus
    value: bytes | None = None
    protocol_error: int | None = None


@dataclass(frozen=True)
class BridgeConfig:
    host: str = "127.0.0.1"
    port: int = 12345
    period_ms: float = 8.0
    start_delay_s: float = 2.0
    close_grace_s: float = 0.5
    connect_timeout_s: float = 5.0
    write_timeout_s: float = 2.0
    queue_warn_threshold: int = 10000


@dataclass(frozen=True)
class CharacteristicConfig:
    presentation_hint: PresentationFormat | None = None
    display_type: DisplayType = DisplayType.UNSET


@dataclass(frozen=True)
class AppConfig:
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    use_cached_reads: bool = True
    characteristics: dict[str, CharacteristicConfig] = field(default_factory=dict)

    def characteristic(self, uuid: str) -> CharacteristicConfig:
        return self.characteristics.get(uuid.strip().lower(), CharacteristicConfig())
