"""Stable public API for building tooling on top of blebridge.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from pathlib import Path

from blebridge.core.config_loader import load_config, normalize_uuid
from blebridge.core.decoder import SampleDecoder
from blebridge.core.errors import (
    AttributeAccessError,
    AttributeAuthorizationError,
    BlebridgeError,
    ConfigLoadError,
    ConfigValidationError,
    TransportConnectError,
    TransportError,
    TransportTimeoutError,
)
from blebridge.core.model import (
    AppConfig,
    BridgeConfig,
    CharacteristicConfig,
    ConnectionState,
    DecodeResult,
    DisplayType,
    GattStatus,
    PresentationFormat,
    ReadResult,
    SubscriptionState,
)
from blebridge.core.sample_queue import SampleQueue
from blebridge.core.service import ObservedCharacteristic
from blebridge.transports.base import AttributeLink
from blebridge.transports.ble_gatt import BleakAttributeLink
from blebridge.transports.tcp_stream import StreamBridge

__all__ = [
    "BlebridgeError",
    "ConfigLoadError",
    "ConfigValidationError",
    "AttributeAccessError",
    "AttributeAuthorizationError",
    "TransportError",
    "TransportConnectError",
    "TransportTimeoutError",
    "AppConfig",
    "BridgeConfig",
    "CharacteristicConfig",
    "ConnectionState",
    "DecodeResult",
    "DisplayType",
    "GattStatus",
    "PresentationFormat",
    "ReadResult",
    "SubscriptionState",
    "AttributeLink",
    "BleakAttributeLink",
    "ObservedCharacteristic",
    "SampleDecoder",
    "SampleQueue",
    "StreamBridge",
    "Client",
]


class Client:
    """Public client for decoding values and bridging characteristics.

    A `Client` resolves configuration once and hands out
    `ObservedCharacteristic` instances wired to it, either around a
    caller-supplied `AttributeLink` or a bleak connection it opens itself.
    """

    def __init__(
        self,
        *,
        config: AppConfig | None = None,
        config_path: Path | None = None,
    ) -> None:
        if config is not None:
            self._config = config
            self._warnings: tuple[str, ...] = ()
        else:
            loaded = load_config(config_path)
            self._config = loaded.config
            self._warnings = loaded.warnings
        self._decoder = SampleDecoder()

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._warnings

    def decode(
        self,
        raw: bytes | None,
        *,
        hint: PresentationFormat | int | None = None,
        name: str = "",
        display_type: DisplayType = DisplayType.UNSET,
    ) -> DecodeResult:
        return self._decoder.decode(raw, hint, display_type, name)

    def observe(
        self,
        link: AttributeLink,
        *,
        uuid: str,
        name: str | None = None,
        hint: PresentationFormat | int | None = None,
    ) -> ObservedCharacteristic:
        normalized = normalize_uuid(uuid, context="uuid")
        spec = self._config.characteristic(normalized)
        if hint is None:
            hint = spec.presentation_hint
        if hint is None:
            hint = link.presentation_format()
        return ObservedCharacteristic(
            link,
            name=name or normalized,
            uuid=normalized,
            config=self._config,
            hint=hint,
            display_type=spec.display_type,
        )

    def open_characteristic(
        self,
        address: str,
        uuid: str,
        *,
        name: str | None = None,
    ) -> ObservedCharacteristic:
        """Connect to ``address`` with bleak and observe characteristic ``uuid``.

        Closing the returned characteristic does not disconnect the link;
        call ``characteristic.link.disconnect()`` afterwards.
        """
        link = BleakAttributeLink(
            address,
            normalize_uuid(uuid, context="uuid"),
            timeout_s=self._config.bridge.connect_timeout_s,
        )
        try:
            link.connect()
        except BlebridgeError:
            link.disconnect()
            raise
        return self.observe(link, uuid=uuid, name=name)
