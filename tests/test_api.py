from __future__ import annotations

from typing import Any

import pytest

from blebridge import api
from blebridge.api import (
    AppConfig,
    Client,
    DisplayType,
    GattStatus,
    PresentationFormat,
    SubscriptionState,
    TransportConnectError,
)
from blebridge.core.model import CharacteristicConfig


class FakeLink:
    def __init__(self, fmt=None) -> None:
        self.fmt = fmt
        self.handler = None

    def read(self, *, cached: bool = True):
        raise AssertionError("not expected")

    def write_client_configuration(self, state: SubscriptionState) -> GattStatus:
        return GattStatus.SUCCESS

    def presentation_format(self):
        return self.fmt

    def set_value_handler(self, handler) -> None:
        self.handler = handler


def test_public_client_decode() -> None:
    client = Client(config=AppConfig())
    result = client.decode(b"AB", hint=PresentationFormat.UTF8S)
    assert result.display_type is DisplayType.UTF8
    assert result.value == "AB"


def test_observe_uses_characteristic_config() -> None:
    config = AppConfig(
        characteristics={
            "00004a37-0000-1000-8000-00805f9b34fb": CharacteristicConfig(display_type=DisplayType.STREAM)
        }
    )
    client = Client(config=config)
    characteristic = client.observe(FakeLink(), uuid="4a37", name="Telemetry")

    assert characteristic.uuid == "00004a37-0000-1000-8000-00805f9b34fb"
    assert characteristic.display_type is DisplayType.STREAM


def test_observe_falls_back_to_advertised_format() -> None:
    client = Client(config=AppConfig())
    link = FakeLink(fmt=PresentationFormat.UINT16)
    characteristic = client.observe(link, uuid="2a19")

    link.handler(b"\x2a\x00")
    assert characteristic.display_type is DisplayType.DECIMAL
    assert characteristic.value == "42"


def test_client_loads_config_from_xdg(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    client = Client()
    assert client.config.bridge.port == 12345
    assert client.load_warnings == ()


def test_open_characteristic_connects_and_observes(monkeypatch) -> None:
    links: list[Any] = []

    class FakeBleLink(FakeLink):
        def __init__(self, address: str, char_uuid: str, *, timeout_s: float = 10.0) -> None:
            super().__init__(fmt=PresentationFormat.UTF8S)
            self.address = address
            self.char_uuid = char_uuid
            self.connected = False
            links.append(self)

        def connect(self) -> None:
            self.connected = True

    monkeypatch.setattr(api, "BleakAttributeLink", FakeBleLink)
    characteristic = Client(config=AppConfig()).open_characteristic("AA:BB:CC:11:22:33", "2a00", name="Name")

    assert links[0].connected is True
    assert links[0].char_uuid == "00002a00-0000-1000-8000-00805f9b34fb"
    assert characteristic.link is links[0]
    links[0].handler(b"AB")
    assert characteristic.value == "AB"


def test_open_characteristic_releases_link_on_connect_failure(monkeypatch) -> None:
    links: list[Any] = []

    class FailingBleLink(FakeLink):
        def __init__(self, address: str, char_uuid: str, *, timeout_s: float = 10.0) -> None:
            super().__init__()
            self.disconnected = False
            links.append(self)

        def connect(self) -> None:
            raise TransportConnectError("BLE connect failed")

        def disconnect(self) -> None:
            self.disconnected = True

    monkeypatch.setattr(api, "BleakAttributeLink", FailingBleLink)
    with pytest.raises(TransportConnectError):
        Client(config=AppConfig()).open_characteristic("AA:BB:CC:11:22:33", "2a19")
    assert links[0].disconnected is True
