from __future__ import annotations

from bleak.exc import BleakError

from blebridge.core.model import GattStatus, SubscriptionState
from blebridge.transports.ble_gatt import BleakAttributeLink, _att_error_code, _is_authorization_failure


def test_att_error_code_is_parsed_from_bleak_message() -> None:
    assert _att_error_code(BleakError("Could not read characteristic: Protocol Error 0x02: Read Not Permitted")) == 2
    assert _att_error_code(BleakError("failed")) is None


def test_authorization_failures_are_recognised() -> None:
    assert _is_authorization_failure(BleakError("[org.bluez.Error.NotPermitted] Notify not permitted"))
    assert _is_authorization_failure(BleakError("Access Denied"))
    assert not _is_authorization_failure(BleakError("Protocol Error 0x0e: Unlikely Error"))


def test_disconnected_link_reports_unreachable() -> None:
    link = BleakAttributeLink("AA:BB:CC:11:22:33", "00002a19-0000-1000-8000-00805f9b34fb")

    assert link.is_connected is False
    assert link.read().status is GattStatus.UNREACHABLE
    assert link.write_client_configuration(SubscriptionState.NOTIFY) is GattStatus.UNREACHABLE
    assert link.presentation_format() is None


def test_value_handler_receives_bytes() -> None:
    link = BleakAttributeLink("AA:BB:CC:11:22:33", "00002a19-0000-1000-8000-00805f9b34fb")
    received: list[bytes] = []
    link.set_value_handler(received.append)

    link._dispatch(None, bytearray(b"\x01\x02"))
    link.set_value_handler(None)
    link._dispatch(None, bytearray(b"\x03"))

    assert received == [b"\x01\x02"]
