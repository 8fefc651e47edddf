"""BLE GATT attribute link implementation backed by bleak."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import re
import threading
from collections.abc import Coroutine
from typing import Any

from bleak import BleakClient
from bleak.exc import BleakError

from blebridge.core.errors import (
    AttributeAuthorizationError,
    TransportConnectError,
    TransportTimeoutError,
)
from blebridge.core.model import GattStatus, PresentationFormat, ReadResult, SubscriptionState
from blebridge.transports.base import ValueHandler

PRESENTATION_FORMAT_DESCRIPTOR = "00002904-0000-1000-8000-00805f9b34fb"
_ATT_CODE_RE = re.compile(r"0x([0-9a-f]{2})\b", re.IGNORECASE)
_AUTH_MARKERS = ("not authorized", "notauthorized", "notpermitted", "not permitted", "access denied", "unauthorized")
LOGGER = logging.getLogger(__name__)


def _att_error_code(exc: BaseException) -> int | None:
    match = _ATT_CODE_RE.search(str(exc))
    return int(match.group(1), 16) if match else None


def _is_authorization_failure(exc: BaseException) -> bool:
    text = str(exc).lower()
    return any(marker in text for marker in _AUTH_MARKERS)


class BleakAttributeLink:
    """One characteristic on one peripheral, driven from synchronous code.

    bleak is asyncio-only, so the client lives on a private event loop thread
    and every call blocks until its coroutine completes or ``timeout_s`` passes.
    bleak chooses Notify or Indicate itself from the characteristic
    properties; both enable requests map to ``start_notify``.
    """

    def __init__(self, address: str, char_uuid: str, *, timeout_s: float = 10.0) -> None:
        self.address = address
        self.char_uuid = char_uuid
        self.timeout_s = timeout_s
        self._loop = asyncio.new_event_loop()
        self._thread: threading.Thread | None = None
        self._client: BleakClient | None = None
        self._handler: ValueHandler | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    def connect(self) -> None:
        if self._thread is None:
            self._thread = threading.Thread(
                target=self._loop.run_forever,
                name=f"bleak-{self.address}",
                daemon=True,
            )
            self._thread.start()

        client = BleakClient(self.address, timeout=self.timeout_s)
        try:
            self._run(client.connect())
        except TransportTimeoutError:
            raise
        except (BleakError, OSError) as exc:
            raise TransportConnectError(f"BLE connect failed for {self.address}: {exc}") from exc
        if not client.is_connected:
            raise TransportConnectError(f"BLE connect failed for {self.address}")
        self._client = client
        LOGGER.info("connected to %s", self.address)

    def disconnect(self) -> None:
        client, self._client = self._client, None
        try:
            if client is not None:
                self._run(client.disconnect())
        except (BleakError, TransportTimeoutError) as exc:
            LOGGER.warning("BLE disconnect from %s failed: %s", self.address, exc)
        finally:
            if self._thread is not None:
                self._loop.call_soon_threadsafe(self._loop.stop)
                self._thread.join(timeout=self.timeout_s)
                self._thread = None

    def read(self, *, cached: bool = True) -> ReadResult:
        # bleak has no cache-mode switch; reads always reach the device.
        if not self.is_connected:
            return ReadResult(status=GattStatus.UNREACHABLE)
        try:
            data = self._run(self._client.read_gatt_char(self.char_uuid))
        except BleakError as exc:
            return ReadResult(status=GattStatus.PROTOCOL_ERROR, protocol_error=_att_error_code(exc))
        except TransportTimeoutError:
            return ReadResult(status=GattStatus.UNREACHABLE)
        return ReadResult(status=GattStatus.SUCCESS, value=bytes(data))

    def write_client_configuration(self, state: SubscriptionState) -> GattStatus:
        if not self.is_connected:
            return GattStatus.UNREACHABLE
        try:
            if state is SubscriptionState.OFF:
                self._run(self._client.stop_notify(self.char_uuid))
            else:
                self._run(self._client.start_notify(self.char_uuid, self._dispatch))
        except BleakError as exc:
            if _is_authorization_failure(exc):
                raise AttributeAuthorizationError(str(exc)) from exc
            LOGGER.debug("configuration write rejected: %s", exc)
            return GattStatus.PROTOCOL_ERROR
        except TransportTimeoutError:
            return GattStatus.UNREACHABLE
        return GattStatus.SUCCESS

    def presentation_format(self) -> PresentationFormat | int | None:
        if not self.is_connected:
            return None
        characteristic = self._client.services.get_characteristic(self.char_uuid)
        if characteristic is None:
            return None
        descriptor = characteristic.get_descriptor(PRESENTATION_FORMAT_DESCRIPTOR)
        if descriptor is None:
            return None
        try:
            data = self._run(self._client.read_gatt_descriptor(descriptor.handle))
        except (BleakError, TransportTimeoutError) as exc:
            LOGGER.debug("could not read presentation format of %s: %s", self.char_uuid, exc)
            return None
        if not data:
            return None
        try:
            return PresentationFormat(data[0])
        except ValueError:
            return data[0]

    def set_value_handler(self, handler: ValueHandler | None) -> None:
        self._handler = handler

    def _dispatch(self, _sender: Any, data: bytearray) -> None:
        handler = self._handler
        if handler is not None:
            handler(bytes(data))

    def _run(self, coro: Coroutine[Any, Any, Any]) -> Any:
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout=self.timeout_s)
        except concurrent.futures.TimeoutError as exc:
            future.cancel()
            raise TransportTimeoutError(
                f"BLE operation on {self.address} timed out after {self.timeout_s}s"
            ) from exc
