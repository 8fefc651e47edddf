"""Service layer used by the CLI and the public API."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from blebridge.core.decoder import NULL_VALUE, SampleDecoder, protocol_error_string
from blebridge.core.model import (
    AppConfig,
    ConnectionState,
    DisplayType,
    GattStatus,
    PresentationFormat,
    SubscriptionState,
)
from blebridge.core.sample_queue import SampleQueue
from blebridge.core.subscription import NotificationSubscription
from blebridge.transports.base import AttributeLink
from blebridge.transports.tcp_stream import StreamBridge

LOGGER = logging.getLogger(__name__)

Observer = Callable[[str, Any], None]


class ObservedCharacteristic:
    """One remote characteristic, its decoded value, and its outbound stream.

    Value-changed payloads are decoded under a lock so callbacks from the
    link are processed one at a time. In ``STREAM`` mode the decoded samples
    are queued for the bridge, which drains them on its own thread.
    """

    def __init__(
        self,
        link: AttributeLink,
        *,
        name: str,
        uuid: str = "",
        config: AppConfig | None = None,
        hint: PresentationFormat | int | None = None,
        display_type: DisplayType = DisplayType.UNSET,
        decoder: SampleDecoder | None = None,
        bridge: StreamBridge | None = None,
    ) -> None:
        self.link = link
        self.name = name
        self.uuid = uuid
        self.config = config or AppConfig()
        self.hint = hint
        self.decoder = decoder or SampleDecoder()
        self.queue = bridge.queue if bridge else SampleQueue(
            warn_threshold=self.config.bridge.queue_warn_threshold
        )
        self.bridge = bridge or StreamBridge(self.queue, self.config.bridge)
        self.subscription = NotificationSubscription(link, name=name)
        self.subscription.add_listener(self._on_subscription_changed)

        self._display_type = display_type
        self._value = NULL_VALUE
        self._raw: bytes | None = None
        self._decode_lock = threading.Lock()
        self._observers: list[Observer] = []
        self._closed = False

        self.link.set_value_handler(self.on_value_changed)

    @property
    def value(self) -> str:
        return self._value

    @property
    def display_type(self) -> DisplayType:
        return self._display_type

    @property
    def subscription_state(self) -> SubscriptionState:
        return self.subscription.state

    @property
    def connection_state(self) -> ConnectionState:
        return self.bridge.state

    def add_observer(self, observer: Observer) -> None:
        self._observers.append(observer)

    def set_display_type(self, display_type: DisplayType) -> None:
        """Select how values are rendered; ``UNSET`` is ignored."""
        if display_type is DisplayType.UNSET:
            return
        with self._decode_lock:
            if display_type is self._display_type:
                return
            self._set_display_type(display_type)
            self._render()

    def reevaluate_display_type(self) -> DisplayType:
        """Drop the resolved display type and infer it again from the last value."""
        with self._decode_lock:
            self._display_type = DisplayType.UNSET
            self._render()
            return self._display_type

    def on_value_changed(self, data: bytes | bytearray | None) -> None:
        with self._decode_lock:
            self._raw = bytes(data) if data else None
            self._render(enqueue=True)

    def read_value(self) -> str:
        try:
            result = self.link.read(cached=self.config.use_cached_reads)
        except Exception as exc:
            LOGGER.warning("%s: read failed: %s", self.name, exc)
            self._set_value(f"Unknown (exception: {exc})")
            return self._value

        if result.status is GattStatus.SUCCESS:
            self.on_value_changed(result.value)
        elif result.status is GattStatus.PROTOCOL_ERROR:
            self._set_value(protocol_error_string(result.protocol_error))
        else:
            self._set_value("Unreachable")
        return self._value

    def enable_notify(self) -> bool:
        return self.subscription.enable_notify()

    def disable_notify(self) -> bool:
        return self.subscription.disable_notify()

    def enable_indicate(self) -> bool:
        return self.subscription.enable_indicate()

    def disable_indicate(self) -> bool:
        return self.subscription.disable_indicate()

    def close(self) -> None:
        """Unsubscribe, stop the drain task, and close the socket, in that order."""
        if self._closed:
            return
        self._closed = True
        self.subscription.disable_indicate()
        self.subscription.disable_notify()
        self.link.set_value_handler(None)
        self.bridge.close()

    def _render(self, *, enqueue: bool = False) -> None:
        raw = self._raw
        if not raw:
            self._set_value(NULL_VALUE)
            return

        result = self.decoder.decode(raw, self.hint, self._display_type, self.name)
        if result.display_type is not self._display_type:
            self._set_display_type(result.display_type)
        if enqueue and result.samples:
            self.queue.extend(result.samples)
        self._set_value(result.value)

    def _set_display_type(self, display_type: DisplayType) -> None:
        self._display_type = display_type
        LOGGER.debug("%s - DisplayType set: %s", self.name, display_type.value)
        self._notify("display_type", display_type)

    def _set_value(self, value: str) -> None:
        if value == self._value:
            return
        self._value = value
        self._notify("value", value)

    def _on_subscription_changed(self, old: SubscriptionState, new: SubscriptionState) -> None:
        self._notify("subscription_state", new)
        if new is SubscriptionState.NOTIFY:
            self.bridge.connect()
        elif old is SubscriptionState.NOTIFY:
            self.bridge.schedule_close()

    def _notify(self, prop: str, value: Any) -> None:
        for observer in list(self._observers):
            try:
                observer(prop, value)
            except Exception:
                LOGGER.exception("%s: observer for %s failed", self.name, prop)
