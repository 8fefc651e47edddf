"""Notify/Indicate subscription state machine for one characteristic."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from blebridge.core.errors import AttributeAuthorizationError
from blebridge.core.model import GattStatus, SubscriptionState
from blebridge.transports.base import AttributeLink

LOGGER = logging.getLogger(__name__)

StateListener = Callable[[SubscriptionState, SubscriptionState], None]


class NotificationSubscription:
    """Tracks whether the remote pushes value changes, and how.

    Every operation is idempotent and returns a bool; a failed descriptor
    write leaves the state as it was before the call. Listeners receive
    ``(old_state, new_state)`` after each committed transition.
    """

    def __init__(self, link: AttributeLink, *, name: str = "characteristic") -> None:
        self._link = link
        self._name = name
        self._state = SubscriptionState.OFF
        self._lock = threading.Lock()
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def is_notify_set(self) -> bool:
        return self._state is SubscriptionState.NOTIFY

    @property
    def is_indicate_set(self) -> bool:
        return self._state is SubscriptionState.INDICATE

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def enable_notify(self) -> bool:
        return self._enable(SubscriptionState.NOTIFY)

    def disable_notify(self) -> bool:
        return self._disable(SubscriptionState.NOTIFY)

    def enable_indicate(self) -> bool:
        return self._enable(SubscriptionState.INDICATE)

    def disable_indicate(self) -> bool:
        return self._disable(SubscriptionState.INDICATE)

    def _enable(self, target: SubscriptionState) -> bool:
        with self._lock:
            if self._state is target:
                return True
            previous = self._state
            if not self._write(target, action=f"registering for {target.value}"):
                return False
            self._state = target
        self._emit(previous, target)
        return True

    def _disable(self, current: SubscriptionState) -> bool:
        with self._lock:
            if self._state is not current:
                return True
            if not self._write(SubscriptionState.OFF, action=f"un-registering for {current.value}"):
                return False
            self._state = SubscriptionState.OFF
        self._emit(current, SubscriptionState.OFF)
        return True

    def _write(self, state: SubscriptionState, *, action: str) -> bool:
        try:
            status = self._link.write_client_configuration(state)
        except AttributeAuthorizationError as exc:
            # Remote advertised a delivery mode it does not actually support.
            LOGGER.info("%s: unauthorized while %s: %s", self._name, action, exc)
            return False
        except Exception as exc:
            LOGGER.warning("%s: error %s: %s", self._name, action, exc)
            return False

        if status is GattStatus.SUCCESS:
            LOGGER.debug("%s: success %s", self._name, action)
            return True
        LOGGER.warning("%s: error %s: %s", self._name, action, status.value)
        return False

    def _emit(self, old: SubscriptionState, new: SubscriptionState) -> None:
        for listener in list(self._listeners):
            try:
                listener(old, new)
            except Exception:
                LOGGER.exception("%s: subscription listener failed", self._name)
