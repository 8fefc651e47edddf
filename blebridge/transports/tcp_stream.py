"""Outbound TCP bridge that drains the sample queue on a fixed cadence."""

from __future__ import annotations

import logging
import socket
import threading
from collections.abc import Callable

from blebridge.core.model import BridgeConfig, ConnectionState
from blebridge.core.sample_queue import SampleQueue

LOGGER = logging.getLogger(__name__)

SocketFactory = Callable[..., socket.socket]


class PeriodicTask:
    """Runs ``callback`` every ``interval_s`` on a worker thread until cancelled.

    The callback returns ``False`` to stop the task. Cancellation is observed
    between ticks, never in the middle of one.
    """

    def __init__(
        self,
        interval_s: float,
        callback: Callable[[], bool],
        *,
        start_delay_s: float = 0.0,
        name: str = "periodic-task",
    ) -> None:
        self.interval_s = interval_s
        self.start_delay_s = start_delay_s
        self._callback = callback
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = None) -> None:
        if threading.current_thread() is self._thread or not self._thread.is_alive():
            return
        self._thread.join(timeout)

    def _run(self) -> None:
        if self.start_delay_s > 0 and self._stop.wait(self.start_delay_s):
            return
        while not self._stop.is_set():
            try:
                keep_going = self._callback()
            except Exception:
                LOGGER.exception("periodic task %s failed", self._thread.name)
                keep_going = False
            if not keep_going:
                break
            if self._stop.wait(self.interval_s):
                break
        self._stop.set()


class StreamBridge:
    """Owns one outbound TCP connection and the drain task feeding it.

    ``connect`` opens the socket and arms the drain task; each tick sends at
    most one queued sample as a decimal line. ``close`` is idempotent and
    leaves the bridge ready for a new ``connect``.
    """

    def __init__(
        self,
        queue: SampleQueue,
        config: BridgeConfig | None = None,
        *,
        socket_factory: SocketFactory = socket.create_connection,
    ) -> None:
        self.queue = queue
        self.config = config or BridgeConfig()
        self._socket_factory = socket_factory
        self._lock = threading.RLock()
        self._state = ConnectionState.DISCONNECTED
        self._socket: socket.socket | None = None
        self._task: PeriodicTask | None = None
        self._pending_close: threading.Timer | None = None
        self._close_generation = 0
        self._desired = False
        self._closed = threading.Event()
        self._closed.set()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def connect(self, host: str | None = None, port: int | None = None) -> bool:
        host = host or self.config.host
        port = port or self.config.port
        if self._state is ConnectionState.CLOSING:
            self._closed.wait(self.config.close_grace_s + self.config.write_timeout_s)
        with self._lock:
            self._cancel_pending_close()
            if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
                LOGGER.debug("bridge already connected to %s:%s", host, port)
                self._desired = True
                return True

            self._state = ConnectionState.CONNECTING
            try:
                sock = self._socket_factory((host, port), timeout=self.config.connect_timeout_s)
                sock.settimeout(self.config.write_timeout_s)
            except OSError as exc:
                LOGGER.warning("TCP connect to %s:%s failed: %s", host, port, exc)
                self._state = ConnectionState.DISCONNECTED
                return False

            self._socket = sock
            self._desired = True
            self._state = ConnectionState.CONNECTED
            self._closed.clear()
            self._task = PeriodicTask(
                self.config.period_ms / 1000.0,
                self.drain_tick,
                start_delay_s=self.config.start_delay_s,
                name=f"drain-{host}:{port}",
            )
            self._task.start()
            LOGGER.info("streaming samples to %s:%s every %sms", host, port, self.config.period_ms)
            return True

    def drain_tick(self) -> bool:
        """Send at most one queued sample; return ``False`` once the connection is no longer wanted."""
        sample = self.queue.try_dequeue()
        if sample is not None:
            self.send(f"{sample}\n")
        return self._desired

    def send(self, text: str) -> bool:
        with self._lock:
            sock = self._socket
            if sock is None:
                LOGGER.debug("dropping write, bridge not connected")
                return False
            try:
                sock.sendall(text.encode("ascii"))
            except OSError as exc:
                LOGGER.warning("TCP write failed: %s", exc)
                return False
            return True

    def schedule_close(self, delay_s: float | None = None) -> None:
        """Close after ``delay_s`` so the drain task can flush in-flight samples."""
        delay = self.config.close_grace_s if delay_s is None else delay_s
        with self._lock:
            if self._state is ConnectionState.DISCONNECTED:
                return
            self._cancel_pending_close()
            timer = threading.Timer(delay, self._close_if_current, args=(self._close_generation,))
            timer.daemon = True
            self._pending_close = timer
            timer.start()

    def close(self) -> None:
        with self._lock:
            self._cancel_pending_close()
            if not self._begin_close():
                return
        self._finish_close()

    def wait_closed(self, timeout: float | None = None) -> bool:
        return self._closed.wait(timeout)

    def _close_if_current(self, generation: int) -> None:
        # A connect() between the timer firing and this point supersedes the close.
        with self._lock:
            if generation != self._close_generation:
                LOGGER.debug("scheduled close superseded")
                return
            self._pending_close = None
            if not self._begin_close():
                return
        self._finish_close()

    def _begin_close(self) -> bool:
        """Move to CLOSING under the lock; ``False`` when there is nothing to tear down."""
        if self._state is ConnectionState.DISCONNECTED:
            dropped = self.queue.clear()
            if dropped:
                LOGGER.debug("dropped %d samples queued while disconnected", dropped)
            return False
        if self._state is ConnectionState.CLOSING:
            return False
        self._state = ConnectionState.CLOSING
        self._desired = False
        return True

    def _finish_close(self) -> None:
        with self._lock:
            task, self._task = self._task, None

        if task is not None:
            task.cancel()
            task.join(timeout=max(1.0, self.config.write_timeout_s * 2))

        with self._lock:
            sock, self._socket = self._socket, None
            if sock is not None:
                try:
                    sock.shutdown(socket.SHUT_RDWR)
                except OSError:
                    pass
                sock.close()
            self.queue.clear()
            self._state = ConnectionState.DISCONNECTED
            self._closed.set()
        LOGGER.info("stream bridge closed")

    def _cancel_pending_close(self) -> None:
        self._close_generation += 1
        timer, self._pending_close = self._pending_close, None
        if timer is not None and timer is not threading.current_thread():
            timer.cancel()
