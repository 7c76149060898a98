"""Background sender that keeps the Wi-Fi radio out of power-save polling.

When the radio enters 802.11 power save, the access point buffers inbound packets until
the client wakes and polls, which shows up as jitter on the game's strict 600ms tick.
A steady stream of tiny outbound datagrams keeps the firmware treating the link as busy.
"""
from __future__ import annotations

import logging
import socket
import threading
import time
from typing import Callable, Optional, Tuple

KEEPALIVE_PAYLOAD = b"\x00"
MIN_INTERVAL_MS = 10
MAX_INTERVAL_MS = 200
DEFAULT_INTERVAL_MS = 50
DEFAULT_PORT = 9
SEND_TIMEOUT_SECONDS = 0.1
SHUTDOWN_GRACE_SECONDS = 2.0
ERROR_LOG_EVERY = 100

Destination = Tuple[str, int]
SocketFactory = Callable[[], socket.socket]


def clamp_interval(ms: int) -> int:
    return max(MIN_INTERVAL_MS, min(MAX_INTERVAL_MS, int(ms)))


def _default_socket_factory() -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.settimeout(SEND_TIMEOUT_SECONDS)
    return sock


class KeepaliveScheduler:
    """Sends a one-byte UDP datagram to the target every ``interval_ms``."""

    def __init__(
        self,
        *,
        socket_factory: SocketFactory = _default_socket_factory,
        logger: Optional[logging.Logger] = None,
        shutdown_grace: float = SHUTDOWN_GRACE_SECONDS,
    ) -> None:
        self._socket_factory = socket_factory
        self._logger = logger or logging.getLogger("TickFixer.keepalive")
        self._shutdown_grace = shutdown_grace

        self._destination: Optional[Destination] = None
        self._port = DEFAULT_PORT
        self._interval_ms = DEFAULT_INTERVAL_MS
        self._paused = False
        self._running = False

        self._lifecycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._socket: Optional[socket.socket] = None

        self.total_sent = 0
        self.total_errors = 0

    # Configuration ---------------------------------------------------------

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def destination(self) -> Optional[Destination]:
        return self._destination

    def configure(self, target: Optional[str], port: int, interval_ms: int) -> None:
        if self._running:
            self._logger.debug("Ignoring configure() while keepalive is running")
            return
        self._port = int(port)
        self._destination = (target, self._port) if target else None
        self._interval_ms = clamp_interval(interval_ms)

    def set_interval(self, ms: int) -> None:
        interval = clamp_interval(ms)
        if interval == self._interval_ms:
            return
        self._interval_ms = interval
        if self._running:
            self._wake_event.set()
            self._logger.debug("Keepalive rescheduled at %dms", interval)

    def set_target(self, address: Optional[str], port: int) -> None:
        self._port = int(port)
        # Single reference swap; the sender reads it once per fire.
        self._destination = (address, self._port) if address else None

    def set_port(self, port: int) -> None:
        current = self._destination
        self.set_target(current[0] if current else None, port)

    def pause(self) -> None:
        self._paused = True

    def unpause(self) -> None:
        self._paused = False

    def is_paused(self) -> bool:
        return self._paused

    def is_running(self) -> bool:
        return self._running

    # Lifecycle -------------------------------------------------------------

    def start(self) -> bool:
        """Open the socket and begin firing; False if the socket cannot be created."""
        with self._lifecycle_lock:
            if self._running:
                return True
            try:
                self._socket = self._socket_factory()
            except OSError as exc:
                self._logger.error("Failed to create keepalive socket: %s", exc)
                self._socket = None
                return False
            # Per-run events; a thread left behind by a timed-out shutdown stays stopped.
            stop_event = threading.Event()
            wake_event = threading.Event()
            self._stop_event = stop_event
            self._wake_event = wake_event
            self._running = True
            self._thread = threading.Thread(
                target=self._run,
                args=(self._socket, stop_event, wake_event),
                name="tickfixer-keepalive",
                daemon=True,
            )
            self._thread.start()
        destination = self._destination
        self._logger.info(
            "Wi-Fi keepalive started (interval=%dms, target=%s:%d)",
            self._interval_ms,
            destination[0] if destination else "none",
            self._port,
        )
        return True

    def shutdown(self) -> None:
        with self._lifecycle_lock:
            if not self._running:
                return
            self._running = False
            self._stop_event.set()
            self._wake_event.set()
            thread = self._thread
            self._thread = None
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=self._shutdown_grace)
                if thread.is_alive():
                    self._logger.warning(
                        "Keepalive thread did not exit within %.1fs; closing socket", self._shutdown_grace
                    )
            sock = self._socket
            self._socket = None
            if sock is not None:
                try:
                    sock.close()
                except OSError:
                    pass
        self._logger.info(
            "Wi-Fi keepalive stopped (sent %d packets, %d errors)", self.total_sent, self.total_errors
        )

    # Internal helpers -----------------------------------------------------

    def _run(self, sock: socket.socket, stop_event: threading.Event, wake_event: threading.Event) -> None:
        next_fire = time.monotonic()
        while not stop_event.is_set():
            delay = next_fire - time.monotonic()
            if delay > 0:
                if wake_event.wait(delay):
                    wake_event.clear()
                    # Interval changed (or stopping): restart the fixed-rate schedule now.
                    next_fire = time.monotonic()
                    continue
            if stop_event.is_set():
                break
            self._send_keepalive(sock, stop_event)
            next_fire += self._interval_ms / 1000.0
            now = time.monotonic()
            if next_fire < now:
                next_fire = now

    def _send_keepalive(
        self,
        sock: Optional[socket.socket] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        if self._paused:
            return
        destination = self._destination
        if destination is None:
            return
        if sock is None:
            sock = self._socket
        if stop_event is None:
            stop_event = self._stop_event
        if sock is None or stop_event.is_set():
            return
        try:
            sock.sendto(KEEPALIVE_PAYLOAD, destination)
        except OSError as exc:
            self.total_errors += 1
            if self.total_errors % ERROR_LOG_EVERY == 1:
                self._logger.debug("Keepalive send error (total errors: %d): %s", self.total_errors, exc)
            return
        self.total_sent += 1
