"""Provider-agnostic websocket connection manager."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from typing import Any, Optional

import websocket

from .prices import PING

READ_NEW_WS_MESSAGE = 0.05  # seconds between reads
MAX_CONNECTION_TIME = 23 * 3600.0  # must stay below 24h
DISABLED_PING_DURATION = 0.0
STARTING_RECONNECT_DURATION = 5.0
MAX_RETRY_MULTIPLIER = 25  # longest retry delay: 52m5s

_FIRST_CONNECT_DELAY = 0.001
_DIAL_TIMEOUT = 10.0
_READ_TIMEOUT = 1.0

MessageHandler = Callable[[int, Any], None]
Dialer = Callable[[str], Any]


def _default_dialer(url: str) -> Any:
    conn = websocket.create_connection(url, timeout=_DIAL_TIMEOUT)
    conn.settimeout(_READ_TIMEOUT)
    return conn


class WebsocketController:
    """Connects, subscribes, pings and relays messages, reconnecting on failure."""

    def __init__(
        self,
        provider_name: str,
        websocket_url: str,
        subscription_msgs: Optional[list[Any]],
        message_handler: MessageHandler,
        ping_duration: float = DISABLED_PING_DURATION,
        ping_message_type: int = websocket.ABNF.OPCODE_PING,
        logger: Optional[logging.Logger] = None,
        dialer: Optional[Dialer] = None,
    ) -> None:
        self.provider_name = provider_name
        self.websocket_url = websocket_url
        self.subscription_msgs: list[Any] = list(subscription_msgs or [])
        self.message_handler = message_handler
        self.ping_duration = ping_duration
        self.ping_message_type = ping_message_type
        self._logger = logger or logging.getLogger(__name__)
        self._dial = dialer or _default_dialer

        self._lock = threading.Lock()
        self._client: Any = None
        self._conn_closed = threading.Event()
        self._reconnect_counter = 0
        self._stopped = threading.Event()

    # -- public interface -------------------------------------------------

    def start(self) -> None:
        """Connect until successful, then start reading, pinging and subscribe."""
        delay = _FIRST_CONNECT_DELAY
        while not self._stopped.is_set():
            try:
                conn, closed = self._connect()
            except ConnectionError as exc:
                self._logger.error("%s", exc)
                if self._stopped.wait(delay):
                    return
                delay = self.retry_delay()
                continue

            threading.Thread(
                target=self._read_websocket, args=(conn, closed), daemon=True
            ).start()
            threading.Thread(
                target=self._ping_loop, args=(conn, closed), daemon=True
            ).start()

            try:
                self._subscribe(self.subscription_msgs)
            except ConnectionError as exc:
                self._logger.error("%s", exc)
                self._close_connection(conn, closed)
                continue
            return

    def retry_delay(self) -> float:
        """Advance the retry counter and return the next delay in seconds."""
        if self._reconnect_counter < MAX_RETRY_MULTIPLIER:
            self._reconnect_counter += 1
        return STARTING_RECONNECT_DURATION * self._reconnect_counter**2

    def add_subscription_msgs(self, msgs: list[Any]) -> None:
        """Send the messages now and keep them for future reconnects."""
        self._subscribe(msgs)
        self.subscription_msgs.extend(msgs)

    def send_json(self, msg: Any) -> None:
        """Send a message as JSON text; raises ConnectionError on failure."""
        with self._lock:
            if self._client is None:
                raise ConnectionError("unable to send JSON on a closed connection")
            self._logger.debug("sending websocket message: %r", msg)
            try:
                self._client.send(json.dumps(msg))
            except Exception as exc:
                raise ConnectionError(
                    f"failed to send WS message for {self.provider_name}: {exc}"
                ) from exc

    def read_success(self, message_type: int, data: bytes | str) -> None:
        """Relay a received message to the handler, skipping empty ones and pongs."""
        if not data:
            return
        # some exchanges answer pings with a plain text "pong"
        if data in (b"pong", "pong"):
            return
        self.message_handler(message_type, data)

    def close(self) -> None:
        """Close the current connection, if any."""
        with self._lock:
            if self._client is None:
                self._conn_closed.set()
                return
            self._close_locked(self._client, self._conn_closed)

    def stop(self) -> None:
        """Stop reconnecting and close the connection."""
        self._stopped.set()
        self.close()

    # -- internals ---------------------------------------------------------

    def _connect(self) -> tuple[Any, threading.Event]:
        with self._lock:
            self._logger.debug("connecting to websocket")
            try:
                conn = self._dial(self.websocket_url)
            except Exception as exc:
                raise ConnectionError(
                    f"failed to dial WS for {self.provider_name}: {exc}"
                ) from exc
            self._client = conn
            self._conn_closed = threading.Event()
            self._reconnect_counter = 0
            return conn, self._conn_closed

    def _subscribe(self, msgs: list[Any]) -> None:
        for msg in msgs:
            try:
                self.send_json(msg)
            except ConnectionError as exc:
                raise ConnectionError(
                    f"failed to send WS message for {self.provider_name}: {exc}"
                ) from exc

    def _close_locked(self, conn: Any, closed: threading.Event) -> None:
        closed.set()
        if self._client is not conn:
            return
        self._logger.debug("closing websocket")
        try:
            conn.close()
        except Exception as exc:
            self._logger.error(
                "failed to close WS connection for %s: %s", self.provider_name, exc
            )
        self._client = None

    def _close_connection(self, conn: Any, closed: threading.Event) -> None:
        with self._lock:
            self._close_locked(conn, closed)

    def _reconnect(self, conn: Any, closed: threading.Event) -> None:
        self._close_connection(conn, closed)
        if not self._stopped.is_set():
            threading.Thread(target=self.start, daemon=True).start()

    def _ping(self, conn: Any) -> None:
        with self._lock:
            if self._client is not conn:
                raise ConnectionError("unable to ping closed connection")
            try:
                conn.send(PING, opcode=self.ping_message_type)
            except Exception as exc:
                self._logger.error(
                    "failed to send WS message for %s: %s", self.provider_name, exc
                )
                raise

    def _ping_loop(self, conn: Any, closed: threading.Event) -> None:
        if self.ping_duration == DISABLED_PING_DURATION:
            return
        while True:
            try:
                self._ping(conn)
            except Exception:
                return
            if closed.wait(self.ping_duration):
                return

    def _send_pong(self, conn: Any) -> None:
        with self._lock:
            try:
                conn.send(b"pong", opcode=websocket.ABNF.OPCODE_PONG)
            except Exception as exc:
                self._logger.error("error sending pong: %s", exc)

    def _read_websocket(self, conn: Any, closed: threading.Event) -> None:
        deadline = time.monotonic() + MAX_CONNECTION_TIME
        while True:
            if closed.wait(READ_NEW_WS_MESSAGE) or self._stopped.is_set():
                self._close_connection(conn, closed)
                return
            if time.monotonic() >= deadline:
                self._reconnect(conn, closed)
                return

            try:
                opcode, data = conn.recv_data(control_frame=True)
            except websocket.WebSocketTimeoutException:
                continue
            except Exception as exc:
                self._logger.error(
                    "failed to read WS message for %s: %s", self.provider_name, exc
                )
                self._reconnect(conn, closed)
                return

            if opcode == websocket.ABNF.OPCODE_PING:
                self._send_pong(conn)
                continue
            if opcode == websocket.ABNF.OPCODE_PONG:
                continue
            if opcode == websocket.ABNF.OPCODE_CLOSE:
                self._logger.error("WS connection for %s closed by server", self.provider_name)
                self._reconnect(conn, closed)
                return

            try:
                self.read_success(opcode, data)
            except Exception as exc:
                self._logger.error(
                    "message handler failed for %s: %s", self.provider_name, exc
                )