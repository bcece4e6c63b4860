"""Price provider backed by the OKX public websocket and REST APIs."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

import requests
import websocket

from .currency import CurrencyPair, pairs_from_mapping
from .prices import (
    PING,
    PROVIDER_CANDLE_PERIOD,
    CandlePrice,
    Provider,
    TickerPrice,
    new_candle_price,
    new_ticker_price,
    past_unix_time,
)

PROVIDER_OKX = "okx"
OKX_WS_HOST = "ws.okx.com:8443"
OKX_WS_PATH = "/ws/v5/public"
OKX_PING_CHECK = 28.0  # seconds, must stay below 30
OKX_REST_HOST = "https://www.okx.com"
OKX_REST_PATH = "/api/v5/market/tickers?instType=SPOT"

_READ_INTERVAL = 0.05
_DIAL_TIMEOUT = 10.0
_READ_TIMEOUT = 1.0
_HTTP_TIMEOUT = 10.0

Dialer = Callable[[str], Any]


@dataclass(frozen=True)
class ProviderEndpoint:
    """REST and websocket hosts for a named provider."""

    name: str = ""
    rest: str = ""
    websocket: str = ""


@dataclass(frozen=True)
class _OkxTicker:
    inst_id: str
    last: str
    vol24h: str

    def to_ticker_price(self) -> TickerPrice:
        return new_ticker_price("Okx", self.inst_id, self.last, self.vol24h)


@dataclass(frozen=True)
class _OkxCandle:
    close: str
    timestamp: int
    volume: str
    inst_id: str

    def to_candle_price(self) -> CandlePrice:
        return new_candle_price("Okx", self.inst_id, self.close, self.volume, self.timestamp)


def _default_dialer(url: str) -> Any:
    conn = websocket.create_connection(url, timeout=_DIAL_TIMEOUT)
    conn.settimeout(_READ_TIMEOUT)
    return conn


def currency_pair_to_okx_pair(pair: CurrencyPair) -> str:
    """Return the OKX instrument id of a pair, e.g. 'BTC-USDT'."""
    return f"{pair.base}-{pair.quote}"


def _ticker_subscription_topic(inst_id: str) -> dict[str, str]:
    return {"channel": "tickers", "instId": inst_id}


def _subscription_msg(topics: list[dict[str, str]]) -> dict[str, Any]:
    return {"op": "subscribe", "args": topics}


class OkxProvider(Provider):
    """Keeps the latest OKX tickers and candles received over a websocket."""

    def __init__(
        self,
        endpoints: Optional[ProviderEndpoint],
        *pairs: CurrencyPair,
        logger: Optional[logging.Logger] = None,
        connect: Optional[Dialer] = None,
    ) -> None:
        if endpoints is None or endpoints.name != PROVIDER_OKX:
            endpoints = ProviderEndpoint(
                name=PROVIDER_OKX, rest=OKX_REST_HOST, websocket=OKX_WS_HOST
            )
        self.endpoints = endpoints
        self.ws_url = f"wss://{endpoints.websocket}{OKX_WS_PATH}"
        self._logger = logging.LoggerAdapter(
            logger or logging.getLogger(__name__), {"provider": PROVIDER_OKX}
        )
        self._dial = connect or _default_dialer
        self._lock = threading.RLock()
        self._write_lock = threading.Lock()
        self._tickers: dict[str, _OkxTicker] = {}
        self._candles: dict[str, list[_OkxCandle]] = {}
        self._subscribed: dict[str, CurrencyPair] = {}
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_activity = time.monotonic()

        try:
            self._conn = self._dial(self.ws_url)
        except Exception as exc:
            raise ConnectionError(f"error connecting to Okx websocket: {exc}") from exc

        self.subscribe_currency_pairs(*pairs)

    # -- public interface -------------------------------------------------

    def get_ticker_prices(self, *pairs: CurrencyPair) -> dict[str, TickerPrice]:
        """Return ticker prices for the pairs that are known and parse cleanly."""
        prices: dict[str, TickerPrice] = {}
        for pair in pairs:
            try:
                prices[str(pair)] = self._ticker_price(pair)
            except (LookupError, ValueError) as exc:
                self._logger.debug("failed to fetch tickers for pair %s: %s", pair, exc)
        return prices

    def get_candle_prices(self, *pairs: CurrencyPair) -> dict[str, list[CandlePrice]]:
        """Return candle prices per pair; raises if any pair has none."""
        return {str(pair): self._candle_prices(pair) for pair in pairs}

    def subscribe_currency_pairs(self, *pairs: CurrencyPair) -> None:
        """Subscribe the pairs to the ticker channel."""
        if not pairs:
            raise ValueError("currency pairs is empty")
        self._subscribe_channels(pairs)
        with self._lock:
            for pair in pairs:
                self._subscribed[str(pair)] = pair

    def get_available_pairs(self) -> set[str]:
        """Return the symbols of every spot pair OKX lists."""
        resp = requests.get(self.endpoints.rest + OKX_REST_PATH, timeout=_HTTP_TIMEOUT)
        try:
            summary = resp.json()
        finally:
            resp.close()

        available: set[str] = set()
        for entry in summary.get("data") or []:
            parts = str(entry.get("instId", "")).split("-")
            if len(parts) != 2:
                continue
            available.add(str(CurrencyPair(parts[0].upper(), parts[1].upper())))
        return available

    def message_received(self, message_type: int, data: bytes | str) -> None:
        """Store tickers or candles carried by a text message."""
        if message_type != websocket.ABNF.OPCODE_TEXT:
            return
        if isinstance(data, bytes):
            data = data.decode("utf-8", errors="replace")

        try:
            message = json.loads(data)
        except ValueError as exc:
            self._logger.error("Error on receive message (length %d): %s", len(data), exc)
            return

        arg = message.get("arg") if isinstance(message, dict) else None
        channel = arg.get("channel") if isinstance(arg, dict) else None

        if channel == "tickers":
            for entry in message.get("data") or []:
                if isinstance(entry, dict):
                    self._set_ticker(
                        _OkxTicker(
                            inst_id=str(entry.get("instId", "")),
                            last=str(entry.get("last", "")),
                            vol24h=str(entry.get("vol24h", "")),
                        )
                    )
            return

        if channel == "candle1m":
            inst_id = str(arg.get("instId", ""))
            for entry in message.get("data") or []:
                if isinstance(entry, list):
                    self._set_candle(entry, inst_id)
            return

        self._logger.error("Error on receive message (length %d)", len(data))

    def start(self) -> None:
        """Start reading messages in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopped.clear()
        self._last_activity = time.monotonic()
        self._thread = threading.Thread(
            target=self._read_loop, name="okx-reader", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop the reader and close the websocket."""
        self._stopped.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        with self._write_lock:
            try:
                self._conn.close()
            except Exception as exc:  # closing a dead socket is not fatal
                self._logger.debug("error closing websocket: %s", exc)

    # -- internals ---------------------------------------------------------

    def _subscribe_channels(self, pairs: tuple[CurrencyPair, ...] | list[CurrencyPair]) -> None:
        topics = [_ticker_subscription_topic(currency_pair_to_okx_pair(p)) for p in pairs]
        self._send_json(_subscription_msg(topics))

    def _send_json(self, msg: Any) -> None:
        with self._write_lock:
            self._conn.send(json.dumps(msg))

    def _ticker_price(self, pair: CurrencyPair) -> TickerPrice:
        inst_id = currency_pair_to_okx_pair(pair)
        with self._lock:
            ticker = self._tickers.get(inst_id)
        if ticker is None:
            raise LookupError(f"okx provider failed to get ticker price for {inst_id}")
        return ticker.to_ticker_price()

    def _candle_prices(self, pair: CurrencyPair) -> list[CandlePrice]:
        inst_id = currency_pair_to_okx_pair(pair)
        with self._lock:
            candles = self._candles.get(inst_id)
            if candles is None:
                raise LookupError(f"failed to get candle prices for {inst_id}")
            candles = list(candles)
        return [candle.to_candle_price() for candle in candles]

    def _set_ticker(self, ticker: _OkxTicker) -> None:
        with self._lock:
            self._tickers[ticker.inst_id] = ticker

    def _set_candle(self, fields: list[Any], inst_id: str) -> None:
        if len(fields) < 6:
            return
        try:
            timestamp = int(str(fields[0]), 10)
        except ValueError:
            return
        candle = _OkxCandle(
            close=str(fields[4]), timestamp=timestamp, volume=str(fields[5]), inst_id=inst_id
        )
        stale_time = past_unix_time(PROVIDER_CANDLE_PERIOD)
        with self._lock:
            kept = [c for c in self._candles.get(inst_id, []) if stale_time < c.timestamp]
            self._candles[inst_id] = [candle, *kept]

    def _reset_reconnect_timer(self) -> None:
        self._last_activity = time.monotonic()

    def _ping(self) -> None:
        with self._write_lock:
            self._conn.ping(PING)

    def _reconnect(self) -> None:
        with self._write_lock:
            try:
                self._conn.close()
            except Exception as exc:
                self._logger.debug("error closing websocket: %s", exc)
            self._logger.debug("reconnecting websocket")
            try:
                self._conn = self._dial(self.ws_url)
            except Exception as exc:
                raise ConnectionError(f"error reconnecting to Okx websocket: {exc}") from exc
        with self._lock:
            pairs = pairs_from_mapping(self._subscribed)
        if pairs:
            self._subscribe_channels(pairs)

    def _read_loop(self) -> None:
        while not self._stopped.wait(_READ_INTERVAL):
            if time.monotonic() - self._last_activity >= OKX_PING_CHECK:
                self._reset_reconnect_timer()
                try:
                    self._reconnect()
                except Exception as exc:
                    self._logger.error("error reconnecting: %s", exc)
                continue

            try:
                opcode, data = self._conn.recv_data(control_frame=True)
            except websocket.WebSocketTimeoutException:
                continue
            except Exception as exc:
                self._logger.error("could not read message: %s", exc)
                try:
                    self._ping()
                except Exception as ping_exc:
                    self._logger.error("could not send ping: %s", ping_exc)
                continue

            if opcode == websocket.ABNF.OPCODE_PONG:
                self._reset_reconnect_timer()
                continue
            if not data:
                continue
            self._reset_reconnect_timer()
            self.message_received(opcode, data)