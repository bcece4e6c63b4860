import json
import time
from unittest import mock

import pytest
import websocket

from pricefeeder.currency import CurrencyPair
from pricefeeder.legacydec import LegacyDec
from pricefeeder.okx import OkxProvider, ProviderEndpoint, currency_pair_to_okx_pair
from pricefeeder.prices import past_unix_time

TEXT = websocket.ABNF.OPCODE_TEXT


class FakeConnection:
    def __init__(self, frames=()):
        self.sent = []
        self.frames = list(frames)
        self.pings = []
        self.closed = False

    def send(self, text):
        self.sent.append(text)

    def recv_data(self, control_frame=False):
        if self.frames:
            return self.frames.pop(0)
        raise websocket.WebSocketTimeoutException("timeout")

    def ping(self, payload=""):
        self.pings.append(payload)

    def close(self):
        self.closed = True


def make_provider(*pairs, conn=None, endpoints=None):
    conn = conn or FakeConnection()
    urls = []

    def dial(url):
        urls.append(url)
        return conn

    pairs = pairs or (CurrencyPair("BTC", "USDT"),)
    provider = OkxProvider(endpoints or ProviderEndpoint(), *pairs, connect=dial)
    return provider, conn, urls


def ticker_message(*entries):
    return json.dumps(
        {
            "arg": {"channel": "tickers", "instId": entries[0][0]},
            "data": [{"instId": i, "last": last, "vol24h": vol} for i, last, vol in entries],
        }
    )


def test_currency_pair_to_okx_pair():
    assert currency_pair_to_okx_pair(CurrencyPair("ATOM", "USDT")) == "ATOM-USDT"


def test_default_endpoint_and_subscription_message():
    _, conn, urls = make_provider(CurrencyPair("ATOM", "USDT"), CurrencyPair("KII", "USDT"))
    assert urls == ["wss://ws.okx.com:8443/ws/v5/public"]
    assert json.loads(conn.sent[0]) == {
        "op": "subscribe",
        "args": [
            {"channel": "tickers", "instId": "ATOM-USDT"},
            {"channel": "tickers", "instId": "KII-USDT"},
        ],
    }


def test_custom_okx_endpoint_is_used():
    endpoints = ProviderEndpoint(name="okx", rest="http://localhost", websocket="localhost:9000")
    _, _, urls = make_provider(endpoints=endpoints)
    assert urls == ["wss://localhost:9000/ws/v5/public"]


def test_dial_failure_raises_connection_error():
    def dial(url):
        raise OSError("refused")

    with pytest.raises(ConnectionError, match="error connecting to Okx websocket"):
        OkxProvider(ProviderEndpoint(), CurrencyPair("BTC", "USDT"), connect=dial)


def test_get_ticker_prices_single():
    provider, _, _ = make_provider()
    provider.message_received(TEXT, ticker_message(("ATOM-USDT", "34.69000000", "2396974.02000000")))
    prices = provider.get_ticker_prices(CurrencyPair("ATOM", "USDT"))
    assert len(prices) == 1
    assert prices["ATOMUSDT"].price == LegacyDec.from_str("34.69000000")
    assert prices["ATOMUSDT"].volume == LegacyDec.from_str("2396974.02000000")


def test_get_ticker_prices_multi():
    provider, _, _ = make_provider()
    volume = "2396974.02000000"
    provider.message_received(
        TEXT,
        ticker_message(("ATOM-USDT", "34.69000000", volume), ("KII-USDT", "41.35000000", volume)),
    )
    prices = provider.get_ticker_prices(CurrencyPair("ATOM", "USDT"), CurrencyPair("KII", "USDT"))
    assert len(prices) == 2
    assert prices["ATOMUSDT"].price == LegacyDec.from_str("34.69000000")
    assert prices["ATOMUSDT"].volume == LegacyDec.from_str(volume)
    assert prices["KIIUSDT"].price == LegacyDec.from_str("41.35000000")
    assert prices["KIIUSDT"].volume == LegacyDec.from_str(volume)


def test_get_ticker_prices_unknown_pair_is_skipped():
    provider, _, _ = make_provider()
    assert provider.get_ticker_prices(CurrencyPair("FOO", "BAR")) == {}


def test_get_ticker_prices_unparseable_price_is_skipped():
    provider, _, _ = make_provider()
    provider.message_received(TEXT, ticker_message(("ATOM-USDT", "abc", "1")))
    assert provider.get_ticker_prices(CurrencyPair("ATOM", "USDT")) == {}


def test_non_text_message_is_ignored():
    provider, _, _ = make_provider()
    provider.message_received(
        websocket.ABNF.OPCODE_BINARY, ticker_message(("ATOM-USDT", "1.0", "1.0"))
    )
    assert provider.get_ticker_prices(CurrencyPair("ATOM", "USDT")) == {}


def test_subscribe_empty_raises():
    provider, _, _ = make_provider(CurrencyPair("ATOM", "USDT"))
    with pytest.raises(ValueError, match="currency pairs is empty"):
        provider.subscribe_currency_pairs()


def test_candles_received_and_returned():
    provider, _, _ = make_provider()
    ts = past_unix_time(0)
    message = json.dumps(
        {
            "arg": {"channel": "candle1m", "instId": "ATOM-USDT"},
            "data": [[str(ts), "1", "2", "0.5", "1.5", "100"]],
        }
    )
    provider.message_received(TEXT, message)
    candles = provider.get_candle_prices(CurrencyPair("ATOM", "USDT"))
    assert len(candles["ATOMUSDT"]) == 1
    candle = candles["ATOMUSDT"][0]
    assert candle.price == LegacyDec.from_str("1.5")
    assert candle.volume == LegacyDec.from_str("100")
    assert candle.timestamp == ts


def test_stale_candles_are_dropped():
    provider, _, _ = make_provider()
    old = past_unix_time(3600)
    new = past_unix_time(0)
    for ts in (old, new):
        provider.message_received(
            TEXT,
            json.dumps(
                {
                    "arg": {"channel": "candle1m", "instId": "ATOM-USDT"},
                    "data": [[str(ts), "1", "2", "0.5", "1.5", "100"]],
                }
            ),
        )
    candles = provider.get_candle_prices(CurrencyPair("ATOM", "USDT"))["ATOMUSDT"]
    assert [c.timestamp for c in candles] == [new]


def test_get_candle_prices_missing_raises():
    provider, _, _ = make_provider()
    with pytest.raises(LookupError, match="ATOM-USDT"):
        provider.get_candle_prices(CurrencyPair("ATOM", "USDT"))


def test_get_available_pairs():
    provider, _, _ = make_provider()
    response = mock.MagicMock()
    response.json.return_value = {
        "data": [{"instId": "BTC-USDT"}, {"instId": "eth-usdc"}, {"instId": "A-B-C"}]
    }
    with mock.patch("requests.get", return_value=response) as get:
        pairs = provider.get_available_pairs()
    assert pairs == {"BTCUSDT", "ETHUSDC"}
    assert get.call_args.args[0] == "https://www.okx.com/api/v5/market/tickers?instType=SPOT"


def test_start_reads_messages_and_stop_closes():
    frame = (TEXT, ticker_message(("ATOM-USDT", "2.5", "10")).encode())
    provider, conn, _ = make_provider(conn=FakeConnection([frame]))
    provider.start()
    deadline = time.monotonic() + 5
    prices = {}
    while time.monotonic() < deadline and not prices:
        prices = provider.get_ticker_prices(CurrencyPair("ATOM", "USDT"))
        time.sleep(0.02)
    provider.stop()
    assert prices["ATOMUSDT"].price == LegacyDec.from_str("2.5")
    assert conn.closed is True