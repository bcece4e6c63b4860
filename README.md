# pricefeeder

Building blocks for an oracle price feeder. The package takes prices from
exchanges, combines them into one price per asset, and serves the result over
HTTP as a WSGI application.

## Installation

```
pip install .
```

To also install the test tools:

```
pip install ".[test]"
```

## Modules

- `pricefeeder.legacydec.LegacyDec` is a fixed-point decimal with 18 decimal
  places. Rounding is half to even.
  - Build values with `LegacyDec.from_str`, `LegacyDec.from_int` or
    `LegacyDec.zero`.
  - It supports `+`, `-` and `*`.
  - `quo` divides with rounding. `quo_int` divides by an integer and truncates.
  - `approx_sqrt` finds a square root by Newton's method.
  - Malformed strings raise `DecError`, which is a subclass of `ValueError`.
- `pricefeeder.currency` holds `CurrencyPair`, a base and a quote. Its string
  form joins the two, for example `ATOMUSDT`. It also holds
  `pairs_from_mapping`, which returns the pairs of a symbol-to-pair mapping as
  a list.
- `pricefeeder.prices` holds the price records and the provider interface.
  - `TickerPrice` and `CandlePrice` are the price records.
  - `Provider` is the abstract provider interface.
  - `new_ticker_price` and `new_candle_price` parse exchange strings. They
    raise `ValueError` when a string is malformed.
  - `past_unix_time` gives a millisecond timestamp for now minus a delay. The
    delay is a `timedelta` or a number of seconds.
  - `str_to_dec` cuts decimal strings down to 18 places before it parses them.
- `pricefeeder.okx.OkxProvider` is a `Provider` for the OKX public websocket.
  - Creating it connects right away and subscribes the given pairs to the
    `tickers` channel.
  - `start()` reads messages on a background thread. It reconnects when
    nothing arrives for 28 seconds.
  - `stop()` ends the thread and closes the socket.
  - `get_ticker_prices` returns only the pairs it has data for.
  - `get_candle_prices` raises if any pair has no candles.
  - `get_available_pairs` fetches the spot pair symbols from the OKX REST API.
  - `ProviderEndpoint` sets other hosts. An endpoint whose `name` is not
    `"okx"` is replaced by the default OKX hosts.
- `pricefeeder.ws_controller.WebsocketController` manages a websocket
  connection for any exchange.
  - `start()` dials until it connects. Then it starts a reader thread and a
    ping thread, and sends the subscription messages.
  - After a failed read, it closes the connection and starts again.
  - It also reconnects after 23 hours.
  - `retry_delay()` gives the wait before the next dial attempt: 5 s × n²,
    where n stops growing at 25.
  - `read_success` passes a message to the handler. It drops empty messages
    and plain `pong` messages.
  - `send_json`, `add_subscription_msgs`, `close` and `stop` complete the
    interface.
- `pricefeeder.aggregate` combines prices per asset.
  - `compute_vwap` gives the volume-weighted average price.
  - `compute_tvwap` gives a time-and-volume weighted average. It uses only
    candles from the last 5 minutes and gives older candles less weight.
    Pass `now` in milliseconds to fix the clock.
  - `standard_deviation` returns `(deviations, means)`. It skips any asset
    with fewer than three prices.
- `pricefeeder.router.Router` is a WSGI application.
  - It serves `GET /healthz`, which returns the status and the last sync time
    in RFC 3339.
  - It serves `GET /prices`.
  - It serves `GET /metrics?format=...` when `telemetry_enabled` is true. The
    format defaults to `prometheus`.
  - All routes sit under an optional `prefix`.
  - When `enable_cors` is true, it answers `OPTIONS` preflight requests itself.
  - You supply an `Oracle` and a `Metrics` implementation. `gather` returns a
    `GatherResponse`.
- `pricefeeder.middleware` holds the WSGI middleware.
  - `RequestLoggingMiddleware` logs method, URL, status, size and duration,
    and adds a `Request-Id` header.
  - `CORSMiddleware` handles CORS.
  - `build` wraps an app in both. CORS is added only when enabled.
- `pricefeeder.httputil` has `respond_with_json` and `respond_with_error`.
  They build werkzeug responses and write decimals as strings.
- `pricefeeder.closer.Closer` is a termination signal. It has `close()`,
  `wait(timeout)` and `is_closed()`. Closing it twice does no harm.

## Example: aggregating prices

```python
from pricefeeder.aggregate import compute_vwap
from pricefeeder.legacydec import LegacyDec
from pricefeeder.prices import TickerPrice

prices = {
    "binance": {
        "ATOM": TickerPrice(LegacyDec.from_str("28.21"), LegacyDec.from_str("1000")),
    },
    "okx": {
        "ATOM": TickerPrice(LegacyDec.from_str("28.23"), LegacyDec.from_str("1000")),
    },
}
print(compute_vwap(prices)["ATOM"])  # 28.220000000000000000
```

## Example: serving prices

```python
from datetime import datetime, timezone
from wsgiref.simple_server import make_server

from pricefeeder.legacydec import LegacyDec
from pricefeeder.router import GatherResponse, Metrics, Oracle, Router


class StaticOracle(Oracle):
    def get_last_price_sync_timestamp(self):
        return datetime.now(timezone.utc)

    def get_prices(self):
        return {"ATOM": LegacyDec.from_str("34.84")}


class NoMetrics(Metrics):
    def gather(self, format):
        return GatherResponse(b"", "text/plain")


app = Router(StaticOracle(), NoMetrics(), enable_cors=True,
             allowed_origins=["http://localhost:3000"])
make_server("127.0.0.1", 7171, app).serve_forever()
```

## What the package does not do

- It has no command-line program.
- It does not read configuration files.
- It has no oracle that polls providers on a schedule, and it does not submit
  prices anywhere. You supply the `Oracle` and `Metrics` objects that the
  router serves.
- OKX is the only exchange provider included.

## Running the tests

```
pytest
```