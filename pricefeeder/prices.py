"""Price records, the provider interface and shared helpers."""

from __future__ import annotations

import abc
import math
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Set

from .currency import CurrencyPair
from .legacydec import DecError, LegacyDec, PRECISION

DEFAULT_TIMEOUT = timedelta(seconds=10)
DEFAULT_RECONNECT_TIME = timedelta(minutes=20)
MAX_RECONNECTION_TRIES = 3
PROVIDER_CANDLE_PERIOD = timedelta(minutes=10)
PING = b"ping"


@dataclass(frozen=True)
class TickerPrice:
    """Last trade price and 24h volume for a symbol."""

    price: LegacyDec
    volume: LegacyDec


@dataclass(frozen=True)
class CandlePrice:
    """Price, volume and millisecond timestamp of a candle."""

    price: LegacyDec
    volume: LegacyDec
    timestamp: int


AggregatedProviderPrices = Dict[str, Dict[str, TickerPrice]]
AggregatedProviderCandles = Dict[str, Dict[str, List[CandlePrice]]]


class Provider(abc.ABC):
    """Interface an exchange price provider implements."""

    @abc.abstractmethod
    def get_ticker_prices(self, *pairs: CurrencyPair) -> dict[str, TickerPrice]:
        """Return ticker prices keyed by pair symbol."""

    @abc.abstractmethod
    def get_candle_prices(self, *pairs: CurrencyPair) -> dict[str, list[CandlePrice]]:
        """Return candle prices keyed by pair symbol."""

    @abc.abstractmethod
    def get_available_pairs(self) -> Set[str]:
        """Return every pair symbol that can be subscribed to."""

    @abc.abstractmethod
    def subscribe_currency_pairs(self, *pairs: CurrencyPair) -> None:
        """Subscribe to price channels for the given pairs."""


def new_ticker_price(provider: str, symbol: str, last_price: str, volume: str) -> TickerPrice:
    try:
        price = LegacyDec.from_str(last_price)
    except DecError as exc:
        raise ValueError(
            f"failed to parse {provider} price ({last_price}) for {symbol}"
        ) from exc
    try:
        volume_dec = LegacyDec.from_str(volume)
    except DecError as exc:
        raise ValueError(
            f"failed to parse {provider} volume ({volume}) for {symbol}"
        ) from exc
    return TickerPrice(price=price, volume=volume_dec)


def new_candle_price(
    provider: str, symbol: str, last_price: str, volume: str, timestamp: int
) -> CandlePrice:
    ticker = new_ticker_price(provider, symbol, last_price, volume)
    return CandlePrice(price=ticker.price, volume=ticker.volume, timestamp=timestamp)


def past_unix_time(delta: timedelta | float) -> int:
    """Millisecond timestamp of now minus delta, at whole-second resolution.

    A number is taken as seconds.
    """
    seconds = delta.total_seconds() if isinstance(delta, timedelta) else float(delta)
    return math.floor(time.time() - seconds) * 1000


def str_to_dec(text: str) -> LegacyDec:
    """Parse a decimal string, dropping any digits beyond the supported precision."""
    if "." in text:
        int_part, dec_part = text.split(".", 1)
        if len(dec_part) > PRECISION:
            text = f"{int_part}.{dec_part[:PRECISION]}"
    return LegacyDec.from_str(text)