"""Price aggregation: VWAP, time-weighted VWAP and standard deviation."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import timedelta
from typing import Optional

from .legacydec import LegacyDec
from .prices import CandlePrice, TickerPrice, past_unix_time

MINIMUM_TIME_WEIGHT = LegacyDec.from_str("0.2")
TVWAP_CANDLE_PERIOD = timedelta(minutes=5)

_ZERO = LegacyDec.zero()


def _vwap(
    weighted_prices: Mapping[str, LegacyDec], volume_sum: Mapping[str, LegacyDec]
) -> dict[str, LegacyDec]:
    """Divide Σ(P*V) by Σ(V) for each base with non-zero volume."""
    return {
        base: weighted.quo(volume_sum[base])
        for base, weighted in weighted_prices.items()
        if not volume_sum[base].is_zero()
    }


def compute_vwap(
    prices: Optional[Mapping[str, Mapping[str, TickerPrice]]],
) -> dict[str, LegacyDec]:
    """Volume weighted average price per base over provider => base => ticker."""
    weighted: dict[str, LegacyDec] = {}
    volumes: dict[str, LegacyDec] = {}
    for provider_prices in (prices or {}).values():
        for base, ticker in provider_prices.items():
            weighted[base] = weighted.get(base, _ZERO) + ticker.price * ticker.volume
            volumes[base] = volumes.get(base, _ZERO) + ticker.volume
    return _vwap(weighted, volumes)


def compute_tvwap(
    prices: Optional[Mapping[str, Mapping[str, list[CandlePrice]]]],
    now: Optional[int] = None,
) -> dict[str, LegacyDec]:
    """Time and volume weighted average price per base.

    Only candles newer than the candle period before ``now`` (milliseconds,
    defaulting to the current time) are counted; older candles weigh less.
    """
    if now is None:
        now = past_unix_time(0)
    window_start = now - int(TVWAP_CANDLE_PERIOD.total_seconds() * 1000)

    weighted: dict[str, LegacyDec] = {}
    volumes: dict[str, LegacyDec] = {}
    for provider_candles in (prices or {}).values():
        for base, candles in provider_candles.items():
            weighted.setdefault(base, _ZERO)
            volumes.setdefault(base, _ZERO)

            ordered = sorted(candles, key=lambda c: c.timestamp)
            if not ordered:
                continue

            period = LegacyDec.from_int(now - ordered[0].timestamp)
            weight_unit = _ZERO - MINIMUM_TIME_WEIGHT
            if not period.is_zero():
                weight_unit = weight_unit.quo(period)

            for candle in ordered:
                if window_start < candle.timestamp:
                    time_diff = LegacyDec.from_int(now - candle.timestamp)
                    volume = candle.volume * (
                        weight_unit * (period - time_diff + MINIMUM_TIME_WEIGHT)
                    )
                    volumes[base] = volumes[base] + volume
                    weighted[base] = weighted[base] + candle.price * volume

    return _vwap(weighted, volumes)


def standard_deviation(
    prices: Optional[Mapping[str, Mapping[str, LegacyDec]]],
) -> tuple[dict[str, LegacyDec], dict[str, LegacyDec]]:
    """Return (deviations, means) per base; bases with fewer than 3 prices are skipped."""
    by_base: dict[str, list[LegacyDec]] = {}
    for provider_prices in (prices or {}).values():
        for base, price in provider_prices.items():
            by_base.setdefault(base, []).append(price)

    deviations: dict[str, LegacyDec] = {}
    means: dict[str, LegacyDec] = {}
    for base, values in by_base.items():
        if len(values) < 3:
            continue
        count = len(values)
        mean = sum(values, _ZERO).quo_int(count)
        variance_sum = sum(((p - mean) * (p - mean) for p in values), _ZERO)
        variance = variance_sum.quo_int(count)
        means[base] = mean
        deviations[base] = variance.approx_sqrt()

    return deviations, means