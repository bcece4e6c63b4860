"""Currency pairs."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass


@dataclass(frozen=True)
class CurrencyPair:
    """An exchange pair; its string form is the ticker symbol, e.g. ATOMUSDT."""

    base: str
    quote: str

    def __str__(self) -> str:
        return self.base + self.quote


def pairs_from_mapping(mapping: Mapping[str, CurrencyPair]) -> list[CurrencyPair]:
    """Return the pairs held in a symbol => pair mapping as a list."""
    return list(mapping.values())