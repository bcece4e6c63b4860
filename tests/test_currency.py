from pricefeeder.currency import CurrencyPair, pairs_from_mapping


def test_str_is_ticker_symbol():
    assert str(CurrencyPair(base="ATOM", quote="USDT")) == "ATOMUSDT"


def test_pairs_are_hashable_and_equal_by_value():
    a = CurrencyPair("KII", "USDT")
    b = CurrencyPair("KII", "USDT")
    assert a == b
    assert len({a, b}) == 1


def test_pairs_from_mapping_returns_all_values():
    pairs = [CurrencyPair("ATOM", "USDT"), CurrencyPair("KII", "USDT")]
    mapping = {str(p): p for p in pairs}
    result = pairs_from_mapping(mapping)
    assert len(result) == 2
    assert set(result) == set(pairs)


def test_pairs_from_empty_mapping():
    assert pairs_from_mapping({}) == []