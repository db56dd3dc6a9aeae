from __future__ import annotations

from decimal import Decimal

import pytest

from cmbot.schemas.currency import CurrencyDetails
from cmbot.services.presentation import (
    NEUTRAL_COLOR,
    TextRenderer,
    change_colors,
    format_decimal,
    format_percentage,
)


def _details(**changes) -> CurrencyDetails:
    return CurrencyDetails(id="1", name="Bitcoin", symbol="BTC", rank=1, price=Decimal("64000.5"), **changes)


@pytest.mark.parametrize(
    "value,places,expected",
    [
        (Decimal("64000.5"), None, "64,000.50"),
        (Decimal("0.5"), None, "0.500000"),
        (Decimal("0.00012345678"), None, "0.00012346"),
        (Decimal("1234567.891"), 0, "1,234,568"),
        (Decimal("-3.14159"), 2, "-3.14"),
        (None, None, "-"),
    ],
)
def test_format_decimal(value, places, expected):
    assert format_decimal(value, places) == expected


def test_format_percentage():
    assert format_percentage(Decimal("1.234")) == "+1.23%"
    assert format_percentage(Decimal("-0.5")) == "-0.50%"
    assert format_percentage(Decimal("0")) == "0.00%"
    assert format_percentage(None) == "-"


def test_change_colors_all_positive_ranked_by_value():
    colors = change_colors(_details(change_1h=Decimal("3"), change_24h=Decimal("1"), change_7d=Decimal("2")))
    assert colors == {"change_24h": "#4CAF50", "change_7d": "#388E3C", "change_1h": "#2E7D32"}


def test_change_colors_mixed_and_missing():
    colors = change_colors(_details(change_1h=None, change_24h=Decimal("-4"), change_7d=Decimal("-1")))
    assert colors == {"change_1h": NEUTRAL_COLOR, "change_24h": "#BF360C", "change_7d": "#E64A19"}


def test_zero_change_counts_as_negative():
    colors = change_colors(_details(change_1h=Decimal("0"), change_24h=Decimal("2"), change_7d=None))
    assert colors["change_1h"] == "#BF360C"
    assert colors["change_24h"] == "#4CAF50"


def test_text_renderer_includes_contract_for_tokens():
    details = _details(contract_address="0xdac17f958d2ee523a2206206994597c13d831ec7")
    card = TextRenderer().render(details).decode("utf-8")
    assert card.splitlines()[0] == "#1 Bitcoin (BTC)"
    assert "ERC-20: 0xdac17f958d2ee523a2206206994597c13d831ec7" in card


def test_format_decimal_beyond_default_context_precision():
    assert format_decimal(Decimal("1e30"), 0) == "1" + ",000" * 10
    assert format_decimal(Decimal("123456789012345678901234567890.129")) == "123,456,789,012,345,678,901,234,567,890.13"


def test_text_renderer_handles_huge_supply():
    details = _details(circulating_supply=Decimal("1e30"), market_cap=Decimal("6.4e34"))
    card = TextRenderer().render(details).decode("utf-8")
    assert "Circulating supply: 1" + ",000" * 10 in card
    assert "Market cap: $64" + ",000" * 11 in card
