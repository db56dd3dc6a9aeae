"""Formatting helpers and the renderer boundary for CurrencyDetails."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Dict, Optional, Protocol

from cmbot.schemas.currency import CurrencyDetails


NEUTRAL_COLOR = "#757575"

# assigned in ascending value order
POSITIVE_COLORS = ("#4CAF50", "#388E3C", "#2E7D32")
NEGATIVE_COLORS = ("#BF360C", "#E64A19", "#FF7043")

CHANGE_FIELDS = ("change_1h", "change_24h", "change_7d")


class CurrencyRenderer(Protocol):
    content_type: str

    def render(self, details: CurrencyDetails) -> bytes:
        ...


def format_decimal(value: Optional[Decimal], places: Optional[int] = None) -> str:
    """
    Group thousands and pick precision from magnitude unless `places` is given:
    2 places from 1 upward, 6 below 1, 8 below 0.01.
    """
    if value is None:
        return "-"
    if places is None:
        magnitude = abs(value)
        if magnitude >= 1:
            places = 2
        elif magnitude >= Decimal("0.01"):
            places = 6
        else:
            places = 8
    quantum = Decimal(1).scaleb(-places)
    with localcontext() as ctx:
        # room for every integer digit plus the requested fraction
        ctx.prec = max(ctx.prec, value.adjusted() + places + 2)
        rounded = value.quantize(quantum, rounding=ROUND_HALF_UP)
    return f"{rounded:,}"


def format_percentage(value: Optional[Decimal]) -> str:
    if value is None:
        return "-"
    sign = "+" if value > 0 else ""
    return f"{sign}{format_decimal(value, 2)}%"


def change_colors(details: CurrencyDetails) -> Dict[str, str]:
    """
    Colour per change field: grey when absent, green shades for gains,
    red/orange shades for losses. Shades are handed out in ascending value
    order within each sign.
    """
    colors: Dict[str, str] = {}
    positive: Dict[str, Decimal] = {}
    negative: Dict[str, Decimal] = {}

    for name in CHANGE_FIELDS:
        value = getattr(details, name)
        if value is None:
            colors[name] = NEUTRAL_COLOR
        elif value > 0:
            positive[name] = value
        else:
            negative[name] = value

    for palette, group in ((POSITIVE_COLORS, positive), (NEGATIVE_COLORS, negative)):
        for shade, name in zip(palette, sorted(group, key=lambda k: (group[k], CHANGE_FIELDS.index(k)))):
            colors[name] = shade

    return colors


class TextRenderer:
    """Plain-text price card, used when no image renderer is wired."""

    content_type = "text/plain; charset=utf-8"

    def render(self, details: CurrencyDetails) -> bytes:
        lines = [
            f"#{details.rank} {details.name} ({details.symbol})",
            f"Price: ${format_decimal(details.price)}",
            f"1h: {format_percentage(details.change_1h)}",
            f"24h: {format_percentage(details.change_24h)}",
            f"7d: {format_percentage(details.change_7d)}",
            f"Market cap: ${format_decimal(details.market_cap, 0)}",
            f"Circulating supply: {format_decimal(details.circulating_supply, 0)}",
        ]
        if details.contract_address:
            lines.append(f"ERC-20: {details.contract_address}")
        return "\n".join(lines).encode("utf-8")
