"""Immutable market-data records held by the listings cache."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple


@dataclass(frozen=True)
class CurrencyListing:
    """One tradable asset as reported by the upstream listings feed."""

    id: str
    name: str
    symbol: str
    rank: int
    price: Decimal
    change_1h: Optional[Decimal] = None
    change_24h: Optional[Decimal] = None
    change_7d: Optional[Decimal] = None
    circulating_supply: Optional[Decimal] = None
    market_cap: Optional[Decimal] = None
    volume_24h: Optional[Decimal] = None
    total_supply: Optional[Decimal] = None
    max_supply: Optional[Decimal] = None
    slug: Optional[str] = None
    last_updated: Optional[datetime] = None
    platform: Optional[str] = None
    token_address: Optional[str] = None

    @property
    def is_token(self) -> bool:
        return self.platform is not None or self.token_address is not None

    def __post_init__(self) -> None:
        if self.rank <= 0:
            raise ValueError(f"rank must be positive: {self.id}={self.rank}")


@dataclass(frozen=True)
class Erc20Token:
    address: str
    symbol: str
    decimals: Optional[int] = None


def _freeze_index(pairs: Iterable[Tuple[str, CurrencyListing]]) -> Mapping[str, Tuple[CurrencyListing, ...]]:
    grouped: dict[str, list[CurrencyListing]] = {}
    for key, listing in pairs:
        grouped.setdefault(key, []).append(listing)
    return MappingProxyType({k: tuple(v) for k, v in grouped.items()})


@dataclass(frozen=True, eq=False)
class Snapshot:
    """
    Listings and ERC-20 directory captured at one refresh instant.

    Listings are kept in ascending rank order. Lookup indexes are built once
    here; nothing on a Snapshot changes after construction.
    """

    listings: Tuple[CurrencyListing, ...] = ()
    erc20_tokens: Mapping[str, Erc20Token] = field(default_factory=lambda: MappingProxyType({}))
    fetched_at: Optional[datetime] = None

    _by_symbol: Mapping[str, Tuple[CurrencyListing, ...]] = field(init=False, repr=False, compare=False)
    _by_name: Mapping[str, Tuple[CurrencyListing, ...]] = field(init=False, repr=False, compare=False)
    _address_by_symbol: Mapping[str, str] = field(init=False, repr=False, compare=False)
    _by_token_address: Mapping[str, CurrencyListing] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.listings, key=lambda c: (c.rank, c.id)))

        seen: set[str] = set()
        for listing in ordered:
            if listing.id in seen:
                raise ValueError(f"duplicate listing id in snapshot: {listing.id}")
            seen.add(listing.id)

        tokens = MappingProxyType({addr.lower(): tok for addr, tok in dict(self.erc20_tokens).items()})

        address_by_symbol: dict[str, str] = {}
        for addr in sorted(tokens):
            address_by_symbol.setdefault(tokens[addr].symbol.lower(), addr)

        # frozen dataclass: bypass __setattr__ for derived fields
        object.__setattr__(self, "listings", ordered)
        object.__setattr__(self, "erc20_tokens", tokens)
        object.__setattr__(self, "_by_symbol", _freeze_index((c.symbol.lower(), c) for c in ordered))
        object.__setattr__(self, "_by_name", _freeze_index((c.name.lower(), c) for c in ordered))
        object.__setattr__(self, "_address_by_symbol", MappingProxyType(address_by_symbol))
        # reversed so the lowest rank wins when listings share an address
        object.__setattr__(
            self,
            "_by_token_address",
            MappingProxyType({c.token_address.lower(): c for c in reversed(ordered) if c.token_address}),
        )

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.listings

    def by_symbol(self, symbol: str) -> Tuple[CurrencyListing, ...]:
        return self._by_symbol.get(symbol.lower(), ())

    def by_name(self, name: str) -> Tuple[CurrencyListing, ...]:
        return self._by_name.get(name.lower(), ())

    def listing_by_token_address(self, address: str) -> Optional[CurrencyListing]:
        return self._by_token_address.get(address.lower())

    def token_by_address(self, address: str) -> Optional[Erc20Token]:
        return self.erc20_tokens.get(address.lower())

    def token_address_for(self, symbol: str) -> Optional[str]:
        """First (lowest) contract address registered for a symbol, if any."""
        return self._address_by_symbol.get(symbol.lower())


EMPTY_SNAPSHOT = Snapshot.empty()
