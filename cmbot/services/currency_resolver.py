"""Resolve a user supplied ticker, name or contract address to CurrencyDetails."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from cmbot.models.market import CurrencyListing, Snapshot
from cmbot.schemas.currency import CurrencyDetails
from cmbot.services.listings_cache import ListingsCache


_CONTRACT_RE = re.compile(r"^0x[0-9a-f]{40}$")


@dataclass(frozen=True)
class CurrencyNotFound:
    query: str


class CurrencyNotFoundError(LookupError):
    def __init__(self, query: str):
        super().__init__(f"Currency not found: {query}")
        self.query = query


Resolution = Union[CurrencyDetails, CurrencyNotFound]


def _most_prominent(candidates: Tuple[CurrencyListing, ...]) -> Optional[CurrencyListing]:
    # lowest rank wins, id keeps equal ranks stable
    if not candidates:
        return None
    return min(candidates, key=lambda c: (c.rank, c.id))


def contract_address_for(snapshot: Snapshot, listing: CurrencyListing) -> Optional[str]:
    if listing.token_address:
        return listing.token_address
    if not listing.is_token:
        return None
    return snapshot.token_address_for(listing.symbol)


def match_listing(snapshot: Snapshot, token: str) -> Optional[CurrencyListing]:
    key = token.strip().lower()
    if not key:
        return None

    found = _most_prominent(snapshot.by_symbol(key))
    if found is not None:
        return found

    found = _most_prominent(snapshot.by_name(key))
    if found is not None:
        return found

    if _CONTRACT_RE.match(key):
        direct = snapshot.listing_by_token_address(key)
        if direct is not None:
            return direct

        token_entry = snapshot.token_by_address(key)
        if token_entry is not None:
            candidates = snapshot.by_symbol(token_entry.symbol)
            # a directory address names a token, so skip native coins sharing the ticker
            tokens = tuple(c for c in candidates if c.is_token)
            return _most_prominent(tokens or candidates)

    return None


def search_listings(snapshot: Snapshot, prefix: str, limit: int) -> List[CurrencyListing]:
    """
    Listings whose symbol or name starts with `prefix`, exact symbol hits
    first, then by rank. An empty prefix yields the top-ranked listings.
    """
    key = prefix.strip().lower()
    if limit <= 0:
        return []

    exact: List[CurrencyListing] = []
    partial: List[CurrencyListing] = []
    # snapshot.listings is already rank-ordered
    for listing in snapshot.listings:
        symbol = listing.symbol.lower()
        if key and symbol == key:
            exact.append(listing)
        elif symbol.startswith(key) or listing.name.lower().startswith(key):
            partial.append(listing)
        if len(exact) >= limit:
            break

    return (exact + partial)[:limit]


class CurrencyResolver:
    def __init__(self, cache: ListingsCache) -> None:
        self._cache = cache

    def resolve(self, token: str) -> Resolution:
        snapshot = self._cache.get()

        listing = match_listing(snapshot, token)
        if listing is None:
            return CurrencyNotFound(query=token)

        return CurrencyDetails.from_listing(listing, contract_address=contract_address_for(snapshot, listing))

    def fetch_currency(self, token: str) -> CurrencyDetails:
        result = self.resolve(token)
        if isinstance(result, CurrencyNotFound):
            raise CurrencyNotFoundError(result.query)
        return result

    def search(self, prefix: str, limit: int = 10) -> List[CurrencyDetails]:
        snapshot = self._cache.get()
        return [
            CurrencyDetails.from_listing(listing, contract_address=contract_address_for(snapshot, listing))
            for listing in search_listings(snapshot, prefix, limit)
        ]
