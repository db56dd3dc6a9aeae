from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from cmbot.models.market import CurrencyListing


# ----------------------------
# upstream wire payloads
# ----------------------------
class RawQuote(BaseModel):
    """Price block of a CoinMarketCap listing for one convert currency."""

    price: Optional[Decimal] = None
    volume_24h: Optional[Decimal] = None
    percent_change_1h: Optional[Decimal] = None
    percent_change_24h: Optional[Decimal] = None
    percent_change_7d: Optional[Decimal] = None
    market_cap: Optional[Decimal] = None


class RawPlatform(BaseModel):
    """Chain a token listing lives on; absent for native coins."""

    symbol: Optional[str] = None
    token_address: Optional[str] = None


class RawListing(BaseModel):
    """One entry of /v1/cryptocurrency/listings/latest."""

    id: int
    name: str
    symbol: str
    slug: Optional[str] = None
    cmc_rank: int = Field(gt=0)
    circulating_supply: Optional[Decimal] = None
    total_supply: Optional[Decimal] = None
    max_supply: Optional[Decimal] = None
    last_updated: Optional[datetime] = None
    platform: Optional[RawPlatform] = None
    quote: Dict[str, RawQuote] = Field(default_factory=dict)

    def to_listing(self, convert: str = "USD") -> CurrencyListing:
        q = self.quote.get(convert.upper()) or RawQuote()
        platform = token_address = None
        if self.platform is not None:
            platform = self.platform.symbol or "?"
            token_address = (self.platform.token_address or "").lower() or None
        return CurrencyListing(
            id=str(self.id),
            name=self.name,
            symbol=self.symbol,
            rank=self.cmc_rank,
            price=q.price if q.price is not None else Decimal("0"),
            change_1h=q.percent_change_1h,
            change_24h=q.percent_change_24h,
            change_7d=q.percent_change_7d,
            circulating_supply=self.circulating_supply,
            market_cap=q.market_cap,
            volume_24h=q.volume_24h,
            total_supply=self.total_supply,
            max_supply=self.max_supply,
            slug=self.slug,
            last_updated=self.last_updated,
            platform=platform,
            token_address=token_address,
        )


class ApiStatus(BaseModel):
    error_code: int = 0
    error_message: Optional[str] = None


class ListingsResponse(BaseModel):
    status: ApiStatus = Field(default_factory=ApiStatus)
    data: List[RawListing] = Field(default_factory=list)


class RawErc20Token(BaseModel):
    """Entry of the community ERC-20 token list ({address, symbol, decimal})."""

    address: str = Field(pattern=r"^0x[0-9a-fA-F]{40}$")
    symbol: str = Field(min_length=1)
    decimal: Optional[int] = None


# ----------------------------
# resolver output
# ----------------------------
class CurrencyDetails(BaseModel):
    """Presentation-ready view of one listing, copied at lookup time."""

    model_config = ConfigDict(frozen=True)

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
    last_updated: Optional[datetime] = None
    contract_address: Optional[str] = None

    @classmethod
    def from_listing(cls, listing: CurrencyListing, contract_address: Optional[str] = None) -> "CurrencyDetails":
        return cls(
            id=listing.id,
            name=listing.name,
            symbol=listing.symbol,
            rank=listing.rank,
            price=listing.price,
            change_1h=listing.change_1h,
            change_24h=listing.change_24h,
            change_7d=listing.change_7d,
            circulating_supply=listing.circulating_supply,
            market_cap=listing.market_cap,
            volume_24h=listing.volume_24h,
            total_supply=listing.total_supply,
            max_supply=listing.max_supply,
            last_updated=listing.last_updated,
            contract_address=contract_address,
        )

    @property
    def is_erc20(self) -> bool:
        return self.contract_address is not None
