"""Client for the CoinMarketCap listings feed and the ERC-20 token list."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import ValidationError

from cmbot.models.market import Erc20Token
from cmbot.schemas.currency import ListingsResponse, RawErc20Token, RawListing


logger = logging.getLogger("cmbot.coinmarketcap")

ENDPOINT_LISTINGS = "/v1/cryptocurrency/listings/latest"


class RemoteFetchError(RuntimeError):
    """Network, HTTP status or payload failure while talking to an upstream feed."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ListingsSource(Protocol):
    async def fetch_listings(self) -> List[RawListing]:
        ...

    async def fetch_erc20_tokens(self) -> Dict[str, str]:
        ...


class CoinMarketCapClient:
    def __init__(
        self,
        api_key: str,
        *,
        api_base: str = "https://pro-api.coinmarketcap.com",
        erc20_tokens_url: str,
        limit: int = 5000,
        convert: str = "USD",
        timeout: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.api_base = api_base.rstrip("/")
        self.erc20_tokens_url = erc20_tokens_url
        self.limit = max(1, int(limit))
        self.convert = convert.upper()
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def __aenter__(self) -> "CoinMarketCapClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_json(self, url: str, *, params: dict[str, Any] | None = None, headers: dict[str, str] | None = None) -> Any:
        try:
            response = await self._client.get(url, params=params, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RemoteFetchError(
                f"upstream returned HTTP {exc.response.status_code}",
                url=url,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteFetchError(f"unable to reach upstream: {exc!r}", url=url) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise RemoteFetchError("upstream returned a non-JSON body", url=url, status_code=response.status_code) from exc

    async def fetch_listings(self) -> List[RawListing]:
        url = self.api_base + ENDPOINT_LISTINGS
        headers = {
            "Accepts": "application/json",
            "X-CMC_PRO_API_KEY": self.api_key,
        }
        params = {"start": 1, "limit": self.limit, "convert": self.convert}
        payload = await self._get_json(url, params=params, headers=headers)

        try:
            parsed = ListingsResponse.model_validate(payload)
        except ValidationError as exc:
            raise RemoteFetchError(f"malformed listings payload: {exc.error_count()} errors", url=url) from exc

        if parsed.status.error_code != 0:
            raise RemoteFetchError(
                f"API error {parsed.status.error_code}: {parsed.status.error_message}",
                url=url,
            )
        return parsed.data

    async def fetch_erc20_directory(self) -> List[Erc20Token]:
        url = self.erc20_tokens_url
        payload = await self._get_json(url)
        if not isinstance(payload, list):
            raise RemoteFetchError(f"malformed token list: expected a JSON array, got {type(payload).__name__}", url=url)

        # community-maintained list; one bad entry must not drop the rest
        tokens: List[Erc20Token] = []
        skipped = 0
        for entry in payload:
            try:
                raw = RawErc20Token.model_validate(entry)
            except ValidationError:
                skipped += 1
                continue
            tokens.append(Erc20Token(address=raw.address.lower(), symbol=raw.symbol, decimals=raw.decimal))

        if skipped:
            logger.warning("token list | skipped %d of %d malformed entries | url=%s", skipped, len(payload), url)
        return tokens

    async def fetch_erc20_tokens(self) -> Dict[str, str]:
        return {t.address: t.symbol for t in await self.fetch_erc20_directory()}
