from __future__ import annotations

import logging
from decimal import Decimal

import httpx
import pytest

from cmbot.jobs.refresh_scheduler import ListingsRefresher, RefreshSucceeded
from cmbot.services.coinmarketcap import CoinMarketCapClient, RemoteFetchError
from cmbot.services.listings_cache import ListingsCache


API_BASE = "https://cmc.test"
TOKENS_URL = "https://tokens.test/ethTokens.json"


LISTINGS_PAYLOAD = {
    "status": {"error_code": 0, "error_message": None},
    "data": [
        {
            "id": 1,
            "name": "Bitcoin",
            "symbol": "BTC",
            "slug": "bitcoin",
            "cmc_rank": 1,
            "circulating_supply": 19000000,
            "total_supply": 19000000,
            "max_supply": 21000000,
            "last_updated": "2024-01-01T00:00:00.000Z",
            "platform": None,
            "quote": {
                "USD": {
                    "price": 64000.5,
                    "volume_24h": 1250.25,
                    "percent_change_1h": 0.5,
                    "percent_change_24h": -2.5,
                    "percent_change_7d": None,
                    "market_cap": 1216009500,
                }
            },
        },
        {
            "id": 825,
            "name": "Tether USDt",
            "symbol": "USDT",
            "slug": "tether",
            "cmc_rank": 3,
            "circulating_supply": 100,
            "platform": {
                "id": 1027,
                "name": "Ethereum",
                "symbol": "ETH",
                "token_address": "0xdAC17F958D2ee523a2206206994597C13D831ec7",
            },
            "quote": {"USD": {"price": 1.0}},
        },
    ],
}

TOKENS_PAYLOAD = [
    {"address": "0xdAC17F958D2ee523a2206206994597C13D831ec7", "symbol": "USDT", "decimal": 6, "type": "default"},
    {"address": "0xB8c77482e45F1F44dE1745F52C74426C631bDD52", "symbol": "BNB", "decimal": 18, "type": "default"},
]


def _client(handler) -> CoinMarketCapClient:
    transport = httpx.MockTransport(handler)
    return CoinMarketCapClient(
        "secret-key",
        api_base=API_BASE,
        erc20_tokens_url=TOKENS_URL,
        limit=100,
        client=httpx.AsyncClient(transport=transport),
    )


@pytest.mark.asyncio
async def test_fetch_listings_parses_payload_and_sends_credentials():
    seen: dict[str, httpx.Request] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["request"] = request
        return httpx.Response(200, json=LISTINGS_PAYLOAD)

    client = _client(handler)
    listings = await client.fetch_listings()

    request = seen["request"]
    assert request.url.path == "/v1/cryptocurrency/listings/latest"
    assert request.url.params["limit"] == "100"
    assert request.url.params["convert"] == "USD"
    assert request.headers["X-CMC_PRO_API_KEY"] == "secret-key"

    assert [raw.symbol for raw in listings] == ["BTC", "USDT"]
    btc = listings[0].to_listing("USD")
    assert btc.id == "1"
    assert btc.rank == 1
    assert btc.price == Decimal("64000.5")
    assert btc.change_1h == Decimal("0.5")
    assert btc.change_24h == Decimal("-2.5")
    assert btc.change_7d is None
    assert btc.max_supply == Decimal("21000000")
    assert btc.is_token is False

    usdt = listings[1].to_listing("USD")
    assert usdt.platform == "ETH"
    assert usdt.token_address == "0xdac17f958d2ee523a2206206994597c13d831ec7"


@pytest.mark.asyncio
async def test_fetch_erc20_tokens_lowercases_addresses():
    client = _client(lambda request: httpx.Response(200, json=TOKENS_PAYLOAD))

    tokens = await client.fetch_erc20_tokens()
    assert tokens == {
        "0xdac17f958d2ee523a2206206994597c13d831ec7": "USDT",
        "0xb8c77482e45f1f44de1745f52c74426c631bdd52": "BNB",
    }

    directory = await client.fetch_erc20_directory()
    assert directory[0].decimals == 6


@pytest.mark.asyncio
async def test_http_error_status_raises_remote_fetch_error():
    client = _client(lambda request: httpx.Response(503, text="unavailable"))

    with pytest.raises(RemoteFetchError) as info:
        await client.fetch_listings()
    assert info.value.status_code == 503
    assert info.value.url == API_BASE + "/v1/cryptocurrency/listings/latest"


@pytest.mark.asyncio
async def test_api_error_code_raises_remote_fetch_error():
    payload = {"status": {"error_code": 1002, "error_message": "API key missing."}, "data": []}
    client = _client(lambda request: httpx.Response(200, json=payload))

    with pytest.raises(RemoteFetchError, match="1002"):
        await client.fetch_listings()


@pytest.mark.asyncio
async def test_malformed_listing_raises_remote_fetch_error():
    payload = {"status": {"error_code": 0}, "data": [{"id": 1, "name": "Bitcoin", "symbol": "BTC", "cmc_rank": 0}]}
    client = _client(lambda request: httpx.Response(200, json=payload))

    with pytest.raises(RemoteFetchError, match="malformed"):
        await client.fetch_listings()


@pytest.mark.asyncio
async def test_non_json_body_raises_remote_fetch_error():
    client = _client(lambda request: httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(RemoteFetchError, match="non-JSON"):
        await client.fetch_erc20_tokens()


@pytest.mark.asyncio
async def test_token_list_that_is_not_an_array_raises_remote_fetch_error():
    client = _client(lambda request: httpx.Response(200, json={"tokens": TOKENS_PAYLOAD}))

    with pytest.raises(RemoteFetchError, match="expected a JSON array"):
        await client.fetch_erc20_tokens()


@pytest.mark.asyncio
async def test_malformed_token_entries_are_skipped(caplog):
    payload = [
        {"address": "0x" + "a" * 39, "symbol": "SHORT", "decimal": 18},
        {"address": "not-an-address", "symbol": "XYZ", "decimal": 18},
        {"address": "0x" + "b" * 40, "symbol": "", "decimal": 18},
        *TOKENS_PAYLOAD,
    ]
    client = _client(lambda request: httpx.Response(200, json=payload))

    with caplog.at_level(logging.WARNING, logger="cmbot.coinmarketcap"):
        tokens = await client.fetch_erc20_tokens()

    assert set(tokens.values()) == {"USDT", "BNB"}
    assert any("skipped 3 of 5" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_refresh_survives_one_bad_token_entry():
    bad_entry = {"address": "0x" + "c" * 39, "symbol": "BAD", "decimal": 18}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "tokens.test":
            return httpx.Response(200, json=[bad_entry, *TOKENS_PAYLOAD])
        return httpx.Response(200, json=LISTINGS_PAYLOAD)

    refresher = ListingsRefresher(_client(handler), ListingsCache(), timeout_seconds=2.0)
    outcome = await refresher.run_once()

    assert isinstance(outcome, RefreshSucceeded)
    snapshot = refresher.cache.get()
    assert [c.symbol for c in snapshot.listings] == ["BTC", "USDT"]
    assert len(snapshot.erc20_tokens) == 2


@pytest.mark.asyncio
async def test_transport_error_raises_remote_fetch_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    with pytest.raises(RemoteFetchError, match="unable to reach"):
        await client.fetch_listings()
