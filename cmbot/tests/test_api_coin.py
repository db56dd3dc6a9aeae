from __future__ import annotations

import dataclasses
import time
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from cmbot.config.settings import Settings
from cmbot.main import create_app
from cmbot.models.market import CurrencyListing, Snapshot
from cmbot.schemas.currency import RawListing


def _settings(**overrides) -> Settings:
    base = Settings.from_env()
    overrides.setdefault("REFRESH_ENABLED", False)
    return dataclasses.replace(base, **overrides)


def _snapshot() -> Snapshot:
    return Snapshot(
        listings=(
            CurrencyListing(
                id="1",
                name="Bitcoin",
                symbol="BTC",
                rank=1,
                price=Decimal("64000.5"),
                change_1h=Decimal("0.4"),
                change_24h=Decimal("-1.2"),
                change_7d=Decimal("5.0"),
                market_cap=Decimal("1200000000"),
            ),
            CurrencyListing(id="1027", name="Ethereum", symbol="ETH", rank=2, price=Decimal("3200")),
        ),
        fetched_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture()
def coin_client():
    app = create_app(_settings())
    app.state.cache.set(_snapshot())
    return TestClient(app)


def test_get_coin_returns_details(coin_client):
    resp = coin_client.get("/coin/btc")
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == "1"
    assert body["symbol"] == "BTC"
    assert body["rank"] == 1
    assert Decimal(body["price"]) == Decimal("64000.5")
    assert body["contract_address"] is None


def test_get_coin_by_name_any_case(coin_client):
    resp = coin_client.get("/coin/ETHEREUM")
    assert resp.status_code == 200
    assert resp.json()["symbol"] == "ETH"


def test_unknown_coin_returns_error_envelope(coin_client):
    resp = coin_client.get("/coin/doesnotexist123")
    assert resp.status_code == 404
    body = resp.json()
    assert body["error"]["code"] == "currency_not_found"
    assert body["error"]["details"]["query"] == "doesnotexist123"


def test_coin_card_uses_renderer(coin_client):
    resp = coin_client.get("/coin/btc/card")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert "#1 Bitcoin (BTC)" in resp.text
    assert "64,000.50" in resp.text


def test_coin_colors(coin_client):
    resp = coin_client.get("/coin/btc/colors")
    assert resp.status_code == 200
    assert resp.json()["colors"] == {
        "change_1h": "#4CAF50",
        "change_7d": "#388E3C",
        "change_24h": "#BF360C",
    }


def test_ready_is_503_before_first_refresh():
    client = TestClient(create_app(_settings()))
    resp = client.get("/ready")
    assert resp.status_code == 503
    body = resp.json()
    assert body["ok"] is False
    assert body["checks"]["cache"]["listings"] == 0
    assert body["checks"]["cache"]["fetched_at_iso"] is None
    assert body["checks"]["scheduler"]["disabled"] is True


def test_ready_ok_with_populated_cache(coin_client):
    resp = coin_client.get("/ready")
    assert resp.status_code == 200
    cache_check = resp.json()["checks"]["cache"]
    assert cache_check["listings"] == 2
    assert cache_check["fetched_at_iso"] == "2024-01-01T00:00:00Z"


def test_health_and_root(coin_client):
    assert coin_client.get("/health").json()["ok"] is True
    assert coin_client.get("/").status_code == 200


class _StaticSource:
    def __init__(self) -> None:
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True

    async def fetch_listings(self):
        return [
            RawListing.model_validate(
                {"id": 74, "name": "Dogecoin", "symbol": "DOGE", "cmc_rank": 9, "quote": {"USD": {"price": "0.1"}}}
            )
        ]

    async def fetch_erc20_tokens(self):
        return {}


def test_startup_runs_refresher_and_serves_fresh_data():
    source = _StaticSource()
    app = create_app(_settings(REFRESH_ENABLED=True, REFRESH_INTERVAL_SECONDS=3600), client=source)

    with TestClient(app) as client:
        deadline = time.monotonic() + 3.0
        resp = client.get("/coin/doge")
        while resp.status_code != 200 and time.monotonic() < deadline:
            time.sleep(0.02)
            resp = client.get("/coin/doge")

        assert resp.status_code == 200
        assert resp.json()["name"] == "Dogecoin"

        ready = client.get("/ready").json()
        assert ready["checks"]["scheduler"]["running"] is True
        assert ready["stale_jobs"] == []

    assert app.state.refresher is None
    assert source.closed is False
    assert app.state.client is source


def test_shutdown_closes_only_the_client_it_built(monkeypatch):
    built = _StaticSource()
    monkeypatch.setattr("cmbot.main._default_client", lambda settings: built)
    app = create_app(_settings(REFRESH_ENABLED=True, REFRESH_INTERVAL_SECONDS=3600))

    with TestClient(app):
        assert app.state.client is built

    assert built.closed is True
    assert app.state.client is None
