# cmbot/main.py
from __future__ import annotations

import logging
import sys

from fastapi import FastAPI

from cmbot.api.coin import router as coin_router
from cmbot.api.health import router as health_router
from cmbot.config.settings import Settings, get_settings
from cmbot.jobs.refresh_scheduler import ListingsRefresher
from cmbot.services.coinmarketcap import CoinMarketCapClient, ListingsSource
from cmbot.services.currency_resolver import CurrencyResolver
from cmbot.services.listings_cache import ListingsCache
from cmbot.services.presentation import CurrencyRenderer, TextRenderer

logger = logging.getLogger("cmbot.main")


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level)

    # avoid stacking handlers when the app is built more than once (tests, --reload)
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(handler)


def _default_client(settings: Settings) -> CoinMarketCapClient:
    return CoinMarketCapClient(
        settings.CMC_API_KEY,
        api_base=settings.CMC_API_BASE,
        erc20_tokens_url=settings.ERC20_TOKENS_URL,
        limit=settings.CMC_LISTINGS_LIMIT,
        convert=settings.CMC_CONVERT,
        timeout=settings.FETCH_TIMEOUT_SECONDS,
    )


def create_app(
    settings: Settings | None = None,
    *,
    client: ListingsSource | None = None,
    renderer: CurrencyRenderer | None = None,
) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(title="cmbot market data")
    app.include_router(health_router)
    app.include_router(coin_router)

    cache = ListingsCache()
    app.state.settings = settings
    app.state.cache = cache
    app.state.resolver = CurrencyResolver(cache)
    app.state.renderer = renderer or TextRenderer()
    app.state.stall_multiplier = settings.READY_STALL_MULTIPLIER
    app.state.client = client
    app.state.owns_client = False
    app.state.refresher = None

    @app.get("/")
    def root() -> dict[str, str]:
        return {"message": "cmbot is up", "bot": settings.BOT_USERNAME}

    @app.on_event("startup")
    async def on_startup() -> None:
        if not settings.REFRESH_ENABLED:
            logger.info("listings refresh disabled (REFRESH_ENABLED=false)")
            return

        if app.state.client is None:
            if not settings.CMC_API_KEY:
                logger.warning("COINMARKETCAP_API_KEY is not set; upstream calls will be rejected")
            app.state.client = _default_client(settings)
            app.state.owns_client = True

        refresher = ListingsRefresher(
            app.state.client,
            cache,
            interval_seconds=settings.REFRESH_INTERVAL_SECONDS,
            timeout_seconds=settings.FETCH_TIMEOUT_SECONDS,
            convert=settings.CMC_CONVERT,
        )
        refresher.start()
        app.state.refresher = refresher

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        refresher = app.state.refresher
        if refresher is not None:
            await refresher.stop()
            app.state.refresher = None

        # a client handed to create_app belongs to the caller
        if app.state.owns_client:
            await app.state.client.aclose()
            app.state.client = None
            app.state.owns_client = False

    return app


def build_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    return create_app(settings)
