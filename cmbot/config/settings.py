# cmbot/config/settings.py
from __future__ import annotations

import os
from dataclasses import dataclass


def parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def parse_int(value: str | None, default: int) -> int:
    if value is None or value.strip() == "":
        return default
    return int(value)


def parse_float(value: str | None, default: float) -> float:
    if value is None or value.strip() == "":
        return default
    return float(value)


def parse_str(value: str | None, default: str) -> str:
    if value is None:
        return default
    v = value.strip()
    return v or default


DEFAULT_CMC_API_BASE = "https://pro-api.coinmarketcap.com"
DEFAULT_ERC20_TOKENS_URL = (
    "https://raw.githubusercontent.com/kvhnuke/etherwallet/mercury/app/scripts/tokens/ethTokens.json"
)


@dataclass(frozen=True)
class Settings:
    BOT_USERNAME: str
    CMC_API_KEY: str
    CMC_API_BASE: str
    CMC_LISTINGS_LIMIT: int
    CMC_CONVERT: str
    ERC20_TOKENS_URL: str
    REFRESH_ENABLED: bool
    REFRESH_INTERVAL_SECONDS: int
    FETCH_TIMEOUT_SECONDS: float
    READY_STALL_MULTIPLIER: float
    LOG_LEVEL: str

    @staticmethod
    def from_env() -> "Settings":
        return Settings(
            BOT_USERNAME=parse_str(os.getenv("CMBOT_BOT_USERNAME"), "cmbot"),
            CMC_API_KEY=parse_str(os.getenv("COINMARKETCAP_API_KEY"), ""),
            CMC_API_BASE=parse_str(os.getenv("CMC_API_BASE"), DEFAULT_CMC_API_BASE),
            CMC_LISTINGS_LIMIT=parse_int(os.getenv("CMC_LISTINGS_LIMIT"), 5000),
            CMC_CONVERT=parse_str(os.getenv("CMC_CONVERT"), "USD").upper(),
            ERC20_TOKENS_URL=parse_str(os.getenv("ERC20_TOKENS_URL"), DEFAULT_ERC20_TOKENS_URL),
            REFRESH_ENABLED=parse_bool(os.getenv("REFRESH_ENABLED"), True),
            REFRESH_INTERVAL_SECONDS=max(10, parse_int(os.getenv("REFRESH_INTERVAL_SECONDS"), 300)),
            FETCH_TIMEOUT_SECONDS=parse_float(os.getenv("FETCH_TIMEOUT_SECONDS"), 20.0),
            READY_STALL_MULTIPLIER=parse_float(os.getenv("READY_STALL_MULTIPLIER"), 2.5),
            LOG_LEVEL=parse_str(os.getenv("LOG_LEVEL"), "INFO").upper(),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    global _settings
    _settings = None
