# cmbot/jobs/refresh_scheduler.py
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from cmbot.models.market import Erc20Token, Snapshot
from cmbot.schemas.currency import RawListing
from cmbot.services.coinmarketcap import ListingsSource, RemoteFetchError
from cmbot.services.listings_cache import ListingsCache
from cmbot.utils.time import iso_z, iso_z_from_epoch, now_epoch, utcnow

logger = logging.getLogger("cmbot.refresh")


# ----------------------------
# run outcomes
# ----------------------------
@dataclass(frozen=True)
class RefreshSucceeded:
    snapshot: Snapshot
    duration_ms: int


@dataclass(frozen=True)
class RefreshFailed:
    error: BaseException
    duration_ms: int


@dataclass(frozen=True)
class RefreshSkipped:
    reason: str = "refresh already running"


RefreshOutcome = Union[RefreshSucceeded, RefreshFailed, RefreshSkipped]


@dataclass
class RefreshStats:
    last_run_ts: Optional[float] = None
    last_success_ts: Optional[float] = None
    last_success_ms: Optional[int] = None
    last_success_listings: Optional[int] = None
    last_error_ts: Optional[float] = None
    last_error: Optional[str] = None
    consecutive_failures: int = 0
    skipped_runs: int = 0
    started_at: Optional[float] = None


def build_snapshot(raw_listings: List[RawListing], tokens: Dict[str, str], *, convert: str = "USD") -> Snapshot:
    if not raw_listings:
        raise RemoteFetchError("listings payload was empty")

    listings = tuple(raw.to_listing(convert) for raw in raw_listings)
    erc20 = {addr.lower(): Erc20Token(address=addr.lower(), symbol=sym) for addr, sym in tokens.items()}
    return Snapshot(listings=listings, erc20_tokens=erc20, fetched_at=utcnow())


class ListingsRefresher:
    """
    Periodically pulls listings + ERC-20 directory and installs a new Snapshot.

    A failed run logs and leaves the cache alone; the next tick retries.
    Runs never overlap: a run requested while another is in flight is skipped.
    """

    def __init__(
        self,
        client: ListingsSource,
        cache: ListingsCache,
        *,
        interval_seconds: float = 300,
        timeout_seconds: float = 20.0,
        convert: str = "USD",
    ) -> None:
        self.client = client
        self.cache = cache
        self.interval_seconds = float(interval_seconds)
        self.timeout_seconds = float(timeout_seconds)
        self.convert = convert

        self.stats = RefreshStats()
        self._lock = asyncio.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    # ----------------------------
    # single run
    # ----------------------------
    async def _fetch(self) -> Tuple[List[RawListing], Dict[str, str]]:
        listings_task = asyncio.ensure_future(self.client.fetch_listings())
        tokens_task = asyncio.ensure_future(self.client.fetch_erc20_tokens())
        try:
            listings, tokens = await asyncio.gather(listings_task, tokens_task)
            return listings, tokens
        finally:
            for t in (listings_task, tokens_task):
                if not t.done():
                    t.cancel()

    async def run_once(self) -> RefreshOutcome:
        if self._lock.locked():
            self.stats.skipped_runs += 1
            logger.warning("refresh skipped | previous run still in flight")
            return RefreshSkipped()

        async with self._lock:
            self.stats.last_run_ts = now_epoch()
            t0 = time.perf_counter()

            try:
                raw_listings, tokens = await asyncio.wait_for(self._fetch(), timeout=self.timeout_seconds)
                snapshot = build_snapshot(raw_listings, tokens, convert=self.convert)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                dt_ms = int((time.perf_counter() - t0) * 1000)
                self.stats.last_error_ts = now_epoch()
                self.stats.last_error = repr(e)[:300]
                self.stats.consecutive_failures += 1

                if isinstance(e, (RemoteFetchError, asyncio.TimeoutError)):
                    logger.warning(
                        "refresh failed | %s | url=%s | failures=%d | %dms",
                        self.stats.last_error,
                        getattr(e, "url", None),
                        self.stats.consecutive_failures,
                        dt_ms,
                    )
                else:
                    logger.exception("refresh error | failures=%d | %dms", self.stats.consecutive_failures, dt_ms)
                return RefreshFailed(error=e, duration_ms=dt_ms)

            self.cache.set(snapshot)

            dt_ms = int((time.perf_counter() - t0) * 1000)
            self.stats.last_success_ts = now_epoch()
            self.stats.last_success_ms = dt_ms
            self.stats.last_success_listings = len(snapshot.listings)
            self.stats.consecutive_failures = 0

            logger.info(
                "refresh done | listings=%d | erc20=%d | version=%d | %dms",
                len(snapshot.listings),
                len(snapshot.erc20_tokens),
                self.cache.version,
                dt_ms,
            )
            return RefreshSucceeded(snapshot=snapshot, duration_ms=dt_ms)

    # ----------------------------
    # loop
    # ----------------------------
    async def _loop(self, stop_event: asyncio.Event) -> None:
        next_tick = time.monotonic()  # run immediately once

        while not stop_event.is_set():
            now = time.monotonic()
            if now < next_tick:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=(next_tick - now))
                except asyncio.TimeoutError:
                    pass
                continue

            await self.run_once()

            next_tick += self.interval_seconds
            if next_tick < time.monotonic() - self.interval_seconds:
                next_tick = time.monotonic() + self.interval_seconds

    @property
    def running(self) -> bool:
        return bool(self._task and not self._task.done() and self._stop_event and not self._stop_event.is_set())

    def start(self) -> None:
        if self.running:
            logger.warning("refresher already started")
            return

        self._stop_event = asyncio.Event()
        self.stats.started_at = now_epoch()
        self._task = asyncio.create_task(self._loop(self._stop_event), name="listings-refresh")
        logger.info("listings refresher started | interval_s=%s | timeout_s=%s", self.interval_seconds, self.timeout_seconds)

    async def stop(self, timeout_s: float = 6.0) -> None:
        task = self._task
        if task is None:
            return

        if self._stop_event:
            self._stop_event.set()

        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout_s)
        except asyncio.TimeoutError:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        finally:
            self._task = None
            self._stop_event = None

        logger.info("listings refresher stopped")

    # ----------------------------
    # status
    # ----------------------------
    def info(self) -> Dict[str, Any]:
        s = self.stats
        snapshot = self.cache.get()
        return {
            "ok": self.running,
            "running": self.running,
            "meta": {
                "started_at": s.started_at,
                "started_at_iso": iso_z_from_epoch(s.started_at),
            },
            "per_job": {
                "refresh:listings": {
                    "schedule_s": self.interval_seconds,
                    "timeout_s": self.timeout_seconds,
                    "last_run_ts": s.last_run_ts,
                    "last_run_iso": iso_z_from_epoch(s.last_run_ts),
                    "last_success_ts": s.last_success_ts,
                    "last_success_iso": iso_z_from_epoch(s.last_success_ts),
                    "last_success_ms": s.last_success_ms,
                    "last_success_listings": s.last_success_listings,
                    "consecutive_failures": s.consecutive_failures,
                    "skipped_runs": s.skipped_runs,
                    "last_error_ts": s.last_error_ts,
                    "last_error_iso": iso_z_from_epoch(s.last_error_ts),
                    "last_error": s.last_error,
                }
            },
            "cache": {
                "initialized": self.cache.is_initialized,
                "version": self.cache.version,
                "listings": len(snapshot.listings),
                "erc20_tokens": len(snapshot.erc20_tokens),
                "fetched_at_iso": iso_z(self.cache.last_updated),
            },
        }
