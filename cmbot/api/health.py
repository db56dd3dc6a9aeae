# cmbot/api/health.py
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request, Response

from cmbot.services.listings_cache import ListingsCache
from cmbot.utils.readiness import annotate_scheduler_jobs
from cmbot.utils.time import iso_z

router = APIRouter(tags=["health"])

APP_STARTED_AT = time.time()


def _now_meta() -> Dict[str, Any]:
    now_ts = time.time()
    now_dt = datetime.fromtimestamp(now_ts, tz=timezone.utc)
    return {
        "now_ts": now_ts,
        "now_unix": int(now_ts),
        "now_iso": now_dt.isoformat().replace("+00:00", "Z"),
        "uptime_s": int(now_ts - APP_STARTED_AT),
    }


def _cache_check(cache: ListingsCache) -> Dict[str, Any]:
    snapshot = cache.get()
    return {
        "ok": cache.is_initialized and not snapshot.is_empty,
        "version": cache.version,
        "listings": len(snapshot.listings),
        "erc20_tokens": len(snapshot.erc20_tokens),
        "fetched_at_iso": iso_z(cache.last_updated),
    }


@router.get("/health")
def health() -> Dict[str, Any]:
    return {"ok": True, **_now_meta()}


@router.get("/ready")
def ready(request: Request, response: Response) -> Dict[str, Any]:
    state = request.app.state
    cache: ListingsCache = state.cache
    refresher = getattr(state, "refresher", None)
    stall_multiplier = getattr(state, "stall_multiplier", 2.5)

    checks: Dict[str, Any] = {"cache": _cache_check(cache)}
    stale: list[Dict[str, Any]] = []

    if refresher is not None:
        scheduler_check, stale = annotate_scheduler_jobs(refresher.info(), stall_multiplier=stall_multiplier)
        scheduler_check["ok"] = bool(scheduler_check.get("running")) and not stale
        checks["scheduler"] = scheduler_check
    else:
        checks["scheduler"] = {"ok": True, "running": False, "disabled": True}

    ok = all(bool(c.get("ok")) for c in checks.values())
    if not ok:
        response.status_code = 503

    return {"ok": ok, **_now_meta(), "checks": checks, "stale_jobs": stale}
