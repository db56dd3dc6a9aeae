# cmbot/utils/readiness.py
from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Tuple

# job is stale if age > STALL_MULTIPLIER * schedule_s
STALL_MULTIPLIER_DEFAULT = 2.5


def _coerce_float(value: Any, default: float = 0.0) -> float:
    try:
        if value is None:
            return default
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_unix_ts(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def annotate_scheduler_jobs(
    scheduler_check: Dict[str, Any],
    now_ts: float | None = None,
    stall_multiplier: float = STALL_MULTIPLIER_DEFAULT,
) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """
    Adds stall detection to a refresher `info()` payload.

    Per job the payload gains: age_s, allowed_age_s, stalled, stalled_by_s,
    never_succeeded, ref_ts_key. A job is stalled if
    (now - last_success_ts) > stall_multiplier * schedule_s. A job that has
    never succeeded is measured from last_run_ts, then from meta.started_at.

    Returns (scheduler_check, stale_jobs). The payload is updated in place.
    """
    now = float(now_ts) if now_ts is not None else time.time()
    stall_mult = _coerce_float(stall_multiplier, default=STALL_MULTIPLIER_DEFAULT)

    per_job = scheduler_check.get("per_job") or {}
    meta = scheduler_check.get("meta") or {}
    started_at_unix = _to_unix_ts(meta.get("started_at"))

    stale: List[Dict[str, Any]] = []

    for job_id, j in per_job.items():
        schedule_s = _coerce_float(j.get("schedule_s"), default=0.0)
        allowed_age_s = schedule_s * stall_mult if schedule_s > 0 else None

        last_success_unix = _to_unix_ts(j.get("last_success_ts"))
        last_run_unix = _to_unix_ts(j.get("last_run_ts"))

        if last_success_unix is not None:
            ref_ts_unix, ref_ts_key = last_success_unix, "last_success_ts"
        elif last_run_unix is not None:
            ref_ts_unix, ref_ts_key = last_run_unix, "last_run_ts"
        elif started_at_unix is not None:
            ref_ts_unix, ref_ts_key = started_at_unix, "meta.started_at"
        else:
            ref_ts_unix, ref_ts_key = None, None

        age_s: Optional[float] = None
        if ref_ts_unix is not None:
            age_s = max(0.0, now - ref_ts_unix)

        stalled = False
        stalled_by_s = 0.0
        if allowed_age_s is not None and age_s is not None and age_s > allowed_age_s:
            stalled = True
            stalled_by_s = age_s - allowed_age_s

        j["stall_multiplier"] = stall_mult
        j["age_s"] = age_s
        j["allowed_age_s"] = allowed_age_s
        j["ref_ts_key"] = ref_ts_key
        j["stalled"] = stalled
        j["stalled_by_s"] = stalled_by_s
        j["never_succeeded"] = last_success_unix is None

        if stalled:
            stale.append(
                {
                    "job_id": job_id,
                    "schedule_s": schedule_s,
                    "age_s": age_s,
                    "allowed_age_s": allowed_age_s,
                    "stalled_by_s": stalled_by_s,
                    "ref_ts_key": ref_ts_key,
                    "last_error": j.get("last_error"),
                    "consecutive_failures": j.get("consecutive_failures"),
                }
            )

    return scheduler_check, stale
