# service/scheduler.py
from __future__ import annotations

import logging
import os
import threading
import time as _time
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

import pytz
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .logging_utils import write_activity_log, write_error_log

LOG = logging.getLogger(__name__)

JOB_ID = "volunteer_watch"
DEFAULT_CRON = "0 */6 * * *"
DEFAULT_TZ = "Asia/Seoul"


# ---- Public controller ------------------------------------------------------


class SchedulerController:
    """
    A small façade around APScheduler so the CLI can manage lifecycle cleanly.
    """

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped_evt = threading.Event()

    def stop(self) -> None:
        if self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            # wait=False -> stop immediately; a run in flight is allowed to finish.
            self._scheduler.shutdown(wait=False)
        self._stopped_evt.set()
        LOG.info("Scheduler shut down complete.")

    def join(self, timeout: float | None = None) -> bool:
        """True if stopped before `timeout`."""
        return self._stopped_evt.wait(timeout=timeout)

    def get_job_ids(self) -> Iterable[str]:
        return (job.id for job in self._scheduler.get_jobs())


# ---- Module API -------------------------------------------------------------


def start(
    run_fn: Callable[..., Any],
    *,
    kwargs: dict[str, Any] | None = None,
    cron: str | None = None,
    tz_name: str | None = None,
    run_now: bool = False,
) -> SchedulerController:
    """
    Schedule `run_fn(**kwargs)` on a cron trigger and start a background
    scheduler. Returns a SchedulerController exposing stop() and join().

    The cron expression comes from `cron`, else VOLUNTEER_WATCH_CRON, else
    every six hours. The timezone comes from `tz_name`, else TZ, else
    Asia/Seoul. Overlapping runs are never allowed and missed fires coalesce.
    """
    tz = _resolve_timezone(tz_name)
    cron_expr = cron or os.getenv("VOLUNTEER_WATCH_CRON") or DEFAULT_CRON
    trigger = _build_trigger(cron_expr, tz)

    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults={"coalesce": True, "max_instances": 1},
        executors={"default": ThreadPoolExecutor(1)},
        jobstores={"default": MemoryJobStore()},
    )

    job_kwargs = dict(kwargs or {})

    def _job_wrapper() -> None:
        started = _time.monotonic()
        LOG.info("Job[%s] starting", JOB_ID)
        try:
            result = run_fn(**job_kwargs)
        except Exception as e:
            LOG.exception("Job[%s] raised an exception.", JOB_ID)
            _write_job_record(status="error", duration_s=_time.monotonic() - started, error=e)
            return
        duration = _time.monotonic() - started
        LOG.info("Job[%s] finished in %.3fs", JOB_ID, duration)
        count = result.get("count") if isinstance(result, dict) else None
        _write_job_record(status="ok", duration_s=duration, count=count)

    job_opts: dict[str, Any] = {}
    if run_now:
        job_opts["next_run_time"] = datetime.now(tz)
    scheduler.add_job(func=_job_wrapper, trigger=trigger, id=JOB_ID, replace_existing=True, **job_opts)

    scheduler.start()
    job = scheduler.get_job(JOB_ID)
    nrt = getattr(job, "next_run_time", None) if job else None
    LOG.info("Scheduler started: cron=%r tz=%s next_run_time=%s", cron_expr, tz, nrt)
    return SchedulerController(scheduler)


# ---- Helpers ----------------------------------------------------------------


def _resolve_timezone(tz_name: str | None = None):
    """
    APScheduler 3.x expects a pytz timezone. Falls back to UTC (logged) when
    the name is unknown.
    """
    name = tz_name or os.getenv("TZ") or DEFAULT_TZ
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Falling back to UTC timezone (invalid tz '%s')", name)
        return pytz.UTC


def _build_trigger(cron_expr: str, tz: Any) -> CronTrigger:
    """Five-field crontab string evaluated in `tz` (a pytz zone)."""
    fields = (cron_expr or "").strip().split()
    if len(fields) != 5:
        raise ValueError(f"cron string must have 5 fields (got {len(fields)}): {cron_expr!r}")
    return CronTrigger.from_crontab(" ".join(fields), timezone=tz)


def _write_job_record(status: str, duration_s: float, count: int | None = None, error: BaseException | None = None) -> None:
    """Best-effort JSONL record per scheduled run."""
    record = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "source": "scheduler",
        "event": "job_run",
        "fields": {
            "job_id": JOB_ID,
            "status": status,
            "duration_ms": int(duration_s * 1000),
            "count": count,
        },
    }
    try:
        if error is not None:
            record["fields"]["error"] = repr(error)
            write_error_log(record)
        else:
            write_activity_log(record)
    except OSError:
        LOG.debug("job record write failed for job[%s]", JOB_ID, exc_info=True)
