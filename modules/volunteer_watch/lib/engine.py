"""
Engine for one volunteer listings run: collect, enrich, snapshot.

Features:
  - Listing collection under the fallback strategy ladder (`collector`)
  - Best-effort detail enrichment backed by a persistent cache (`enrich`)
  - Sorted snapshot written atomically, cache flushed on success only
  - Dependency injection for testability (`fetch_page`, `fetch_counts`, clients)
  - Structured logging via `logging_bridge`
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any

from . import logging_bridge
from .cache import RecruitCache
from .collector import FetchPage, ListCollector
from .config import Settings
from .enrich import FetchCounts, enrich_details, fetch_detail_counts
from .http_client import HttpClient
from .snapshot import build_snapshot, write_snapshot
from .utils import now_iso, today_ymd


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================
def run_once(
    settings: Settings,
    *,
    list_client: HttpClient | None = None,
    detail_client: HttpClient | None = None,
    fetch_page: FetchPage | None = None,
    fetch_counts: FetchCounts | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Run one complete pipeline pass and return the snapshot document.

    Args:
        settings: Resolved configuration.
        list_client / detail_client: HTTP pools; created (and closed) here
            when not given and the matching fetch callable is not injected.
        fetch_page: Optional listing page fetcher override (tests).
        fetch_counts: Optional detail count fetcher override (tests).
        now: Clock override for "today" and timestamps.

    Raises:
        CollectionExhaustedError when nothing could be collected; transport
        and decode errors from the listing API propagate unchanged. Nothing
        is written in either case.
    """
    start_ns = time.perf_counter_ns()
    today = today_ymd(now)
    stamp = now_iso(now)

    owned: list[HttpClient] = []
    if fetch_page is None and list_client is None:
        list_client = HttpClient(
            timeout=settings.timeout_s,
            max_in_flight=settings.list_concurrency,
            ipv4_only=settings.force_ipv4,
        )
        owned.append(list_client)
    if fetch_counts is None and detail_client is None:
        detail_client = HttpClient(
            timeout=settings.timeout_s,
            max_in_flight=settings.detail_concurrency,
            ipv4_only=settings.force_ipv4,
        )
        owned.append(detail_client)

    try:
        cache = RecruitCache.load(settings.cache_path)

        # ---------------------------------------------------------------------
        # COLLECT
        # ---------------------------------------------------------------------
        t0 = time.perf_counter_ns()
        collector = ListCollector(settings, list_client, today=today, fetch_page=fetch_page)
        collection = collector.collect()
        collect_us = int((time.perf_counter_ns() - t0) // 1000)

        # ---------------------------------------------------------------------
        # ENRICH
        # ---------------------------------------------------------------------
        counts_fn = fetch_counts
        if counts_fn is None:
            client = detail_client

            def counts_fn(pid: str):
                return fetch_detail_counts(client, pid, retries=settings.max_retries)

        t0 = time.perf_counter_ns()
        stats = enrich_details(
            collection.records,
            cache,
            counts_fn,
            max_detail=settings.max_detail,
            concurrency=settings.detail_concurrency,
            delay_ms=settings.detail_delay_ms,
        )
        enrich_us = int((time.perf_counter_ns() - t0) // 1000)
    finally:
        for c in owned:
            c.close()

    # -------------------------------------------------------------------------
    # PERSIST (snapshot first, then cache)
    # -------------------------------------------------------------------------
    snapshot = build_snapshot(settings, today, collection, stats, updated_at=stamp)
    write_snapshot(settings.output_path, snapshot)
    cache.save()

    total_us = int((time.perf_counter_ns() - start_ns) // 1000)
    logging_bridge.activity({
        "component": "volunteer_watch.engine",
        "op": "summary",
        "today": today,
        "stage": collection.stage,
        "count": snapshot["count"],
        "stat": snapshot["stat"],
        "cache_entries": len(cache),
        "output_path": settings.output_path,
        "durations_us": {"collect": collect_us, "enrich": enrich_us},
        "total_us": total_us,
    })
    return snapshot

