from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from urllib.parse import quote

from .cache import RecruitCache
from .extract import extract_counts
from .http_client import HttpClient, HttpStatusError
from .models import DetailCounts, FillStats, ListingRecord
from .retry import with_retry

log = logging.getLogger(__name__)

DETAIL_URL = "https://www.1365.go.kr/vols/P9210/partcptn/timeCptn.do?type=show&progrmRegistNo={pid}"

FetchCounts = Callable[[str], DetailCounts]


def detail_url(registration_id: str) -> str:
    return DETAIL_URL.format(pid=quote(registration_id, safe=""))


def fetch_detail_counts(client: HttpClient, registration_id: str, *, retries: int = 5) -> DetailCounts:
    """
    Scrape one detail page. Best effort: any failure (after retries for
    transient ones) is logged and yields empty counts.
    """
    url = detail_url(registration_id)
    try:
        html = with_retry(lambda: client.get_text(url), f"detail:{registration_id}", retries)
    except HttpStatusError as e:
        log.warning("detail %s: HTTP %s -> empty counts", registration_id, e.status)
        return DetailCounts()
    except Exception as e:
        log.warning("detail %s: %s -> empty counts", registration_id, type(e).__name__)
        return DetailCounts()
    try:
        return extract_counts(html)
    except Exception:
        log.warning("detail %s: unparseable page -> empty counts", registration_id, exc_info=True)
        return DetailCounts()


def enrich_details(
    records: list[ListingRecord],
    cache: RecruitCache,
    fetch_counts: FetchCounts,
    *,
    max_detail: int = 999999,
    concurrency: int = 16,
    delay_ms: int = 0,
    sleep: Callable[[float], None] = time.sleep,
) -> FillStats:
    """
    Fill recruit/applied counts in place and fold results into `cache`.

    - A recruit count already present (API or cache) is kept; the detail
      page only fills it when empty.
    - The applied count is always taken fresh from the detail page, never
      from the cache alone.
    - At most `max_detail` records get a detail fetch; fetches run on a pool
      of `concurrency` workers, and every record/cache mutation happens here
      on the calling thread as results arrive.
    """
    stats = FillStats(total=len(records))

    for rec in records:
        if not rec.recruit_count:
            rec.recruit_count = cache.get(rec.registration_id).recruit
        if rec.recruit_count:
            stats.recruit_from_api_or_cache += 1

    targets: list[ListingRecord] = []
    seen: set[str] = set()
    for rec in records:
        if len(targets) >= max_detail:
            break
        if rec.registration_id in seen:
            continue
        seen.add(rec.registration_id)
        targets.append(rec)

    def _job(rec: ListingRecord) -> DetailCounts:
        if delay_ms:
            sleep(delay_ms / 1000.0)
        return fetch_counts(rec.registration_id)

    if targets:
        with ThreadPoolExecutor(max_workers=max(1, concurrency), thread_name_prefix="detail") as pool:
            futures = {pool.submit(_job, rec): rec for rec in targets}
            for fut in as_completed(futures):
                rec = futures[fut]
                try:
                    counts = fut.result()
                except Exception as e:
                    log.warning("detail %s: %s -> empty counts", rec.registration_id, type(e).__name__)
                    counts = DetailCounts()
                _apply(rec, counts, cache, stats)

    return stats


def _apply(rec: ListingRecord, counts: DetailCounts, cache: RecruitCache, stats: FillStats) -> None:
    stats.tried_detail += 1
    if counts.recruit and not rec.recruit_count:
        rec.recruit_count = counts.recruit
        stats.recruit_from_detail += 1
    if counts.applied:
        rec.applied_count = counts.applied
        stats.applied_from_detail += 1
    if not rec.recruit_count:
        stats.recruit_still_empty += 1
    if not rec.applied_count:
        stats.applied_still_empty += 1
    cache.update(rec.registration_id, recruit=rec.recruit_count, applied=rec.applied_count)
