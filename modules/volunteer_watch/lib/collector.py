"""
Listing collection with a fallback strategy ladder.

The listing API does not reliably honor every filter parameter, and empty
pages are sometimes transient. Collection therefore runs, per shard, an
ordered list of query strategies from most to least restrictive and stops at
the first one that keeps at least one record after local filtering:

    A  keyword + region + status
    B  region + status
    C  region only
    D  keyword only
    E  no filter

When a whole sweep (every shard) comes back empty, local filters are relaxed
one at a time and the sweep is repeated; a sharded run finally tries one
unsharded, unfiltered pass before giving up.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from urllib.parse import unquote

from . import logging_bridge
from .config import Settings
from .decoder import ApiResultError, decode_page
from .http_client import HttpClient, HttpStatusError, response_text
from .models import ListingRecord, ListPage, Strategy
from .retry import with_retry
from .utils import between, debug_dump, includes_any, is_ymd, uniq_by

log = logging.getLogger(__name__)

LIST_ENDPOINT = "http://openapi.1365.go.kr/openapi/service/rest/VolunteerPartcptnService/getVltrSearchWordList"

SEOUL_SIDO_CODE = "6110000"
SIDO_TEXT_HINTS: dict[str, tuple[str, ...]] = {SEOUL_SIDO_CODE: ("서울", "서울특별시")}
SEOUL_GUGUN: tuple[str, ...] = (
    "강남구", "강동구", "강북구", "강서구", "관악구", "광진구", "구로구", "금천구",
    "노원구", "도봉구", "동대문구", "동작구", "마포구", "서대문구", "서초구", "성동구",
    "성북구", "송파구", "양천구", "영등포구", "용산구", "은평구", "종로구", "중구", "중랑구",
)

FetchPage = Callable[[Strategy, int], ListPage]


class CollectionExhaustedError(RuntimeError):
    """Every strategy, shard and relaxation produced zero records."""


@dataclass(frozen=True)
class Filters:
    """Local post-filters in force for one sweep."""

    recruiting_only: bool
    strict_region: bool

    def relaxed(self, **changes: bool) -> Filters:
        return replace(self, **changes)


@dataclass
class Collection:
    """Outcome of ListCollector.collect()."""

    records: list[ListingRecord] = field(default_factory=list)
    stage: str = ""
    filters: Filters | None = None


# ---- pure helpers -----------------------------------------------------------


def dedupe(records: Iterable[ListingRecord]) -> list[ListingRecord]:
    """First occurrence per registration id wins; order is preserved."""
    return uniq_by(records, lambda r: r.registration_id)


def compose_keyword(*parts: str) -> str:
    words: list[str] = []
    for p in parts:
        p = (p or "").strip()
        if p and p not in words:
            words.append(p)
    return " ".join(words)


def is_recruiting(record: ListingRecord, today: str) -> bool:
    """Notice period is a pair of real dates and brackets `today` (inclusive)."""
    nb, ne = record.notice_begin, record.notice_end
    return is_ymd(nb) and is_ymd(ne) and between(today, nb, ne)


def in_region(record: ListingRecord, sido_code: str, hints: Iterable[str]) -> bool:
    """API region code matches, or the free-text fields mention the region."""
    if record.region_code == sido_code:
        return True
    return includes_any(record.region_text(), hints)


def region_hints(settings: Settings) -> tuple[str, ...]:
    if settings.sido_name:
        return (settings.sido_name,)
    return SIDO_TEXT_HINTS.get(settings.sido_code, ())


def build_strategies(settings: Settings, shard_key: str, today: str) -> list[Strategy]:
    """
    The five-rung ladder for one shard, A to E. Every rung is kept even when
    unset settings make its query identical to an earlier one: the API
    sometimes answers empty and then succeeds on the same query.

    Empty params are left out, and each rung is named after the filters it
    actually sends (`A_sido+status+kw(...)`, `C_sido`, `E_no_filter`, ...).
    """
    notice_bg, notice_ed = settings.notice_window(today)
    notice = {"noticeBgnde": notice_bg, "noticeEndde": notice_ed}
    keyword = compose_keyword(settings.keyword, shard_key)
    region = {"sidoCd": settings.sido_code, "gugunCd": settings.gugun_code}
    status = {"progrmSttusSe": settings.status_code}
    kw = {"keyword": keyword}

    rungs = [
        ("A", {**kw, **region, **status, **notice}),
        ("B", {**region, **status, **notice}),
        ("C", {**region, **notice}),
        ("D", {**kw, **notice}),
        ("E", dict(notice)),
    ]
    out: list[Strategy] = []
    for letter, raw in rungs:
        params = {k: v for k, v in raw.items() if v}
        out.append(Strategy(f"{letter}_{_rung_label(params)}", params))
    return out


def _rung_label(params: Mapping[str, str]) -> str:
    parts = []
    if params.get("sidoCd"):
        parts.append("sido")
    if params.get("gugunCd"):
        parts.append("gugun")
    if params.get("progrmSttusSe"):
        parts.append("status")
    if params.get("keyword"):
        parts.append(f"kw({params['keyword']})")
    return "+".join(parts) or "no_filter"


# ---- collector --------------------------------------------------------------


class ListCollector:
    """
    Pages through the listing endpoint under the strategy ladder.

    Pages within one shard are fetched strictly in sequence with
    `list_page_delay_ms` between them; up to `list_concurrency` shards walk
    concurrently. Shard results are merged on the calling thread.

    `fetch_page(strategy, page_no) -> ListPage` can be injected for tests;
    by default pages come from the live endpoint through `client`.
    """

    def __init__(
        self,
        settings: Settings,
        client: HttpClient | None = None,
        *,
        today: str,
        fetch_page: FetchPage | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.today = today
        self._client = client
        self._fetch = fetch_page or self._http_fetch_page
        self._sleep = sleep
        self._hints = region_hints(settings)

    # ---- shards ----
    @property
    def sharded(self) -> bool:
        return self.settings.shard_gugun and self.settings.sido_code == SEOUL_SIDO_CODE

    def shard_keys(self) -> list[str]:
        return list(SEOUL_GUGUN) if self.sharded else [""]

    # ---- full run ----
    def collect(self) -> Collection:
        """
        Sweep all shards; relax strict-region, then recruiting-only, while
        the sweep stays empty; finish with one unsharded unfiltered pass.
        Raises CollectionExhaustedError when even that is empty.
        """
        s = self.settings
        filters = Filters(recruiting_only=s.recruiting_only, strict_region=s.strict_region_filter)
        stages: list[tuple[str, Filters]] = [("initial", filters)]
        if filters.strict_region:
            filters = filters.relaxed(strict_region=False)
            stages.append(("relaxed_region", filters))
        if filters.recruiting_only:
            filters = filters.relaxed(recruiting_only=False)
            stages.append(("relaxed_recruiting", filters))

        keys = self.shard_keys()
        for stage, stage_filters in stages:
            records = self.sweep(keys, stage_filters)
            if records:
                return self._done(records, stage, stage_filters)
            log.warning("[fallback] stage %s collected 0 items", stage)

        if self.sharded:
            log.warning("[fallback] unsharded sweep without keyword or filters")
            bare = Filters(recruiting_only=False, strict_region=False)
            records = dedupe(self.collect_with_strategies("", bare))
            if records:
                return self._done(records, "unsharded", bare)

        logging_bridge.error({
            "component": "volunteer_watch.collector",
            "op": "exhausted",
            "shards": len(keys),
            "stages": [name for name, _ in stages],
        })
        raise CollectionExhaustedError("No listings collected under any strategy, shard or relaxation.")

    def sweep(self, shard_keys: list[str], filters: Filters) -> list[ListingRecord]:
        """Run the ladder for every shard key and merge with dedupe."""
        if len(shard_keys) == 1:
            parts = [self.collect_with_strategies(shard_keys[0], filters)]
        else:
            workers = min(self.settings.list_concurrency, len(shard_keys))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="list") as pool:
                parts = list(pool.map(lambda key: self.collect_with_strategies(key, filters), shard_keys))

        merged: list[ListingRecord] = []
        for key, part in zip(shard_keys, parts):
            if key:
                log.info("  shard %s collected=%d", key, len(part))
            merged.extend(part)
        return dedupe(merged)

    # ---- one shard ----
    def collect_with_strategies(self, shard_key: str, filters: Filters) -> list[ListingRecord]:
        """
        Try each strategy in order; return the first non-empty result and
        make no further calls. API-level errors end the current strategy
        only. Returns [] when every strategy is empty.
        """
        for strategy in build_strategies(self.settings, shard_key, self.today):
            try:
                kept = self._walk(strategy, filters)
            except ApiResultError as e:
                log.warning("[%s] %s -> try next strategy", strategy.name, e)
                continue
            if kept:
                log.info("[%s] -> collected %d items", strategy.name, len(kept))
                return kept
            log.warning("[%s] 0 items -> try next strategy", strategy.name)
        return []

    def _walk(self, strategy: Strategy, filters: Filters) -> list[ListingRecord]:
        s = self.settings
        kept: list[ListingRecord] = []
        for page_no in range(1, s.max_pages + 1):
            if page_no > 1 and s.list_page_delay_ms:
                self._sleep(s.list_page_delay_ms / 1000.0)

            page = self._fetch(strategy, page_no)
            if page_no == 1 and not page.items:
                debug_dump(s.debug_target, f"page1_zero_{strategy.name}.xml", page.raw)

            for item in page.items:
                record = ListingRecord.from_api_item(item)
                if record.registration_id and self.keep(record, filters):
                    kept.append(record)

            log.info(
                "[%s] page=%d total=%d pageItems=%d kept=%d",
                strategy.name, page_no, page.total, len(page.items), len(kept),
            )

            if not page.items or len(kept) >= s.desired_min:
                break
            if page.total and page_no * s.per_page >= page.total:
                break
        return kept

    def keep(self, record: ListingRecord, filters: Filters) -> bool:
        if filters.recruiting_only and not is_recruiting(record, self.today):
            return False
        if filters.strict_region and self.settings.sido_code:
            return in_region(record, self.settings.sido_code, self._hints)
        return True

    # ---- network ----
    def _http_fetch_page(self, strategy: Strategy, page_no: int) -> ListPage:
        if self._client is None:
            raise RuntimeError("ListCollector needs an HttpClient or a fetch_page callable.")
        s = self.settings
        params = {
            # Portal keys are often handed out pre-encoded; requests encodes again.
            "ServiceKey": unquote(s.service_key) if "%" in s.service_key else s.service_key,
            "numOfRows": str(s.per_page),
            "pageNo": str(page_no),
            "_type": "json",
            **strategy.params,
        }
        name = f"list:{strategy.name}:p{page_no}"
        client = self._client
        try:
            resp = with_retry(lambda: client.get(LIST_ENDPOINT, params=params), name, s.max_retries)
        except HttpStatusError as e:
            body = response_text(e.response) if e.response is not None else e.body_preview
            debug_dump(s.debug_target, f"list_{strategy.name}_p{page_no}.txt", body)
            raise
        return decode_page(response_text(resp), resp.headers.get("Content-Type", ""), debug_dir=s.debug_target)

    def _done(self, records: list[ListingRecord], stage: str, filters: Filters) -> Collection:
        logging_bridge.activity({
            "component": "volunteer_watch.collector",
            "op": "collected",
            "stage": stage,
            "count": len(records),
            "recruiting_only": filters.recruiting_only,
            "strict_region": filters.strict_region,
            "shards": len(self.shard_keys()),
        })
        return Collection(records=records, stage=stage, filters=filters)
