from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .utils import clean_text, normalize_ymd

# Snapshot item keys follow the listing API's own field names so that
# consumers of the published file can read API rows and snapshot rows alike.
_WIRE_KEYS: tuple[tuple[str, str], ...] = (
    ("registration_id", "progrmRegistNo"),
    ("title", "progrmSj"),
    ("program_begin", "progrmBgnde"),
    ("program_end", "progrmEndde"),
    ("notice_begin", "noticeBgnde"),
    ("notice_end", "noticeEndde"),
    ("recruit_count", "rcritNmpr"),
    ("applied_count", "aplyNmpr"),
    ("host_org", "mnnstNm"),
    ("register_org", "nanmmbyNm"),
    ("act_place", "actPlace"),
    ("act_begin_time", "actBeginTm"),
    ("act_end_time", "actEndTm"),
    ("act_begin_minute", "actBeginMnt"),
    ("act_end_minute", "actEndMnt"),
    ("region_code", "sidoCd"),
)
_DATE_FIELDS = frozenset({"program_begin", "program_end", "notice_begin", "notice_end"})


@dataclass
class ListingRecord:
    """
    One volunteer program as listed by the API (post-filter, pre-dedupe).

    Dedupe key is `registration_id`. Date fields are YYYYMMDD or "".
    `applied_count` is only ever populated by detail-page enrichment.
    """

    registration_id: str
    title: str = ""
    program_begin: str = ""
    program_end: str = ""
    notice_begin: str = ""
    notice_end: str = ""
    recruit_count: str = ""
    applied_count: str = ""
    host_org: str = ""  # organization running the program
    register_org: str = ""  # organization that registered it
    act_place: str = ""
    act_begin_time: str = ""
    act_end_time: str = ""
    act_begin_minute: str = ""
    act_end_minute: str = ""
    region_code: str = ""

    @classmethod
    def from_api_item(cls, item: Mapping[str, Any]) -> ListingRecord:
        values: dict[str, str] = {}
        for attr, wire in _WIRE_KEYS:
            if attr == "applied_count":
                continue
            raw = item.get(wire)
            values[attr] = normalize_ymd(raw) if attr in _DATE_FIELDS else clean_text(raw)
        return cls(**values)

    def to_dict(self) -> dict[str, str]:
        return {wire: getattr(self, attr) for attr, wire in _WIRE_KEYS}

    def region_text(self) -> str:
        """Free text searched for regional hints."""
        return f"{self.act_place} {self.host_org} {self.register_org}"


@dataclass
class CacheEntry:
    """
    Last-known enrichment values for one registration id.
    Persisted as {"recruit", "applied", "fetchedAt", "appliedFetchedAt"}.
    """

    recruit: str = ""
    applied: str = ""
    fetched_at: str | None = None
    applied_fetched_at: str | None = None

    @classmethod
    def from_raw(cls, raw: Any) -> CacheEntry:
        # Legacy files stored the bare recruit count as a string.
        if isinstance(raw, (str, int)):
            return cls(recruit=clean_text(raw))
        if not isinstance(raw, Mapping):
            return cls()
        recruit = raw.get("recruit")
        if recruit is None:
            recruit = raw.get("value")
        applied = raw.get("applied")
        if applied is None:
            applied = raw.get("aplyNmpr")
        return cls(
            recruit=clean_text(recruit),
            applied=clean_text(applied),
            fetched_at=raw.get("fetchedAt"),
            applied_fetched_at=raw.get("appliedFetchedAt"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"recruit": self.recruit, "applied": self.applied}
        if self.fetched_at:
            out["fetchedAt"] = self.fetched_at
        if self.applied_fetched_at:
            out["appliedFetchedAt"] = self.applied_fetched_at
        return out


@dataclass(frozen=True)
class Strategy:
    """One rung of the fallback ladder: a label plus listing query parameters."""

    name: str
    params: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ListPage:
    """Decoded listing page: normalized item mappings plus reported total."""

    items: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0
    raw: str = ""


@dataclass(frozen=True)
class DetailCounts:
    """Numeric strings pulled from a detail page; "" when not found."""

    recruit: str = ""
    applied: str = ""


@dataclass
class FillStats:
    """Where recruit/applied values came from in this run."""

    total: int = 0
    tried_detail: int = 0
    recruit_from_api_or_cache: int = 0
    recruit_from_detail: int = 0
    recruit_still_empty: int = 0
    applied_from_detail: int = 0
    applied_still_empty: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "triedDetail": self.tried_detail,
            "recruit": {
                "fromApiOrCache": self.recruit_from_api_or_cache,
                "fromDetail": self.recruit_from_detail,
                "stillEmpty": self.recruit_still_empty,
            },
            "applied": {
                "fromDetail": self.applied_from_detail,
                "stillEmpty": self.applied_still_empty,
            },
        }
