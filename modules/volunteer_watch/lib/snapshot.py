from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

from .collector import Collection
from .config import Settings
from .models import FillStats, ListingRecord
from .utils import now_iso, write_json_atomic

MISSING_DATE_KEY = "99999999"

_NON_DIGIT_RE = re.compile(r"\D")


def sort_key(value: Any) -> str:
    """First 8 digits of `value`, or a key that sorts after every real date."""
    if value is None:
        return MISSING_DATE_KEY
    digits = _NON_DIGIT_RE.sub("", str(value))
    return digits[:8] if len(digits) >= 8 else MISSING_DATE_KEY


def sort_records(records: Iterable[ListingRecord]) -> list[ListingRecord]:
    """Notice end date ascending; stable for equal keys."""
    return sorted(records, key=lambda r: sort_key(r.notice_end))


def build_snapshot(
    settings: Settings,
    today: str,
    collection: Collection,
    stats: FillStats,
    *,
    updated_at: str | None = None,
) -> dict[str, Any]:
    """
    Snapshot document for one run. `params` echoes the resolved settings,
    with the two local filters reported as they were actually in force
    after any relaxation, plus the collection stage that produced the items.
    """
    items = sort_records(collection.records)
    params = settings.echo_params(today)
    if collection.filters is not None:
        params["RECRUITING_ONLY"] = collection.filters.recruiting_only
        params["STRICT_REGION_FILTER"] = collection.filters.strict_region
    params["collectStage"] = collection.stage

    stat = stats.to_dict()
    stat["total"] = len(items)
    return {
        "updatedAt": updated_at or now_iso(),
        "params": params,
        "stat": stat,
        "count": len(items),
        "items": [r.to_dict() for r in items],
    }


def write_snapshot(path: str, snapshot: dict[str, Any]) -> None:
    write_json_atomic(path, snapshot)
