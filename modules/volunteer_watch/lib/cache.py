from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from typing import Any

from .models import CacheEntry
from .utils import now_iso, write_json_atomic

log = logging.getLogger(__name__)


class RecruitCache:
    """
    Enrichment values keyed by registration id, persisted as one JSON object.

    Entries never expire and are never removed; updates overwrite in place.
    The whole mapping is written back by save(). Single-writer: the
    enrichment pass applies updates from the calling thread only.
    """

    def __init__(self, path: str, entries: Mapping[str, CacheEntry] | None = None):
        self.path = path
        self._entries: dict[str, CacheEntry] = dict(entries or {})

    # ---- load / save ----
    @classmethod
    def load(cls, path: str) -> RecruitCache:
        """
        Read the cache file. A missing file is an empty cache; so is an
        unreadable one (logged), since the cache only saves detail requests.
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return cls(path)
        except (OSError, json.JSONDecodeError) as e:
            log.warning("Ignoring unreadable cache %s: %r", path, e)
            return cls(path)
        if not isinstance(data, dict):
            log.warning("Ignoring cache %s: top level is %s, not an object", path, type(data).__name__)
            return cls(path)
        return cls(path, {str(k): CacheEntry.from_raw(v) for k, v in data.items()})

    def save(self) -> None:
        write_json_atomic(self.path, self.to_dict())

    # ---- access ----
    def get(self, registration_id: str) -> CacheEntry:
        """Entry for `registration_id`, or an empty one (not stored)."""
        return self._entries.get(registration_id) or CacheEntry()

    def update(
        self,
        registration_id: str,
        *,
        recruit: str = "",
        applied: str = "",
        now: str | None = None,
    ) -> CacheEntry:
        """
        Merge fresh values into the entry. Empty values leave the previous
        value alone; each field that receives a value gets its own timestamp.
        """
        ts = now or now_iso()
        prev = self._entries.get(registration_id) or CacheEntry()
        entry = CacheEntry(
            recruit=recruit or prev.recruit,
            applied=applied or prev.applied,
            fetched_at=ts if recruit else prev.fetched_at,
            applied_fetched_at=ts if applied else prev.applied_fetched_at,
        )
        self._entries[registration_id] = entry
        return entry

    def to_dict(self) -> dict[str, Any]:
        return {k: v.to_dict() for k, v in self._entries.items()}

    def __contains__(self, registration_id: object) -> bool:
        return registration_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)
