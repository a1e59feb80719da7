# tests/test_volunteer_watch_cache.py
import json

from modules.volunteer_watch.lib.cache import RecruitCache
from modules.volunteer_watch.lib.models import CacheEntry


def test_missing_file_is_an_empty_cache(tmp_path):
    cache = RecruitCache.load(str(tmp_path / "nope.json"))
    assert len(cache) == 0
    assert cache.get("1") == CacheEntry()


def test_unreadable_file_is_an_empty_cache(tmp_path):
    p = tmp_path / "cache.json"
    p.write_text("{truncated", encoding="utf-8")
    assert len(RecruitCache.load(str(p))) == 0

    p.write_text("[1, 2, 3]", encoding="utf-8")
    assert len(RecruitCache.load(str(p))) == 0


def test_legacy_and_alias_shapes_are_read(tmp_path):
    p = tmp_path / "cache.json"
    p.write_text(
        json.dumps({
            "100": "12",
            "101": 7,
            "102": {"value": "30"},
            "103": {"recruit": "5", "aplyNmpr": "2", "fetchedAt": "2025-06-01T00:00:00.000Z"},
        }),
        encoding="utf-8",
    )
    cache = RecruitCache.load(str(p))

    assert cache.get("100") == CacheEntry(recruit="12")
    assert cache.get("101").recruit == "7"
    assert cache.get("102").recruit == "30"
    entry = cache.get("103")
    assert (entry.recruit, entry.applied, entry.fetched_at) == ("5", "2", "2025-06-01T00:00:00.000Z")


def test_update_keeps_previous_values_and_stamps_touched_fields():
    cache = RecruitCache("unused.json")
    cache.update("1", recruit="20", now="T1")
    cache.update("1", applied="4", now="T2")
    entry = cache.update("1", now="T3")

    assert entry.recruit == "20"
    assert entry.applied == "4"
    assert entry.fetched_at == "T1"
    assert entry.applied_fetched_at == "T2"


def test_save_then_load_round_trip(tmp_path):
    path = str(tmp_path / "nested" / "recruit_cache.json")
    cache = RecruitCache(path)
    cache.update("A1", recruit="15", applied="3", now="2025-06-15T03:00:00.000Z")
    cache.update("A2", recruit="8", now="2025-06-15T03:00:00.000Z")
    cache.save()

    raw = json.loads((tmp_path / "nested" / "recruit_cache.json").read_text(encoding="utf-8"))
    assert raw["A1"] == {
        "recruit": "15",
        "applied": "3",
        "fetchedAt": "2025-06-15T03:00:00.000Z",
        "appliedFetchedAt": "2025-06-15T03:00:00.000Z",
    }
    assert raw["A2"] == {"recruit": "8", "applied": "", "fetchedAt": "2025-06-15T03:00:00.000Z"}

    again = RecruitCache.load(path)
    assert set(again) == {"A1", "A2"}
    assert again.get("A1") == cache.get("A1")
    assert "A2" in again
