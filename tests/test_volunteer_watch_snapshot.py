# tests/test_volunteer_watch_snapshot.py
import json

from modules.volunteer_watch.lib.collector import Collection, Filters
from modules.volunteer_watch.lib.models import FillStats, ListingRecord
from modules.volunteer_watch.lib.snapshot import (
    MISSING_DATE_KEY,
    build_snapshot,
    sort_key,
    sort_records,
    write_snapshot,
)


def _rec(pid, notice_end):
    return ListingRecord(registration_id=pid, title=f"봉사 {pid}", notice_end=notice_end)


def test_missing_dates_sort_last():
    records = [_rec("a", "20250701"), _rec("b", ""), _rec("c", "20250610")]
    assert [r.notice_end for r in sort_records(records)] == ["20250610", "20250701", ""]


def test_sort_is_stable_for_equal_keys():
    records = [_rec("x", ""), _rec("y", "20250610"), _rec("z", "")]
    assert [r.registration_id for r in sort_records(records)] == ["y", "x", "z"]


def test_sort_key_normalization():
    assert sort_key("2025-06-10") == "20250610"
    assert sort_key("20250610 23:59") == "20250610"
    assert sort_key("2025") == MISSING_DATE_KEY
    assert sort_key(None) == MISSING_DATE_KEY


def test_build_snapshot_shape(make_settings):
    settings = make_settings(service_key="super-secret", sido_code="6110000", recruiting_only=True)
    collection = Collection(
        records=[_rec("2", "20250701"), _rec("1", "20250620")],
        stage="relaxed_recruiting",
        filters=Filters(recruiting_only=False, strict_region=False),
    )
    stats = FillStats(total=2, tried_detail=2, recruit_from_detail=1, recruit_still_empty=1, applied_still_empty=2)

    snap = build_snapshot(settings, "20250615", collection, stats, updated_at="2025-06-15T03:00:00.000Z")

    assert list(snap) == ["updatedAt", "params", "stat", "count", "items"]
    assert snap["updatedAt"] == "2025-06-15T03:00:00.000Z"
    assert snap["count"] == 2
    assert [it["progrmRegistNo"] for it in snap["items"]] == ["1", "2"]
    assert snap["items"][0]["progrmSj"] == "봉사 1"
    assert snap["stat"]["triedDetail"] == 2
    assert snap["stat"]["recruit"] == {"fromApiOrCache": 0, "fromDetail": 1, "stillEmpty": 1}

    params = snap["params"]
    assert "super-secret" not in json.dumps(params)
    assert params["SIDO_CODE"] == "6110000"
    assert params["RECRUITING_ONLY"] is False  # effective value after relaxation
    assert params["collectStage"] == "relaxed_recruiting"
    assert params["refreshApplied"] == "always"


def test_write_snapshot_is_utf8_and_indented(tmp_path):
    path = tmp_path / "docs" / "data" / "1365.json"
    write_snapshot(str(path), {"count": 1, "items": [{"progrmSj": "하천 정화"}]})

    text = path.read_text(encoding="utf-8")
    assert "하천 정화" in text
    assert '\n  "count": 1' in text
    assert json.loads(text)["count"] == 1
    assert [p.name for p in path.parent.iterdir()] == ["1365.json"]
