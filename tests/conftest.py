# tests/conftest.py
import json
import os
import tempfile

import pytest
from freezegun import freeze_time

from modules.volunteer_watch.lib import config as vw_config
from modules.volunteer_watch.lib.models import ListPage


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls or external services).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls or hit external services (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="vw-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")

    # No pipeline setting leaks in from the developer's shell.
    for env_name, _kind, _default in vw_config._FIELDS.values():
        monkeypatch.delenv(env_name, raising=False)
    monkeypatch.delenv("VOLUNTEER_WATCH_CRON", raising=False)
    yield


@pytest.fixture
def frozen_kst_noon():
    # 2025-06-15 12:00 KST
    with freeze_time("2025-06-15T03:00:00Z"):
        yield


# ---------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------
@pytest.fixture
def make_settings(tmp_path):
    """
    Settings factory with files under tmp_path, no pacing delays and debug
    dumps off. Keyword overrides use Settings field names.
    """

    def _make(**overrides):
        kw = {
            "service_key": "test-key",
            "list_page_delay_ms": 0,
            "detail_delay_ms": 0,
            "output_path": str(tmp_path / "data" / "1365.json"),
            "cache_path": str(tmp_path / "data" / "recruit_cache.json"),
            "debug_dir": str(tmp_path / "debug"),
            "debug_dumps": False,
            "shard_gugun": False,
        }
        kw.update(overrides)
        return vw_config.Settings.from_env_and_kwargs(kw, environ={})

    return _make


def api_item(pid, *, notice=("20250601", "20250630"), sido="6110000", **extra):
    """One listing row as the API returns it."""
    row = {
        "progrmRegistNo": str(pid),
        "progrmSj": f"Program {pid}",
        "noticeBgnde": notice[0],
        "noticeEndde": notice[1],
        "progrmBgnde": "20250701",
        "progrmEndde": "20250731",
        "sidoCd": sido,
        "actPlace": "서울특별시 마포구",
        "mnnstNm": "마포구자원봉사센터",
        "nanmmbyNm": "마포구자원봉사센터",
    }
    row.update(extra)
    return row


def json_page(items, total=None):
    """Serialized JSON envelope for `items`."""
    body = {
        "response": {
            "header": {"resultCode": "00", "resultMsg": "NORMAL SERVICE."},
            "body": {
                "items": {"item": items} if items else "",
                "numOfRows": 100,
                "pageNo": 1,
                "totalCount": len(items) if total is None else total,
            },
        }
    }
    return json.dumps(body, ensure_ascii=False)


class FakePages:
    """
    fetch_page stand-in. `by_strategy` maps a strategy-name prefix (e.g. "A_",
    "C_") to a list of pages (lists of api items); unmatched strategies get
    empty pages. Every call is recorded as (strategy name, page_no, params).
    """

    def __init__(self, by_strategy=None, total=None):
        self.by_strategy = by_strategy or {}
        self.total = total
        self.calls = []

    def __call__(self, strategy, page_no):
        self.calls.append((strategy.name, page_no, dict(strategy.params)))
        for prefix, pages in self.by_strategy.items():
            if strategy.name.startswith(prefix):
                items = pages[page_no - 1] if page_no <= len(pages) else []
                total = self.total if self.total is not None else sum(len(p) for p in pages)
                return ListPage(items=list(items), total=total, raw="")
        return ListPage(items=[], total=0, raw="")

    @property
    def strategy_names(self):
        out = []
        for name, _page, _params in self.calls:
            if name not in out:
                out.append(name)
        return out


@pytest.fixture
def fake_pages():
    return FakePages
