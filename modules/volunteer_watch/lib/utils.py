from __future__ import annotations

import contextlib
import json
import logging
import os
import re
import tempfile
from collections.abc import Callable, Hashable, Iterable
from datetime import date, datetime, timedelta, timezone
from typing import Any, TypeVar

from dateutil import tz as _tz

log = logging.getLogger(__name__)

T = TypeVar("T")

# Notice periods and "today" are always judged on the Korean calendar.
KST = _tz.gettz("Asia/Seoul") or _tz.tzoffset("KST", 9 * 3600)

_YMD_RE = re.compile(r"^\d{8}$")
_NON_DIGIT_RE = re.compile(r"\D")


def truthy(v: Any) -> bool:
    """
    Normalize common truthy inputs from env/kwargs.
    Accepts bools or strings like: '1', 'true', 'yes', 'on'.
    """
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    if isinstance(v, (int, float)):
        return v != 0
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "on", "y", "t"}


def now_iso(now: datetime | None = None) -> str:
    """
    UTC ISO-8601 timestamp with 'Z' suffix (millisecond precision).
    """
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ---- KST calendar -----------------------------------------------------------


def today_ymd(now: datetime | None = None) -> str:
    """Today's date in Asia/Seoul as YYYYMMDD."""
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current.astimezone(KST).strftime("%Y%m%d")


def add_days_ymd(base_ymd: str, days: int) -> str:
    d = datetime.strptime(base_ymd, "%Y%m%d").date() + timedelta(days=int(days))
    return d.strftime("%Y%m%d")


def is_ymd(v: Any) -> bool:
    return isinstance(v, str) and bool(_YMD_RE.match(v))


def normalize_ymd(v: Any) -> str:
    """
    Coerce a date-ish value to YYYYMMDD or "".
    Separators are dropped ("2025-07-01" -> "20250701"); anything with fewer
    than eight digits is treated as absent.
    """
    if v is None:
        return ""
    digits = _NON_DIGIT_RE.sub("", str(v))
    if len(digits) < 8:
        return ""
    candidate = digits[:8]
    try:
        date(int(candidate[:4]), int(candidate[4:6]), int(candidate[6:8]))
    except ValueError:
        return ""
    return candidate


def between(v: str, lo: str, hi: str) -> bool:
    """Inclusive YYYYMMDD range check; empty bounds are open."""
    if not is_ymd(v):
        return False
    return (not lo or v >= lo) and (not hi or v <= hi)


def includes_any(text: str, needles: Iterable[str]) -> bool:
    return any(n and n in text for n in needles)


def uniq_by(items: Iterable[T], key: Callable[[T], Hashable]) -> list[T]:
    """Keep the first item per key, preserving order."""
    seen: set[Hashable] = set()
    out: list[T] = []
    for it in items:
        k = key(it)
        if k in seen:
            continue
        seen.add(k)
        out.append(it)
    return out


def clean_text(v: Any) -> str:
    if v is None:
        return ""
    return str(v).strip()


# ---- File helpers -----------------------------------------------------------


def write_json_atomic(path: str, payload: Any) -> None:
    """Serialize first, then replace the target in one rename."""
    data = json.dumps(payload, ensure_ascii=False, indent=2)
    directory = os.path.dirname(os.path.abspath(path)) or "."
    os.makedirs(directory, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".tmp-", suffix=".json", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.remove(tmp)
        raise


def debug_dump(debug_dir: str | None, name: str, payload: Any) -> str | None:
    """
    Best-effort raw body dump for offline inspection. Never raises.
    Returns the written path, or None when disabled or on I/O failure.
    """
    if not debug_dir:
        return None
    safe_name = re.sub(r"[^0-9A-Za-z._+()-]+", "_", name)
    path = os.path.join(debug_dir, safe_name)
    text = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False, default=str)
    try:
        os.makedirs(debug_dir, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
    except OSError:
        log.debug("debug dump to %s failed", path, exc_info=True)
        return None
    log.warning("[debug] dumped -> %s", path)
    return path
