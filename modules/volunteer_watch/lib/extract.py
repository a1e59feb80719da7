"""
Recruit / applied counts from a program detail page.

The detail page is server-rendered HTML whose layout has changed over time,
so each label is tried against three shapes in order and the first number
found wins:

  1. <dt>label</dt> ... <dd>25명</dd>
  2. <th>label</th> ... <td>25명</td>
  3. the label followed, within a short span of page text, by "<n>명"

Nothing here raises on odd markup; a label that matches nowhere yields "".
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup

from .models import DetailCounts

RECRUIT_LABELS = (r"모집\s*인원", r"총\s*모집\s*인원")
APPLIED_LABELS = (r"신청\s*인원", r"신청\s*현황", r"신청\s*자(?:\s*수)?", r"현재\s*신청")

TEXT_WINDOW = 300

_COUNT_RE = re.compile(r"([0-9][0-9,]*)\s*명")
# "신청 3명 / 20명": applied first, capacity second
_APPLIED_OF_RECRUIT_RE = re.compile(r"신청[^0-9]{0,10}?([0-9][0-9,]*)\s*명\s*/\s*([0-9][0-9,]*)\s*명")
_WS_RE = re.compile(r"\s+")


def pick_number(text: str) -> str:
    """First "<digits>명" count in `text`, without thousands separators."""
    m = _COUNT_RE.search(text or "")
    return m.group(1).replace(",", "") if m else ""


def extract_counts(html: str | None) -> DetailCounts:
    if not html:
        return DetailCounts()
    soup = BeautifulSoup(html, "html.parser")
    text = _flatten(soup.get_text(" "))

    recruit = _count_by_labels(soup, text, RECRUIT_LABELS)
    applied = _count_by_labels(soup, text, APPLIED_LABELS)
    if not applied:
        m = _APPLIED_OF_RECRUIT_RE.search(text)
        if m:
            applied = m.group(1).replace(",", "")
    return DetailCounts(recruit=recruit, applied=applied)


# ---- internals --------------------------------------------------------------


def _flatten(s: str) -> str:
    return _WS_RE.sub(" ", s).strip()


def _count_by_labels(soup: BeautifulSoup, text: str, labels: tuple[str, ...]) -> str:
    for label in labels:
        exact = re.compile(rf"^(?:{label})\s*:?$")
        prefix = re.compile(rf"^(?:{label})")

        for dt in soup.find_all("dt"):
            if exact.match(_flatten(dt.get_text(" "))):
                dd = dt.find_next("dd")
                n = pick_number(dd.get_text(" ")) if dd else ""
                if n:
                    return n

        for th in soup.find_all("th"):
            if prefix.match(_flatten(th.get_text(" "))):
                td = th.find_next("td")
                n = pick_number(td.get_text(" ")) if td else ""
                if n:
                    return n

        m = re.search(rf"(?:{label}).{{0,{TEXT_WINDOW}}}?([0-9][0-9,]*)\s*명", text)
        if m:
            return m.group(1).replace(",", "")
    return ""
