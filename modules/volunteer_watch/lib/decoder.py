"""
Listing API envelope decoding.

The API answers in JSON when asked (`_type=json`) but falls back to XML on
many error paths, and occasionally returns neither. Both encodings share one
shape once parsed:

    response
      header: resultCode ("00" on success), resultMsg
      body:   totalCount, items: {item: <object> | [<object>, ...]} | ""

Gateway-level failures (bad key, quota) use a different XML root,
OpenAPI_ServiceResponse/cmmMsgHeader, and are reported as API errors too.
"""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from collections.abc import Mapping
from typing import Any

from .models import ListPage
from .utils import debug_dump

SUCCESS_CODE = "00"


class DecodeError(ValueError):
    """Body is neither JSON nor XML, or lacks the expected envelope."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class ApiResultError(RuntimeError):
    """Well-formed envelope carrying a non-success result code."""

    def __init__(self, code: str, message: str):
        super().__init__(f"API error {code}: {message}")
        self.code = code
        self.message = message


# ---- public -----------------------------------------------------------------


def decode_body(raw: str | bytes, content_type: str = "", *, debug_dir: str | None = None) -> dict[str, Any]:
    """
    Parse `raw` and return the envelope's `body` mapping.

    Raises ApiResultError for a non-"00" result code (or a gateway error
    envelope) and DecodeError for anything unrecognised or malformed. An
    unrecognised body is dumped to `debug_dir` when one is given.
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else str(raw or "")
    s = text.strip().lstrip("\ufeff")
    ct = (content_type or "").lower()

    if "json" in ct or s.startswith("{"):
        try:
            doc = json.loads(s)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Invalid JSON: {s[:200]}", raw=text) from e
        return _unwrap(doc, s, kind="JSON")

    if s.startswith("<") or "xml" in ct:
        try:
            root = ET.fromstring(s)
        except ET.ParseError as e:
            raise DecodeError(f"Invalid XML: {s[:200]}", raw=text) from e
        return _unwrap({root.tag: element_to_obj(root)}, s, kind="XML")

    debug_dump(debug_dir, "unknown_body.txt", s)
    raise DecodeError(f"Unknown response: {s[:200]}", raw=text)


def decode_page(raw: str | bytes, content_type: str = "", *, debug_dir: str | None = None) -> ListPage:
    """decode_body() plus item normalization into a ListPage."""
    body = decode_body(raw, content_type, debug_dir=debug_dir)
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else str(raw or "")
    return ListPage(items=items_from_body(body), total=_to_int(body.get("totalCount")), raw=text)


def items_from_body(body: Mapping[str, Any]) -> list[dict[str, Any]]:
    """
    Normalize body.items.item to a list of mappings. A single result comes
    back as a bare object; no results come back as "" or a missing key.
    """
    items = body.get("items")
    if not isinstance(items, Mapping):
        return []
    item = items.get("item")
    if item is None:
        return []
    seq = item if isinstance(item, list) else [item]
    return [dict(x) for x in seq if isinstance(x, Mapping)]


def element_to_obj(el: ET.Element) -> Any:
    """
    Convert an element to plain data: leaves become their stripped text,
    parents become dicts, and repeated child tags become lists. Attributes
    carry nothing the API uses and are dropped.
    """
    children = list(el)
    if not children:
        return (el.text or "").strip()
    out: dict[str, Any] = {}
    for child in children:
        value = element_to_obj(child)
        if child.tag in out:
            existing = out[child.tag]
            if isinstance(existing, list):
                existing.append(value)
            else:
                out[child.tag] = [existing, value]
        else:
            out[child.tag] = value
    return out


# ---- internals --------------------------------------------------------------


def _unwrap(doc: Any, s: str, *, kind: str) -> dict[str, Any]:
    if not isinstance(doc, Mapping):
        raise DecodeError(f"Unexpected {kind}: {s[:200]}", raw=s)

    gateway = doc.get("OpenAPI_ServiceResponse")
    if isinstance(gateway, Mapping):
        hdr = gateway.get("cmmMsgHeader") or {}
        code = str(hdr.get("returnReasonCode") or "99")
        msg = hdr.get("returnAuthMsg") or hdr.get("errMsg") or "gateway error"
        raise ApiResultError(code, str(msg))

    response = doc.get("response")
    if not isinstance(response, Mapping):
        raise DecodeError(f"Unexpected {kind}: {s[:200]}", raw=s)

    header = response.get("header")
    if isinstance(header, Mapping):
        code = header.get("resultCode")
        if code not in (None, "") and str(code) != SUCCESS_CODE:
            raise ApiResultError(str(code), str(header.get("resultMsg") or ""))

    body = response.get("body")
    if not isinstance(body, Mapping):
        raise DecodeError(f"Unexpected {kind}: {s[:200]}", raw=s)
    return dict(body)


def _to_int(v: Any) -> int:
    try:
        return int(str(v).strip())
    except (TypeError, ValueError):
        return 0
