from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

# Prefer the service JSONL sinks; default to stdlib logging when the service
# package is not importable (e.g. library use outside the container).
try:
    from service import logging_utils as _svc_logging  # type: ignore
except ImportError:
    _svc_logging = None

_REDACTED = "***REDACTED***"

# Lower-cased key substrings treated as secrets. The listing API credential
# travels as "ServiceKey"/"serviceKey", so both spellings collapse here.
_SECRET_MARKERS = ("servicekey", "service_key", "password", "token", "secret", "api_key", "apikey", "authorization")


def _redact(value: Any) -> Any:
    if isinstance(value, Mapping):
        out: dict[str, Any] = {}
        for k, v in value.items():
            lk = str(k).lower()
            out[k] = _REDACTED if any(m in lk for m in _SECRET_MARKERS) else _redact(v)
        return out
    if isinstance(value, (list, tuple)):
        return [_redact(v) for v in value]
    return value


def activity(record: dict[str, Any]) -> None:
    """
    Write a structured activity record to the service sink if available,
    else to the 'volunteer_watch.activity' stdlib logger.
    """
    payload = _redact(record)
    if _svc_logging is not None:
        try:
            _svc_logging.write_activity_log(payload)
            return
        except (OSError, TypeError, ValueError):
            logging.getLogger(__name__).debug("activity sink failed", exc_info=True)
    logging.getLogger("volunteer_watch.activity").info(payload)


def error(record: dict[str, Any]) -> None:
    """Structured error record; same routing as activity()."""
    payload = _redact(record)
    if _svc_logging is not None:
        try:
            _svc_logging.write_error_log(payload)
            return
        except (OSError, TypeError, ValueError):
            logging.getLogger(__name__).debug("error sink failed", exc_info=True)
    logging.getLogger("volunteer_watch.error").error(payload)
