from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .utils import add_days_ymd, truthy


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings."""


# -----------------------------
# Field table: name -> (env var, kind, default)
# -----------------------------
_REQUIRED = object()

_FIELDS: dict[str, tuple[str, str, Any]] = {
    "service_key": ("SERVICE_KEY", "str", _REQUIRED),
    "use_notice_range": ("USE_NOTICE_RANGE", "bool", False),
    "offset_bg": ("OFFSET_BG", "int", 0),
    "offset_ed": ("OFFSET_ED", "int", 30),
    "sido_name": ("SIDO_NAME", "str", ""),
    "sido_code": ("SIDO_CODE", "str", ""),
    "gugun_code": ("GUGUN_CODE", "str", ""),
    "status_code": ("PROGRM_STTUS_SE", "str", ""),
    "recruiting_only": ("RECRUITING_ONLY", "bool", True),
    "per_page": ("PER", "int", 100),
    "max_pages": ("MAX_PAGES", "int", 50),
    "keyword": ("KEYWORD", "str", ""),
    "shard_gugun": ("SHARD_GUGUN", "bool", True),
    "desired_min": ("DESIRED_MIN", "int", 5000),
    "detail_concurrency": ("DETAIL_CONCURRENCY", "int", 16),
    "detail_delay_ms": ("DETAIL_DELAY_MS", "int", 0),
    "max_detail": ("MAX_DETAIL", "int", 999999),
    "list_concurrency": ("LIST_CONCURRENCY", "int", 1),
    "list_page_delay_ms": ("LIST_PAGE_DELAY_MS", "int", 350),
    "timeout_ms": ("REQUEST_TIMEOUT_MS", "int", 45000),
    "max_retries": ("MAX_RETRIES", "int", 5),
    "strict_region_filter": ("STRICT_REGION_FILTER", "bool", True),
    "force_ipv4": ("FORCE_IPV4", "bool", True),
    "output_path": ("OUTPUT_PATH", "str", "docs/data/1365.json"),
    "cache_path": ("CACHE_PATH", "str", "docs/data/recruit_cache.json"),
    "debug_dir": ("DEBUG_DIR", "str", "docs/debug"),
    "debug_dumps": ("DEBUG_DUMPS", "bool", True),
}


# -----------------------------
# Model
# -----------------------------
@dataclass(frozen=True)
class Settings:
    """
    Canonical configuration for one 'volunteer_watch' run.

    Built once at startup and passed explicitly; nothing mutates it. Filter
    relaxations during collection are tracked by the collector, not here.
    """

    service_key: str

    # Listing query
    use_notice_range: bool = False
    offset_bg: int = 0
    offset_ed: int = 30
    sido_name: str = ""
    sido_code: str = ""
    gugun_code: str = ""
    status_code: str = ""
    keyword: str = ""
    per_page: int = 100
    max_pages: int = 50

    # Local filters / collection shape
    recruiting_only: bool = True
    strict_region_filter: bool = True
    shard_gugun: bool = True
    desired_min: int = 5000

    # Concurrency, pacing, timeouts
    detail_concurrency: int = 16
    detail_delay_ms: int = 0
    max_detail: int = 999999
    list_concurrency: int = 1
    list_page_delay_ms: int = 350
    timeout_ms: int = 45000
    max_retries: int = 5
    force_ipv4: bool = True

    # Files
    output_path: str = "docs/data/1365.json"
    cache_path: str = "docs/data/recruit_cache.json"
    debug_dir: str = "docs/debug"
    debug_dumps: bool = True

    # ------------- convenience -------------
    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def debug_target(self) -> str | None:
        """Directory for raw-body dumps, or None when dumps are off."""
        return self.debug_dir if self.debug_dumps and self.debug_dir else None

    def notice_window(self, today: str) -> tuple[str, str]:
        """(begin, end) YYYYMMDD notice range relative to `today`, or ("", "")."""
        if not self.use_notice_range:
            return ("", "")
        return (add_days_ymd(today, self.offset_bg), add_days_ymd(today, self.offset_ed))

    def echo_params(self, today: str) -> dict[str, Any]:
        """
        Resolved configuration for the snapshot's `params` block.
        The credential is never included.
        """
        notice_bg, notice_ed = self.notice_window(today)
        out: dict[str, Any] = {
            "USE_NOTICE_RANGE": self.use_notice_range,
            "NOTICE_BG": notice_bg,
            "NOTICE_ED": notice_ed,
        }
        for name, (env_name, _kind, _default) in _FIELDS.items():
            if name in {"service_key", "use_notice_range"}:
                continue
            out[env_name] = getattr(self, name)
        out["refreshApplied"] = "always"
        return out

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(
        cls,
        kwargs: Mapping[str, Any] | None,
        environ: Mapping[str, str] | None = None,
    ) -> Settings:
        """
        Build Settings with validation.

        Each field resolves from (first hit wins):
            kwargs[<field name>]       e.g. {"per_page": 50}
            environ[<ENV NAME>]        e.g. PER=50
            the default in _FIELDS

        Only SERVICE_KEY / service_key is required.
        """
        kw = dict(kwargs or {})
        env = os.environ if environ is None else environ

        unknown = sorted(set(kw) - set(_FIELDS))
        if unknown:
            raise ConfigError(f"Unknown setting(s): {', '.join(unknown)}")

        values: dict[str, Any] = {}
        for name, (env_name, kind, default) in _FIELDS.items():
            raw = kw.get(name)
            if raw is None or (isinstance(raw, str) and not raw.strip()):
                raw = env.get(env_name)
            if raw is None or (isinstance(raw, str) and not raw.strip()):
                if default is _REQUIRED:
                    raise ConfigError(f"{env_name} missing")
                values[name] = default
                continue
            values[name] = _coerce(name, env_name, kind, raw)

        settings = cls(**values)
        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def _coerce(name: str, env_name: str, kind: str, raw: Any) -> Any:
    if kind == "bool":
        return truthy(raw)
    if kind == "int":
        try:
            return int(str(raw).strip())
        except ValueError as e:
            raise ConfigError(f"{env_name} ({name}) must be an integer, got {raw!r}") from e
    return str(raw).strip()


def _validate_settings(s: Settings) -> None:
    if not s.service_key.strip():
        raise ConfigError("SERVICE_KEY missing")

    for name in ("per_page", "max_pages", "detail_concurrency", "list_concurrency", "max_detail", "desired_min"):
        if getattr(s, name) < 1:
            raise ConfigError(f"'{name}' must be >= 1.")
    for name in ("detail_delay_ms", "list_page_delay_ms", "max_retries"):
        if getattr(s, name) < 0:
            raise ConfigError(f"'{name}' must be >= 0.")
    if s.timeout_ms <= 0:
        raise ConfigError("'timeout_ms' must be > 0.")
    if not s.output_path.strip():
        raise ConfigError("'output_path' cannot be empty.")
    if not s.cache_path.strip():
        raise ConfigError("'cache_path' cannot be empty.")

