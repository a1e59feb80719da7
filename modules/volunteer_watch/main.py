from __future__ import annotations

from typing import Any

from .lib.config import Settings
from .lib.engine import run_once as _run_engine
from .lib.logging_bridge import activity as log_activity


def run(**kwargs: Any) -> dict[str, Any]:
    """
    Entry point for the 'volunteer_watch' module.

    Accepts kwargs (from the CLI or scheduler) named after Settings fields,
    each overriding its environment variable, e.g.:
      sido_code: str = "6110000"         # SIDO_CODE
      keyword: str = ""                  # KEYWORD
      recruiting_only: bool = True       # RECRUITING_ONLY
      max_detail: int = 999999           # MAX_DETAIL
      output_path: str = "docs/data/1365.json"

    Returns:
      The snapshot document that was written to `output_path`.

    Raises:
      ConfigError before any network activity when configuration is invalid
      (e.g. SERVICE_KEY missing); CollectionExhaustedError when nothing
      could be collected.
    """
    settings = Settings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "volunteer_watch.main",
        "op": "start",
        "sido_code": settings.sido_code,
        "keyword": settings.keyword,
        "flags": {
            "recruiting_only": settings.recruiting_only,
            "strict_region_filter": settings.strict_region_filter,
            "shard_gugun": settings.shard_gugun,
            "use_notice_range": settings.use_notice_range,
        },
    })

    return _run_engine(settings)
