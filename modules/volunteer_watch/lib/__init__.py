# modules/volunteer_watch/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .cache import RecruitCache
from .collector import Collection, CollectionExhaustedError, ListCollector, build_strategies, dedupe
from .config import ConfigError, Settings
from .decoder import ApiResultError, DecodeError, decode_body, decode_page
from .engine import run_once
from .enrich import enrich_details, fetch_detail_counts
from .extract import extract_counts
from .http_client import HttpClient, HttpStatusError
from .models import CacheEntry, DetailCounts, FillStats, ListingRecord, ListPage, Strategy
from .retry import with_retry
from .snapshot import build_snapshot, sort_records

__all__ = [
    "ApiResultError",
    "CacheEntry",
    "Collection",
    "CollectionExhaustedError",
    "ConfigError",
    "DecodeError",
    "DetailCounts",
    "FillStats",
    "HttpClient",
    "HttpStatusError",
    "ListCollector",
    "ListPage",
    "ListingRecord",
    "RecruitCache",
    "Settings",
    "Strategy",
    "build_snapshot",
    "build_strategies",
    "decode_body",
    "decode_page",
    "dedupe",
    "enrich_details",
    "extract_counts",
    "fetch_detail_counts",
    "run_once",
    "sort_records",
    "with_retry",
]
